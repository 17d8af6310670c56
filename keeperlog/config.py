"""Configuration loading for keeperlog.

Config sources (in priority order):
1. Explicit arguments passed to functions or CLI options
2. Environment variables (KEEPERLOG_DB_PATH, etc.)
3. .env file in current directory
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path("keeperlog.db")
DEFAULT_PROFILE_PATH = Path("keeperlog-profile.json")
DEFAULT_LOG_LEVEL = "WARNING"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    db_path: Path = DEFAULT_DB_PATH
    profile_path: Path = DEFAULT_PROFILE_PATH
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def load(cls) -> Config:
        return cls(
            db_path=Path(os.getenv("KEEPERLOG_DB_PATH", str(DEFAULT_DB_PATH))),
            profile_path=Path(os.getenv("KEEPERLOG_PROFILE_PATH", str(DEFAULT_PROFILE_PATH))),
            log_level=os.getenv("KEEPERLOG_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level, logging.WARNING)

    def validate(self) -> list[str]:
        """Return a list of config issues."""
        issues = []
        if self.log_level not in LOG_LEVELS:
            issues.append(f"Unknown log level '{self.log_level}' (KEEPERLOG_LOG_LEVEL)")
        db_dir = self.db_path.parent
        if str(db_dir) and not db_dir.exists():
            issues.append(f"Database directory does not exist: {db_dir} (KEEPERLOG_DB_PATH)")
        profile_dir = self.profile_path.parent
        if str(profile_dir) and not profile_dir.exists():
            issues.append(f"Profile directory does not exist: {profile_dir} (KEEPERLOG_PROFILE_PATH)")
        return issues
