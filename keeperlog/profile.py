"""Local profile document (name, qualification, preferences).

The profile lives in a small JSON file next to the database rather than in
it, so a bundle restore writes it separately from the table transaction.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from keeperlog.errors import InvalidFormatError, StorageUnavailableError

REFLECTION_LENGTHS = ("short", "standard")


class ProfileStore:
    """Reads and writes the profile JSON document."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidFormatError(f"Profile at {self.path} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot read profile at {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidFormatError(f"Profile at {self.path} is not a JSON object")
        return data

    def save(self, profile: dict[str, Any]) -> None:
        """Replace the profile atomically."""
        if not isinstance(profile, dict):
            raise InvalidFormatError("Profile must be a JSON object")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".profile-", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(profile, f, indent=2, default=str)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot write profile at {self.path}: {exc}") from exc

    def update(self, **changes: Any) -> dict[str, Any]:
        reflection_length = changes.get("reflectionLength")
        if reflection_length is not None and reflection_length not in REFLECTION_LENGTHS:
            raise ValueError(f"reflectionLength must be one of {', '.join(REFLECTION_LENGTHS)}")
        profile = {**self.load(), **changes}
        self.save(profile)
        return profile
