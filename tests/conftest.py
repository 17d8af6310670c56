"""Shared test fixtures for keeperlog."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

import pytest

from keeperlog.models import Capture, Competency, Session
from keeperlog.profile import ProfileStore
from keeperlog.storage.db import get_connection
from keeperlog.storage.repository import Repository


@pytest.fixture(autouse=True)
def activity_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "activity.jsonl"
    monkeypatch.setenv("KEEPERLOG_ACTIVITY_PATH", str(path))
    return path


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db_conn(db_path: Path) -> sqlite3.Connection:
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def repo(db_path: Path) -> Repository:
    store = Repository(db_path).open()
    yield store
    store.close()


@pytest.fixture
def profile_store(tmp_path: Path) -> ProfileStore:
    return ProfileStore(tmp_path / "profile.json")


@pytest.fixture
def sample_session() -> Session:
    return Session(
        date=datetime(2024, 3, 1),
        start_time=datetime(2024, 3, 1, 8, 30),
        end_time=datetime(2024, 3, 1, 10, 35),
        facility="Taronga Zoo",
        supervisor="Sam Keeper",
        role="Assisted",
        area="Australian mammals",
        status="completed",
        duration_minutes=125,
        reflection="**What did you observe or assist with today?**\nFed koalas",
        reflection_prompts={"What did you observe or assist with today?": "Fed koalas"},
        competencies=["Routine animal care and husbandry"],
        created_at=datetime(2024, 3, 1, 10, 35),
        updated_at=datetime(2024, 3, 1, 10, 35),
    )


@pytest.fixture
def sample_capture() -> Capture:
    return Capture(
        session_id=0,
        type="observation",
        timestamp=datetime(2024, 3, 1, 9, 15),
        content="Koala feeding on eucalyptus, normal appetite",
        tags=["behaviour", "husbandry"],
    )


@pytest.fixture
def populated_repo(repo: Repository, sample_session: Session, sample_capture: Capture) -> Repository:
    """Repository with two completed sessions, captures and two competencies."""
    first = repo.sessions.add(sample_session)
    sample_capture.session_id = first
    repo.captures.add(sample_capture)
    repo.captures.add(
        Capture(
            session_id=first,
            type="photo",
            timestamp=datetime(2024, 3, 1, 9, 30),
            content="Koala enclosure",
            media_url="data:image/jpeg;base64,AAAA",
            include_in_export=False,
        )
    )
    second = repo.sessions.add(
        Session(
            date=datetime(2024, 3, 8),
            start_time=datetime(2024, 3, 8, 7, 0),
            facility="Symbio Wildlife Park",
            supervisor=None,
            role="Observed",
            status="completed",
            duration_minutes=240,
            competencies=[],
        )
    )
    repo.captures.add(
        Capture(session_id=second, type="text", content="Cleaned aviary", tags=["hygiene"])
    )
    repo.competencies.add(Competency(code="Routine animal care and husbandry", order=0))
    repo.competencies.add(Competency(code="Workplace health and safety (WHS)", order=4, confidence=3))
    return repo
