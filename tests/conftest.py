"""Shared test fixtures for Ideaflow."""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ideaflow.config import Config
from ideaflow.core.evaluation import EvaluationEngine
from ideaflow.core.ideas import IdeaService
from ideaflow.events.bus import EventBus
from ideaflow.models.idea import Idea, IdeaStatus
from ideaflow.storage.sqlite_store import SQLiteStore

BASE_TIME = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def tmp_db(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
async def store(tmp_db: Path) -> SQLiteStore:
    s = SQLiteStore(tmp_db)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(workspace_path=tmp_path)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def engine(store: SQLiteStore, bus: EventBus) -> EvaluationEngine:
    return EvaluationEngine(store, bus)


@pytest.fixture
def ideas(store: SQLiteStore, bus: EventBus) -> IdeaService:
    return IdeaService(store, bus)


@pytest.fixture
def make_idea(store: SQLiteStore):
    """Insert ideas with strictly increasing creation times."""
    counter = itertools.count()

    async def _make(
        title: str | None = None,
        *,
        status: IdeaStatus = IdeaStatus.SUBMITTED,
        **fields,
    ) -> Idea:
        n = next(counter)
        fields.setdefault("created_at", (BASE_TIME + timedelta(minutes=n)).isoformat())
        idea = Idea(title=title or f"Idea {n}", status=status, **fields)
        await store.insert_idea(idea.to_storage())
        return idea

    return _make
