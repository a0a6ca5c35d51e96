# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_sync.cli.bootstrap import create_initial_state
from todo_sync.core.state import AppState
from todo_sync.sync.engine import SyncEngine

from .fakes import InMemoryStore

NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the engine, history and AppState.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="todo-sync-test",
        data_dir=tmp_path / "data",
        folder="todos",
        request_timeout_seconds=5.0,
        network_max_attempts=3,
        poll_max_attempts=4,
        poll_base_delay_seconds=0.0,
        poll_max_delay_seconds=0.0,
        update_max_attempts=3,
        path_max_attempts=20,
        slug_max_length=50,
        history_cache_max_entries=100,
        history_cache_ttl_seconds=300.0,
        history_similarity_threshold=0.7,
        history_max_commits=20,
    )


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def engine(store: InMemoryStore, settings: SimpleNamespace) -> SyncEngine:
    return SyncEngine(store, settings, clock=lambda: NOW, sleep=no_sleep)


@pytest.fixture()
def state(settings: SimpleNamespace, store: InMemoryStore) -> AppState:
    """AppState wired with the in-memory store and a fixed clock."""
    app = create_initial_state(settings=settings, store=store)
    app.engine = SyncEngine(store, settings, clock=lambda: NOW, sleep=no_sleep)
    return app
