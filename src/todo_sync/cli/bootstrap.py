# src/todo_sync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) log directory exists,
- wires the GitHub store, the sync engine and the history reconstructor
  into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import RemoteStore
from ..core.state import AppState
from ..history.reconstructor import HistoryReconstructor
from ..store.github_store import GitHubContentsStore
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, store: RemoteStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    store is injectable for tests; by default the GitHub contents store is
    built from settings (token/owner/repo must be set).
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if store is None:
        store = GitHubContentsStore.from_settings(settings)

    state = AppState(
        settings=settings,
        store=store,
        engine=SyncEngine(store, settings),
        history=HistoryReconstructor.from_settings(store, settings),
    )
    logger.info("State ready (folder=%s)", state.folder)
    return state


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    aclose = getattr(state.store, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)
