# src/todo_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..history.reconstructor import HistoryReconstructor
from ..sync.engine import SyncEngine
from .models import CommitRecord, Document
from .ports import RemoteStore


@dataclass
class AppState:
    """Everything a connector needs to run commands against one repository."""

    settings: Any
    store: RemoteStore
    engine: SyncEngine
    history: HistoryReconstructor

    # Last numbered listing shown to the user; /show 2 refers to listing[1].
    listing: list[Document] = field(default_factory=list)
    # Last /history output per document id (for commit prefix lookup).
    commits: dict[str, list[CommitRecord]] = field(default_factory=dict)

    @property
    def folder(self) -> str:
        return self.engine.folder
