# src/todo_sync/core/models.py

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class SyncState(StrEnum):
    """
    Per-document operation state.

    Clean -> PendingWrite -> {Clean | Conflict}
    Clean -> PendingDelete -> {Deleted | Conflict}
    """

    CLEAN = "clean"
    PENDING_WRITE = "pending_write"
    PENDING_DELETE = "pending_delete"
    CONFLICT = "conflict"
    DELETED = "deleted"


class OperationKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    MOVE = "move"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    priority: int
    created_at: datetime
    archived: bool = False
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.priority, int) or not 1 <= self.priority <= 5:
            raise ValueError(f"priority must be an integer in [1, 5], got {self.priority!r}")


def document_id(path: str, version_token: str) -> str:
    """Id of a stored revision. Changes on every write; unique across paths even for equal bytes."""
    return hashlib.sha1(f"{path}\n{version_token}".encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class Document:
    id: str
    title: str
    body: str
    metadata: DocumentMetadata
    path: str
    version_token: str

    @property
    def archived(self) -> bool:
        return self.metadata.archived


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    name: str
    path: str
    version_token: str
    kind: str = "file"  # "file" | "dir"


@dataclass(frozen=True, slots=True)
class FileContent:
    content: str
    version_token: str
    path: str = ""


@dataclass(frozen=True, slots=True)
class CommitRecord:
    version_id: str
    message: str
    author: str
    timestamp: datetime | None
    historical_path: str | None = None


@dataclass(frozen=True, slots=True)
class CommitFile:
    """A file touched by a commit (previous_path is set for renames)."""

    path: str
    previous_path: str | None = None
    status: str = "modified"


@dataclass(frozen=True, slots=True)
class HistoricalContent:
    content: str
    version_id: str
    requested_path: str
    resolved_path: str
    found_via_similarity: bool = False
    title: str | None = None
    metadata: DocumentMetadata | None = None


@dataclass(slots=True)
class PendingOperation:
    """
    Per-document operation descriptor.

    For a move the engine fills completed/pending after the write succeeds;
    that pair is the intent marker a retry resumes from.
    """

    kind: OperationKind
    state: SyncState
    attempts: int = 0
    last_error: str | None = None
    source_path: str | None = None
    target_path: str | None = None
    completed: str | None = None
    pending: str | None = None
    version_token: str | None = None


@dataclass(frozen=True, slots=True)
class CreateResult:
    document: Document
    # False when the new path never showed up in the listing within the poll budget.
    confirmed: bool


@dataclass(frozen=True, slots=True)
class DeleteResult:
    path: str
    # True when the store still listed the path after the poll budget.
    unresolved: bool


@dataclass(frozen=True, slots=True)
class MoveResult:
    document: Document
    moved: bool


@dataclass(slots=True)
class ParsedDocument:
    title: str | None
    body: str
    fields: dict = field(default_factory=dict)
