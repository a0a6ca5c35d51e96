# src/todo_sync/core/errors.py

"""
Error taxonomy shared by the remote store adapter, the sync engine and the
history reconstructor.

Retry classes:
- TransientNetwork (and RemoteTimeout): retried within a bounded budget.
- VersionConflict: retried by the engine after re-reading the document.
- RateLimited / Forbidden / RemoteRejected: never retried, surfaced immediately.

Soft outcomes (a create that could not be confirmed, a delete still listed
after the poll budget) are reported as result values, not as exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import FileContent, PendingOperation


class TodoSyncError(Exception):
    """Base class for every error raised by todo_sync."""


class NotFound(TodoSyncError):
    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"Not found: {path}")


class VersionConflict(TodoSyncError):
    """
    The base version token given to a write/delete is stale.

    last_known carries the freshest remote content the engine saw,
    so a caller can show it instead of losing either side.
    """

    def __init__(
        self,
        path: str,
        message: str | None = None,
        *,
        last_known: FileContent | None = None,
        attempts: int = 0,
    ) -> None:
        self.path = path
        self.last_known = last_known
        self.attempts = attempts
        super().__init__(message or f"Version conflict at {path}")


class AlreadyExists(VersionConflict):
    """A create-only write (no base token) hit an existing file."""

    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"File already exists: {path}")


class PathExhausted(TodoSyncError):
    def __init__(self, base_path: str, attempts: int) -> None:
        self.base_path = base_path
        self.attempts = attempts
        super().__init__(f"No free path for {base_path} after {attempts} attempts")


class InvalidTitle(TodoSyncError, ValueError):
    """The title produces an empty slug (empty or punctuation only)."""

    def __init__(self, title: str) -> None:
        self.title = title
        super().__init__(f"Title {title!r} produces an empty slug")


class RateLimited(TodoSyncError):
    def __init__(self, message: str = "Rate limited by remote store", *, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class Forbidden(TodoSyncError):
    def __init__(self, message: str = "Access denied by remote store", *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RemoteRejected(TodoSyncError):
    """The store refused the request as malformed (a 4xx with no finer mapping)."""

    def __init__(self, message: str = "Request rejected by remote store", *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransientNetwork(TodoSyncError):
    def __init__(self, message: str = "Transient network error", *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RemoteTimeout(TransientNetwork):
    """A single remote call exceeded its timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:.1f}s")


class PartialFailure(TodoSyncError):
    """
    A multi-step operation stopped between sub-steps.

    completed/pending name the sub-steps ("write", "delete"); operation is the
    intent marker the engine keeps so a retry resumes at the pending step.
    """

    def __init__(
        self,
        *,
        completed: str,
        pending: str,
        operation: PendingOperation | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.completed = completed
        self.pending = pending
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Partial failure (completed={completed}, pending={pending}){detail}")


def is_retryable(err: BaseException) -> bool:
    return isinstance(err, TransientNetwork)


def friendly_error_message(err: Any) -> str:
    if isinstance(err, RateLimited):
        if err.retry_after:
            return f"Remote store rate limit reached. Try again in {int(err.retry_after)}s."
        return "Remote store rate limit reached. Try again later."
    if isinstance(err, Forbidden):
        return "Remote store denied access. Check TODO_SYNC_GITHUB_TOKEN and repository settings."
    if isinstance(err, PartialFailure):
        return f"Operation stopped after '{err.completed}'; '{err.pending}' is pending. Use /resume to finish it."
    if isinstance(err, VersionConflict):
        return f"The document changed remotely ({err.path}); your edit was not written."
    if isinstance(err, InvalidTitle):
        return "Title must contain at least one letter or digit."
    msg = str(err).strip()
    return msg or err.__class__.__name__
