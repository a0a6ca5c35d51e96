# src/todo_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync engine and the history reconstructor depend on Protocols instead of
concrete implementations. This keeps the remote store swappable (GitHub
contents API in production, an in-memory store in tests) and keeps the
document serializer outside the engine.
"""

from typing import Protocol, Sequence

from .models import CommitFile, CommitRecord, DirectoryEntry, DocumentMetadata, FileContent, ParsedDocument


class RemoteStore(Protocol):
    """
    Typed access to the externally hosted, version-controlled content store.

    Every call may fail transiently. The store is eventually consistent:
    a successful write is not guaranteed to show up in list_directory yet.
    """

    async def list_directory(self, path: str) -> list[DirectoryEntry]: ...

    async def read_file(self, path: str) -> FileContent: ...

    async def write_file(
            self,
            path: str,
            content: str,
            message: str,
            base_version: str | None = None,
    ) -> str: ...

    async def delete_file(self, path: str, version_token: str, message: str) -> None: ...

    async def list_commits(self, path: str, limit: int | None = None) -> list[CommitRecord]: ...

    async def read_file_at_commit(self, path: str, version_id: str) -> FileContent: ...

    async def list_commit_files(self, version_id: str) -> list[CommitFile]: ...


class DocumentCodec(Protocol):
    """Whole-file serializer: structured header + body."""

    def dumps(self, title: str, metadata: DocumentMetadata, body: str) -> str: ...

    def loads(self, content: str) -> ParsedDocument: ...

    def metadata_from(
            self,
            parsed: ParsedDocument,
            *,
            path: str,
            archived: bool,
            default_tags: Sequence[str] = (),
    ) -> DocumentMetadata: ...
