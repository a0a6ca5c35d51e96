# src/todo_sync/sync/engine.py

"""
Sync engine.

Create / update / move / delete task documents against an eventually
consistent, version-controlled remote store:

- every operation on a document runs under that document's lock, so two
  operations on the same id never interleave; different ids run concurrently,
- writes carry the freshest version token the engine could read (optimistic
  concurrency); conflicts are retried a bounded number of times and then
  surfaced with the last known remote content, never overwritten,
- after a create or delete the engine polls the listing until the change is
  visible; polls are cancellable tasks keyed by document, so a newer
  operation on the same document supersedes a stale poll,
- a move is write-then-delete; if the delete fails the document exists at
  both paths and the engine raises PartialFailure, keeping an intent marker
  so a retry resumes at the delete.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, TypeVar

from ..content.frontmatter import FrontmatterCodec
from ..core.errors import (
    AlreadyExists,
    InvalidTitle,
    NotFound,
    PartialFailure,
    RemoteTimeout,
    TodoSyncError,
    VersionConflict,
    is_retryable,
)
from ..core.models import (
    CreateResult,
    DeleteResult,
    DirectoryEntry,
    Document,
    DocumentMetadata,
    FileContent,
    MoveResult,
    OperationKind,
    PendingOperation,
    SyncState,
    document_id,
)
from ..core.ports import DocumentCodec, RemoteStore
from .paths import (
    ARCHIVE_DIR,
    KEEP_FILE,
    active_path,
    archive_path,
    basename,
    folder_of,
    is_archived_path,
    is_todo_file,
    join_path,
    parse_filename,
    resolve_path,
    slugify,
    title_from_filename,
    today_stamp,
    validate_folder_name,
)
from .retry import PollOutcome, PollRegistry, RetryPolicy, poll_until
from .todo_cache import TodoCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

REFRESH_CONCURRENCY = 8


class SyncEngine:
    def __init__(
        self,
        store: RemoteStore,
        settings,
        *,
        codec: DocumentCodec | None = None,
        cache: TodoCache | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._settings = settings
        self._codec: DocumentCodec = codec or FrontmatterCodec()
        self.cache = cache or TodoCache()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep

        self._folder = str(settings.folder).strip("/")
        self._timeout = float(settings.request_timeout_seconds)
        self._network_attempts = max(1, int(settings.network_max_attempts))
        self._update_attempts = max(1, int(settings.update_max_attempts))
        self._path_attempts = max(1, int(settings.path_max_attempts))
        self._slug_max = int(settings.slug_max_length)
        self._poll_policy = RetryPolicy.from_settings(settings)

        self._polls = PollRegistry()
        self._locks: dict[str, asyncio.Lock] = {}
        self._folder_locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, PendingOperation] = {}
        self._reserved: set[str] = set()

    @property
    def folder(self) -> str:
        return self._folder

    def set_folder(self, folder: str) -> None:
        self._folder = validate_folder_name(folder)
        logger.info("Active folder: %s", self._folder)

    # ---- introspection ----

    def pending(self, doc_id: str) -> PendingOperation | None:
        return self._pending.get(self.cache.slot_for(doc_id))

    def state_of(self, doc_id: str) -> SyncState:
        op = self.pending(doc_id)
        if op is not None:
            return op.state
        return SyncState.CLEAN if doc_id in self.cache else SyncState.DELETED

    # ---- low-level helpers ----

    @contextlib.asynccontextmanager
    async def _owning(self, slot: str) -> AsyncIterator[None]:
        """Take the document's queue slot; a stale poll for it is cancelled first."""
        self._polls.cancel(slot)
        lock = self._locks.setdefault(slot, asyncio.Lock())
        async with lock:
            yield

    def _busy_slots(self) -> set[str]:
        return {k for k, lock in self._locks.items() if lock.locked()}

    async def _timed(self, label: str, aw: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise RemoteTimeout(label, self._timeout) from e

    async def _call(self, label: str, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        """One remote call: per-call timeout, bounded retry of transient failures only."""
        last_error: TodoSyncError | None = None
        for attempt in range(1, self._network_attempts + 1):
            try:
                return await self._timed(label, fn(*args))
            except TodoSyncError as e:
                if not is_retryable(e):
                    raise
                last_error = e
                logger.info("%s failed transiently (%s), attempt %d/%d", label, e, attempt, self._network_attempts)
                if attempt < self._network_attempts:
                    await self._sleep(self._poll_policy.delay_for(attempt))
        assert last_error is not None
        raise last_error

    async def _exists(self, path: str) -> bool:
        try:
            await self._call("read_file", self._store.read_file, path)
        except NotFound:
            return False
        return True

    async def _list(self, path: str) -> list[DirectoryEntry]:
        """Directory listing; a directory that does not exist yet is empty."""
        try:
            return await self._call("list_directory", self._store.list_directory, path)
        except NotFound:
            return []

    async def _listed(self, directory: str, path: str) -> bool:
        try:
            entries = await self._timed("list_directory", self._store.list_directory(directory))
        except NotFound:
            return False
        return any(e.path == path for e in entries)

    async def _poll(self, slot: str, directory: str, path: str, *, present: bool) -> PollOutcome:
        async def check() -> bool:
            return (await self._listed(directory, path)) is present

        label = f"poll {'create' if present else 'delete'} {path}"
        try:
            return await self._polls.run(slot, poll_until(check, self._poll_policy, sleep=self._sleep, label=label))
        except TodoSyncError as e:
            # The write already happened; only its visibility is unknown.
            logger.warning("%s stopped: %s", label, e)
            return PollOutcome.FAILED

    def _to_document(self, file: FileContent, path: str) -> Document:
        parsed = self._codec.loads(file.content)
        metadata = self._codec.metadata_from(parsed, path=path, archived=is_archived_path(path))
        return Document(
            id=document_id(path, file.version_token),
            title=parsed.title or title_from_filename(path),
            body=parsed.body,
            metadata=metadata,
            path=path,
            version_token=file.version_token,
        )

    def _require(self, doc_id: str) -> tuple[str, Document]:
        slot = self.cache.slot_for(doc_id)
        doc = self.cache.get(slot)
        if doc is None:
            raise NotFound(doc_id, f"Unknown document id: {doc_id}")
        return slot, doc

    def _start(self, slot: str, op: PendingOperation) -> PendingOperation:
        self._pending[slot] = op
        return op

    def _finish(self, slot: str) -> None:
        self._pending.pop(slot, None)

    def _half_moved(self, slot: str) -> PendingOperation | None:
        """The slot's move intent marker, if a move stopped before its delete."""
        op = self._pending.get(slot)
        if op is not None and op.kind is OperationKind.MOVE and op.pending == "delete":
            return op
        return None

    async def _settle_move(self, slot: str) -> None:
        """Finish a half-done move first so its marker is never overwritten."""
        op = self._half_moved(slot)
        if op is not None:
            logger.info("Finishing pending move of %s before next operation", op.source_path)
            await self._finish_move(slot, op)

    def _forget(self, slot: str) -> None:
        """Drop per-slot bookkeeping of a deleted document."""
        self._locks.pop(slot, None)
        self._pending.pop(slot, None)
        self.cache.forget(slot)

    # ---- listing ----

    async def _list_todos(self, directory: str) -> list[DirectoryEntry]:
        return [e for e in await self._list(directory) if e.kind == "file" and is_todo_file(e.name)]

    async def _load(self, path: str, sem: asyncio.Semaphore) -> Document | None:
        async with sem:
            try:
                file = await self._call("read_file", self._store.read_file, path)
            except NotFound:
                # Listed but already gone: the listing lags behind deletes.
                logger.debug("Listed file vanished before read: %s", path)
                return None
        return self._to_document(file, path)

    async def refresh(self, folder: str | None = None, *, include_archived: bool = True) -> list[Document]:
        """
        Reload the folder (and its archive) into the cache.

        Documents owned by an in-flight operation keep their cached record,
        and the source copy of a half-finished move is not resurrected.
        """
        folder = (folder or self._folder).strip("/")

        entries = await self._list_todos(folder)
        if include_archived:
            entries += await self._list_todos(join_path(folder, ARCHIVE_DIR))

        hidden = {op.source_path for op in self._pending.values() if op.pending == "delete"}
        paths = [e.path for e in entries if e.path not in hidden]

        sem = asyncio.Semaphore(REFRESH_CONCURRENCY)
        loaded = await asyncio.gather(*(self._load(p, sem) for p in paths))
        docs = [d for d in loaded if d is not None]

        self.cache.load_snapshot(docs, preserve=self._busy_slots())
        logger.info("Refreshed %s: %d documents", folder, len(docs))
        return self.cache.documents(folder, include_archived=include_archived)

    def documents(self, folder: str | None = None, *, include_archived: bool = False) -> list[Document]:
        return self.cache.documents(folder or self._folder, include_archived=include_archived)

    # ---- create ----

    async def create(
        self,
        title: str,
        body: str,
        *,
        priority: int = 3,
        tags: Sequence[str] = (),
        folder: str | None = None,
    ) -> CreateResult:
        slug = slugify(title, self._slug_max)
        if not slug:
            raise InvalidTitle(title)

        folder = (folder or self._folder).strip("/")
        now = self._clock()
        metadata = DocumentMetadata(priority=priority, created_at=now, archived=False, tags=tuple(tags))
        content = self._codec.dumps(title, metadata, body)
        message = f'feat: Add new todo for "{title}"'

        path = await self._reserve_path(folder, today_stamp(now), slug)
        try:
            op = PendingOperation(kind=OperationKind.CREATE, state=SyncState.PENDING_WRITE, target_path=path)
            try:
                token = await self._call("write_file", self._store.write_file, path, content, message)
            except AlreadyExists:
                # Someone created the identically named file first: adopt it.
                logger.info("Create raced on %s; adopting existing version", path)
                existing = await self._call("read_file", self._store.read_file, path)
                content, token = existing.content, existing.version_token

            doc = self._to_document(FileContent(content=content, version_token=token, path=path), path)
            slot = self.cache.put(doc)
        finally:
            self._reserved.discard(path)

        async with self._owning(slot):
            op.version_token = token
            self._start(slot, op)
            try:
                outcome = await self._poll(slot, folder, path, present=True)
            finally:
                self._finish(slot)

        confirmed = outcome is PollOutcome.CONFIRMED
        if not confirmed:
            logger.warning("Created %s but it is not listed yet (%s); proceeding optimistically", path, outcome.value)
        else:
            logger.info("Created %s", path)
        return CreateResult(document=doc, confirmed=confirmed)

    async def _reserve_path(
        self,
        directory: str,
        date_stamp: str,
        slug: str,
        *,
        current_path: str | None = None,
    ) -> str:
        lock = self._folder_locks.setdefault(directory, asyncio.Lock())
        async with lock:
            taken = (self.cache.paths() | self._reserved) - ({current_path} if current_path else set())
            path = await resolve_path(
                self._exists,
                directory,
                date_stamp,
                slug,
                current_path=current_path,
                taken=taken,
                max_attempts=self._path_attempts,
            )
            self._reserved.add(path)
            return path

    # ---- update ----

    async def update(
        self,
        doc_id: str,
        body: str,
        metadata: DocumentMetadata | None = None,
        *,
        title: str | None = None,
        message: str | None = None,
    ) -> Document:
        """
        Write a new body (and optionally metadata) at the same path.

        The document is re-read right before every write attempt to use the
        freshest version token. Exhausting the budget raises VersionConflict
        with the last remote content; the remote copy is never clobbered.
        """
        slot, _ = self._require(doc_id)
        async with self._owning(slot):
            await self._settle_move(slot)
            _, doc = self._require(slot)
            op = self._start(
                slot,
                PendingOperation(kind=OperationKind.UPDATE, state=SyncState.PENDING_WRITE, source_path=doc.path),
            )

            meta = replace(metadata or doc.metadata, archived=is_archived_path(doc.path))
            content = self._codec.dumps(title or doc.title, meta, body)
            message = message or f'fix: Update todo "{doc.title}"'

            last: FileContent | None = None
            for attempt in range(1, self._update_attempts + 1):
                op.attempts = attempt
                try:
                    last = await self._call("read_file", self._store.read_file, doc.path)
                    token = await self._call(
                        "write_file", self._store.write_file, doc.path, content, message, last.version_token
                    )
                except VersionConflict as e:
                    op.last_error = str(e)
                    logger.info("Update conflict on %s, retry %d/%d", doc.path, attempt, self._update_attempts)
                    continue
                except TodoSyncError:
                    # Not written; the cached version is still the remote one.
                    self._finish(slot)
                    raise

                new_doc = self._to_document(FileContent(content=content, version_token=token, path=doc.path), doc.path)
                self.cache.replace(slot, new_doc)
                self._finish(slot)
                logger.info("Updated %s", doc.path)
                return new_doc

            op.state = SyncState.CONFLICT
            raise VersionConflict(
                doc.path,
                f"Update of {doc.path} conflicted {self._update_attempts} times",
                last_known=last,
                attempts=self._update_attempts,
            )

    async def set_priority(self, doc_id: str, priority: int) -> Document:
        _, doc = self._require(doc_id)
        meta = replace(doc.metadata, priority=priority)
        return await self.update(
            doc_id,
            doc.body,
            meta,
            message=f'feat: Update priority to P{priority} for "{doc.title}"',
        )

    # ---- move / archive / rename ----

    async def move(
        self,
        doc_id: str,
        new_path: str,
        *,
        content: str | None = None,
        message: str | None = None,
    ) -> MoveResult:
        """
        Relocate a document: write at new_path, then delete the old path.

        The two steps are not atomic. If the delete fails the document exists
        at both paths and PartialFailure is raised; calling move() again with
        the same target (or resume()) only retries the delete.
        """
        new_path = new_path.strip("/")
        slot, _ = self._require(doc_id)
        async with self._owning(slot):
            op = self._half_moved(slot)
            if op is not None:
                if op.target_path == new_path:
                    return await self._finish_move(slot, op)
                await self._finish_move(slot, op)

            _, doc = self._require(slot)
            if new_path == doc.path:
                return MoveResult(document=doc, moved=False)

            op = self._start(
                slot,
                PendingOperation(
                    kind=OperationKind.MOVE,
                    state=SyncState.PENDING_WRITE,
                    source_path=doc.path,
                    target_path=new_path,
                ),
            )
            message = message or f"Move {basename(doc.path)} to {new_path}"

            try:
                source = await self._call("read_file", self._store.read_file, doc.path)
                data = content if content is not None else source.content
                try:
                    token = await self._call("write_file", self._store.write_file, new_path, data, message)
                except AlreadyExists:
                    existing = await self._call("read_file", self._store.read_file, new_path)
                    if existing.content != data:
                        op.state = SyncState.CONFLICT
                        raise
                    # Same bytes already there (e.g. an earlier attempt): adopt them.
                    token = existing.version_token
            except TodoSyncError as e:
                op.last_error = str(e)
                if op.state is not SyncState.CONFLICT:
                    # Nothing was written; the document is unchanged.
                    self._finish(slot)
                raise

            moved = self._to_document(FileContent(content=data, version_token=token, path=new_path), new_path)
            self.cache.replace(slot, moved)

            op.completed = "write"
            op.pending = "delete"
            op.version_token = source.version_token
            op.state = SyncState.PENDING_DELETE
            return await self._finish_move(slot, op)

    async def _finish_move(self, slot: str, op: PendingOperation) -> MoveResult:
        assert op.source_path is not None and op.version_token is not None
        op.attempts += 1
        name = basename(op.source_path)
        try:
            await self._call(
                "delete_file",
                self._store.delete_file,
                op.source_path,
                op.version_token,
                f"Move: Remove {name} from {PurePosixPath(op.source_path).parent}",
            )
        except NotFound:
            logger.info("Move source %s already gone", op.source_path)
        except TodoSyncError as e:
            op.last_error = str(e)
            logger.warning("Move of %s stopped after write: %s", op.source_path, e)
            raise PartialFailure(completed="write", pending="delete", operation=op, cause=e) from e

        op.completed = "delete"
        op.pending = None
        op.state = SyncState.CLEAN
        self._finish(slot)
        doc = self.cache.get(slot)
        assert doc is not None
        logger.info("Moved %s -> %s", op.source_path, op.target_path)
        return MoveResult(document=doc, moved=True)

    async def resume(self, doc_id: str) -> MoveResult:
        """Finish a move that stopped between its write and delete."""
        slot, _ = self._require(doc_id)
        async with self._owning(slot):
            op = self._half_moved(slot)
            if op is None:
                _, doc = self._require(slot)
                return MoveResult(document=doc, moved=False)
            return await self._finish_move(slot, op)

    async def archive(self, doc_id: str) -> MoveResult:
        _, doc = self._require(doc_id)
        folder = folder_of(doc.path)
        target = archive_path(folder, doc.path)
        return await self.move(
            doc_id,
            target,
            message=f"Archive: Move {basename(doc.path)} to {join_path(folder, ARCHIVE_DIR)}",
        )

    async def unarchive(self, doc_id: str) -> MoveResult:
        _, doc = self._require(doc_id)
        folder = folder_of(doc.path)
        target = active_path(folder, doc.path)
        return await self.move(doc_id, target, message=f"Unarchive: Move {basename(doc.path)} to {folder}")

    async def rename(self, doc_id: str, new_title: str) -> MoveResult:
        """New title -> new slug and path (same date stamp), title rewritten in the header."""
        slug = slugify(new_title, self._slug_max)
        if not slug:
            raise InvalidTitle(new_title)

        _, doc = self._require(doc_id)
        info = parse_filename(doc.path)
        stamp = info.date_stamp if info is not None else today_stamp(doc.metadata.created_at)
        directory = str(PurePosixPath(doc.path).parent)

        new_path = await self._reserve_path(directory, stamp, slug, current_path=doc.path)
        try:
            if new_path == doc.path:
                updated = await self.update(doc_id, doc.body, title=new_title)
                return MoveResult(document=updated, moved=False)
            content = self._codec.dumps(new_title, doc.metadata, doc.body)
            return await self.move(
                doc_id,
                new_path,
                content=content,
                message=f'feat: Rename "{doc.title}" to "{new_title}"',
            )
        finally:
            self._reserved.discard(new_path)

    # ---- delete ----

    async def delete(self, doc_id: str) -> DeleteResult:
        """
        Delete a document and wait until the listing no longer shows it.

        If the store still lists the path after the poll budget, the result
        is unresolved=True rather than a confirmed deletion.
        """
        slot, _ = self._require(doc_id)
        async with self._owning(slot):
            await self._settle_move(slot)
            _, doc = self._require(slot)
            op = self._start(
                slot,
                PendingOperation(kind=OperationKind.DELETE, state=SyncState.PENDING_DELETE, source_path=doc.path),
            )
            message = f'Delete todo "{doc.title}"'

            last: FileContent | None = None
            deleted = False
            try:
                for attempt in range(1, self._update_attempts + 1):
                    op.attempts = attempt
                    try:
                        last = await self._call("read_file", self._store.read_file, doc.path)
                        await self._call("delete_file", self._store.delete_file, doc.path, last.version_token, message)
                    except NotFound:
                        logger.info("Delete: %s already gone", doc.path)
                    except VersionConflict as e:
                        op.last_error = str(e)
                        logger.info("Delete conflict on %s, retry %d/%d", doc.path, attempt, self._update_attempts)
                        continue
                    deleted = True
                    break
            except TodoSyncError:
                self._finish(slot)
                raise

            if not deleted:
                op.state = SyncState.CONFLICT
                raise VersionConflict(
                    doc.path,
                    f"Delete of {doc.path} conflicted {self._update_attempts} times",
                    last_known=last,
                    attempts=self._update_attempts,
                )

            self.cache.remove(slot)
            op.state = SyncState.DELETED
            try:
                outcome = await self._poll(slot, str(PurePosixPath(doc.path).parent), doc.path, present=False)
            finally:
                self._finish(slot)
        self._forget(slot)

        unresolved = outcome is not PollOutcome.CONFIRMED
        if unresolved:
            logger.warning("Deleted %s but it is still listed (%s)", doc.path, outcome.value)
        else:
            logger.info("Deleted %s", doc.path)
        return DeleteResult(path=doc.path, unresolved=unresolved)

    # ---- folders ----

    async def ensure_directory(self, folder: str, message: str | None = None) -> bool:
        """Create folder/.gitkeep when the folder does not exist. Returns True if created."""
        folder = folder.strip("/")
        try:
            await self._call("list_directory", self._store.list_directory, folder)
            return False
        except NotFound:
            pass

        try:
            await self._call(
                "write_file",
                self._store.write_file,
                join_path(folder, KEEP_FILE),
                f"# This file ensures the {folder} directory exists\n",
                message or f"feat: Create {folder} directory",
            )
        except AlreadyExists:
            return False
        logger.info("Created directory %s", folder)
        return True

    async def list_project_folders(self) -> list[str]:
        entries = await self._list("")
        folders: list[str] = []
        for e in entries:
            if e.kind != "dir":
                continue
            try:
                folders.append(validate_folder_name(e.name))
            except ValueError:
                continue
        if self._folder not in folders:
            folders.insert(0, self._folder)
        return folders

    async def create_project_folder(self, name: str) -> str:
        name = validate_folder_name(name)
        files = (
            (
                join_path(name, KEEP_FILE),
                f"# {name} Project\n\nThis file ensures the {name} directory exists in the repository.\n",
                f"feat: Create {name} project folder",
            ),
            (
                join_path(name, ARCHIVE_DIR, KEEP_FILE),
                f"# {name}/archive\n\nThis directory contains archived tasks from the {name} project.\n",
                f"feat: Create {name}/archive directory",
            ),
        )
        for path, content, message in files:
            try:
                await self._call("write_file", self._store.write_file, path, content, message)
            except AlreadyExists:
                logger.info("%s already exists", path)
        logger.info("Project folder ready: %s", name)
        return name
