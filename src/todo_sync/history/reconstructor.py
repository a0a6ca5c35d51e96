# src/todo_sync/history/reconstructor.py

"""
History reconstruction.

A document's path changes over its lifetime (rename, archive toggle), but the
commit history is addressed by path. get_content_at() first tries the exact
(path, commit) pair; when the path did not exist at that commit it discovers
where the document lived, in this order:

1. historical paths recorded on the document's commits (nearest first),
   including the previous name of a rename commit,
2. the archive/active counterpart of the path,
3. files touched by the commit in the same folder with the same extension,
   ranked by filename similarity.

A result found through 2. or 3. (or any path other than the requested one)
is flagged found_via_similarity so callers can show it as a heuristic match.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import PurePosixPath

from ..content.frontmatter import FrontmatterCodec
from ..core.errors import NotFound
from ..core.models import CommitRecord, DocumentMetadata, FileContent, HistoricalContent
from ..core.ports import DocumentCodec, RemoteStore
from ..sync.paths import active_path, archive_path, folder_of, is_archived_path, title_from_filename
from .similarity import filename_similarity

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParsedMeta:
    title: str
    metadata: DocumentMetadata


class MetadataCache:
    """
    Parsed per-commit metadata keyed by (commit id, path, sha256 of content).

    Values are immutable, so a hit is indistinguishable from a fresh parse.
    When the cache grows past max_entries, entries older than the TTL go
    first, then the oldest until the bound holds.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max = max(1, int(max_entries))
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str, str], tuple[float, ParsedMeta]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key(version_id: str, path: str, content: str) -> tuple[str, str, str]:
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        return version_id, path, digest

    def get(self, version_id: str, path: str, content: str) -> ParsedMeta | None:
        k = self.key(version_id, path, content)
        hit = self._entries.get(k)
        if hit is None:
            return None
        stored_at, value = hit
        if self._clock() - stored_at > self._ttl:
            del self._entries[k]
            return None
        return value

    def put(self, version_id: str, path: str, content: str, value: ParsedMeta) -> None:
        k = self.key(version_id, path, content)
        self._entries.pop(k, None)
        self._entries[k] = (self._clock(), value)
        if len(self._entries) > self._max:
            self._evict()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > self._ttl]
        for k in expired:
            del self._entries[k]
        while len(self._entries) > self._max:
            self._entries.popitem(last=False)
        logger.debug("Metadata cache evicted %d expired entries, size=%d", len(expired), len(self._entries))


class HistoryReconstructor:
    def __init__(
        self,
        store: RemoteStore,
        *,
        codec: DocumentCodec | None = None,
        cache: MetadataCache | None = None,
        similarity_threshold: float = 0.7,
        max_commits: int = 20,
    ) -> None:
        self._store = store
        self._codec: DocumentCodec = codec or FrontmatterCodec()
        self.cache = cache or MetadataCache()
        self._threshold = float(similarity_threshold)
        self._max_commits = max(1, int(max_commits))

    @classmethod
    def from_settings(cls, store: RemoteStore, settings, *, codec: DocumentCodec | None = None) -> HistoryReconstructor:
        return cls(
            store,
            codec=codec,
            cache=MetadataCache(settings.history_cache_max_entries, settings.history_cache_ttl_seconds),
            similarity_threshold=settings.history_similarity_threshold,
            max_commits=settings.history_max_commits,
        )

    async def list_history(self, path: str) -> list[CommitRecord]:
        """Commits that touched path, newest first, each with the path it had then."""
        records = await self._store.list_commits(path, limit=self._max_commits)
        out = [
            r
            if r.historical_path
            else CommitRecord(
                version_id=r.version_id,
                message=r.message,
                author=r.author,
                timestamp=r.timestamp,
                historical_path=path,
            )
            for r in records
        ]
        logger.debug("History for %s: %d commits", path, len(out))
        return out

    def parse(self, version_id: str, path: str, content: str) -> ParsedMeta:
        cached = self.cache.get(version_id, path, content)
        if cached is not None:
            return cached
        parsed = self._codec.loads(content)
        value = ParsedMeta(
            title=parsed.title or title_from_filename(path),
            metadata=self._codec.metadata_from(parsed, path=path, archived=is_archived_path(path)),
        )
        self.cache.put(version_id, path, content, value)
        return value

    def _result(self, file: FileContent, version_id: str, requested: str, resolved: str) -> HistoricalContent:
        meta = self.parse(version_id, resolved, file.content)
        return HistoricalContent(
            content=file.content,
            version_id=version_id,
            requested_path=requested,
            resolved_path=resolved,
            found_via_similarity=resolved != requested,
            title=meta.title,
            metadata=meta.metadata,
        )

    async def get_content_at(self, path: str, version_id: str) -> HistoricalContent:
        try:
            file = await self._store.read_file_at_commit(path, version_id)
        except NotFound:
            logger.info("%s not found at %s; searching historical paths", path, version_id[:8])
        else:
            return self._result(file, version_id, path, path)

        for candidate in await self._candidates(path, version_id):
            try:
                file = await self._store.read_file_at_commit(candidate, version_id)
            except NotFound:
                continue
            logger.info("Resolved %s at %s via %s", path, version_id[:8], candidate)
            return self._result(file, version_id, path, candidate)

        raise NotFound(path, f"No version of {path} found at commit {version_id}")

    async def _candidates(self, path: str, version_id: str) -> list[str]:
        out: list[str] = []

        def add(p: str | None) -> None:
            if p and p != path and p not in out:
                out.append(p)

        # 1. Paths the document is known to have had.
        try:
            records = await self.list_history(path)
        except NotFound:
            records = []
        ids = [r.version_id for r in records]
        if version_id in ids:
            at = ids.index(version_id)
            records = sorted(records, key=lambda r: abs(ids.index(r.version_id) - at))
        for r in records:
            add(r.historical_path)
        if records:
            # The oldest listed commit is where the document arrived at this path.
            oldest = ids[-1]
            for f in await self._commit_files(oldest):
                if f.path == path:
                    add(f.previous_path)

        # 2. Archive toggle.
        folder = folder_of(path)
        add(active_path(folder, path) if is_archived_path(path) else archive_path(folder, path))

        # 3. Similar names touched by the commit itself.
        parents = {str(PurePosixPath(p).parent) for p in (path, *out)}
        suffix = PurePosixPath(path).suffix
        scored: list[tuple[float, str]] = []
        for f in await self._commit_files(version_id):
            for p in (f.path, f.previous_path):
                if not p or p == path or p in out:
                    continue
                pp = PurePosixPath(p)
                if str(pp.parent) not in parents or pp.suffix != suffix:
                    continue
                score = filename_similarity(path, p)
                if score >= self._threshold:
                    scored.append((score, p))
        scored.sort(key=lambda t: -t[0])
        for _, p in scored:
            add(p)

        logger.debug("History candidates for %s at %s: %s", path, version_id[:8], out)
        return out

    async def _commit_files(self, version_id: str):
        try:
            return await self._store.list_commit_files(version_id)
        except NotFound:
            return []
