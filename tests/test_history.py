# tests/test_history.py

from __future__ import annotations

import pytest

from todo_sync.core.errors import NotFound
from todo_sync.core.models import DocumentMetadata
from todo_sync.history.reconstructor import HistoryReconstructor, MetadataCache, ParsedMeta
from todo_sync.history.similarity import filename_similarity, levenshtein

from .conftest import NOW


@pytest.fixture()
def history(store) -> HistoryReconstructor:
    return HistoryReconstructor(store)


@pytest.mark.asyncio
async def test_exact_path_returns_stored_bytes(engine, store, history) -> None:
    doc = (await engine.create("Report", "draft")).document
    first = store.files[doc.path]
    await engine.update(doc.id, "second")
    await engine.update(doc.id, "third")

    records = await history.list_history(doc.path)

    assert len(records) == 3
    assert all(r.historical_path == doc.path for r in records)
    oldest = records[-1]
    found = await history.get_content_at(doc.path, oldest.version_id)

    assert found.content == first
    assert found.found_via_similarity is False
    assert found.requested_path == found.resolved_path == doc.path
    assert found.title == "Report"
    assert found.metadata.created_at == NOW


@pytest.mark.asyncio
async def test_renamed_file_found_through_rename_commit(store, history) -> None:
    old = "todos/2025-01-15-old-name.md"
    new = "todos/2025-01-15-new-name.md"
    before_rename = store.seed(old, "---\ntitle: Old name\npriority: 2\n---\nbody\n")
    store.rename(old, new)

    found = await history.get_content_at(new, before_rename)

    assert found.found_via_similarity is True
    assert found.requested_path == new
    assert found.resolved_path == old
    assert found.content == "---\ntitle: Old name\npriority: 2\n---\nbody\n"
    assert found.title == "Old name"
    assert found.metadata.priority == 2


@pytest.mark.asyncio
async def test_archived_file_found_at_active_path(engine, store, history) -> None:
    doc = (await engine.create("Archive me", "body")).document
    version = store.commits[-1].version_id
    moved = (await engine.archive(doc.id)).document

    found = await history.get_content_at(moved.path, version)

    assert found.found_via_similarity is True
    assert found.resolved_path == doc.path
    assert found.content == store.files[moved.path]
    assert found.metadata.archived is False


@pytest.mark.asyncio
async def test_similar_sibling_touched_by_commit(store, history) -> None:
    old = "todos/2025-01-15-ship-release-note.md"
    new = "todos/2025-01-15-ship-release-notes.md"
    at = store.seed(old, "v1")
    store.seed("todos/2025-01-15-unrelated-chore.md", "noise")
    # Moved as write + delete, so no rename record links the two paths.
    store.seed(new, "v2")
    store.files.pop(old)

    found = await history.get_content_at(new, at)

    assert found.found_via_similarity is True
    assert found.resolved_path == old
    assert found.content == "v1"


@pytest.mark.asyncio
async def test_no_candidate_raises_not_found(store, history) -> None:
    at = store.seed("todos/2025-01-15-something.md", "x")
    store.seed("todos/2025-01-15-entirely-different.md", "y")

    with pytest.raises(NotFound):
        await history.get_content_at("todos/2025-01-15-entirely-different.md", at)


@pytest.mark.asyncio
async def test_repeated_reads_hit_metadata_cache(engine, store, history) -> None:
    doc = (await engine.create("Cached", "body")).document
    version = store.commits[-1].version_id

    a = await history.get_content_at(doc.path, version)
    b = await history.get_content_at(doc.path, version)

    assert a == b
    assert len(history.cache) == 1


def test_filename_similarity_rules() -> None:
    assert filename_similarity("todos/2025-01-15-plan.md", "todos/archive/2025-02-01-plan.md") == 1.0
    assert filename_similarity("P1--2024-12-01--Plan.md", "plan.md") == 1.0
    assert filename_similarity("release-notes.md", "release-notes-v2.md") == 0.8
    assert filename_similarity("deploy-service.md", "deploy-docs.md") == 0.7
    assert filename_similarity("abc.md", "xyz.md") == 0.0
    assert filename_similarity("", "x.md") == 0.0


def test_levenshtein() -> None:
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0


def _meta(priority: int = 3) -> ParsedMeta:
    return ParsedMeta(title="t", metadata=DocumentMetadata(priority=priority, created_at=NOW))


def test_metadata_cache_key_uses_content_hash() -> None:
    cache = MetadataCache()
    cache.put("c1", "a.md", "abcd", _meta(1))

    assert cache.get("c1", "a.md", "abcd") == _meta(1)
    # Same length, different bytes.
    assert cache.get("c1", "a.md", "abce") is None
    assert cache.get("c2", "a.md", "abcd") is None


def test_metadata_cache_expires_entries() -> None:
    now = [0.0]
    cache = MetadataCache(max_entries=10, ttl_seconds=60, clock=lambda: now[0])
    cache.put("c1", "a.md", "x", _meta())

    now[0] = 61.0

    assert cache.get("c1", "a.md", "x") is None
    assert len(cache) == 0


def test_metadata_cache_evicts_expired_then_oldest() -> None:
    now = [0.0]
    cache = MetadataCache(max_entries=2, ttl_seconds=60, clock=lambda: now[0])
    cache.put("c1", "a.md", "x", _meta())
    now[0] = 50.0
    cache.put("c2", "a.md", "x", _meta())
    cache.put("c3", "a.md", "x", _meta())
    # c1 is the oldest (not yet expired): dropped to stay within bound.
    assert len(cache) == 2
    assert cache.get("c1", "a.md", "x") is None

    now[0] = 111.0
    cache.put("c4", "a.md", "x", _meta())
    # c2 and c3 are older than the TTL at this point; only c4 remains.
    assert len(cache) == 1
    assert cache.get("c4", "a.md", "x") == _meta()
