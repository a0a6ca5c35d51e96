# tests/test_todo_cache.py

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from todo_sync.core.models import Document, DocumentMetadata
from todo_sync.sync.todo_cache import TodoCache


def _doc(doc_id: str, path: str, priority: int = 3, day: int = 1) -> Document:
    return Document(
        id=doc_id,
        title=doc_id,
        body="",
        metadata=DocumentMetadata(
            priority=priority,
            created_at=datetime(2025, 1, day, tzinfo=timezone.utc),
            archived="/archive/" in path,
        ),
        path=path,
        version_token=doc_id,
    )


def test_replace_keeps_old_ids_as_aliases() -> None:
    cache = TodoCache()
    v1 = _doc("v1", "todos/a.md")
    slot = cache.put(v1)

    v2 = replace(v1, id="v2", version_token="v2", body="new")
    cache.replace("v1", v2)
    v3 = replace(v2, id="v3", version_token="v3", path="todos/archive/a.md")
    cache.replace("v2", v3)

    assert len(cache) == 1
    assert cache.get("v1") == v3
    assert cache.slot_for("v3") == slot
    assert cache.find_by_path("todos/archive/a.md") == v3

    assert cache.remove("v2") == v3
    assert "v1" not in cache
    assert cache.paths() == set()


def test_documents_sorted_and_filtered() -> None:
    cache = TodoCache()
    cache.put(_doc("low", "todos/low.md", priority=5))
    cache.put(_doc("old", "todos/old.md", priority=1, day=1))
    cache.put(_doc("new", "todos/new.md", priority=1, day=9))
    cache.put(_doc("done", "todos/archive/done.md", priority=1))
    cache.put(_doc("other", "work/other.md", priority=1))

    assert [d.id for d in cache.documents("todos")] == ["old", "new", "low"]
    assert [d.id for d in cache.documents("todos", include_archived=True)] == ["old", "new", "low", "done"]
    assert len(cache.documents()) == 4


def test_snapshot_preserves_in_flight_slots() -> None:
    cache = TodoCache()
    busy = cache.put(_doc("b1", "todos/busy.md"))
    cache.put(_doc("gone", "todos/gone.md"))
    cache.put(_doc("same", "todos/same.md"))

    cache.load_snapshot(
        [
            _doc("b0", "todos/busy.md"),
            _doc("same", "todos/same.md"),
            _doc("fresh", "todos/fresh.md"),
        ],
        preserve=[busy],
    )

    assert cache.get(busy).id == "b1"
    assert cache.get("gone") is None
    assert cache.get("same") is not None
    assert cache.get("fresh") is not None
    assert sorted(cache.paths()) == ["todos/busy.md", "todos/fresh.md", "todos/same.md"]


def test_forget_drops_aliases_of_removed_slot() -> None:
    cache = TodoCache()
    slot = cache.put(_doc("v1", "todos/a.md"))
    cache.replace("v1", _doc("v2", "todos/a.md"))

    cache.forget(slot)
    assert cache.slot_for("v2") == slot

    cache.remove("v2")
    cache.forget(slot)
    assert cache.slot_for("v1") == "v1"
    assert cache.slot_for("v2") == "v2"


def test_snapshot_drops_aliases_of_vanished_documents() -> None:
    cache = TodoCache()
    slot = cache.put(_doc("v1", "todos/gone.md"))
    cache.replace("v1", _doc("v2", "todos/gone.md"))
    kept = cache.put(_doc("k1", "todos/kept.md"))

    cache.load_snapshot([_doc("k1", "todos/kept.md")])

    assert cache.slot_for("v1") == "v1"
    assert cache.slot_for("v2") == "v2"
    assert cache.slot_for("k1") == kept
    assert slot not in cache
