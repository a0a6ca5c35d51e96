# src/todo_sync/sync/todo_cache.py

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.models import Document
from .paths import folder_of

logger = logging.getLogger(__name__)


class TodoCache:
    """
    In-memory projection of the remote listing into Document records.

    A document's id is its version token at load time, so it changes on every
    write. Records live in stable slots; every id a document has had is kept
    as an alias of its slot, so a caller holding an older id still reaches the
    current record (and the same per-document operation queue).

    Only the sync engine mutates the cache, and only from the operation that
    currently owns the slot.
    """

    def __init__(self) -> None:
        self._docs: dict[str, Document] = {}
        self._aliases: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, doc_id: str) -> bool:
        return self.get(doc_id) is not None

    def slot_for(self, doc_id: str) -> str:
        """Stable slot key for an id (unknown ids are their own slot)."""
        return self._aliases.get(doc_id, doc_id)

    def get(self, doc_id: str) -> Document | None:
        return self._docs.get(self.slot_for(doc_id))

    def find_by_path(self, path: str) -> Document | None:
        for doc in self._docs.values():
            if doc.path == path:
                return doc
        return None

    def put(self, doc: Document, slot: str | None = None) -> str:
        key = slot or self._aliases.get(doc.id) or doc.id
        self._docs[key] = doc
        self._aliases[doc.id] = key
        return key

    def replace(self, doc_id: str, doc: Document) -> str:
        """Store a new version of the document that doc_id refers to."""
        return self.put(doc, slot=self.slot_for(doc_id))

    def remove(self, doc_id: str) -> Document | None:
        key = self.slot_for(doc_id)
        # Aliases stay until forget(), so the deleting operation keeps its slot.
        return self._docs.pop(key, None)

    def forget(self, slot: str) -> None:
        """Drop every alias of an emptied slot."""
        if slot in self._docs:
            return
        self._aliases = {a: k for a, k in self._aliases.items() if k != slot}

    def paths(self) -> set[str]:
        return {d.path for d in self._docs.values()}

    def documents(self, folder: str | None = None, *, include_archived: bool = False) -> list[Document]:
        out = [
            d
            for d in self._docs.values()
            if (folder is None or folder_of(d.path) == folder) and (include_archived or not d.archived)
        ]
        out.sort(key=lambda d: (d.archived, d.metadata.priority, d.metadata.created_at, d.path))
        return out

    def load_snapshot(self, docs: Iterable[Document], *, preserve: Iterable[str] = ()) -> None:
        """
        Replace the cached records with a refresh snapshot.

        Slots in preserve belong to in-flight operations and are kept as they
        are; snapshot records for the same path are ignored.
        """
        busy = set(preserve)
        kept = {k: self._docs[k] for k in busy if k in self._docs}
        kept_paths = {d.path for d in kept.values()}

        by_path_slot = {d.path: k for k, d in self._docs.items()}

        fresh: dict[str, Document] = dict(kept)
        for doc in docs:
            if doc.path in kept_paths:
                continue
            key = self._aliases.get(doc.id) or by_path_slot.get(doc.path) or doc.id
            if key in kept:
                continue
            fresh[key] = doc
            self._aliases[doc.id] = key

        dropped = len(self._docs) - len(set(self._docs) & set(fresh))
        self._docs = fresh
        # Aliases of dropped documents go with them; busy slots keep theirs.
        self._aliases = {a: k for a, k in self._aliases.items() if k in fresh or k in busy}
        logger.debug("Cache snapshot loaded: %d documents (%d kept, %d dropped)", len(fresh), len(kept), dropped)
