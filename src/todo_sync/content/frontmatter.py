# src/todo_sync/content/frontmatter.py

"""
Markdown + YAML frontmatter serializer.

    ---
    title: Launch
    createdAt: '2025-01-01T09:30:00+00:00'
    priority: 3
    tags: [release]
    ---
    <markdown body>

The archived flag is never written: it is derived from the path.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import yaml

from ..core.models import DocumentMetadata, ParsedDocument
from ..sync.paths import parse_filename

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"^---\n([\s\S]*?)\n---\n([\s\S]*)$")

DEFAULT_PRIORITY = 3
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_datetime(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if not raw:
        return None
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _parse_priority(raw: Any) -> int | None:
    try:
        p = int(raw)
    except (TypeError, ValueError):
        return None
    return p if 1 <= p <= 5 else None


def _parse_tags(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(str(t).strip() for t in raw if str(t).strip())


class FrontmatterCodec:
    """Default DocumentCodec."""

    def dumps(self, title: str, metadata: DocumentMetadata, body: str) -> str:
        header = {
            "title": title,
            "createdAt": metadata.created_at.isoformat(),
            "priority": metadata.priority,
            "tags": list(metadata.tags),
        }
        dumped = yaml.safe_dump(header, sort_keys=False, allow_unicode=True)
        return f"---\n{dumped}---\n{body}"

    def loads(self, content: str) -> ParsedDocument:
        m = _FRONTMATTER_RE.match(content or "")
        if not m:
            return ParsedDocument(title=None, body=content or "", fields={})

        try:
            fields = yaml.safe_load(m.group(1)) or {}
        except yaml.YAMLError:
            logger.warning("Invalid YAML frontmatter; treating the whole file as body")
            return ParsedDocument(title=None, body=content, fields={})

        if not isinstance(fields, dict):
            return ParsedDocument(title=None, body=content, fields={})

        title = fields.get("title")
        return ParsedDocument(
            title=str(title) if title is not None else None,
            body=m.group(2),
            fields=fields,
        )

    def metadata_from(
        self,
        parsed: ParsedDocument,
        *,
        path: str,
        archived: bool,
        default_tags: Sequence[str] = (),
    ) -> DocumentMetadata:
        fields = parsed.fields or {}
        info = parse_filename(path)

        priority = _parse_priority(fields.get("priority"))
        if priority is None and info is not None and info.priority is not None:
            priority = info.priority

        created_at = _parse_datetime(fields.get("createdAt"))
        if created_at is None and info is not None:
            created_at = _parse_datetime(info.date_stamp)

        tags = _parse_tags(fields.get("tags")) or tuple(default_tags)

        return DocumentMetadata(
            priority=priority or DEFAULT_PRIORITY,
            created_at=created_at or _EPOCH,
            archived=archived,
            tags=tags,
        )
