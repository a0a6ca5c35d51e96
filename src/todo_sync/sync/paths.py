# src/todo_sync/sync/paths.py

"""
Title -> path resolution.

Layout convention:
    <folder>/<YYYY-MM-DD>-<slug>.md           active document
    <folder>/archive/<YYYY-MM-DD>-<slug>.md   archived document

The "archive" parent directory is the only signal used to derive the
archived flag. Older repositories may also hold files in the
P<priority>--<date>--<Title>.md format; those are parsed for display only.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath

from ..core.errors import InvalidTitle, PathExhausted

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 50
ARCHIVE_DIR = "archive"
TODO_EXTENSION = ".md"
KEEP_FILE = ".gitkeep"

_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SPACE_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")
_FOLDER_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")
_DATED_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})-(.+)\.md$")
_PRIORITY_RE = re.compile(r"^P([1-5])--(\d{4}-\d{2}-\d{2})--(.+)\.md$")

ExistsCheck = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True, slots=True)
class FilenameInfo:
    date_stamp: str
    slug: str
    priority: int | None = None


def slugify(title: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Deterministic, idempotent title -> slug.

    An empty or punctuation-only title gives "" (callers decide what to do).
    """
    s = (title or "").lower()
    s = _STRIP_RE.sub("", s)
    s = _SPACE_RE.sub("-", s)
    s = _DASHES_RE.sub("-", s)
    s = s.strip("-")
    s = s[: max(0, int(max_length))]
    # Truncation can leave a trailing hyphen behind.
    return s.strip("-")


def today_stamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d")


def candidate_path(folder: str, date_stamp: str, slug: str, n: int = 1) -> str:
    name = f"{date_stamp}-{slug}" if n <= 1 else f"{date_stamp}-{slug}-{n}"
    return join_path(folder, f"{name}{TODO_EXTENSION}")


async def resolve_path(
    exists: ExistsCheck,
    folder: str,
    date_stamp: str,
    slug: str,
    *,
    current_path: str | None = None,
    taken: Iterable[str] = (),
    max_attempts: int = 20,
) -> str:
    """
    Find a free path: folder/date-slug.md, then -2, -3, ...

    current_path is the path of the document being resolved (renaming onto
    its own path is not a collision). taken holds paths known locally
    (cache and in-flight reservations) which may not be visible remotely yet.
    """
    if not slug:
        raise InvalidTitle(slug)

    known = set(taken)
    base = candidate_path(folder, date_stamp, slug)

    for n in range(1, max(1, int(max_attempts)) + 1):
        path = candidate_path(folder, date_stamp, slug, n)
        if current_path is not None and path == current_path:
            return path
        if path in known:
            logger.debug("Path taken locally: %s", path)
            continue
        if await exists(path):
            logger.info("Path conflict detected: %s", path)
            continue
        return path

    raise PathExhausted(base, max_attempts)


# ---- layout helpers ----


def join_path(*parts: str) -> str:
    cleaned = [p.strip("/") for p in parts if p and p.strip("/")]
    return "/".join(cleaned)


def basename(path: str) -> str:
    return PurePosixPath(path).name


def is_archived_path(path: str) -> bool:
    return PurePosixPath(path).parent.name == ARCHIVE_DIR


def folder_of(path: str) -> str:
    """Project folder a document belongs to (archive/ is not a project folder)."""
    parent = PurePosixPath(path).parent
    if parent.name == ARCHIVE_DIR:
        parent = parent.parent
    s = str(parent)
    return "" if s == "." else s


def archive_path(folder: str, path: str) -> str:
    return join_path(folder, ARCHIVE_DIR, basename(path))


def active_path(folder: str, path: str) -> str:
    return join_path(folder, basename(path))


def is_todo_file(name: str) -> bool:
    return name != KEEP_FILE and name.endswith(TODO_EXTENSION)


def validate_folder_name(name: str) -> str:
    name = (name or "").strip()
    if not _FOLDER_RE.match(name):
        raise ValueError("Invalid folder name. Use letters, numbers, underscores, and hyphens only.")
    return name


def parse_filename(path: str) -> FilenameInfo | None:
    name = basename(path)

    m = _PRIORITY_RE.match(name)
    if m:
        return FilenameInfo(date_stamp=m.group(2), slug=m.group(3), priority=int(m.group(1)))

    m = _DATED_RE.match(name)
    if m:
        return FilenameInfo(date_stamp=m.group(1), slug=m.group(2))

    return None


def title_from_filename(path: str) -> str:
    info = parse_filename(path)
    if info is None:
        stem = PurePosixPath(path).stem
        return stem.replace("-", " ").replace("_", " ").strip() or stem
    if info.priority is not None:
        return info.slug.replace("_", " ")
    return info.slug.replace("-", " ")
