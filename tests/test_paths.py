# tests/test_paths.py

from __future__ import annotations

import pytest

from todo_sync.core.errors import InvalidTitle, PathExhausted
from todo_sync.sync.paths import (
    active_path,
    archive_path,
    folder_of,
    is_archived_path,
    parse_filename,
    resolve_path,
    slugify,
    title_from_filename,
    validate_folder_name,
)


@pytest.mark.parametrize(
    ("title", "slug"),
    [
        ("Hello, World!", "hello-world"),
        ("  Multiple   spaces  ", "multiple-spaces"),
        ("Already-a-slug", "already-a-slug"),
        ("dash -- and -- dash", "dash-and-dash"),
        ("Café au lait", "caf-au-lait"),
        ("", ""),
        ("!@#$%^&*()", ""),
    ],
)
def test_slugify(title: str, slug: str) -> None:
    assert slugify(title) == slug


def test_slugify_is_idempotent() -> None:
    for title in ("Hello, World!", "A  b -- c", "x" * 80, "trailing-"):
        once = slugify(title)
        assert slugify(once) == once


def test_slugify_truncates_without_trailing_dash() -> None:
    slug = slugify("word " * 20, max_length=12)
    assert slug == "word-word-wo"
    assert slugify("abcd efgh", max_length=5) == "abcd"


async def _never(_: str) -> bool:
    return False


@pytest.mark.asyncio
async def test_resolve_path_appends_counter_from_two() -> None:
    existing = {"todos/2025-01-15-plan.md", "todos/2025-01-15-plan-2.md"}

    async def exists(path: str) -> bool:
        return path in existing

    assert await resolve_path(exists, "todos", "2025-01-15", "plan") == "todos/2025-01-15-plan-3.md"


@pytest.mark.asyncio
async def test_resolve_path_respects_local_reservations() -> None:
    path = await resolve_path(_never, "todos", "2025-01-15", "plan", taken={"todos/2025-01-15-plan.md"})
    assert path == "todos/2025-01-15-plan-2.md"


@pytest.mark.asyncio
async def test_resolve_path_keeps_current_path() -> None:
    async def exists(path: str) -> bool:
        return True

    current = "todos/2025-01-15-plan.md"
    assert await resolve_path(exists, "todos", "2025-01-15", "plan", current_path=current) == current


@pytest.mark.asyncio
async def test_resolve_path_gives_up_after_budget() -> None:
    async def exists(path: str) -> bool:
        return True

    with pytest.raises(PathExhausted):
        await resolve_path(exists, "todos", "2025-01-15", "plan", max_attempts=3)
    with pytest.raises(InvalidTitle):
        await resolve_path(_never, "todos", "2025-01-15", "")


def test_archive_layout_helpers() -> None:
    active = "todos/2025-01-15-plan.md"
    archived = "todos/archive/2025-01-15-plan.md"

    assert archive_path("todos", active) == archived
    assert active_path("todos", archived) == active
    assert is_archived_path(archived) is True
    assert is_archived_path(active) is False
    assert folder_of(active) == folder_of(archived) == "todos"
    assert folder_of("plan.md") == ""


def test_parse_filename_formats() -> None:
    dated = parse_filename("todos/2025-01-15-plan-2.md")
    assert dated is not None
    assert (dated.date_stamp, dated.slug, dated.priority) == ("2025-01-15", "plan-2", None)

    legacy = parse_filename("todos/P2--2024-12-01--Fix_the_build.md")
    assert legacy is not None
    assert (legacy.date_stamp, legacy.slug, legacy.priority) == ("2024-12-01", "Fix_the_build", 2)
    assert title_from_filename("todos/P2--2024-12-01--Fix_the_build.md") == "Fix the build"

    assert parse_filename("todos/notes.md") is None
    assert title_from_filename("todos/meeting-notes.md") == "meeting notes"


def test_validate_folder_name() -> None:
    assert validate_folder_name(" work_2 ") == "work_2"
    for bad in ("", "2work", "has space", "a/b", "-x"):
        with pytest.raises(ValueError):
            validate_folder_name(bad)
