# tests/test_commands.py

from __future__ import annotations

import pytest

from todo_sync.cli.commands import CommandRegistry, registry
from todo_sync.core.errors import RateLimited


@pytest.mark.asyncio
async def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    async def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    assert await reg.handle(state, "/a x") == "h2"
    assert await reg.handle(state, "/BEE y", emit=lambda _: None) == "h3"
    assert called == {"h2": 1, "h3": 1}


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_command_errors_become_friendly_replies(state) -> None:
    reg = CommandRegistry()

    async def limited(state, args):
        raise RateLimited(retry_after=12)

    reg.register("x", limited, "x")

    assert await reg.handle(state, "/x") == "Remote store rate limit reached. Try again in 12s."


@pytest.mark.asyncio
async def test_todo_workflow(state, store) -> None:
    reply = await registry.handle(state, "/new Buy milk | two litres")
    assert reply == "Created todos/2025-01-15-buy-milk.md"

    listing = await registry.handle(state, "/list")
    assert "1. P3 Buy milk" in listing

    shown = await registry.handle(state, "/show 1")
    assert "two litres" in shown
    assert "State: clean" in shown

    assert await registry.handle(state, "/priority 1 2") == "Buy milk is now P2"
    assert await registry.handle(state, "/edit 1 three litres") == "Updated todos/2025-01-15-buy-milk.md"
    assert store.files["todos/2025-01-15-buy-milk.md"].endswith("three litres")

    assert await registry.handle(state, "/archive 1") == "Archived to todos/archive/2025-01-15-buy-milk.md"
    assert "No todos" in await registry.handle(state, "/list")
    assert "[archived]" in await registry.handle(state, "/list all")
    assert await registry.handle(state, "/unarchive 1") == "Restored to todos/2025-01-15-buy-milk.md"

    assert await registry.handle(state, "/rm 1") == "Deleted todos/2025-01-15-buy-milk.md"
    assert store.files == {}


@pytest.mark.asyncio
async def test_history_and_restore(state, store) -> None:
    await registry.handle(state, "/new Plan | first")
    await registry.handle(state, "/list")
    await registry.handle(state, "/edit 1 second")

    history = await registry.handle(state, "/history 1")
    assert history.startswith("History of todos/2025-01-15-plan.md:")
    (records,) = state.commits.values()
    oldest = records[-1].version_id

    at = await registry.handle(state, f"/at 1 {oldest[:8]}")
    assert at.endswith("first")

    assert await registry.handle(state, f"/restore 1 {oldest[:8]}") == (
        f"Restored todos/2025-01-15-plan.md to {oldest[:8]}"
    )
    assert store.files["todos/2025-01-15-plan.md"].endswith("first")


@pytest.mark.asyncio
async def test_bad_arguments(state) -> None:
    assert await registry.handle(state, "/show") == "Usage: /show <n>"
    assert await registry.handle(state, "/show 3") == "No item #3. Use /list first."
    assert await registry.handle(state, "/new") == "Usage: /new <title> [| body]"
    assert "Title must contain" in await registry.handle(state, "/new ???")
    assert "Invalid folder name" in await registry.handle(state, "/mkfolder 9lives")


@pytest.mark.asyncio
async def test_folders(state, store) -> None:
    assert await registry.handle(state, "/mkfolder work") == "Created project folder work. Use /folder work to switch."
    assert "work" in await registry.handle(state, "/folders")

    reply = await registry.handle(state, "/folder work")
    assert reply == "No todos in work."
    assert state.folder == "work"

    await registry.handle(state, "/new Task in work")
    assert "work/2025-01-15-task-in-work.md" in store.files
