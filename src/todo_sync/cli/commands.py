# src/todo_sync/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, cast

from ..content.frontmatter import FrontmatterCodec
from ..core.errors import NotFound, TodoSyncError, friendly_error_message
from ..core.models import CommitRecord, Document
from ..core.state import AppState

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by connectors (/help, /list, /new, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                result: Any = cast(CommandHandler3, handler)(state, args, emit)
            else:
                result = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(result):
                result = await result
        except TodoSyncError as e:
            logger.info("/%s failed: %s", name, e)
            return friendly_error_message(e)
        except ValueError as e:
            return str(e)
        return str(result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()

_codec = FrontmatterCodec()


def _fmt_ts(ts: datetime | None) -> str:
    if ts is None:
        return "?"
    return ts.astimezone().strftime("%Y-%m-%d %H:%M")


def _fmt_doc(i: int, doc: Document) -> str:
    mark = " [archived]" if doc.archived else ""
    tags = f" #{' #'.join(doc.metadata.tags)}" if doc.metadata.tags else ""
    return f"{i}. P{doc.metadata.priority} {doc.title}{mark}{tags}  ({doc.path})"


def _pick(state: AppState, args: list[str], usage: str) -> Document:
    """Resolve the leading <n> argument against the last listing."""
    if not args:
        raise ValueError(usage)
    try:
        n = int(args[0])
    except ValueError:
        raise ValueError(usage) from None
    if not 1 <= n <= len(state.listing):
        raise ValueError(f"No item #{n}. Use /list first.")
    doc = state.engine.cache.get(state.listing[n - 1].id)
    if doc is None:
        raise NotFound(state.listing[n - 1].path, f"Item #{n} is gone. Use /refresh.")
    return doc


def _resolve_commit(state: AppState, doc: Document, prefix: str) -> str:
    records: list[CommitRecord] = state.commits.get(doc.id, [])
    matches = [r.version_id for r in records if r.version_id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else prefix


def _show_listing(state: AppState, docs: list[Document]) -> str:
    state.listing = list(docs)
    if not docs:
        return f"No todos in {state.folder}."
    lines = [f"Todos in {state.folder}:"]
    lines.extend(_fmt_doc(i, d) for i, d in enumerate(docs, start=1))
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_list(state: AppState, args: list[str]) -> str:
    include_archived = bool(args) and args[0].lower() == "all"
    if not len(state.engine.cache):
        await state.engine.refresh()
    return _show_listing(state, state.engine.documents(include_archived=include_archived))


async def cmd_refresh(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit(f"Refreshing {state.folder}...")
    await state.engine.refresh()
    return _show_listing(state, state.engine.documents())


async def cmd_new(state: AppState, args: list[str]) -> str:
    """
    /new <title>            -> empty body
    /new <title> | <body>   -> title and body
    """
    text = " ".join(args)
    title, _, body = text.partition("|")
    title = title.strip()
    if not title:
        return "Usage: /new <title> [| body]"

    result = await state.engine.create(title, body.strip())
    state.listing = state.engine.documents()
    note = "" if result.confirmed else " (not listed yet; the store is catching up)"
    return f"Created {result.document.path}{note}"


def cmd_show(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /show <n>")
    meta = doc.metadata
    return (
        f"{doc.title}\n"
        f"  Path: {doc.path}\n"
        f"  Priority: P{meta.priority}  Created: {_fmt_ts(meta.created_at)}  "
        f"State: {state.engine.state_of(doc.id).value}\n\n"
        f"{doc.body}"
    )


async def cmd_edit(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /edit <n> <body>")
    body = " ".join(args[1:])
    updated = await state.engine.update(doc.id, body)
    return f"Updated {updated.path}"


async def cmd_priority(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /priority <n> <1-5>")
    try:
        priority = int(args[1])
    except (IndexError, ValueError):
        return "Usage: /priority <n> <1-5>"
    updated = await state.engine.set_priority(doc.id, priority)
    return f"{updated.title} is now P{updated.metadata.priority}"


async def cmd_rename(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /rename <n> <new title>")
    title = " ".join(args[1:]).strip()
    if not title:
        return "Usage: /rename <n> <new title>"
    result = await state.engine.rename(doc.id, title)
    return f"Renamed to {result.document.path}"


async def cmd_archive(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /archive <n>")
    result = await state.engine.archive(doc.id)
    if not result.moved:
        return f"{doc.title} is already archived."
    return f"Archived to {result.document.path}"


async def cmd_unarchive(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /unarchive <n>")
    result = await state.engine.unarchive(doc.id)
    if not result.moved:
        return f"{doc.title} is not archived."
    return f"Restored to {result.document.path}"


async def cmd_rm(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /rm <n>")
    result = await state.engine.delete(doc.id)
    state.listing = state.engine.documents()
    if result.unresolved:
        return f"Deleted {result.path}, but the store still lists it. Use /refresh later."
    return f"Deleted {result.path}"


async def cmd_resume(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /resume <n>")
    result = await state.engine.resume(doc.id)
    if not result.moved:
        return "Nothing to resume."
    return f"Finished move to {result.document.path}"


async def cmd_history(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /history <n>")
    records = await state.history.list_history(doc.path)
    state.commits[doc.id] = records
    if not records:
        return f"No history for {doc.path}."
    lines = [f"History of {doc.path}:"]
    for r in records:
        first = r.message.splitlines()[0] if r.message else ""
        lines.append(f"  {r.version_id[:8]}  {_fmt_ts(r.timestamp)}  {r.author}: {first}")
    return "\n".join(lines)


async def cmd_at(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /at <n> <commit>")
    if len(args) < 2:
        return "Usage: /at <n> <commit>"
    found = await state.history.get_content_at(doc.path, _resolve_commit(state, doc, args[1]))
    header = f"{doc.path} at {found.version_id[:8]}"
    if found.found_via_similarity:
        header += f" (matched by name: {found.resolved_path})"
    return f"{header}\n\n{found.content}"


async def cmd_restore(state: AppState, args: list[str]) -> str:
    doc = _pick(state, args, "Usage: /restore <n> <commit>")
    if len(args) < 2:
        return "Usage: /restore <n> <commit>"
    found = await state.history.get_content_at(doc.path, _resolve_commit(state, doc, args[1]))
    parsed = _codec.loads(found.content)
    updated = await state.engine.update(
        doc.id,
        parsed.body,
        found.metadata,
        title=found.title,
        message=f'Restore "{doc.title}" to {found.version_id[:8]}',
    )
    return f"Restored {updated.path} to {found.version_id[:8]}"


async def cmd_folders(state: AppState, args: list[str]) -> str:
    folders = await state.engine.list_project_folders()
    lines = ["Project folders:"]
    lines.extend(f"  {'*' if f == state.folder else ' '} {f}" for f in folders)
    return "\n".join(lines)


async def cmd_folder(state: AppState, args: list[str]) -> str:
    if not args:
        return f"Current folder: {state.folder}"
    state.engine.set_folder(args[0])
    await state.engine.ensure_directory(state.folder)
    return _show_listing(state, await state.engine.refresh())


async def cmd_mkfolder(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /mkfolder <name>"
    name = await state.engine.create_project_folder(args[0])
    return f"Created project folder {name}. Use /folder {name} to switch."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="List todos: /list | /list all (with archived).", aliases=["ls"])
registry.register("refresh", cmd_refresh, help_text="Reload todos from the repository.")
registry.register("new", cmd_new, help_text="Create a todo: /new <title> [| body].")
registry.register("show", cmd_show, help_text="Show a todo: /show <n>.")
registry.register("edit", cmd_edit, help_text="Replace the body: /edit <n> <body>.")
registry.register("priority", cmd_priority, help_text="Set priority: /priority <n> <1-5>.")
registry.register("rename", cmd_rename, help_text="Rename: /rename <n> <new title>.")
registry.register("archive", cmd_archive, help_text="Archive: /archive <n>.")
registry.register("unarchive", cmd_unarchive, help_text="Unarchive: /unarchive <n>.")
registry.register("rm", cmd_rm, help_text="Delete: /rm <n>.", aliases=["delete"])
registry.register("resume", cmd_resume, help_text="Finish an interrupted move: /resume <n>.")
registry.register("history", cmd_history, help_text="Commit history: /history <n>.")
registry.register("at", cmd_at, help_text="Content at a commit: /at <n> <commit>.")
registry.register("restore", cmd_restore, help_text="Restore content from a commit: /restore <n> <commit>.")
registry.register("folders", cmd_folders, help_text="List project folders.")
registry.register("folder", cmd_folder, help_text="Show or switch the project folder: /folder [name].")
registry.register("mkfolder", cmd_mkfolder, help_text="Create a project folder: /mkfolder <name>.")
