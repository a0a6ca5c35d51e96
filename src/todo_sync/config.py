# src/todo_sync/config.py

"""Settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings value built once by the composition root and passed into
  the store, the sync engine and the history reconstructor.
- No secrets required at import time.
- Nothing reads settings at call sites; services get them in constructors.
"""

from __future__ import annotations

import functools
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "TODO_SYNC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load .env from the working directory; real env vars win."""
    load_dotenv(find_dotenv(usecwd=True), override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str = "todo-sync"
    log_level: str = "INFO"
    data_dir: Path = Path(".local/todo-sync")

    # ---- Remote store (GitHub contents API) ----
    github_token: str | None = None
    github_owner: str = ""
    github_repo: str = ""
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"

    # ---- Layout ----
    folder: str = "todos"

    # ---- Remote call budget ----
    request_timeout_seconds: float = 30.0
    network_max_attempts: int = 3

    # ---- Eventual consistency polling ----
    poll_max_attempts: int = 8
    poll_base_delay_seconds: float = 0.5
    poll_max_delay_seconds: float = 4.0

    # ---- Optimistic concurrency / paths ----
    update_max_attempts: int = 3
    path_max_attempts: int = 20
    slug_max_length: int = 50

    # ---- History ----
    history_cache_max_entries: int = 100
    history_cache_ttl_seconds: float = 300.0
    history_similarity_threshold: float = 0.7
    history_max_commits: int = 20

    @property
    def github_configured(self) -> bool:
        return bool(self.github_token and self.github_owner and self.github_repo)

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/todo-sync"))

        return Settings(
            app_name=_env(_k("APP_NAME"), "todo-sync") or "todo-sync",
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=data_dir,
            github_token=_first_env(_k("GITHUB_TOKEN"), "GITHUB_TOKEN", default=None),
            github_owner=(_first_env(_k("GITHUB_OWNER"), default="") or "").strip(),
            github_repo=(_first_env(_k("GITHUB_REPO"), default="") or "").strip(),
            github_branch=_env(_k("GITHUB_BRANCH"), "main").strip() or "main",
            github_api_url=_env(_k("GITHUB_API_URL"), "https://api.github.com").rstrip("/"),
            folder=_env(_k("FOLDER"), "todos").strip().strip("/") or "todos",
            request_timeout_seconds=_env_float(_k("REQUEST_TIMEOUT_SECONDS"), 30.0),
            network_max_attempts=max(1, _env_int(_k("NETWORK_MAX_ATTEMPTS"), 3)),
            poll_max_attempts=max(1, _env_int(_k("POLL_MAX_ATTEMPTS"), 8)),
            poll_base_delay_seconds=_env_float(_k("POLL_BASE_DELAY_SECONDS"), 0.5),
            poll_max_delay_seconds=_env_float(_k("POLL_MAX_DELAY_SECONDS"), 4.0),
            update_max_attempts=max(1, _env_int(_k("UPDATE_MAX_ATTEMPTS"), 3)),
            path_max_attempts=max(1, _env_int(_k("PATH_MAX_ATTEMPTS"), 20)),
            slug_max_length=max(1, _env_int(_k("SLUG_MAX_LENGTH"), 50)),
            history_cache_max_entries=max(1, _env_int(_k("HISTORY_CACHE_MAX_ENTRIES"), 100)),
            history_cache_ttl_seconds=_env_float(_k("HISTORY_CACHE_TTL_SECONDS"), 300.0),
            history_similarity_threshold=_env_float(_k("HISTORY_SIMILARITY_THRESHOLD"), 0.7),
            history_max_commits=max(1, _env_int(_k("HISTORY_MAX_COMMITS"), 20)),
        )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once for the composition root (cli/bootstrap.py)."""
    return Settings.from_env()
