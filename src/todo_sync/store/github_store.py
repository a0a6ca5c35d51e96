# src/todo_sync/store/github_store.py

"""
RemoteStore over the GitHub REST contents API.

Mapping of the store contract onto the API:
- list_directory      GET    /repos/{o}/{r}/contents/{path}?ref={branch}
- read_file           GET    /repos/{o}/{r}/contents/{path}?ref={branch}
- write_file          PUT    /repos/{o}/{r}/contents/{path}   (sha = base token)
- delete_file         DELETE /repos/{o}/{r}/contents/{path}   (sha required)
- list_commits        GET    /repos/{o}/{r}/commits?path=...&sha={branch}
- read_file_at_commit GET    /repos/{o}/{r}/contents/{path}?ref={commit}
- list_commit_files   GET    /repos/{o}/{r}/commits/{commit}

The blob sha returned by the API is the version token. Content travels
base64-encoded; this module only ever hands out decoded UTF-8 text.
"""

from __future__ import annotations

import base64
import logging
import time
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import (
    AlreadyExists,
    Forbidden,
    NotFound,
    RateLimited,
    RemoteRejected,
    RemoteTimeout,
    TransientNetwork,
    VersionConflict,
)
from ..core.models import CommitFile, CommitRecord, DirectoryEntry, FileContent

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"


def _encode(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def _decode(raw: str | None) -> str:
    if not raw:
        return ""
    # The API wraps base64 at 60 columns.
    return base64.b64decode("".join(raw.split())).decode("utf-8")


def _parse_ts(raw: Any) -> datetime | None:
    if not raw:
        return None
    s = str(raw)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("retry-after")
    if raw:
        try:
            return max(0.0, float(raw))
        except ValueError:
            pass
    reset = response.headers.get("x-ratelimit-reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            pass
    return None


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or "")
    return ""


class GitHubContentsStore:
    """
    RemoteStore implementation backed by httpx.AsyncClient.

    No automatic retries here: the sync engine owns the retry budget and
    needs to see every failure class (transient vs. rate-limit vs. auth).
    """

    def __init__(
        self,
        *,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token or not str(token).strip():
            raise ValueError("GitHub token is not set. Set TODO_SYNC_GITHUB_TOKEN in your .env.")
        if not owner or not repo:
            raise ValueError("GitHub repository is not set. Set TODO_SYNC_GITHUB_OWNER and TODO_SYNC_GITHUB_REPO.")

        self._owner = owner
        self._repo = repo
        self._branch = branch
        self._timeout = float(timeout)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=httpx.Timeout(self._timeout, connect=min(self._timeout, 10.0)),
        )
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "Cache-Control": "no-cache",
        }

    @classmethod
    def from_settings(cls, settings, client: httpx.AsyncClient | None = None) -> GitHubContentsStore:
        return cls(
            token=settings.github_token or "",
            owner=settings.github_owner,
            repo=settings.github_repo,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            timeout=settings.request_timeout_seconds,
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GitHubContentsStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- low-level helpers ----

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/contents/{quote(path.strip('/'), safe='/')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        create_only: bool = False,
    ) -> Any:
        try:
            response = await self._client.request(method, url, params=params, json=json, headers=self._headers)
        except httpx.TimeoutException as e:
            raise RemoteTimeout(f"{method} {path}", self._timeout) from e
        except httpx.TransportError as e:
            raise TransientNetwork(f"{method} {path}: {e.__class__.__name__}") from e

        status = response.status_code
        logger.debug("%s %s -> %s", method, url, status)

        if status < 300:
            if status == 204 or not response.content:
                return None
            return response.json()

        detail = _error_text(response)

        if status == 404:
            raise NotFound(path)
        if status == 409:
            raise VersionConflict(path, f"Version conflict at {path}: {detail}")
        if status == 422:
            if create_only:
                raise AlreadyExists(path)
            raise VersionConflict(path, f"Stale version for {path}: {detail}")
        if status == 429 or (status == 403 and response.headers.get("x-ratelimit-remaining") == "0"):
            raise RateLimited(f"Rate limited on {method} {path}", retry_after=_retry_after(response))
        if status in (401, 403):
            raise Forbidden(f"{method} {path} denied: {detail}", status_code=status)
        if status >= 500:
            raise TransientNetwork(f"{method} {path} failed with HTTP {status}", status_code=status)

        raise RemoteRejected(f"{method} {path} rejected with HTTP {status}: {detail}", status_code=status)

    # ---- RemoteStore ----

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        data = await self._request("GET", self._contents_url(path), path=path, params={"ref": self._branch})
        if not isinstance(data, list):
            # A file path, not a directory.
            raise NotFound(path, f"Not a directory: {path}")
        return [
            DirectoryEntry(
                name=str(item.get("name", "")),
                path=str(item.get("path", "")),
                version_token=str(item.get("sha", "")),
                kind="dir" if item.get("type") == "dir" else "file",
            )
            for item in data
            if isinstance(item, dict)
        ]

    async def read_file(self, path: str) -> FileContent:
        return await self._read(path, self._branch)

    async def _read(self, path: str, ref: str) -> FileContent:
        data = await self._request("GET", self._contents_url(path), path=path, params={"ref": ref})
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise NotFound(path, f"Not a file: {path}")
        return FileContent(
            content=_decode(data.get("content")),
            version_token=str(data.get("sha", "")),
            path=str(data.get("path") or path),
        )

    async def write_file(
        self,
        path: str,
        content: str,
        message: str,
        base_version: str | None = None,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": _encode(content),
            "branch": self._branch,
        }
        if base_version:
            body["sha"] = base_version

        data = await self._request(
            "PUT",
            self._contents_url(path),
            path=path,
            json=body,
            create_only=base_version is None,
        )
        sha = ((data or {}).get("content") or {}).get("sha")
        if not sha:
            raise TransientNetwork(f"PUT {path} returned no content sha")
        logger.info("Wrote %s (sha=%s)", path, str(sha)[:8])
        return str(sha)

    async def delete_file(self, path: str, version_token: str, message: str) -> None:
        await self._request(
            "DELETE",
            self._contents_url(path),
            path=path,
            json={"message": message, "sha": version_token, "branch": self._branch},
        )
        logger.info("Deleted %s", path)

    async def list_commits(self, path: str, limit: int | None = None) -> list[CommitRecord]:
        params: dict[str, Any] = {"path": path, "sha": self._branch}
        if limit:
            params["per_page"] = int(limit)
        data = await self._request(
            "GET",
            f"/repos/{self._owner}/{self._repo}/commits",
            path=path,
            params=params,
        )
        out: list[CommitRecord] = []
        for item in data or []:
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            out.append(
                CommitRecord(
                    version_id=str(item.get("sha", "")),
                    message=str(commit.get("message", "")),
                    author=str(author.get("name") or (item.get("author") or {}).get("login") or ""),
                    timestamp=_parse_ts(author.get("date")),
                )
            )
        return out

    async def read_file_at_commit(self, path: str, version_id: str) -> FileContent:
        return await self._read(path, version_id)

    async def list_commit_files(self, version_id: str) -> list[CommitFile]:
        data = await self._request(
            "GET",
            f"/repos/{self._owner}/{self._repo}/commits/{version_id}",
            path=version_id,
        )
        return [
            CommitFile(
                path=str(f.get("filename", "")),
                previous_path=f.get("previous_filename"),
                status=str(f.get("status", "modified")),
            )
            for f in (data or {}).get("files") or []
        ]
