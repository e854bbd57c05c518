"""GitHub adapter over the repository contents and commits REST APIs."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any
from urllib.parse import quote

import httpx

from gittasks.errors import ConflictError, NotFoundError, ProtocolError
from gittasks.store.documents import build_document
from gittasks.store.models import (
    PLACEHOLDER_NAME,
    CommitInfo,
    Document,
    FileContent,
    FileEntry,
    FileMetadata,
    GitHubSettings,
    WriteResult,
)
from gittasks.store.providers.base import (
    is_task_file,
    is_visible_folder,
    listing_path,
    placeholder_content,
)
from gittasks.store.providers.http import ProviderHttp, encode_content

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class GitHubAdapter:
    """Store operations against api.github.com (or a GitHub Enterprise URL).

    The contents API reports the blob sha of every file and rejects a PUT or
    DELETE whose ``sha`` is stale with 409, which is what the optimistic
    concurrency of the store relies on.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._http = ProviderHttp("GitHub", client)

    @staticmethod
    def _headers(settings: GitHubSettings) -> dict[str, str]:
        return {
            "Authorization": f"token {settings.pat}",
            "Accept": "application/vnd.github+json",
            "Cache-Control": "no-cache",
        }

    @staticmethod
    def _repo_url(settings: GitHubSettings) -> str:
        owner = quote(settings.owner, safe="")
        repo = quote(settings.repo, safe="")
        return f"{settings.api_url.rstrip('/')}/repos/{owner}/{repo}"

    def _contents_url(self, settings: GitHubSettings, path: str) -> str:
        return f"{self._repo_url(settings)}/contents/{quote(path.strip('/'))}"

    @staticmethod
    def _ref(settings: GitHubSettings) -> dict[str, str]:
        return {"ref": settings.branch} if settings.branch else {}

    @staticmethod
    def _is_conflict(response: httpx.Response) -> bool:
        # 409: sha does not match; 422: sha missing for an existing file
        if response.status_code == 409:
            return True
        return response.status_code == 422 and "sha" in response.text.lower()

    async def _paginate(
        self, settings: GitHubSettings, url: str, params: dict[str, Any], path: str
    ) -> AsyncIterator[Any]:
        """Yield the items of a JSON array listing, following ``Link: rel=next``."""
        next_url: str | None = url
        next_params: dict[str, Any] | None = params
        while next_url:
            response = await self._http.request(
                "GET", next_url, headers=self._headers(settings), params=next_params
            )
            self._http.raise_for_status(response, path)
            data = self._http.json(response)
            if not isinstance(data, list):
                raise ProtocolError(
                    f"GitHub listing of '{path}' is not an array", raw_body=response.text
                )
            for item in data:
                yield item

            # The next link already carries every query parameter
            next_url = response.links.get("next", {}).get("url")
            next_params = None

    async def _fetch(
        self, settings: GitHubSettings, path: str, ref: dict[str, str]
    ) -> FileMetadata:
        response = await self._http.request(
            "GET",
            self._contents_url(settings, path),
            headers=self._headers(settings),
            params=ref,
        )
        self._http.raise_for_status(response, path)
        data = self._http.json(response)

        if not isinstance(data, dict) or data.get("type", "file") != "file" or "sha" not in data:
            raise ProtocolError(
                f"GitHub did not return a file object for '{path}'", raw_body=response.text
            )

        return FileMetadata(
            sha=data["sha"],
            path=data.get("path", path),
            name=data.get("name", path.rsplit("/", 1)[-1]),
            content=self._http.decode_content(data.get("content"), response.text),
        )

    async def get_file(self, settings: GitHubSettings, path: str) -> FileContent:
        metadata = await self._fetch(settings, path, self._ref(settings))
        return FileContent(content=metadata.content, sha=metadata.sha)

    async def get_file_metadata(self, settings: GitHubSettings, path: str) -> FileMetadata:
        return await self._fetch(settings, path, self._ref(settings))

    async def create_or_update(
        self,
        settings: GitHubSettings,
        path: str,
        content: str,
        message: str,
        expected_sha: str | None = None,
    ) -> WriteResult:
        """Create a file (no expected_sha) or replace it at expected_sha."""
        body: dict[str, Any] = {
            "message": message,
            "content": encode_content(content),
        }
        if expected_sha:
            body["sha"] = expected_sha
        if settings.branch:
            body["branch"] = settings.branch

        response = await self._http.request(
            "PUT",
            self._contents_url(settings, path),
            headers=self._headers(settings),
            json_body=body,
        )
        if self._is_conflict(response):
            logger.info("GitHub rejected write to %s: sha %s is stale", path, expected_sha)
            raise ConflictError(path)
        self._http.raise_for_status(response, path)

        data = self._http.json(response)
        try:
            sha = data["content"]["sha"]
        except (KeyError, TypeError) as e:
            raise ProtocolError(
                f"GitHub write response for '{path}' has no content sha",
                raw_body=response.text,
            ) from e

        logger.info("GitHub committed %s (sha %s)", path, sha)
        return WriteResult(sha=sha, path=path)

    async def delete(
        self, settings: GitHubSettings, path: str, message: str, sha: str
    ) -> None:
        body: dict[str, Any] = {"message": message, "sha": sha}
        if settings.branch:
            body["branch"] = settings.branch

        response = await self._http.request(
            "DELETE",
            self._contents_url(settings, path),
            headers=self._headers(settings),
            json_body=body,
        )
        if self._is_conflict(response):
            raise ConflictError(path)
        self._http.raise_for_status(response, path)
        logger.info("GitHub deleted %s", path)

    async def _entries(self, settings: GitHubSettings, folder: str) -> AsyncIterator[FileEntry]:
        async for item in self._paginate(
            settings, self._contents_url(settings, folder), self._ref(settings), folder
        ):
            try:
                yield FileEntry(
                    name=item["name"],
                    path=item["path"],
                    sha=item.get("sha", ""),
                    type="dir" if item.get("type") == "dir" else "file",
                )
            except (KeyError, TypeError) as e:
                raise ProtocolError(
                    f"Malformed GitHub listing entry in '{folder}'", raw_body=str(item)
                ) from e

    async def list(
        self, settings: GitHubSettings, folder: str, include_archived: bool = False
    ) -> AsyncIterator[Document]:
        """Yield every task document of a folder (or of its archive)."""
        path = listing_path(folder, include_archived)
        async with aclosing(self._entries(settings, path)) as entries:
            try:
                async for entry in entries:
                    if entry.type != "file" or not is_task_file(entry.name):
                        continue
                    document = await self._load(settings, entry)
                    if document is not None:
                        yield document
            except NotFoundError:
                logger.info("%s/ not found on GitHub, nothing to list", path)

    async def _load(self, settings: GitHubSettings, entry: FileEntry) -> Document | None:
        try:
            file = await self.get_file(settings, entry.path)
        except NotFoundError:
            # Deleted between the listing and the read
            logger.info("%s disappeared while listing, skipping", entry.path)
            return None
        return build_document(entry.path, file.content, file.sha)

    async def get_history(self, settings: GitHubSettings, path: str) -> list[CommitInfo]:
        """Commits touching a path, most recent first."""
        params: dict[str, Any] = {"path": path, "per_page": PAGE_SIZE}
        if settings.branch:
            params["sha"] = settings.branch

        commits = []
        async for item in self._paginate(
            settings, f"{self._repo_url(settings)}/commits", params, path
        ):
            try:
                commit = item["commit"]
                commits.append(
                    CommitInfo(
                        sha=item["sha"],
                        message=commit["message"],
                        author=commit["author"]["name"],
                        date=commit["author"]["date"],
                        url=item.get("html_url"),
                    )
                )
            except (KeyError, TypeError) as e:
                raise ProtocolError(
                    f"Malformed GitHub commit entry for '{path}'", raw_body=str(item)
                ) from e
        return commits

    async def get_at_commit(
        self, settings: GitHubSettings, path: str, commit_ref: str
    ) -> FileContent:
        metadata = await self._fetch(settings, path, {"ref": commit_ref})
        return FileContent(content=metadata.content, sha=metadata.sha)

    async def list_folders(self, settings: GitHubSettings) -> set[str]:
        folders = set()
        async for entry in self._entries(settings, ""):
            if entry.type == "dir" and is_visible_folder(entry.name):
                folders.add(entry.name)
        return folders

    async def ensure_directory(
        self, settings: GitHubSettings, folder: str, message: str | None = None
    ) -> None:
        """Create ``<folder>/.gitkeep`` unless the folder already has entries."""
        folder = folder.strip("/")
        try:
            async with aclosing(self._entries(settings, folder)) as entries:
                async for _ in entries:
                    return
        except NotFoundError:
            pass

        logger.info("%s/ directory not found, creating it...", folder)
        try:
            await self.create_or_update(
                settings,
                f"{folder}/{PLACEHOLDER_NAME}",
                placeholder_content(folder),
                message or f"feat: Create {folder} directory",
            )
        except ConflictError:
            logger.info("%s/ was created concurrently", folder)
