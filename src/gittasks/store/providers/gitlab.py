"""GitLab adapter over the repository files, tree and commits REST APIs."""

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
    GitLabSettings,
    WriteResult,
)
from gittasks.store.providers.base import (
    is_task_file,
    is_visible_folder,
    listing_path,
    placeholder_content,
)
from gittasks.store.providers.http import ProviderHttp, encode_content, git_blob_sha

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

# Messages GitLab answers with (HTTP 400) when a write races another commit
CONFLICT_MARKERS = ("already exists", "has changed")


class GitLabAdapter:
    """Store operations against a GitLab instance (gitlab.com or self-hosted).

    The files API identifies content by ``blob_id`` but only accepts
    ``last_commit_id`` as a write precondition. Writes with an expected sha
    therefore read the file first, compare its blob id, and send the commit
    id they read so GitLab rejects anything committed in between.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._http = ProviderHttp("GitLab", client)

    @staticmethod
    def _headers(settings: GitLabSettings) -> dict[str, str]:
        return {"PRIVATE-TOKEN": settings.token, "Accept": "application/json"}

    @staticmethod
    def _project_url(settings: GitLabSettings) -> str:
        project = quote(str(settings.project_id), safe="")
        return f"{settings.instance_url.rstrip('/')}/api/v4/projects/{project}"

    def _file_url(self, settings: GitLabSettings, path: str) -> str:
        encoded = quote(path.strip("/"), safe="")
        return f"{self._project_url(settings)}/repository/files/{encoded}"

    @staticmethod
    def _is_conflict(response: httpx.Response) -> bool:
        if response.status_code == 409:
            return True
        if response.status_code != 400:
            return False
        text = response.text.lower()
        return any(marker in text for marker in CONFLICT_MARKERS)

    async def _paginate(
        self, settings: GitLabSettings, url: str, params: dict[str, Any], path: str
    ) -> AsyncIterator[Any]:
        """Yield the items of a JSON array listing, following ``X-Next-Page``."""
        page = "1"
        while page:
            response = await self._http.request(
                "GET",
                url,
                headers=self._headers(settings),
                params={**params, "per_page": PAGE_SIZE, "page": page},
            )
            self._http.raise_for_status(response, path)
            data = self._http.json(response)
            if not isinstance(data, list):
                raise ProtocolError(
                    f"GitLab listing of '{path}' is not an array", raw_body=response.text
                )
            for item in data:
                yield item

            page = response.headers.get("X-Next-Page", "").strip()

    async def _fetch_raw(self, settings: GitLabSettings, path: str, ref: str) -> dict[str, Any]:
        response = await self._http.request(
            "GET",
            self._file_url(settings, path),
            headers=self._headers(settings),
            params={"ref": ref},
        )
        self._http.raise_for_status(response, path)
        data = self._http.json(response)

        if not isinstance(data, dict) or "blob_id" not in data:
            raise ProtocolError(
                f"GitLab did not return a file object for '{path}'", raw_body=response.text
            )

        data["content"] = self._http.decode_content(data.get("content"), response.text)
        return data

    async def get_file(self, settings: GitLabSettings, path: str) -> FileContent:
        data = await self._fetch_raw(settings, path, settings.branch)
        return FileContent(content=data["content"], sha=data["blob_id"])

    async def get_file_metadata(self, settings: GitLabSettings, path: str) -> FileMetadata:
        data = await self._fetch_raw(settings, path, settings.branch)
        return FileMetadata(
            sha=data["blob_id"],
            path=data.get("file_path", path),
            name=data.get("file_name", path.rsplit("/", 1)[-1]),
            content=data["content"],
        )

    async def _precondition(
        self, settings: GitLabSettings, path: str, expected_sha: str
    ) -> str:
        """Return the last commit id of a file still at expected_sha."""
        current = await self._fetch_raw(settings, path, settings.branch)
        if current["blob_id"] != expected_sha:
            logger.info(
                "GitLab file %s is at %s, expected %s", path, current["blob_id"], expected_sha
            )
            raise ConflictError(path)
        return current.get("last_commit_id", "")

    async def create_or_update(
        self,
        settings: GitLabSettings,
        path: str,
        content: str,
        message: str,
        expected_sha: str | None = None,
    ) -> WriteResult:
        """Create a file (no expected_sha) or replace it at expected_sha."""
        body: dict[str, Any] = {
            "branch": settings.branch,
            "content": encode_content(content),
            "encoding": "base64",
            "commit_message": message,
        }

        if expected_sha:
            last_commit_id = await self._precondition(settings, path, expected_sha)
            if last_commit_id:
                body["last_commit_id"] = last_commit_id
            method = "PUT"
        else:
            method = "POST"

        response = await self._http.request(
            method,
            self._file_url(settings, path),
            headers=self._headers(settings),
            json_body=body,
        )
        if self._is_conflict(response):
            logger.info("GitLab rejected %s to %s as conflicting", method, path)
            raise ConflictError(path)
        self._http.raise_for_status(response, path)

        # The files API does not echo the blob id; it is the git hash of what we sent
        sha = git_blob_sha(content)
        logger.info("GitLab committed %s (sha %s)", path, sha)
        return WriteResult(sha=sha, path=path)

    async def delete(
        self, settings: GitLabSettings, path: str, message: str, sha: str
    ) -> None:
        last_commit_id = await self._precondition(settings, path, sha)

        body: dict[str, Any] = {"branch": settings.branch, "commit_message": message}
        if last_commit_id:
            body["last_commit_id"] = last_commit_id

        response = await self._http.request(
            "DELETE",
            self._file_url(settings, path),
            headers=self._headers(settings),
            json_body=body,
        )
        if self._is_conflict(response):
            raise ConflictError(path)
        self._http.raise_for_status(response, path)
        logger.info("GitLab deleted %s", path)

    async def _entries(self, settings: GitLabSettings, folder: str) -> AsyncIterator[FileEntry]:
        params = {"ref": settings.branch, "path": folder.strip("/")}
        async for item in self._paginate(
            settings, f"{self._project_url(settings)}/repository/tree", params, folder
        ):
            try:
                yield FileEntry(
                    name=item["name"],
                    path=item["path"],
                    sha=item.get("id", ""),
                    type="dir" if item.get("type") == "tree" else "file",
                )
            except (KeyError, TypeError) as e:
                raise ProtocolError(
                    f"Malformed GitLab tree entry in '{folder}'", raw_body=str(item)
                ) from e

    async def list(
        self, settings: GitLabSettings, folder: str, include_archived: bool = False
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
                logger.info("%s/ not found on GitLab, nothing to list", path)

    async def _load(self, settings: GitLabSettings, entry: FileEntry) -> Document | None:
        try:
            file = await self.get_file(settings, entry.path)
        except NotFoundError:
            logger.info("%s disappeared while listing, skipping", entry.path)
            return None
        return build_document(entry.path, file.content, file.sha)

    async def get_history(self, settings: GitLabSettings, path: str) -> list[CommitInfo]:
        """Commits touching a path, most recent first."""
        params = {"ref_name": settings.branch, "path": path}
        commits = []
        async for item in self._paginate(
            settings, f"{self._project_url(settings)}/repository/commits", params, path
        ):
            try:
                commits.append(
                    CommitInfo(
                        sha=item["id"],
                        message=item.get("message") or item["title"],
                        author=item["author_name"],
                        date=item.get("committed_date") or item["created_at"],
                        url=item.get("web_url"),
                    )
                )
            except (KeyError, TypeError) as e:
                raise ProtocolError(
                    f"Malformed GitLab commit entry for '{path}'", raw_body=str(item)
                ) from e
        return commits

    async def get_at_commit(
        self, settings: GitLabSettings, path: str, commit_ref: str
    ) -> FileContent:
        data = await self._fetch_raw(settings, path, commit_ref)
        return FileContent(content=data["content"], sha=data["blob_id"])

    async def list_folders(self, settings: GitLabSettings) -> set[str]:
        folders = set()
        async for entry in self._entries(settings, ""):
            if entry.type == "dir" and is_visible_folder(entry.name):
                folders.add(entry.name)
        return folders

    async def ensure_directory(
        self, settings: GitLabSettings, folder: str, message: str | None = None
    ) -> None:
        """Create ``<folder>/.gitkeep`` unless the folder already has entries.

        GitLab answers an unknown tree path with either 404 or an empty array,
        both mean the folder has to be created.
        """
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
