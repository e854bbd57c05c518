"""Capability interface implemented by every provider adapter."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from gittasks.store.models import (
    CommitInfo,
    Document,
    FileContent,
    FileMetadata,
    ProviderSettings,
    WriteResult,
)


class ProviderAdapter(Protocol):
    """Store operations a hosting provider must support.

    Adapters are stateless apart from the HTTP client they were built with;
    settings are passed into every call.
    """

    async def get_file(self, settings: ProviderSettings, path: str) -> FileContent: ...

    async def get_file_metadata(
        self, settings: ProviderSettings, path: str
    ) -> FileMetadata: ...

    async def create_or_update(
        self,
        settings: ProviderSettings,
        path: str,
        content: str,
        message: str,
        expected_sha: str | None = None,
    ) -> WriteResult: ...

    async def delete(
        self, settings: ProviderSettings, path: str, message: str, sha: str
    ) -> None: ...

    def list(
        self, settings: ProviderSettings, folder: str, include_archived: bool = False
    ) -> AsyncIterator[Document]: ...

    async def get_history(
        self, settings: ProviderSettings, path: str
    ) -> list[CommitInfo]: ...

    async def get_at_commit(
        self, settings: ProviderSettings, path: str, commit_ref: str
    ) -> FileContent: ...

    async def list_folders(self, settings: ProviderSettings) -> set[str]: ...

    async def ensure_directory(
        self, settings: ProviderSettings, folder: str, message: str | None = None
    ) -> None: ...


def is_task_file(name: str) -> bool:
    """Listings only surface markdown files, never the folder placeholder."""
    return name.endswith(".md") and not name.startswith(".")


def is_visible_folder(name: str) -> bool:
    return bool(name) and not name.startswith(".")


def listing_path(folder: str, include_archived: bool) -> str:
    """Folder actually listed: the archive subtree when archived tasks are wanted."""
    folder = folder.strip("/")
    return f"{folder}/archive" if include_archived else folder


def placeholder_content(folder: str) -> str:
    return f"# This file ensures the {folder} directory exists\n"
