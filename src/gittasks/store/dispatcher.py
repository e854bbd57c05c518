"""Provider selection: one API surface whatever the hosting service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

from gittasks.errors import ConfigError
from gittasks.store.documents import build_document
from gittasks.store.models import (
    CommitInfo,
    Document,
    FileContent,
    FileMetadata,
    ProviderSettings,
    WriteResult,
)
from gittasks.store.providers import ADAPTERS, ProviderAdapter

logger = logging.getLogger(__name__)


def validate_settings(settings: ProviderSettings) -> None:
    """
    Check that settings name a supported provider and are complete.

    Raises:
        ConfigError: Unknown provider tag, or required fields left empty
    """
    provider = getattr(settings, "provider", None)
    if provider not in ADAPTERS:
        raise ConfigError(f"unsupported provider: {provider!r}")

    missing = settings.missing_fields()
    if missing:
        raise ConfigError(
            f"{provider} settings incomplete, please configure: {', '.join(missing)}",
            missing=missing,
        )


class ProviderClient:
    """Store operations bound to one provider settings value.

    Holds nothing but the settings and the adapter selected for them.
    """

    def __init__(self, settings: ProviderSettings, adapter: ProviderAdapter):
        self.settings = settings
        self.adapter = adapter

    @property
    def provider(self) -> str:
        return self.settings.provider

    async def read(self, path: str) -> Document:
        """Read a document with its frontmatter and current sha."""
        file = await self.adapter.get_file(self.settings, path)
        return build_document(path, file.content, file.sha)

    async def get_file(self, path: str) -> FileContent:
        return await self.adapter.get_file(self.settings, path)

    async def get_file_metadata(self, path: str) -> FileMetadata:
        return await self.adapter.get_file_metadata(self.settings, path)

    def list(self, folder: str, include_archived: bool = False) -> AsyncIterator[Document]:
        return self.adapter.list(self.settings, folder, include_archived)

    async def create(self, path: str, content: str, message: str) -> WriteResult:
        return await self.adapter.create_or_update(self.settings, path, content, message)

    async def update(
        self, path: str, content: str, message: str, expected_sha: str
    ) -> WriteResult:
        if not expected_sha:
            raise ValueError(f"Updating {path} requires the sha it was read at")
        return await self.adapter.create_or_update(
            self.settings, path, content, message, expected_sha=expected_sha
        )

    async def delete(self, path: str, message: str, sha: str) -> None:
        await self.adapter.delete(self.settings, path, message, sha)

    async def history(self, path: str) -> list[CommitInfo]:
        return await self.adapter.get_history(self.settings, path)

    async def at_commit(self, path: str, commit_ref: str) -> FileContent:
        return await self.adapter.get_at_commit(self.settings, path, commit_ref)

    async def list_folders(self) -> set[str]:
        return await self.adapter.list_folders(self.settings)

    async def ensure_directory(self, folder: str, message: str | None = None) -> None:
        await self.adapter.ensure_directory(self.settings, folder, message)


def with_provider(
    settings: ProviderSettings, http: httpx.AsyncClient | None = None
) -> ProviderClient:
    """
    Select the adapter for a settings value.

    Validation happens here, before any request is built, so incomplete
    settings never reach the network.

    Args:
        settings: GitHubSettings or GitLabSettings
        http: Shared client (carries timeouts and connection pooling); a
            short-lived client per request is used when omitted

    Returns:
        ProviderClient bound to the settings

    Raises:
        ConfigError: If the settings are unsupported or incomplete
    """
    validate_settings(settings)
    adapter = ADAPTERS[settings.provider](http)
    logger.debug("Using %s provider", settings.provider)
    return ProviderClient(settings, adapter)
