"""MCP tools for gittasks - read and write task files in a Git repository."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from gittasks.config import Config
from gittasks.errors import ReadOnlyError
from gittasks.store import TaskStore, with_provider
from gittasks.store.models import CommitInfo, Document

if TYPE_CHECKING:
    from fastmcp import FastMCP

logger = logging.getLogger(__name__)


def check_write_permission(config: Config) -> None:
    """
    Check if write operations are allowed.

    Raises:
        ReadOnlyError: If the server is in read-only mode
    """
    if config.read_only:
        logger.warning("Write operation rejected: server is in read-only mode")
        raise ReadOnlyError("Server is in read-only mode")


def _summary(doc: Document) -> dict[str, Any]:
    return {
        "path": doc.path,
        "title": doc.title,
        "priority": doc.priority,
        "created_at": doc.created_at,
        "is_archived": doc.is_archived,
        "sha": doc.sha,
    }


def _commit(commit: CommitInfo) -> dict[str, Any]:
    return {
        "sha": commit.sha,
        "message": commit.message,
        "author": commit.author,
        "date": commit.date,
        "url": commit.url,
    }


class TaskTools:
    """Tool implementations, independent of the MCP server they are exposed on.

    A fresh TaskStore is built per call from the config, so settings problems
    surface as a ConfigError on the call that needs the provider.
    """

    def __init__(self, config: Config, http: httpx.AsyncClient | None = None):
        self.config = config
        self.http = http

    def store(self) -> TaskStore:
        client = with_provider(self.config.provider_settings(), self.http)
        return TaskStore(client, writer_attempts=self.config.max_retries)

    def _folder(self, folder: str | None) -> str:
        return (folder or self.config.folder).strip("/")

    async def list_tasks(
        self, folder: str | None = None, include_archived: bool = False
    ) -> dict[str, Any]:
        folder = self._folder(folder)
        docs = await self.store().list_tasks(folder, include_archived)
        return {
            "folder": folder,
            "archived": include_archived,
            "count": len(docs),
            "tasks": [_summary(doc) for doc in docs],
        }

    async def read_task(self, path: str) -> dict[str, Any]:
        doc = await self.store().get_task(path)
        return {**_summary(doc), "content": doc.content}

    async def create_task(
        self,
        title: str,
        content: str = "",
        priority: int = 3,
        folder: str | None = None,
    ) -> dict[str, Any]:
        check_write_permission(self.config)
        doc = await self.store().create_task(self._folder(folder), title, content, priority)
        return {"status": "created", **_summary(doc)}

    async def search_tasks(
        self, query: str, folder: str | None = None, all_folders: bool = False
    ) -> dict[str, Any]:
        scope = None if all_folders else self._folder(folder)
        docs = await self.store().search_tasks(query, scope)
        return {
            "query": query.strip(),
            "scope": "repo" if all_folders else "folder",
            "count": len(docs),
            "tasks": [_summary(doc) for doc in docs],
        }

    async def update_task(
        self,
        path: str,
        content: str,
        message: str | None = None,
        chat_history: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        check_write_permission(self.config)
        result = await self.store().update_task(path, content, message, chat_history)
        return {"status": "updated", "path": path, "sha": result.sha}

    async def rename_task(self, path: str, title: str) -> dict[str, Any]:
        check_write_permission(self.config)
        result = await self.store().rename_task(path, title)
        return {"status": "renamed", "path": path, "title": title.strip(), "sha": result.sha}

    async def set_priority(self, path: str, priority: int) -> dict[str, Any]:
        check_write_permission(self.config)
        result = await self.store().update_priority(path, priority)
        return {"status": "updated", "path": path, "priority": priority, "sha": result.sha}

    async def archive_task(self, path: str) -> dict[str, Any]:
        check_write_permission(self.config)
        new_path = await self.store().archive_task(path)
        return {"status": "archived", "path": new_path, "previous_path": path}

    async def unarchive_task(self, path: str) -> dict[str, Any]:
        check_write_permission(self.config)
        new_path = await self.store().unarchive_task(path)
        return {"status": "unarchived", "path": new_path, "previous_path": path}

    async def delete_task(self, path: str) -> dict[str, Any]:
        check_write_permission(self.config)
        await self.store().delete_task(path)
        return {"status": "deleted", "path": path}

    async def task_history(self, path: str) -> dict[str, Any]:
        commits = await self.store().client.history(path)
        return {"path": path, "commits": [_commit(c) for c in commits]}

    async def task_at_commit(self, path: str, commit_sha: str) -> dict[str, Any]:
        file = await self.store().client.at_commit(path, commit_sha)
        return {"path": path, "commit": commit_sha, "sha": file.sha, "content": file.content}

    async def list_folders(self) -> dict[str, Any]:
        folders = await self.store().list_project_folders()
        return {"folders": folders, "default": self.config.folder}

    async def create_folder(self, name: str) -> dict[str, Any]:
        check_write_permission(self.config)
        await self.store().create_project_folder(name)
        return {"status": "created", "folder": name}


def register_tools(
    mcp: "FastMCP", config: Config, http: httpx.AsyncClient | None = None
) -> TaskTools:
    """Register all task tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        config: Config instance (provider settings, default folder, read-only flag)
        http: Shared HTTP client for provider calls

    Returns:
        The TaskTools instance backing the registered tools
    """
    tools = TaskTools(config, http)

    @mcp.tool()
    async def list_tasks(folder: str | None = None, include_archived: bool = False) -> dict:
        """List tasks in a project folder, highest priority first.

        Args:
            folder: Project folder (defaults to the configured one)
            include_archived: List the folder's archive instead of active tasks

        Returns:
            Dict with folder, count and task summaries
        """
        return await tools.list_tasks(folder, include_archived)

    @mcp.tool()
    async def read_task(path: str) -> dict:
        """Read a task file with its metadata and markdown body.

        Args:
            path: Repository path of the task, e.g. todos/P1--2024-01-31--fix-login.md
        """
        return await tools.read_task(path)

    @mcp.tool()
    async def create_task(
        title: str, content: str = "", priority: int = 3, folder: str | None = None
    ) -> dict:
        """Create a new task file with frontmatter and a priority-encoded filename.

        Args:
            title: Task title
            content: Markdown body
            priority: 1 (highest) to 5 (lowest)
            folder: Project folder (defaults to the configured one)
        """
        return await tools.create_task(title, content, priority, folder)

    @mcp.tool()
    async def search_tasks(
        query: str, folder: str | None = None, all_folders: bool = False
    ) -> dict:
        """Search task titles and bodies, ignoring case.

        Args:
            query: Text to look for
            folder: Project folder to search, archive included (defaults to the configured one)
            all_folders: Search every project folder of the repository instead
        """
        return await tools.search_tasks(query, folder, all_folders)

    @mcp.tool()
    async def update_task(
        path: str,
        content: str,
        message: str | None = None,
        chat_history: list[dict] | None = None,
    ) -> dict:
        """Replace the markdown body of a task, keeping its frontmatter.

        Concurrent edits are detected; the update is retried on the latest
        version of the file.

        Args:
            path: Repository path of the task
            content: New markdown body
            message: Commit message
            chat_history: Replaces the task's stored conversation, a list of
                {"role": ..., "content": ...} messages
        """
        return await tools.update_task(path, content, message, chat_history)

    @mcp.tool()
    async def rename_task(path: str, title: str) -> dict:
        """Change a task's title. The file path stays the same."""
        return await tools.rename_task(path, title)

    @mcp.tool()
    async def set_priority(path: str, priority: int) -> dict:
        """Change a task's priority, 1 (highest) to 5 (lowest)."""
        return await tools.set_priority(path, priority)

    @mcp.tool()
    async def archive_task(path: str) -> dict:
        """Move a task into its folder's archive."""
        return await tools.archive_task(path)

    @mcp.tool()
    async def unarchive_task(path: str) -> dict:
        """Move an archived task back to its project folder."""
        return await tools.unarchive_task(path)

    @mcp.tool()
    async def delete_task(path: str) -> dict:
        """Delete a task file."""
        return await tools.delete_task(path)

    @mcp.tool()
    async def task_history(path: str) -> dict:
        """List the commits that touched a task, most recent first."""
        return await tools.task_history(path)

    @mcp.tool()
    async def task_at_commit(path: str, commit_sha: str) -> dict:
        """Read a task as it was at a given commit.

        Args:
            path: Repository path of the task
            commit_sha: Commit sha from task_history
        """
        return await tools.task_at_commit(path, commit_sha)

    @mcp.tool()
    async def list_folders() -> dict:
        """List the project folders of the repository."""
        return await tools.list_folders()

    @mcp.tool()
    async def create_folder(name: str) -> dict:
        """Create a project folder with its archive subfolder.

        Args:
            name: Letters, digits, underscores and hyphens, starting with a letter
        """
        return await tools.create_folder(name)

    return tools
