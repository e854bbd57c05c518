"""Task-level operations built on the provider client and the writer."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from gittasks.errors import ConflictError
from gittasks.store import filename, frontmatter
from gittasks.store.dispatcher import ProviderClient
from gittasks.store.documents import build_document, is_archive_path
from gittasks.store.models import (
    ARCHIVE_FOLDER,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    PLACEHOLDER_NAME,
    Document,
    FileMetadata,
    Frontmatter,
    WriteResult,
)
from gittasks.store.writer import DEFAULT_MAX_ATTEMPTS, ConflictResolvingWriter

logger = logging.getLogger(__name__)

FOLDER_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*\Z")

# Numbered variants tried when a task filename is already taken
MAX_NAME_SUFFIX = 20

MAX_QUERY_LENGTH = 200


def now_iso() -> str:
    """Current UTC time as ``2024-01-31T12:00:00.000Z``."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def validate_folder_name(name: str) -> None:
    if not name or not FOLDER_NAME_PATTERN.match(name):
        raise ValueError(
            f"Invalid folder name {name!r}. "
            "Use letters, numbers, underscores, and hyphens only, starting with a letter."
        )


def _with_suffix(path: str, number: int) -> str:
    stem, _, ext = path.rpartition(".")
    return f"{stem}-{number}.{ext}"


def _header_and_body(path: str, blob: str) -> tuple[Frontmatter, str]:
    """Frontmatter and body of a blob.

    A file without a header gets one seeded from what its filename says, so
    adding the header does not change the task's title, date or priority.
    """
    parsed = frontmatter.parse(blob)
    if parsed.frontmatter is not None:
        return parsed.frontmatter, parsed.content

    document = build_document(path, blob, None)
    meta = Frontmatter(
        title=document.title,
        created_at=document.created_at,
        priority=document.priority,
    )
    return meta, parsed.content


def _moved_blob(path: str, blob: str, archived: bool) -> str:
    meta, body = _header_and_body(path, blob)
    return frontmatter.stringify(replace(meta, is_archived=archived), body)


def _check_priority(priority: int) -> None:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValueError(f"Priority must be an integer, got {priority!r}")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValueError(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {priority}"
        )


def _sort_by_priority(documents: list[Document]) -> None:
    # Stable sorts: newest first, then by priority
    documents.sort(key=lambda d: d.created_at, reverse=True)
    documents.sort(key=lambda d: d.priority)


def _split_path(path: str) -> tuple[str, str]:
    """Return (project folder, basename) for an active or archived task path."""
    parent, _, name = path.rpartition("/")
    if is_archive_path(path):
        parent = parent.rsplit("/", 1)[0] if "/" in parent else ""
    return parent, name


class TaskStore:
    """Task files of a repository, seen through one provider client.

    Every update of an existing file goes through a ConflictResolvingWriter,
    so edits are always rebuilt from the latest committed content.
    """

    def __init__(self, client: ProviderClient, writer_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.client = client
        self.writer_attempts = writer_attempts

    async def _update(self, path: str, transform, message) -> WriteResult:
        writer = ConflictResolvingWriter(self.client, max_attempts=self.writer_attempts)
        return await writer.update(path, transform, message)

    async def list_tasks(self, folder: str, include_archived: bool = False) -> list[Document]:
        """
        List the tasks of a project folder, highest priority first.

        Args:
            folder: Project folder
            include_archived: List ``<folder>/archive`` instead of the active tasks

        Returns:
            Documents sorted by priority, then newest first
        """
        documents = [doc async for doc in self.client.list(folder, include_archived)]
        _sort_by_priority(documents)
        logger.debug("Listed %d tasks in %s", len(documents), folder)
        return documents

    async def get_task(self, path: str) -> Document:
        return await self.client.read(path)

    async def search_tasks(self, query: str, folder: str | None = None) -> list[Document]:
        """
        Find tasks whose title or body contains ``query``, ignoring case.

        Args:
            query: Text to look for
            folder: Search this project folder, active and archived tasks;
                every project folder of the repository when None

        Returns:
            Matching documents, each path once, highest priority first

        Raises:
            ValueError: Empty or overlong query
        """
        needle = query.strip().casefold()
        if not needle:
            raise ValueError("Missing or empty search query")
        if len(needle) > MAX_QUERY_LENGTH:
            raise ValueError(f"Search query longer than {MAX_QUERY_LENGTH} characters")

        folders = [folder.strip("/")] if folder else await self.list_project_folders()

        matches: dict[str, Document] = {}
        for name in folders:
            for include_archived in (False, True):
                async for doc in self.client.list(name, include_archived):
                    if needle in doc.title.casefold() or needle in doc.content.casefold():
                        matches.setdefault(doc.path, doc)

        documents = list(matches.values())
        _sort_by_priority(documents)
        logger.info("Search for %r matched %d tasks", query.strip(), len(documents))
        return documents

    async def create_task(
        self,
        folder: str,
        title: str,
        content: str,
        priority: int = DEFAULT_PRIORITY,
        created_at: str | None = None,
        message: str | None = None,
    ) -> Document:
        """
        Create a task file with frontmatter in ``folder``.

        The folder is created if needed. When the encoded filename is taken,
        ``-1``, ``-2``, ... are appended until a free name is found.

        Args:
            folder: Project folder
            title: Human-readable title
            content: Markdown body
            priority: 1 (highest) to 5
            created_at: ISO timestamp, defaults to now
            message: Commit message

        Returns:
            The created Document, with its new sha

        Raises:
            ValueError: Invalid priority or title
            ConflictError: Every candidate filename is taken
        """
        if not title or not title.strip():
            raise ValueError("A task needs a non-empty title")

        created_at = created_at or now_iso()
        base_path = f"{folder.strip('/')}/{filename.encode(priority, created_at[:10], title)}"

        meta = Frontmatter(title=title.strip(), created_at=created_at, priority=priority)
        blob = frontmatter.stringify(meta, content)
        message = message or f"feat: Create {title.strip()}"

        await self.client.ensure_directory(folder)

        path = base_path
        for number in range(MAX_NAME_SUFFIX + 1):
            if number:
                path = _with_suffix(base_path, number)
            try:
                result = await self.client.create(path, blob, message)
            except ConflictError:
                logger.info("%s already exists, trying the next name", path)
                continue
            logger.info("Created task %s", result.path or path)
            return Document(
                path=path,
                title=meta.title,
                content=content,
                frontmatter=meta,
                sha=result.sha,
                priority=priority,
                created_at=created_at,
            )

        raise ConflictError(
            base_path,
            f"No free filename for {base_path} after {MAX_NAME_SUFFIX} numbered variants",
            attempts=MAX_NAME_SUFFIX + 1,
        )

    async def update_task(
        self,
        path: str,
        content: str,
        message: str | None = None,
        chat_history: list[dict[str, Any]] | None = None,
    ) -> WriteResult:
        """
        Replace the markdown body of a task.

        The frontmatter is left as is, except for ``chatHistory`` when a new
        history is passed along with the body.
        """
        if chat_history is not None and not all(isinstance(m, dict) for m in chat_history):
            raise ValueError("chat_history must be a list of message mappings")

        def transform(current: FileMetadata) -> str:
            if chat_history is None:
                parsed = frontmatter.parse(current.content)
                return frontmatter.stringify(parsed.frontmatter, content)
            meta, _ = _header_and_body(path, current.content)
            return frontmatter.stringify(replace(meta, chat_history=list(chat_history)), content)

        name = path.rsplit("/", 1)[-1]
        return await self._update(path, transform, message or f"fix: Update {name}")

    async def rename_task(self, path: str, title: str) -> WriteResult:
        """
        Change the title in a task's frontmatter.

        The file keeps its path and its body stays byte-identical; only the
        ``title`` key of the header changes.
        """
        new_title = title.strip()
        if not new_title:
            raise ValueError("A task needs a non-empty title")

        def transform(current: FileMetadata) -> str:
            meta, body = _header_and_body(path, current.content)
            return frontmatter.stringify(replace(meta, title=new_title), body)

        return await self._update(path, transform, f"fix: Rename task to {new_title}")

    async def update_priority(self, path: str, priority: int) -> WriteResult:
        """
        Set the priority in a task's frontmatter.

        Like a rename, the file is not moved: the ``P<n>`` prefix of the
        filename keeps the priority the task was created with, and the header
        takes precedence over it when the task is read.
        """
        _check_priority(priority)

        def transform(current: FileMetadata) -> str:
            meta, body = _header_and_body(path, current.content)
            return frontmatter.stringify(replace(meta, priority=priority), body)

        def message(current: FileMetadata) -> str:
            title = build_document(path, current.content, current.sha).title
            return f'feat: Update priority to P{priority} for "{title}"'

        return await self._update(path, transform, message)

    async def _move(self, path: str, target: str, archived: bool, remove_message: str) -> str:
        """
        Copy a task to ``target`` and delete the original.

        If the original is edited between the copy and the delete, the edit
        is carried over to the copy and the delete is retried with the new
        sha. When every attempt conflicts the copy is removed again, so the
        task is never left in both places.
        """
        verb = "Archive" if archived else "Unarchive"
        name = path.rsplit("/", 1)[-1]
        move_message = f"{verb}: Move {name}"

        current = await self.client.get_file_metadata(path)
        written = await self.client.create(
            target, _moved_blob(path, current.content, archived), move_message
        )

        for number in range(1, self.writer_attempts + 1):
            try:
                await self.client.delete(path, remove_message, current.sha)
                break
            except ConflictError as e:
                if number == self.writer_attempts:
                    logger.warning(
                        "%s kept changing during the move, removing %s again", path, target
                    )
                    await self.client.delete(
                        target, f"{verb}: Revert move of {name}", written.sha
                    )
                    e.attempts = number
                    raise
                logger.info(
                    "%s changed during the move, attempt %d/%d",
                    path,
                    number,
                    self.writer_attempts,
                )
                current = await self.client.get_file_metadata(path)
                written = await self.client.update(
                    target,
                    _moved_blob(path, current.content, archived),
                    move_message,
                    expected_sha=written.sha,
                )

        logger.info("%sd %s -> %s", verb, path, target)
        return target

    async def archive_task(self, path: str) -> str:
        """
        Move an active task into ``<folder>/archive/`` with ``isArchived`` set.

        Returns:
            The archived path
        """
        folder, name = _split_path(path)
        if is_archive_path(path):
            raise ValueError(f"{path} is already archived")

        archive = f"{folder}/{ARCHIVE_FOLDER}" if folder else ARCHIVE_FOLDER
        await self.client.ensure_directory(archive, f"feat: Create {archive} directory")
        return await self._move(
            path,
            f"{archive}/{name}",
            archived=True,
            remove_message=f"Archive: Remove {name} from active {folder}",
        )

    async def unarchive_task(self, path: str) -> str:
        """Move an archived task back to its project folder; returns the new path."""
        folder, name = _split_path(path)
        if not is_archive_path(path):
            raise ValueError(f"{path} is not archived")

        target = f"{folder}/{name}" if folder else name
        return await self._move(
            path,
            target,
            archived=False,
            remove_message=f"Unarchive: Remove {name} from {folder}/{ARCHIVE_FOLDER}",
        )

    async def delete_task(self, path: str, message: str | None = None) -> None:
        current = await self.client.get_file_metadata(path)
        name = path.rsplit("/", 1)[-1]
        await self.client.delete(path, message or f"fix: Delete {name}", current.sha)

    async def create_project_folder(self, name: str) -> None:
        """Create a project folder together with its archive subfolder."""
        validate_folder_name(name)

        await self.client.create(
            f"{name}/{PLACEHOLDER_NAME}",
            f"# {name} Project\n\nThis file ensures the {name} directory exists in the repository.\n",
            f"feat: Create {name} project folder",
        )
        await self.client.create(
            f"{name}/{ARCHIVE_FOLDER}/{PLACEHOLDER_NAME}",
            f"# {name}/archive\n\nThis directory contains archived tasks from the {name} project.\n",
            f"feat: Create {name}/archive directory",
        )
        logger.info("Created project folder %s", name)

    async def list_project_folders(self) -> list[str]:
        return sorted(await self.client.list_folders())
