"""Assemble Documents from raw provider blobs."""

import logging

from gittasks.errors import ParseError
from gittasks.store import filename, frontmatter
from gittasks.store.models import (
    ARCHIVE_FOLDER,
    DEFAULT_PRIORITY,
    Document,
    ParsedMarkdown,
)

logger = logging.getLogger(__name__)


def is_archive_path(path: str) -> bool:
    """Check whether a path lives inside an ``archive/`` subtree."""
    return ARCHIVE_FOLDER in path.split("/")[:-1]


def _basename_title(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    if name.endswith(".md"):
        name = name[:-3]
    return name


def build_document(path: str, blob: str, sha: str | None) -> Document:
    """
    Build a Document from a file's raw text.

    Display metadata is resolved frontmatter first, then the filename, then
    defaults. A malformed header does not hide the file: it is returned with
    no frontmatter and the raw text as content.

    Args:
        path: Repository-relative path
        blob: Raw file content
        sha: Provider sha the blob was read at

    Returns:
        Document
    """
    try:
        parsed = frontmatter.parse(blob)
    except ParseError as e:
        logger.warning("Ignoring malformed frontmatter in %s: %s", path, e)
        parsed = ParsedMarkdown(frontmatter=None, content=blob)

    meta = parsed.frontmatter
    encoded = filename.decode(path) or filename.parse_legacy(path)

    title = meta.title if meta and meta.title else None
    if title is None:
        title = encoded.display_title if encoded else _basename_title(path)

    if meta is not None and meta.priority is not None:
        priority = meta.priority
    elif encoded is not None:
        priority = encoded.priority
    else:
        priority = DEFAULT_PRIORITY

    created_at = meta.created_at if meta and meta.created_at else ""
    if not created_at and encoded is not None:
        created_at = encoded.date

    is_archived = meta.is_archived if meta is not None else False

    return Document(
        path=path,
        title=title,
        content=parsed.content,
        frontmatter=meta,
        sha=sha,
        priority=priority,
        created_at=created_at,
        is_archived=is_archived or is_archive_path(path),
    )
