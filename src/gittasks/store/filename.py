"""Filename-encoded task metadata.

New format: ``P<priority>--<YYYY-MM-DD>--<slug>.md``, e.g.
``P1--2025-07-24--deploy-web-application.md``. The fixed-width date keeps
lexicographic filename order in step with creation order.

Any other basename is a legacy filename: its metadata lives only in the
frontmatter and decoding it yields None instead of an error.
"""

import logging
import re
from datetime import date as date_type
from datetime import datetime

from gittasks.store.models import (
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    FilenameMetadata,
)

logger = logging.getLogger(__name__)

NEW_FORMAT_PATTERN = re.compile(r"^P([1-5])--(\d{4}-\d{2}-\d{2})--(.+)\.md\Z")

# Filenames written before metadata moved into the name: YYYY-MM-DD-slug.md
LEGACY_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})-(.+)\.md\Z")

MAX_SLUG_LENGTH = 50
DATE_FORMAT = "%Y-%m-%d"


def _basename(filename: str) -> str:
    return filename.rsplit("/", 1)[-1]


def _valid_date(value: str) -> bool:
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return False
    return True


def slugify(title: str) -> str:
    """Turn a title into the lowercase, hyphenated form used in filenames."""
    slug = re.sub(r"[^\w\s-]", "", title.lower())
    slug = re.sub(r"[-\s_]+", "-", slug).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "untitled"


def _format_date(value: date_type | datetime | str) -> str:
    if isinstance(value, (date_type, datetime)):
        return value.strftime(DATE_FORMAT)
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value) or not _valid_date(value):
        raise ValueError(f"Invalid date '{value}': expected YYYY-MM-DD")
    return value


def encode(priority: int, date: date_type | datetime | str, title: str) -> str:
    """Build a new-format filename.

    Args:
        priority: 1 (most urgent) to 5
        date: Creation date, as a date/datetime or a YYYY-MM-DD string
        title: Free-form title, slugified for the filename

    Returns:
        Basename such as ``P2--2025-01-31--write-release-notes.md``

    Raises:
        ValueError: If priority is out of range or the date is malformed
    """
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValueError(f"Priority must be an integer, got {priority!r}")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValueError(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {priority}"
        )

    return f"P{priority}--{_format_date(date)}--{slugify(title)}.md"


def is_new_format(filename: str) -> bool:
    """Check whether a filename (or path) uses the metadata-encoded format."""
    return NEW_FORMAT_PATTERN.match(_basename(filename)) is not None


def decode(filename: str) -> FilenameMetadata | None:
    """Decode metadata from a new-format filename.

    Accepts a bare name or a full path. Returns None for legacy names and for
    anything that merely looks like the pattern but carries an impossible date.
    """
    if not isinstance(filename, str):
        return None

    match = NEW_FORMAT_PATTERN.match(_basename(filename))
    if not match:
        return None

    priority, date, title = match.groups()
    if not _valid_date(date):
        logger.debug("Filename %s has an invalid date, treating as legacy", filename)
        return None

    return FilenameMetadata(
        priority=int(priority),
        date=date,
        title=title,
        display_title=re.sub(r"[-_]+", " ", title).strip(),
    )


def is_legacy_format(filename: str) -> bool:
    """Check for the older ``YYYY-MM-DD-slug.md`` naming."""
    name = _basename(filename)
    return LEGACY_PATTERN.match(name) is not None and not is_new_format(name)


def parse_legacy(filename: str) -> FilenameMetadata | None:
    """Read date and title from a ``YYYY-MM-DD-slug.md`` filename.

    Priority is not part of that format and defaults to 3.
    """
    name = _basename(filename)
    if not is_legacy_format(name):
        return None

    date, title = LEGACY_PATTERN.match(name).groups()
    if not _valid_date(date):
        return None

    return FilenameMetadata(
        priority=DEFAULT_PRIORITY,
        date=date,
        title=title,
        display_title=title.replace("-", " "),
    )


def convert_legacy(filename: str, priority: int = DEFAULT_PRIORITY) -> str | None:
    """Return the new-format equivalent of a legacy filename, or None."""
    metadata = parse_legacy(filename)
    if metadata is None:
        return None
    return encode(priority, metadata.date, metadata.display_title)
