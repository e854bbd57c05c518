"""YAML frontmatter parsing and rendering for task documents.

A document is ``---\\n<yaml mapping>\\n---\\n<markdown body>``. Files created
outside the application may have no header at all; those parse to a
``ParsedMarkdown`` whose frontmatter is None and whose content is the whole
blob.
"""

import logging
from typing import Any

import yaml

from gittasks.errors import ParseError
from gittasks.store.models import Frontmatter, ParsedMarkdown

logger = logging.getLogger(__name__)

DELIMITER = "---"

# Wire names of the modelled fields, in the order they are rendered
KNOWN_KEYS = ("title", "createdAt", "priority", "isArchived", "chatHistory")

# Hand-edited headers sometimes quote booleans
TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
FALSE_STRINGS = frozenset({"false", "no", "off", "0", ""})


class _FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as strings.

    ``createdAt: 2025-01-31T10:00:00Z`` would otherwise come back as a
    datetime and be re-rendered in a different shape.
    """


_FrontmatterLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag != "tag:yaml.org,2002:timestamp"
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _split(blob: str) -> tuple[str, str] | None:
    """Split a blob into (header, body), or None when it has no header."""
    opening = DELIMITER + "\n"
    if not blob.startswith(opening):
        return None

    rest = blob[len(opening):]

    # Empty header: "---\n---\n..."
    if rest == DELIMITER or rest.startswith(opening):
        return "", rest[len(opening):]

    closing = "\n" + DELIMITER + "\n"
    end = rest.find(closing)
    if end != -1:
        return rest[:end], rest[end + len(closing):]

    if rest.endswith("\n" + DELIMITER):
        return rest[: -len(DELIMITER) - 1], ""

    raise ParseError("Frontmatter is missing its closing '---' line")


def _coerce_priority(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ParseError(f"Invalid priority in frontmatter: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid priority in frontmatter: {value!r}") from e


def _coerce_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise ParseError(f"Invalid isArchived in frontmatter: {value!r}")


def _from_mapping(raw: dict[str, Any]) -> Frontmatter:
    chat_history = raw.get("chatHistory") or []
    if not isinstance(chat_history, list):
        raise ParseError("chatHistory must be a list of messages")

    created_at = raw.get("createdAt")
    return Frontmatter(
        title="" if raw.get("title") is None else str(raw["title"]),
        created_at="" if created_at is None else str(created_at),
        priority=_coerce_priority(raw.get("priority")),
        is_archived=_coerce_bool(raw.get("isArchived")),
        chat_history=list(chat_history),
        extra={key: value for key, value in raw.items() if key not in KNOWN_KEYS},
    )


def to_mapping(frontmatter: Frontmatter) -> dict[str, Any]:
    """Render a Frontmatter into its ordered wire mapping."""
    data: dict[str, Any] = {
        "title": frontmatter.title,
        "createdAt": frontmatter.created_at,
    }
    # A header read without a priority is written back without one
    if frontmatter.priority is not None:
        data["priority"] = frontmatter.priority
    data["isArchived"] = frontmatter.is_archived
    data["chatHistory"] = frontmatter.chat_history
    for key, value in frontmatter.extra.items():
        if key not in data:
            data[key] = value
    return data


def parse(blob: str) -> ParsedMarkdown:
    """
    Parse a markdown blob into frontmatter and body.

    Args:
        blob: Full file content as stored by the provider

    Returns:
        ParsedMarkdown; frontmatter is None when the blob has no header

    Raises:
        ParseError: If the header is unterminated, not YAML, or not a mapping
    """
    parts = _split(blob)
    if parts is None:
        return ParsedMarkdown(frontmatter=None, content=blob)

    header, body = parts
    try:
        raw = yaml.load(header, Loader=_FrontmatterLoader)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML frontmatter: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ParseError(
            f"Frontmatter must be a mapping, got {type(raw).__name__}"
        )

    return ParsedMarkdown(frontmatter=_from_mapping(raw), content=body)


def stringify(frontmatter: Frontmatter | None, content: str) -> str:
    """Render frontmatter and body back into a single blob.

    Key order is fixed (modelled keys first, then extension keys as read), so
    the same input always produces the same bytes.
    """
    if frontmatter is None:
        return content

    header = yaml.dump(
        to_mapping(frontmatter),
        Dumper=yaml.SafeDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )
    return f"{DELIMITER}\n{header}{DELIMITER}\n{content}"


def strip_frontmatter(blob: str) -> str:
    """Return only the body of a blob, tolerating a malformed header."""
    try:
        return parse(blob).content
    except ParseError:
        logger.debug("Malformed frontmatter, returning blob unchanged")
        return blob
