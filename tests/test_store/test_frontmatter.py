"""Tests for frontmatter parsing and rendering."""

import pytest

from gittasks.errors import ParseError
from gittasks.store import frontmatter
from gittasks.store.models import Frontmatter, ParsedMarkdown


TASK = """---
title: Deploy web application
createdAt: '2025-07-24T10:00:00.000Z'
priority: 1
isArchived: false
chatHistory: []
---
# Deploy

- [ ] build
"""


class TestParse:
    def test_parses_known_keys(self):
        parsed = frontmatter.parse(TASK)
        meta = parsed.frontmatter

        assert meta.title == "Deploy web application"
        assert meta.created_at == "2025-07-24T10:00:00.000Z"
        assert meta.priority == 1
        assert meta.is_archived is False
        assert meta.chat_history == []
        assert parsed.content == "# Deploy\n\n- [ ] build\n"

    def test_unquoted_timestamp_stays_a_string(self):
        parsed = frontmatter.parse("---\ncreatedAt: 2025-01-31T10:00:00Z\n---\nbody")
        assert parsed.frontmatter.created_at == "2025-01-31T10:00:00Z"

    def test_no_header_returns_blob_as_content(self):
        blob = "# Just markdown\n\nNo header here.\n"
        parsed = frontmatter.parse(blob)

        assert parsed.frontmatter is None
        assert parsed.content == blob

    def test_empty_header(self):
        parsed = frontmatter.parse("---\n---\nContent")

        assert parsed.frontmatter == Frontmatter()
        assert parsed.content == "Content"

    def test_header_only(self):
        parsed = frontmatter.parse("---\ntitle: Only\n---")

        assert parsed.frontmatter.title == "Only"
        assert parsed.content == ""

    def test_missing_fields_get_defaults(self):
        meta = frontmatter.parse("---\ntitle: Partial\n---\n").frontmatter

        assert meta.priority is None
        assert meta.is_archived is False
        assert meta.created_at == ""

    def test_header_without_priority_is_written_back_without_one(self):
        blob = "---\ntitle: Partial\ncreatedAt: '2024-01-01'\nisArchived: false\nchatHistory: []\n---\nbody"
        parsed = frontmatter.parse(blob)

        assert frontmatter.stringify(parsed.frontmatter, parsed.content) == blob

    @pytest.mark.parametrize(
        "raw,expected",
        [("false", False), ("'false'", False), ("'True'", True), ("'no'", False), ("1", True), ("0", False)],
    )
    def test_is_archived_strings(self, raw, expected):
        meta = frontmatter.parse(f"---\nisArchived: {raw}\n---\n").frontmatter
        assert meta.is_archived is expected

    def test_unknown_keys_are_kept_in_order(self):
        blob = "---\ntitle: T\nzeta: 1\nalpha: [a, b]\n---\nbody"
        meta = frontmatter.parse(blob).frontmatter

        assert list(meta.extra) == ["zeta", "alpha"]
        assert meta.extra["alpha"] == ["a", "b"]

    def test_chat_history(self):
        blob = (
            "---\ntitle: T\nchatHistory:\n"
            "- role: user\n  content: add a step\n"
            "- role: assistant\n  content: done\n"
            "---\nbody"
        )
        meta = frontmatter.parse(blob).frontmatter

        assert meta.chat_history[0] == {"role": "user", "content": "add a step"}
        assert len(meta.chat_history) == 2

    @pytest.mark.parametrize(
        "blob",
        [
            "---\ntitle: never closed\nbody",
            "---\ntitle: [unbalanced\n---\nbody",
            "---\n- a list\n- not a mapping\n---\nbody",
            "---\npriority: high\n---\nbody",
            "---\nchatHistory: nope\n---\nbody",
            "---\nisArchived: maybe\n---\nbody",
        ],
    )
    def test_malformed_header_raises(self, blob):
        with pytest.raises(ParseError):
            frontmatter.parse(blob)

    def test_dash_prefixed_body_is_not_a_header(self):
        blob = "---not frontmatter\ncontent"
        assert frontmatter.parse(blob) == ParsedMarkdown(None, blob)


class TestStringify:
    def test_none_returns_content_unchanged(self):
        assert frontmatter.stringify(None, "# Body\n") == "# Body\n"

    def test_renders_known_keys_first(self):
        meta = Frontmatter(
            title="Release",
            created_at="2024-02-01T09:30:00.000Z",
            priority=2,
            extra={"assignee": "sam"},
        )
        blob = frontmatter.stringify(meta, "notes\n")

        assert blob == (
            "---\n"
            "title: Release\n"
            "createdAt: '2024-02-01T09:30:00.000Z'\n"
            "priority: 2\n"
            "isArchived: false\n"
            "chatHistory: []\n"
            "assignee: sam\n"
            "---\n"
            "notes\n"
        )

    def test_output_is_deterministic(self):
        meta = Frontmatter(title="Same", extra={"b": 1, "a": 2})
        assert frontmatter.stringify(meta, "x") == frontmatter.stringify(meta, "x")

    @pytest.mark.parametrize(
        "meta,content",
        [
            (Frontmatter(title="Plain", created_at="2024-01-01T00:00:00.000Z"), "# Body\n"),
            (Frontmatter(title="Colon: inside", priority=5, is_archived=True), ""),
            (Frontmatter(title="Ünïcødé ✓", extra={"tags": ["a", "b"]}), "text\n---\nmore\n"),
            (
                Frontmatter(
                    title="Chat",
                    chat_history=[{"role": "user", "content": "line one\nline two"}],
                ),
                "---\nlooks like a header\n",
            ),
            (Frontmatter(title="'quoted' \"title\""), "no trailing newline"),
        ],
    )
    def test_parse_inverts_stringify(self, meta, content):
        blob = frontmatter.stringify(meta, content)
        assert frontmatter.parse(blob) == ParsedMarkdown(meta, content)

    def test_existing_task_round_trips_byte_for_byte(self):
        parsed = frontmatter.parse(TASK)
        assert frontmatter.stringify(parsed.frontmatter, parsed.content) == TASK


class TestStripFrontmatter:
    def test_strips_header(self):
        assert frontmatter.strip_frontmatter(TASK) == "# Deploy\n\n- [ ] build\n"

    def test_malformed_header_returns_blob(self):
        blob = "---\ntitle: never closed\nbody"
        assert frontmatter.strip_frontmatter(blob) == blob
