"""Tests for the conflict-resolving writer."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from gittasks.errors import ConflictError, TransportError
from gittasks.store import ConflictResolvingWriter, update_with_retry, with_provider
from gittasks.store.models import FileMetadata, WriteResult
from gittasks.store.writer import WriterState


def _append_line(current: FileMetadata) -> str:
    return current.content + "- mine\n"


class TestAgainstProviders:
    @pytest.mark.asyncio
    async def test_no_conflict_writes_once(self, provider, repo):
        settings, http = provider
        repo.commit("todos/a.md", "# List\n")
        writer = ConflictResolvingWriter(with_provider(settings, http))

        result = await writer.update("todos/a.md", _append_line, "fix: add line")

        assert repo.files["todos/a.md"] == "# List\n- mine\n"
        assert result.sha == repo.sha("todos/a.md")
        assert writer.state is WriterState.DONE
        assert [a.outcome for a in writer.attempts] == ["written"]

    @pytest.mark.asyncio
    async def test_retry_rebuilds_from_latest_content(self, provider, repo):
        """Two concurrent edits, then success: both edits survive alongside ours."""
        settings, http = provider
        repo.commit("todos/a.md", "# List\n")
        repo.interfere("todos/a.md", times=2)
        writer = ConflictResolvingWriter(with_provider(settings, http), max_attempts=3)

        await writer.update("todos/a.md", _append_line, "fix: add line")

        final = repo.files["todos/a.md"]
        assert final.endswith("- mine\n")
        assert "concurrent 1" in final
        assert "concurrent 0" in final
        assert final.count("- mine") == 1
        assert [a.outcome for a in writer.attempts] == ["conflict", "conflict", "written"]

    @pytest.mark.asyncio
    async def test_exhaustion_after_exactly_max_attempts(self, provider, repo):
        settings, http = provider
        repo.commit("todos/a.md", "# List\n")
        repo.interfere("todos/a.md", times=10)
        writer = ConflictResolvingWriter(with_provider(settings, http), max_attempts=3)

        with pytest.raises(ConflictError) as exc:
            await writer.update("todos/a.md", _append_line, "fix: add line")

        assert exc.value.attempts == 3
        assert exc.value.path == "todos/a.md"
        assert "changed by someone else" in str(exc.value)
        assert len(writer.attempts) == 3
        assert writer.state is WriterState.FAILED
        assert "- mine" not in repo.files["todos/a.md"]

    @pytest.mark.asyncio
    async def test_message_factory_sees_fetched_file(self, github_settings, github_http, repo):
        repo.commit("todos/a.md", "x")

        await update_with_retry(
            with_provider(github_settings, github_http),
            "todos/a.md",
            lambda current: current.content.upper(),
            lambda current: f"fix: Update {current.name}",
        )

        assert repo.files["todos/a.md"] == "X"
        assert repo.commits[-1].message == "fix: Update a.md"


def _mock_client(update_side_effect):
    client = MagicMock()
    client.get_file_metadata = AsyncMock(
        return_value=FileMetadata(sha="s1", path="a.md", name="a.md", content="c")
    )
    client.update = AsyncMock(side_effect=update_side_effect)
    return client


class TestStateMachine:
    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="at least 1"):
            ConflictResolvingWriter(MagicMock(), max_attempts=0)

    @pytest.mark.asyncio
    async def test_single_attempt(self):
        client = _mock_client([ConflictError("a.md")])
        writer = ConflictResolvingWriter(client, max_attempts=1)

        with pytest.raises(ConflictError) as exc:
            await writer.update("a.md", lambda c: "new", "msg")

        assert exc.value.attempts == 1
        assert client.update.await_count == 1

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        client = _mock_client([TransportError("boom", status_code=502)])
        writer = ConflictResolvingWriter(client, max_attempts=5)

        with pytest.raises(TransportError):
            await writer.update("a.md", lambda c: "new", "msg")

        assert client.update.await_count == 1
        assert writer.state is WriterState.FAILED

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        client = _mock_client([asyncio.CancelledError()])
        writer = ConflictResolvingWriter(client, max_attempts=5)

        with pytest.raises(asyncio.CancelledError):
            await writer.update("a.md", lambda c: "new", "msg")

        assert client.update.await_count == 1
        assert writer.state is WriterState.FAILED

    @pytest.mark.asyncio
    async def test_passes_fetched_sha(self):
        client = _mock_client([WriteResult(sha="s2")])
        writer = ConflictResolvingWriter(client)

        result = await writer.update("a.md", lambda c: c.content + "!", "msg")

        assert result.sha == "s2"
        client.update.assert_awaited_once_with("a.md", "c!", "msg", expected_sha="s1")

    @pytest.mark.asyncio
    async def test_async_transform(self):
        client = _mock_client([WriteResult(sha="s2")])

        async def transform(current):
            return current.content * 2

        await ConflictResolvingWriter(client).update("a.md", transform, "msg")
        client.update.assert_awaited_once_with("a.md", "cc", "msg", expected_sha="s1")

    @pytest.mark.asyncio
    async def test_writer_is_single_use(self):
        client = _mock_client([WriteResult(sha="s2")])
        writer = ConflictResolvingWriter(client)
        await writer.update("a.md", lambda c: "x", "msg")

        with pytest.raises(RuntimeError):
            await writer.update("a.md", lambda c: "x", "msg")
