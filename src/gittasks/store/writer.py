"""Conflict-resolving writer for optimistic-concurrency updates.

The provider rejects any write whose sha is stale. This module is the client
side of that contract: fetch the current sha, rebuild the payload from what
was fetched, write, and start over on a conflict, a bounded number of times.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from gittasks.errors import ConflictError
from gittasks.store.dispatcher import ProviderClient
from gittasks.store.models import FileMetadata, WriteResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

# Builds the new file content from the freshly fetched file
Transform = Callable[[FileMetadata], str]
MessageFactory = Callable[[FileMetadata], str]


class WriterState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WriteAttempt:
    """Diagnostics for one fetch-then-write round."""

    number: int
    sha: str | None = None
    outcome: str = "pending"  # "written", "conflict" or "error"


class ConflictResolvingWriter:
    """Runs one update through the fetch/write/retry state machine.

    A writer instance serves a single update; ``state`` and ``attempts`` stay
    available afterwards for diagnostics.
    """

    def __init__(self, client: ProviderClient, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """
        Args:
            client: Provider client the update goes through
            max_attempts: Write attempts before a conflict becomes terminal
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self._client = client
        self.max_attempts = max_attempts
        self.state = WriterState.IDLE
        self.attempts: list[WriteAttempt] = []

    def _transition(self, state: WriterState) -> None:
        logger.debug("Writer %s -> %s", self.state.value, state.value)
        self.state = state

    async def update(
        self,
        path: str,
        transform: Transform | Callable[[FileMetadata], Awaitable[str]],
        message: str | MessageFactory,
    ) -> WriteResult:
        """
        Apply ``transform`` to the current content of ``path`` and write it.

        The transform is called again on every retry with the content fetched
        for that attempt, so a concurrent writer's change is never replayed
        over.

        Args:
            path: File to update
            transform: Returns the new content for a fetched file (may be async)
            message: Commit message, or a callable building it from the fetch

        Returns:
            WriteResult with the new sha

        Raises:
            ConflictError: Every attempt conflicted; ``attempts`` on the error
                holds how many were made
            StoreError: Any other failure, raised on first occurrence
        """
        if self.state is not WriterState.IDLE:
            raise RuntimeError("ConflictResolvingWriter instances serve a single update")

        last_conflict: ConflictError | None = None

        for number in range(1, self.max_attempts + 1):
            attempt = WriteAttempt(number=number)
            self.attempts.append(attempt)

            try:
                self._transition(WriterState.FETCHING)
                current = await self._client.get_file_metadata(path)
                attempt.sha = current.sha

                self._transition(WriterState.WRITING)
                content = transform(current)
                if inspect.isawaitable(content):
                    content = await content
                commit_message = message(current) if callable(message) else message

                result = await self._client.update(
                    path, content, commit_message, expected_sha=current.sha
                )
            except ConflictError as e:
                attempt.outcome = "conflict"
                last_conflict = e
                logger.info(
                    "SHA conflict on %s, attempt %d/%d", path, number, self.max_attempts
                )
                continue
            except BaseException:
                # Cancellation included; never retried
                attempt.outcome = "error"
                self._transition(WriterState.FAILED)
                raise

            attempt.outcome = "written"
            self._transition(WriterState.DONE)
            if number > 1:
                logger.info("Saved %s after %d attempts", path, number)
            return result

        self._transition(WriterState.FAILED)
        logger.warning(
            "Giving up on %s after %d conflicting attempts", path, self.max_attempts
        )
        last_conflict.attempts = self.max_attempts
        raise last_conflict


async def update_with_retry(
    client: ProviderClient,
    path: str,
    transform: Transform,
    message: str | MessageFactory,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> WriteResult:
    """Convenience wrapper running a single update through a fresh writer."""
    writer = ConflictResolvingWriter(client, max_attempts=max_attempts)
    return await writer.update(path, transform, message)
