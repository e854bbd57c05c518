"""Error taxonomy shared by the store, the providers and the tool surface."""

# Raw provider bodies are kept whole on the exception, but only this many
# characters end up in messages and logs.
SNIPPET_LENGTH = 200


def snippet(text: str, limit: int = SNIPPET_LENGTH) -> str:
    """Return a bounded prefix of ``text`` for messages and logs."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class StoreError(Exception):
    """Base class for every failure surfaced by the document store."""

    pass


class ConfigError(StoreError):
    """Provider settings are incomplete or name an unknown provider."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class NotFoundError(StoreError):
    """The path does not exist at the expected location."""

    def __init__(self, path: str, message: str | None = None):
        super().__init__(message or f"Not found: {path}")
        self.path = path


class ConflictError(StoreError):
    """The supplied sha no longer matches the provider's current one."""

    def __init__(self, path: str, message: str | None = None, attempts: int = 1):
        super().__init__(
            message or f"{path} was changed by someone else since it was last read"
        )
        self.path = path
        self.attempts = attempts


class ProtocolError(StoreError):
    """The provider answered, but not in the structured format expected."""

    def __init__(self, message: str, raw_body: str = ""):
        self.raw_body = raw_body
        self.snippet = snippet(raw_body)
        if raw_body:
            message = f"{message}: {self.snippet!r}"
        super().__init__(message)


class TransportError(StoreError):
    """Network or HTTP failure below the application protocol."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429 or (
            self.status_code == 403 and self.retry_after is not None
        )


class ParseError(StoreError):
    """A frontmatter header is present but malformed."""

    pass


class ReadOnlyError(StoreError):
    """A write was requested while the server runs in read-only mode."""

    pass
