"""
Document store for gittasks.

Task files live as markdown with a YAML header in a GitHub or GitLab
repository. Every write carries the sha it was read at, so a concurrent edit
is detected by the provider and retried on the latest content.
"""

from gittasks.store.dispatcher import ProviderClient, validate_settings, with_provider
from gittasks.store.documents import build_document
from gittasks.store.models import (
    CommitInfo,
    Document,
    FilenameMetadata,
    Frontmatter,
    GitHubSettings,
    GitLabSettings,
    ParsedMarkdown,
    ProviderSettings,
    WriteResult,
)
from gittasks.store.tasks import TaskStore
from gittasks.store.writer import ConflictResolvingWriter, update_with_retry

__all__ = [
    "CommitInfo",
    "ConflictResolvingWriter",
    "Document",
    "FilenameMetadata",
    "Frontmatter",
    "GitHubSettings",
    "GitLabSettings",
    "ParsedMarkdown",
    "ProviderClient",
    "ProviderSettings",
    "TaskStore",
    "WriteResult",
    "build_document",
    "update_with_retry",
    "validate_settings",
    "with_provider",
]
