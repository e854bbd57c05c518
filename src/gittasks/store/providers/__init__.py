"""Provider adapters, one per supported Git hosting service."""

from gittasks.store.providers.base import ProviderAdapter
from gittasks.store.providers.github import GitHubAdapter
from gittasks.store.providers.gitlab import GitLabAdapter

ADAPTERS: dict[str, type] = {
    "github": GitHubAdapter,
    "gitlab": GitLabAdapter,
}

__all__ = [
    "ADAPTERS",
    "GitHubAdapter",
    "GitLabAdapter",
    "ProviderAdapter",
]
