"""Configuration module for gittasks.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass

from gittasks.store.models import GitHubSettings, GitLabSettings, ProviderSettings

PROVIDERS = ("github", "gitlab")


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def _env_int(name: str, default: str, minimum: int, maximum: int | None = None) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
        if value < minimum or (maximum is not None and value > maximum):
            bound = f"between {minimum} and {maximum}" if maximum else f"at least {minimum}"
            raise ValueError(f"must be {bound}, got {value}")
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{raw}': {e}") from e
    return value


@dataclass
class Config:
    """Application configuration.

    Provider fields are kept flat, the way they come from the environment;
    ``provider_settings()`` turns them into the settings value the store takes.
    """

    provider: str
    github_pat: str
    github_owner: str
    github_repo: str
    github_branch: str | None
    github_api_url: str
    gitlab_url: str
    gitlab_project_id: str
    gitlab_token: str
    gitlab_branch: str
    folder: str
    max_retries: int
    http_timeout: float
    port: int
    read_only: bool

    @classmethod
    def from_env(cls, read_only_override: bool | None = None) -> "Config":
        """Load configuration from environment variables.

        Missing provider credentials are not an error here; they are reported
        with their names when the store is first used.

        Args:
            read_only_override: If provided, overrides the GITTASKS_READ_ONLY env var.
        """
        provider = os.getenv("GITTASKS_PROVIDER", "github").strip().lower()
        if provider not in PROVIDERS:
            raise ValueError(
                f"Invalid GITTASKS_PROVIDER value '{provider}': "
                f"expected one of {', '.join(PROVIDERS)}"
            )

        port = _env_int("GITTASKS_PORT", "8080", 1, 65535)
        max_retries = _env_int("GITTASKS_MAX_RETRIES", "3", 1)

        timeout_str = os.getenv("GITTASKS_HTTP_TIMEOUT", "30")
        try:
            http_timeout = float(timeout_str)
            if http_timeout <= 0:
                raise ValueError(f"must be positive, got {http_timeout}")
        except ValueError as e:
            raise ValueError(f"Invalid GITTASKS_HTTP_TIMEOUT value '{timeout_str}': {e}") from e

        folder = os.getenv("GITTASKS_FOLDER", "todos").strip("/") or "todos"

        # Read-only mode - CLI flag takes precedence over env var
        if read_only_override is not None:
            read_only = read_only_override
        else:
            read_only = _env_bool("GITTASKS_READ_ONLY")

        return cls(
            provider=provider,
            github_pat=os.getenv("GITHUB_PAT", ""),
            github_owner=os.getenv("GITHUB_OWNER", ""),
            github_repo=os.getenv("GITHUB_REPO", ""),
            github_branch=os.getenv("GITHUB_BRANCH") or None,
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            gitlab_url=os.getenv("GITLAB_URL", "https://gitlab.com"),
            gitlab_project_id=os.getenv("GITLAB_PROJECT_ID", ""),
            gitlab_token=os.getenv("GITLAB_TOKEN", ""),
            gitlab_branch=os.getenv("GITLAB_BRANCH", "main"),
            folder=folder,
            max_retries=max_retries,
            http_timeout=http_timeout,
            port=port,
            read_only=read_only,
        )

    def provider_settings(self) -> ProviderSettings:
        """Build the settings value for the configured provider."""
        if self.provider == "gitlab":
            return GitLabSettings(
                instance_url=self.gitlab_url,
                project_id=self.gitlab_project_id,
                token=self.gitlab_token,
                branch=self.gitlab_branch,
            )
        return GitHubSettings(
            pat=self.github_pat,
            owner=self.github_owner,
            repo=self.github_repo,
            branch=self.github_branch,
            api_url=self.github_api_url,
        )
