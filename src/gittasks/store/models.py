"""Data models for the document store."""

from dataclasses import dataclass, field
from typing import Any, ClassVar

# Folder holding archived tasks, relative to a project folder
ARCHIVE_FOLDER = "archive"

# Placeholder committed to keep otherwise empty folders alive
PLACEHOLDER_NAME = ".gitkeep"

DEFAULT_PRIORITY = 3
MIN_PRIORITY = 1
MAX_PRIORITY = 5


@dataclass(frozen=True)
class GitHubSettings:
    """Connection settings for a GitHub repository."""

    provider: ClassVar[str] = "github"
    required: ClassVar[tuple[str, ...]] = ("pat", "owner", "repo")

    pat: str
    owner: str
    repo: str
    branch: str | None = None  # None = repository default branch
    api_url: str = "https://api.github.com"

    def missing_fields(self) -> list[str]:
        return [name for name in self.required if not getattr(self, name)]


@dataclass(frozen=True)
class GitLabSettings:
    """Connection settings for a GitLab project."""

    provider: ClassVar[str] = "gitlab"
    required: ClassVar[tuple[str, ...]] = ("instance_url", "project_id", "token")

    instance_url: str
    project_id: str
    token: str
    branch: str = "main"

    def missing_fields(self) -> list[str]:
        return [name for name in self.required if not getattr(self, name)]


ProviderSettings = GitHubSettings | GitLabSettings


@dataclass
class Frontmatter:
    """Structured header of a task document.

    ``extra`` keeps every key the application does not model, in the order it
    was read, so an update touching one field never drops the others.
    """

    title: str = ""
    created_at: str = ""
    priority: int | None = None  # None when the header has no priority key
    is_archived: bool = False
    chat_history: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedMarkdown:
    """Result of splitting a blob into frontmatter and body.

    ``frontmatter`` is None when the blob carries no header at all.
    """

    frontmatter: Frontmatter | None
    content: str


@dataclass(frozen=True)
class FilenameMetadata:
    """Metadata decoded from a ``P<priority>--<date>--<slug>.md`` basename."""

    priority: int
    date: str  # YYYY-MM-DD
    title: str  # slug as stored in the filename
    display_title: str  # slug with separators turned back into spaces


@dataclass
class FileContent:
    """File body together with the sha it was read at."""

    content: str
    sha: str


@dataclass
class FileMetadata:
    """Provider view of a single file."""

    sha: str
    path: str
    name: str
    content: str


@dataclass
class FileEntry:
    """Directory listing entry (no content)."""

    name: str
    path: str
    sha: str
    type: str = "file"  # "file" or "dir"


@dataclass
class WriteResult:
    """Outcome of a create or update."""

    sha: str
    path: str = ""


@dataclass
class CommitInfo:
    """One entry of a file's history, most recent first in listings."""

    sha: str
    message: str
    author: str
    date: str
    url: str | None = None


@dataclass
class Document:
    """A task file: markdown body, frontmatter and the sha it was read at."""

    path: str
    title: str
    content: str
    frontmatter: Frontmatter | None = None
    sha: str | None = None
    priority: int = DEFAULT_PRIORITY
    created_at: str = ""
    is_archived: bool = False

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def can_update(self) -> bool:
        return bool(self.sha)
