"""
gittasks - markdown tasks stored in a GitHub or GitLab repository.

The provider repository is the only source of truth and its commit history is
the audit log. Every write carries the provider's content hash, so concurrent
editors never silently overwrite each other.

Stack:
- Python + httpx (provider REST APIs)
- PyYAML (frontmatter)
- FastMCP (tool surface)
"""

__version__ = "0.1.0"
