"""Shared pytest fixtures: in-memory GitHub and GitLab APIs over httpx.MockTransport."""

from __future__ import annotations

import base64
import hashlib
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import unquote

import httpx
import pytest

from gittasks.store.models import GitHubSettings, GitLabSettings
from gittasks.store.providers.http import git_blob_sha

GITHUB_API = "https://api.github.test"
GITLAB_URL = "https://gitlab.test"


@dataclass
class Commit:
    sha: str
    path: str
    message: str
    files: dict[str, str]  # snapshot after the commit


@dataclass
class FakeRepo:
    """Files and history of a single branch, shared by both fake APIs."""

    files: dict[str, str] = field(default_factory=dict)
    commits: list[Commit] = field(default_factory=list)
    last_commit: dict[str, str] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)
    # Called with (method, path) before a write is checked; lets a test
    # commit a concurrent change between our read and our write
    before_write: Callable[[str, str], None] | None = None

    def sha(self, path: str) -> str:
        return git_blob_sha(self.files[path])

    def commit(self, path: str, content: str | None, message: str = "concurrent edit") -> str:
        if content is None:
            self.files.pop(path, None)
        else:
            self.files[path] = content
        sha = hashlib.sha1(f"{len(self.commits)}:{path}:{message}".encode()).hexdigest()
        self.commits.append(Commit(sha, path, message, dict(self.files)))
        self.last_commit[path] = sha
        return sha

    def interfere(self, path: str, times: int) -> None:
        """Commit a concurrent edit to ``path`` before each of the next ``times`` writes."""
        remaining = [times]

        def hook(method: str, target: str) -> None:
            if target == path and remaining[0] > 0:
                remaining[0] -= 1
                self.commit(path, self.files[path] + f"\nconcurrent {remaining[0]}\n")

        self.before_write = hook

    def at(self, ref: str) -> dict[str, str] | None:
        for commit in self.commits:
            if commit.sha == ref:
                return commit.files
        return None

    def children(self, folder: str) -> list[tuple[str, str]]:
        """Immediate children of a folder as (name, "file" | "dir")."""
        prefix = f"{folder}/" if folder else ""
        seen: dict[str, str] = {}
        for path in sorted(self.files):
            if not path.startswith(prefix):
                continue
            rest = path[len(prefix):]
            name, sep, _ = rest.partition("/")
            seen.setdefault(name, "dir" if sep else "file")
        return list(seen.items())

    def is_dir(self, folder: str) -> bool:
        return any(path.startswith(f"{folder}/") for path in self.files)

    def writes(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method in ("PUT", "POST", "DELETE")]


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _json(status: int, data) -> httpx.Response:
    return httpx.Response(status, json=data)


def github_handler(repo: FakeRepo) -> Callable[[httpx.Request], httpx.Response]:
    """Minimal contents/commits API of a GitHub repository ``owner/repo``."""
    base = "/repos/owner/repo"

    def handle(request: httpx.Request) -> httpx.Response:
        repo.requests.append(request)
        url_path = request.url.path

        if url_path == f"{base}/commits":
            path = request.url.params.get("path")
            items = [
                {
                    "sha": c.sha,
                    "html_url": f"https://github.test/owner/repo/commit/{c.sha}",
                    "commit": {
                        "message": c.message,
                        "author": {"name": "Tester", "date": "2024-01-31T12:00:00Z"},
                    },
                }
                for c in reversed(repo.commits)
                if c.path == path
            ]
            return _json(200, items)

        if not url_path.startswith(f"{base}/contents"):
            return _json(404, {"message": "Not Found"})

        path = url_path[len(f"{base}/contents"):].strip("/")

        if request.method == "GET":
            ref = request.url.params.get("ref")
            files = repo.at(ref) if ref and repo.at(ref) is not None else repo.files
            if path in files:
                return _json(
                    200,
                    {
                        "type": "file",
                        "name": path.rsplit("/", 1)[-1],
                        "path": path,
                        "sha": git_blob_sha(files[path]),
                        "content": _b64(files[path]),
                        "encoding": "base64",
                    },
                )
            if path == "" or repo.is_dir(path):
                return _json(
                    200,
                    [
                        {
                            "name": name,
                            "path": f"{path}/{name}" if path else name,
                            "sha": git_blob_sha(repo.files[f"{path}/{name}" if path else name])
                            if kind == "file"
                            else "tree",
                            "type": kind,
                        }
                        for name, kind in repo.children(path)
                    ],
                )
            return _json(404, {"message": "Not Found"})

        body = json.loads(request.content)
        if repo.before_write:
            repo.before_write(request.method, path)

        exists = path in repo.files
        if request.method == "PUT":
            if exists and "sha" not in body:
                return _json(422, {"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
            if exists and body["sha"] != repo.sha(path):
                return _json(409, {"message": f"{path} does not match {body['sha']}"})
            if not exists and "sha" in body:
                return _json(409, {"message": f"{path} does not match {body['sha']}"})
            content = base64.b64decode(body["content"]).decode("utf-8")
            commit = repo.commit(path, content, body["message"])
            return _json(
                201 if not exists else 200,
                {"content": {"path": path, "sha": repo.sha(path)}, "commit": {"sha": commit}},
            )

        if request.method == "DELETE":
            if not exists:
                return _json(404, {"message": "Not Found"})
            if body.get("sha") != repo.sha(path):
                return _json(409, {"message": f"{path} does not match {body.get('sha')}"})
            repo.commit(path, None, body["message"])
            return _json(200, {"content": None})

        return _json(405, {"message": "Method Not Allowed"})

    return handle


def gitlab_handler(repo: FakeRepo) -> Callable[[httpx.Request], httpx.Response]:
    """Minimal files/tree/commits API of GitLab project 42."""
    base = "/api/v4/projects/42/repository"

    def handle(request: httpx.Request) -> httpx.Response:
        repo.requests.append(request)
        # raw_path keeps %2F inside the file path segment
        raw = request.url.raw_path.decode("ascii").split("?", 1)[0]

        if raw == f"{base}/tree":
            folder = request.url.params.get("path", "")
            if folder and not repo.is_dir(folder):
                return _json(404, {"message": "404 Tree Not Found"})
            return _json(
                200,
                [
                    {
                        "id": "tree-" + name,
                        "name": name,
                        "type": "tree" if kind == "dir" else "blob",
                        "path": f"{folder}/{name}" if folder else name,
                        "mode": "100644",
                    }
                    for name, kind in repo.children(folder)
                ],
            )

        if raw == f"{base}/commits":
            path = request.url.params.get("path")
            return _json(
                200,
                [
                    {
                        "id": c.sha,
                        "title": c.message.splitlines()[0],
                        "message": c.message,
                        "author_name": "Tester",
                        "committed_date": "2024-01-31T12:00:00.000+00:00",
                        "web_url": f"https://gitlab.test/group/project/-/commit/{c.sha}",
                    }
                    for c in reversed(repo.commits)
                    if c.path == path
                ],
            )

        if not raw.startswith(f"{base}/files/"):
            return _json(404, {"message": "404 Not Found"})

        path = unquote(raw[len(f"{base}/files/"):])

        if request.method == "GET":
            ref = request.url.params.get("ref")
            snapshot = repo.at(ref)
            files = snapshot if snapshot is not None else repo.files
            if path not in files:
                return _json(404, {"message": "404 File Not Found"})
            return _json(
                200,
                {
                    "file_name": path.rsplit("/", 1)[-1],
                    "file_path": path,
                    "encoding": "base64",
                    "content": _b64(files[path]),
                    "ref": ref,
                    "blob_id": git_blob_sha(files[path]),
                    "last_commit_id": repo.last_commit.get(path, ""),
                },
            )

        body = json.loads(request.content)
        if repo.before_write:
            repo.before_write(request.method, path)

        exists = path in repo.files
        stale = (
            "last_commit_id" in body
            and body["last_commit_id"] != repo.last_commit.get(path)
        )

        if request.method == "POST":
            if exists:
                return _json(400, {"message": "A file with this name already exists"})
            repo.commit(path, base64.b64decode(body["content"]).decode("utf-8"), body["commit_message"])
            return _json(201, {"file_path": path, "branch": body["branch"]})

        if not exists:
            return _json(400, {"message": "A file with this name doesn't exist"})
        if stale:
            return _json(
                400,
                {
                    "message": "You are attempting to update a file that has changed "
                    "since you started editing it."
                },
            )

        if request.method == "PUT":
            repo.commit(path, base64.b64decode(body["content"]).decode("utf-8"), body["commit_message"])
            return _json(200, {"file_path": path, "branch": body["branch"]})

        if request.method == "DELETE":
            repo.commit(path, None, body["commit_message"])
            return httpx.Response(204)

        return _json(405, {"message": "405 Method Not Allowed"})

    return handle


@pytest.fixture
def repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture
def github_settings() -> GitHubSettings:
    return GitHubSettings(pat="ghp_test", owner="owner", repo="repo", api_url=GITHUB_API)


@pytest.fixture
def gitlab_settings() -> GitLabSettings:
    return GitLabSettings(instance_url=GITLAB_URL, project_id="42", token="glpat-test")


@pytest.fixture
def github_http(repo) -> httpx.AsyncClient:
    """AsyncClient whose requests are served by the fake GitHub API."""
    return httpx.AsyncClient(transport=httpx.MockTransport(github_handler(repo)))


@pytest.fixture
def gitlab_http(repo) -> httpx.AsyncClient:
    """AsyncClient whose requests are served by the fake GitLab API."""
    return httpx.AsyncClient(transport=httpx.MockTransport(gitlab_handler(repo)))


@pytest.fixture(params=["github", "gitlab"])
def provider(request, repo, github_settings, gitlab_settings, github_http, gitlab_http):
    """(settings, http client) for each supported provider in turn."""
    if request.param == "github":
        return github_settings, github_http
    return gitlab_settings, gitlab_http
