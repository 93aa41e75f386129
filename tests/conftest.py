"""Shared fixtures: a controllable clock and a fake GitHub API."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from github_stats_proxy.config import Settings
from github_stats_proxy.github_client import GitHubClient


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGitHub:
    """
    Routes requests by path to canned JSON responses and records every call.

    Unknown paths answer 404.
    """

    def __init__(self):
        self.routes: dict[str, tuple[int, object, dict]] = {}
        self.calls: list[httpx.Request] = []

    def add(self, path: str, body: object, status: int = 200, headers: dict | None = None) -> None:
        self.routes[path] = (status, body, headers or {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        status, body, headers = self.routes.get(
            request.url.path, (404, {"message": "Not Found"}, {})
        )
        return httpx.Response(
            status,
            content=json.dumps(body).encode(),
            headers={"Content-Type": "application/json", **headers},
        )

    def paths(self) -> list[str]:
        return [call.url.path for call in self.calls]


def iso(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        github_token=None,
        max_retries=0,
        language_batch_delay=0,
    )


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def github_client(settings, fake_github):
    return GitHubClient(settings, transport=httpx.MockTransport(fake_github.handler))


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


def seed_user(fake: FakeGitHub, username: str = "octocat", repo_count: int = 7, now: datetime | None = None):
    """Profile, `repo_count` own repos plus 3 forks, push events and languages."""
    now = now or datetime.now(timezone.utc)
    fake.add(
        f"/users/{username}",
        {
            "login": username,
            "followers": 10,
            "following": 2,
            "public_repos": repo_count + 3,
            "public_gists": 1,
            "created_at": "2011-01-25T18:44:36Z",
        },
    )
    repos = [
        {
            "name": f"repo{i}",
            "full_name": f"{username}/repo{i}",
            "stargazers_count": 1,
            "forks_count": 1,
            "language": "Python",
            "pushed_at": iso(now - timedelta(days=2)),
            "fork": False,
        }
        for i in range(repo_count)
    ] + [
        {
            "name": f"fork{i}",
            "full_name": f"{username}/fork{i}",
            "stargazers_count": 100,
            "forks_count": 100,
            "pushed_at": iso(now - timedelta(days=400)),
            "fork": True,
        }
        for i in range(3)
    ]
    fake.add(f"/users/{username}/repos", repos)
    fake.add(
        f"/users/{username}/events",
        [
            {"type": "PushEvent", "created_at": iso(now), "payload": {"commits": [{"sha": "a"}, {"sha": "b"}]}},
            {"type": "PullRequestEvent", "created_at": iso(now - timedelta(hours=1)), "payload": {}},
            {"type": "PushEvent", "created_at": iso(now - timedelta(days=1)), "payload": {"commits": [{"sha": "c"}]}},
        ],
    )
    for i in range(repo_count):
        fake.add(f"/repos/{username}/repo{i}/languages", {"Python": 300, "Shell": 100})
