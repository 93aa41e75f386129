"""
Upstream GitHub payloads and the aggregated stats record.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UpstreamModel(BaseModel):
    """Base for models parsed from GitHub responses; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class UpstreamUser(UpstreamModel):
    """Response of ``GET /users/{username}``."""
    login: str
    followers: int = 0
    following: int = 0
    public_repos: int = 0
    public_gists: int = 0
    created_at: str


class UpstreamRepo(UpstreamModel):
    """One item of ``GET /users/{username}/repos``."""
    name: str | None = None
    full_name: str | None = None
    stargazers_count: int | None = 0
    forks_count: int | None = 0
    language: str | None = None
    size: int | None = 0
    pushed_at: datetime | None = None
    fork: bool = False

    @property
    def repo_name(self) -> str | None:
        """Repository name, falling back to the second half of ``owner/repo``."""
        if self.name:
            return self.name
        if self.full_name and "/" in self.full_name:
            return self.full_name.split("/", 1)[1] or None
        return None


class EventType(str, Enum):
    PUSH = "PushEvent"
    PULL_REQUEST = "PullRequestEvent"
    ISSUE = "IssuesEvent"
    OTHER = "other"


class Commit(UpstreamModel):
    sha: str | None = None
    message: str | None = None


class EventPayload(UpstreamModel):
    commits: list[Commit] | None = None


class UpstreamEvent(UpstreamModel):
    """One item of ``GET /users/{username}/events`` (delivered newest first)."""
    type: str
    created_at: str
    payload: EventPayload = Field(default_factory=EventPayload)

    @property
    def event_type(self) -> EventType:
        try:
            return EventType(self.type)
        except ValueError:
            return EventType.OTHER

    @property
    def created(self) -> datetime:
        return datetime.fromisoformat(self.created_at.replace("Z", "+00:00"))


class StatsRecord(BaseModel):
    """
    Aggregated statistics for one user.

    Serialized with the camelCase field names clients already consume.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    username: str
    followers: int
    following: int
    public_repos: int = Field(alias="publicRepos")
    public_gists: int = Field(alias="publicGists")
    account_created: str = Field(alias="accountCreated")
    last_activity: str = Field(alias="lastActivity")

    total_repos: int = Field(alias="totalRepos")
    total_stars: int = Field(alias="totalStars")
    total_forks: int = Field(alias="totalForks")
    contributed_to: int = Field(alias="contributedTo")

    total_commits: int = Field(alias="totalCommits")
    total_prs: int = Field(alias="totalPRs")
    total_issues: int = Field(alias="totalIssues")
    current_streak: int = Field(ge=0, alias="currentStreak")
    longest_streak: int = Field(ge=0, alias="longestStreak")

    top_languages: dict[str, int] = Field(alias="topLanguages")
    recent_repo_activity: int = Field(alias="recentRepoActivity")

    computed_at: str = Field(alias="lastUpdated")

    def to_payload(self) -> dict:
        """JSON-ready dict in the wire (camelCase) shape."""
        return self.model_dump(by_alias=True)
