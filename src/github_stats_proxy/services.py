"""
Request orchestration: raw endpoint passthrough and per-user stats.

Both services consult the shared ResponseCache first and only go upstream
on a miss. Concurrent misses for the same key are not de-duplicated; each
issues its own upstream calls and the last write wins.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from github_stats_proxy.aggregator import aggregate
from github_stats_proxy.cache import STATS_PREFIX, ResponseCache
from github_stats_proxy.errors import UnknownError, ValidationError, error_for_response
from github_stats_proxy.github_client import GitHubClient

logger = logging.getLogger(__name__)

STATS_USAGE = [
    "GET /api/github/v2/stats?username=username",
    "GET /api/github/v2/stats/username",
]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def stats_cache_key(username: str) -> str:
    return f"{STATS_PREFIX}{username}"


class ProxyService:
    """Pass-through for a single GitHub endpoint with optional caching."""

    def __init__(self, cache: ResponseCache, github: GitHubClient):
        self.cache = cache
        self.github = github

    @staticmethod
    def validate_endpoint(endpoint: str | None) -> str:
        if not endpoint:
            raise ValidationError(
                "Endpoint parameter required",
                usage="GET /api/github/v2?endpoint=/users/username/repos",
            )
        if not endpoint.startswith("/"):
            raise ValidationError(
                "Endpoint must start with /",
                provided=endpoint,
                example="/users/username/repos",
            )
        return endpoint

    async def handle(self, endpoint: str | None, use_cache: bool) -> Any:
        """
        Serve a GitHub endpoint, from cache when allowed.

        Args:
            endpoint: Upstream path, must begin with ``/``
            use_cache: Read from and write to the cache

        Returns:
            Arrays and scalars unchanged; objects annotated with ``_cached``/``_cacheAge``
            on a hit or ``_metadata`` when freshly fetched

        Raises:
            UpstreamError: Classified validation or upstream failure
        """
        endpoint = self.validate_endpoint(endpoint)

        if use_cache:
            entry = self.cache.get_entry(endpoint)
            if entry is not None:
                logger.info("Cache hit for endpoint: %s", endpoint)
                if not isinstance(entry.value, dict):
                    return entry.value
                return {
                    **entry.value,
                    "_cached": True,
                    "_cacheAge": self.cache.age_of(entry),
                }

        response = await self.github.get(endpoint)

        if not 200 <= response.status_code < 300:
            raise error_for_response(response, endpoint)

        data = response.json()
        if data is None:
            raise UnknownError("No data received from GitHub API", endpoint=endpoint)

        if use_cache:
            self.cache.set(endpoint, data)
            logger.info("Cached data for endpoint: %s", endpoint)

        if isinstance(data, list):
            logger.info("Returning array with %d items for %s", len(data), endpoint)
            return data

        if not isinstance(data, dict):
            return data

        return {
            **data,
            "_metadata": {
                "cached": False,
                "timestamp": utc_timestamp(),
                "endpoint": endpoint,
                "rateLimit": {
                    "remaining": response.headers.get("X-RateLimit-Remaining"),
                    "reset": response.headers.get("X-RateLimit-Reset"),
                },
            },
        }


class StatsService:
    """Computes and caches aggregated statistics for a user."""

    def __init__(self, cache: ResponseCache, github: GitHubClient):
        self.cache = cache
        self.github = github

    async def compute(self, username: str) -> dict[str, Any]:
        """Fetch user, repositories, events and languages, then aggregate."""
        user = await self.github.get_user(username)
        repos = await self.github.get_repos(username)
        events = await self.github.get_events(username)

        own_repos = [repo for repo in repos if not repo.fork]
        language_maps = await self.github.get_languages_batched(username, own_repos)

        record = aggregate(user, repos, events, language_maps)
        return record.to_payload()

    async def handle(self, username: str | None, force_refresh: bool = False) -> dict[str, Any]:
        """
        Serve stats for a user, recomputing on a miss or when forced.

        Args:
            username: GitHub login
            force_refresh: Skip the cache lookup (the result is still stored)

        Returns:
            The stats payload, with ``cacheAge`` only when served from cache
        """
        if not username:
            raise ValidationError("Username parameter required", usage=STATS_USAGE)

        key = stats_cache_key(username)

        if not force_refresh:
            entry = self.cache.get_entry(key)
            if entry is not None:
                logger.info("Cache hit for stats: %s", username)
                return {**entry.value, "cacheAge": self.cache.age_of(entry)}

        logger.info("Fetching GitHub stats for: %s", username)
        stats = await self.compute(username)

        self.cache.set(key, stats)
        logger.info("Cached stats for user: %s", username)
        return stats
