"""
Async GitHub REST API client for profile, repository, event and language data.
All calls go through a RetryingFetcher.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx

from github_stats_proxy.config import Settings, settings as default_settings
from github_stats_proxy.errors import UnknownError, UpstreamError, error_for_response
from github_stats_proxy.models import UpstreamEvent, UpstreamRepo, UpstreamUser
from github_stats_proxy.retry import RetryingFetcher

logger = logging.getLogger(__name__)


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


class GitHubClient:
    """
    Async client for GitHub REST API.

    Features:
    - Retries on server errors and transient network failures
    - Language lookups batched with a pause between batches
    - Uses token if available for higher rate limits
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or default_settings
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._fetcher: RetryingFetcher | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Build request headers with optional auth token."""
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": self.settings.user_agent,
        }
        if self.settings.github_token:
            headers["Authorization"] = f"token {self.settings.github_token}"
        return headers

    @property
    def fetcher(self) -> RetryingFetcher:
        """Get or create the HTTP client and its retrying fetcher."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.settings.request_timeout,
                follow_redirects=True,
                transport=self._transport,
            )
            self._fetcher = RetryingFetcher(
                self._client, max_retries=self.settings.max_retries, sleep=self._sleep
            )
        return self._fetcher

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def build_url(self, endpoint: str) -> str:
        return f"{self.settings.github_api_url.rstrip('/')}{endpoint}"

    async def get(self, endpoint: str, **params: Any) -> httpx.Response:
        """
        Fetch a raw upstream resource.

        Args:
            endpoint: Path beginning with ``/``
            **params: Query parameters

        Returns:
            The terminal upstream response, whatever its status
        """
        url = self.build_url(endpoint)
        logger.debug("Fetching from GitHub: %s", url)
        return await self.fetcher.fetch(url, params=params or None)

    async def _get_json(self, endpoint: str, not_found_message: str | None = None, **params: Any) -> Any:
        response = await self.get(endpoint, **params)
        if not _is_success(response):
            if not_found_message is not None:
                raise error_for_response(response, endpoint, not_found_message=not_found_message)
            raise error_for_response(response, endpoint)
        return response.json()

    async def get_user(self, username: str) -> UpstreamUser:
        data = await self._get_json(
            f"/users/{username}",
            not_found_message=f"User '{username}' not found",
        )
        if not isinstance(data, dict):
            raise UnknownError("Unexpected user payload from GitHub API", endpoint=f"/users/{username}")
        return UpstreamUser.model_validate(data)

    async def get_repos(self, username: str) -> list[UpstreamRepo]:
        """Up to 100 repositories, most recently updated first."""
        data = await self._get_json(f"/users/{username}/repos", per_page=100, sort="updated")
        return [UpstreamRepo.model_validate(item) for item in data or []]

    async def get_events(self, username: str) -> list[UpstreamEvent]:
        """Up to 100 public events, newest first."""
        data = await self._get_json(f"/users/{username}/events", per_page=100)
        return [UpstreamEvent.model_validate(item) for item in data or []]

    async def get_repo_languages(self, owner: str, repo: UpstreamRepo) -> dict[str, int]:
        """
        Fetch the language byte breakdown of one repository.

        Any failure is logged and yields an empty mapping so a single
        repository can never fail a whole stats computation.
        """
        name = repo.repo_name
        if not name:
            return {}

        try:
            response = await self.get(f"/repos/{owner}/{name}/languages")
            if not _is_success(response):
                logger.warning("Failed to fetch languages for repo: %s (%d)", name, response.status_code)
                return {}
            data = response.json()
        except (UpstreamError, httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch languages for repo: %s (%s)", name, e)
            return {}

        if not isinstance(data, dict):
            return {}
        return {lang: count for lang, count in data.items() if isinstance(count, int)}

    async def get_languages_batched(
        self,
        owner: str,
        repos: Sequence[UpstreamRepo],
    ) -> list[dict[str, int]]:
        """
        Fetch languages for many repositories in rate-limit friendly batches.

        Each batch of ``language_batch_size`` calls runs concurrently, with
        ``language_batch_delay`` seconds between batches.

        Returns:
            One mapping per repository, in input order
        """
        batch_size = max(1, self.settings.language_batch_size)
        results: list[dict[str, int]] = []

        for start in range(0, len(repos), batch_size):
            batch = repos[start:start + batch_size]
            results.extend(
                await asyncio.gather(*(self.get_repo_languages(owner, repo) for repo in batch))
            )
            if start + batch_size < len(repos):
                await self._sleep(self.settings.language_batch_delay)

        return results
