"""Client utilities for interacting with the GitHub REST API and raw content host."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import aiohttp
from aiohttp import ClientResponse, ClientSession
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import CrawlSettings
from .base import RepositorySummary

_LOGGER = logging.getLogger(__name__)
_USER_AGENT = "repodeps-crawler/1.0"

# Status codes GitHub uses on GET /repos/{repo}/commits/{ref}
_NO_COMMIT_FOUND = 422
_EMPTY_REPOSITORY = 409


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an unexpected response."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class GitHubNotFoundError(GitHubAPIError):
    """Raised when GitHub responds with HTTP 404 for a resource."""


class NoCommitFoundError(GitHubAPIError):
    """Raised when a branch or ref does not resolve to a commit."""


class EmptyRepositoryError(GitHubAPIError):
    """Raised when a repository has no commits at all."""


class GitHubTransientError(GitHubAPIError):
    """Raised for server-side failures worth retrying."""


class GitHubRateLimitError(GitHubTransientError):
    """Raised when the primary or secondary rate limit is exhausted."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status=status, body=body)
        self.retry_after = retry_after


class GitHubTimeoutError(GitHubTransientError):
    """Raised when a single request exceeds its timeout."""


class GitHubConnectionError(GitHubTransientError):
    """Raised when a request fails before a complete HTTP response arrives."""


class CrawlTimeoutError(GitHubAPIError):
    """Raised when a crawl does not finish before its deadline."""


_CONNECTION_ERRORS = (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)


def _safe_join(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def _retry_after(headers: Mapping[str, str]) -> Optional[float]:
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            return None
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            return None
    return None


def _is_rate_limited(response: ClientResponse, body: str) -> bool:
    if response.status == 429:
        return True
    if response.status != 403:
        return False
    if response.headers.get("X-RateLimit-Remaining") == "0":
        return True
    return "rate limit" in body.lower()


async def _raise_for_status(response: ClientResponse) -> None:
    if response.status < 400:
        return
    body = await response.text()
    status = response.status
    message = f"GitHub request {response.method} {response.url} failed with {status}: {response.reason}. Body: {body[:200]}"
    if status == 404:
        raise GitHubNotFoundError(message, status=status, body=body)
    if _is_rate_limited(response, body):
        raise GitHubRateLimitError(message, status=status, body=body, retry_after=_retry_after(response.headers))
    if status >= 500:
        raise GitHubTransientError(message, status=status, body=body)
    raise GitHubAPIError(message, status=status, body=body)


class _RateLimitAwareWait:
    """Exponential backoff that honours the wait GitHub asks for on rate limiting."""

    def __init__(self, settings: CrawlSettings) -> None:
        self._backoff = wait_exponential(
            multiplier=settings.retry_backoff_seconds,
            max=settings.retry_backoff_max_seconds,
        )
        self._ceiling = settings.max_rate_limit_wait_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        backoff = self._backoff(retry_state)
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            error = outcome.exception()
            if isinstance(error, GitHubRateLimitError) and error.retry_after is not None:
                return min(max(error.retry_after, backoff), self._ceiling)
        return backoff


class GitHubClient:
    """Asynchronous client for the GitHub endpoints the resolver relies on."""

    def __init__(self, settings: CrawlSettings):
        self._settings = settings
        self._session: Optional[ClientSession] = None
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_requests)
        self._wait = _RateLimitAwareWait(settings)
        self.request_count = 0

    async def __aenter__(self) -> "GitHubClient":
        timeout = aiohttp.ClientTimeout(total=self._settings.request_timeout_seconds)
        headers: Dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "User-Agent": _USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._settings.github_token:
            headers["Authorization"] = f"Bearer {self._settings.github_token}"
        self._session = aiohttp.ClientSession(timeout=timeout, headers=headers)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _require_session(self) -> ClientSession:
        if not self._session:
            raise RuntimeError("Client session not initialized. Use as an async context manager.")
        return self._session

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(GitHubTransientError),
            before_sleep=before_sleep_log(_LOGGER, logging.WARNING),
        )

    def _api_url(self, path: str) -> str:
        return _safe_join(str(self._settings.github_api_base), path)

    async def _get_json_page(
        self, url: str, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[Any, Optional[str]]:
        async for attempt in self._retrying():
            with attempt:
                session = self._require_session()
                async with self._semaphore:
                    self.request_count += 1
                    try:
                        async with session.get(url, params=params) as response:
                            await _raise_for_status(response)
                            payload = await response.json()
                            next_link = response.links.get("next")
                            next_url = str(next_link["url"]) if next_link else None
                            return payload, next_url
                    except asyncio.TimeoutError as exc:
                        raise GitHubTimeoutError(f"GitHub request to {url} timed out") from exc
                    except _CONNECTION_ERRORS as exc:
                        raise GitHubConnectionError(f"GitHub request to {url} failed: {exc}") from exc
        raise AssertionError("unreachable: tenacity re-raises the last error")

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        payload, _ = await self._get_json_page(self._api_url(path), params=params)
        return payload

    async def _get_text(self, url: str) -> str:
        async for attempt in self._retrying():
            with attempt:
                session = self._require_session()
                async with self._semaphore:
                    self.request_count += 1
                    try:
                        async with session.get(url) as response:
                            await _raise_for_status(response)
                            return await response.text()
                    except asyncio.TimeoutError as exc:
                        raise GitHubTimeoutError(f"GitHub request to {url} timed out") from exc
                    except _CONNECTION_ERRORS as exc:
                        raise GitHubConnectionError(f"GitHub request to {url} failed: {exc}") from exc
        raise AssertionError("unreachable: tenacity re-raises the last error")

    async def list_repositories(self, organization: str) -> List[RepositorySummary]:
        """Return every repository of ``organization``, following pagination links."""

        url: Optional[str] = self._api_url(f"orgs/{quote(organization)}/repos")
        params: Optional[Dict[str, Any]] = {"per_page": self._settings.page_size, "type": "all"}
        repositories: List[RepositorySummary] = []
        while url:
            payload, url = await self._get_json_page(url, params=params)
            # the next link already carries the query string
            params = None
            for item in payload:
                repositories.append(
                    RepositorySummary(full_name=item["full_name"], default_branch=item["default_branch"])
                )
        _LOGGER.info("Listed %d repositories in %s", len(repositories), organization)
        return repositories

    async def get_default_branch(self, repo_full_name: str) -> str:
        payload = await self._get_json(f"repos/{repo_full_name}")
        return payload["default_branch"]

    async def get_commit_sha(self, repo_full_name: str, ref: str) -> str:
        try:
            payload = await self._get_json(f"repos/{repo_full_name}/commits/{quote(ref, safe='/')}")
        except GitHubAPIError as exc:
            if exc.status == _NO_COMMIT_FOUND:
                raise NoCommitFoundError(
                    f"No commit found for {repo_full_name}@{ref}", status=exc.status, body=exc.body
                ) from exc
            if exc.status == _EMPTY_REPOSITORY:
                raise EmptyRepositoryError(
                    f"Repository {repo_full_name} is empty", status=exc.status, body=exc.body
                ) from exc
            raise
        return payload["sha"]

    async def fetch_raw_file(self, repo_full_name: str, commit: str, path: str) -> Optional[str]:
        url = _safe_join(str(self._settings.raw_content_base), f"{repo_full_name}/{commit}/{path}")
        try:
            return await self._get_text(url)
        except GitHubNotFoundError:
            _LOGGER.info("No %s in %s at %s", path, repo_full_name, commit)
            return None


__all__ = [
    "CrawlTimeoutError",
    "EmptyRepositoryError",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubConnectionError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubTimeoutError",
    "GitHubTransientError",
    "NoCommitFoundError",
]
