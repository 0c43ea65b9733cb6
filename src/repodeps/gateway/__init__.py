"""Remote repository gateway package."""

from .base import RepositoryGateway, RepositorySummary
from .client import (
    CrawlTimeoutError,
    EmptyRepositoryError,
    GitHubAPIError,
    GitHubClient,
    GitHubConnectionError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubTimeoutError,
    GitHubTransientError,
    NoCommitFoundError,
)

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
    "RepositoryGateway",
    "RepositorySummary",
]
