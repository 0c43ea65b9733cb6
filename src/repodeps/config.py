"""Configuration utilities for the organization dependency crawler."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import (
    AliasChoices,
    AnyHttpUrl,
    Field,
    PositiveFloat,
    PositiveInt,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class CrawlSettings(BaseSettings):
    """Settings model driven by environment variables.

    Environment variables are prefixed with ``REPODEPS_``. For example, set
    ``REPODEPS_ORGANIZATION=acme`` to crawl the ``acme`` organization. The
    unprefixed ``ORG_NAME``, ``GITHUB_TOKEN`` and ``OUT_PATH`` variables are
    accepted as well.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPODEPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    organization: str = Field(
        default="",
        validation_alias=AliasChoices("organization", "REPODEPS_ORGANIZATION", "ORG_NAME"),
        description="GitHub organization whose repositories are crawled.",
    )
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_token", "REPODEPS_GITHUB_TOKEN", "GITHUB_TOKEN"),
        description="Token sent as a bearer credential to the GitHub API and raw content host.",
    )
    output_path: Path = Field(
        default_factory=lambda: Path("data") / "dependencies.json",
        validation_alias=AliasChoices("output_path", "REPODEPS_OUTPUT_PATH", "OUT_PATH"),
        description="Destination of the serialized dependency cache.",
    )
    github_api_base: AnyHttpUrl = Field(
        default="https://api.github.com",
        description="Base URL for GitHub REST API endpoints.",
    )
    raw_content_base: AnyHttpUrl = Field(
        default="https://raw.githubusercontent.com",
        description="Base URL serving raw repository files at a given commit.",
    )
    manifest_filename: str = Field(
        default="package.json",
        description="Manifest path, relative to the repository root, read at each resolved commit.",
    )
    dependency_sections: List[str] = Field(
        default_factory=lambda: ["dependencies"],
        description="Manifest sections whose entries are treated as dependency declarations.",
    )
    request_timeout_seconds: PositiveFloat = Field(
        default=30.0,
        description="Total timeout applied to each GitHub request.",
    )
    retry_attempts: PositiveInt = Field(
        default=4,
        description="Number of attempts for transient failures (network, 5xx, rate limiting).",
    )
    retry_backoff_seconds: PositiveFloat = Field(
        default=1.0,
        description="Multiplier of the exponential backoff between retries.",
    )
    retry_backoff_max_seconds: PositiveFloat = Field(
        default=30.0,
        description="Upper bound of a single exponential backoff wait.",
    )
    max_rate_limit_wait_seconds: PositiveFloat = Field(
        default=120.0,
        description="Longest wait honoured when GitHub reports an exhausted rate limit.",
    )
    max_concurrent_requests: PositiveInt = Field(
        default=16,
        description="Maximum number of GitHub requests in flight at once.",
    )
    page_size: PositiveInt = Field(
        default=100,
        description="Repositories requested per page when listing the organization (GitHub caps at 100).",
    )
    run_timeout_seconds: PositiveFloat = Field(
        default=1800.0,
        description="Deadline for a whole crawl; exceeding it aborts the run.",
    )
    write_partial_on_failure: bool = Field(
        default=False,
        description=(
            "Write the entries collected so far to '<output>.partial.json' when the crawl "
            "aborts. The regular output path is never written on failure."
        ),
    )

    @field_validator("organization")
    @classmethod
    def _strip_organization(cls, value: str) -> str:
        return value.strip().strip("/")

    @field_validator("page_size")
    @classmethod
    def _cap_page_size(cls, value: int) -> int:
        return min(value, 100)

    def require_organization(self) -> str:
        """Return the configured organization or raise when it is missing."""

        if not self.organization:
            raise ValueError("organization is not configured (set REPODEPS_ORGANIZATION or ORG_NAME)")
        return self.organization

    def ensure_output_directory(self) -> Path:
        """Create the parent directory of the output artifact and return the resolved path."""

        path = self.output_path.expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


@lru_cache(maxsize=1)
def get_settings() -> CrawlSettings:
    """Return a cached ``CrawlSettings`` instance."""

    return CrawlSettings()


class GraphSettings(BaseSettings):
    """Settings for materializing a written dependency cache into a graph document."""

    model_config = SettingsConfigDict(
        env_prefix="REPODEPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    organization: str = Field(
        default="",
        validation_alias=AliasChoices("organization", "REPODEPS_ORGANIZATION", "ORG_NAME"),
        description="Organization name used to select internal nodes.",
    )
    input_path: Path = Field(
        default_factory=lambda: Path("data") / "dependencies.json",
        validation_alias=AliasChoices("input_path", "REPODEPS_OUTPUT_PATH", "OUT_PATH"),
        description="Dependency cache artifact produced by a crawl.",
    )
    graph_output_path: Path = Field(
        default_factory=lambda: Path("data") / "graph.json",
        description="Destination of the node/edge document.",
    )
    display_mode: str = Field(
        default="all",
        description="Either 'internal' (organization nodes only) or 'all'.",
    )

    @field_validator("display_mode")
    @classmethod
    def _validate_display_mode(cls, value: str) -> str:
        normalised = value.strip().lower()
        if normalised not in {"internal", "all"}:
            raise ValueError("display_mode must be 'internal' or 'all'")
        return normalised


@lru_cache(maxsize=1)
def get_graph_settings() -> GraphSettings:
    """Return a cached ``GraphSettings`` instance."""

    return GraphSettings()


__all__ = [
    "CrawlSettings",
    "GraphSettings",
    "get_graph_settings",
    "get_settings",
]
