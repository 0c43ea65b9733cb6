"""Interface between the resolver and the remote source-control host."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol


@dataclass(frozen=True, slots=True)
class RepositorySummary:
    """A repository as reported by the organization listing."""

    full_name: str
    default_branch: str

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]


class RepositoryGateway(Protocol):
    """Operations the resolver needs from the remote host.

    ``get_commit_sha`` raises ``NoCommitFoundError`` for a ref that does not
    resolve and ``EmptyRepositoryError`` for a repository without commits.
    ``fetch_raw_file`` returns ``None`` when the file does not exist at the
    commit. Any other failure is raised as ``GitHubAPIError``.
    """

    async def list_repositories(self, organization: str) -> List[RepositorySummary]:
        ...

    async def get_default_branch(self, repo_full_name: str) -> str:
        ...

    async def get_commit_sha(self, repo_full_name: str, ref: str) -> str:
        ...

    async def fetch_raw_file(self, repo_full_name: str, commit: str, path: str) -> Optional[str]:
        ...


__all__ = ["RepositoryGateway", "RepositorySummary"]
