"""Identity types shared by the resolver and the graph materializer."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

GIT_PROTOCOL = "github:"
DEAD_BRANCH_PREFIX = "[DEAD]"
EMPTY_REPOSITORY_MARKER = "[EMPTY]"

_GIT_REFERENCE = re.compile(
    r"^github:(?P<path>[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+?)(?:\.git)?(?:#(?P<ref>.+))?$"
)


def is_organization_repository(repo_name: str, organization: str) -> bool:
    """Return whether ``repo_name`` (``owner/name``) is owned by ``organization``."""

    return repo_name.lower().startswith(f"{organization.lower()}/")


def strip_organization(repo_name: str, organization: str) -> str:
    if is_organization_repository(repo_name, organization):
        return repo_name[len(organization) + 1 :]
    return repo_name


def node_key(repo_name: str, commit: str, organization: str) -> str:
    """Canonical ``<name>@<commit>`` key with the organization prefix removed."""

    return f"{strip_organization(repo_name, organization)}@{commit}"


def dead_branch_commit(branch: str) -> str:
    return f"{DEAD_BRANCH_PREFIX}{branch}"


def empty_repository_key(repo_name: str, organization: str) -> str:
    return node_key(repo_name, EMPTY_REPOSITORY_MARKER, organization)


@dataclass(frozen=True, slots=True)
class ResolvedNode:
    """A repository pinned to the commit its branch pointed at during the run."""

    repo_name: str
    commit: str

    @property
    def is_dead(self) -> bool:
        return self.commit.startswith(DEAD_BRANCH_PREFIX)

    def key(self, organization: str) -> str:
        return node_key(self.repo_name, self.commit, organization)


@dataclass(frozen=True, slots=True)
class GitReference:
    """Target of a ``github:<owner>/<repo>[.git][#<ref>]`` version specifier."""

    repo_path: str
    ref: Optional[str] = None

    @classmethod
    def parse(cls, version_spec: str) -> Optional["GitReference"]:
        match = _GIT_REFERENCE.match(version_spec.strip())
        if not match:
            return None
        return cls(repo_path=match.group("path"), ref=match.group("ref") or None)


@dataclass(frozen=True, slots=True)
class DependencyDeclaration:
    """A ``name -> version specifier`` entry read from a manifest."""

    name: str
    version_spec: str

    def is_internal(self, organization: str) -> bool:
        """Internal declarations carry an organization name and a git reference."""

        name = self.name.lower()
        prefix = organization.lower()
        named_internally = name.startswith(prefix) or name.startswith(f"@{prefix}")
        return named_internally and self.version_spec.startswith(GIT_PROTOCOL)

    def git_reference(self) -> Optional[GitReference]:
        return GitReference.parse(self.version_spec)

    @property
    def external_key(self) -> str:
        return f"{self.name}@{self.version_spec}"


__all__ = [
    "DEAD_BRANCH_PREFIX",
    "EMPTY_REPOSITORY_MARKER",
    "GIT_PROTOCOL",
    "DependencyDeclaration",
    "GitReference",
    "ResolvedNode",
    "dead_branch_commit",
    "empty_repository_key",
    "is_organization_repository",
    "node_key",
    "strip_organization",
]
