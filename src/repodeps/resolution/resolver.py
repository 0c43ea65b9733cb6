"""Recursive resolution of organization-internal dependencies."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..gateway.base import RepositoryGateway
from ..gateway.client import EmptyRepositoryError, NoCommitFoundError
from .cache import DependencyCache, InFlightTable
from .manifest import ManifestError, parse_manifest
from .models import (
    DependencyDeclaration,
    ResolvedNode,
    dead_branch_commit,
    empty_repository_key,
    is_organization_repository,
    node_key,
)

_LOGGER = logging.getLogger(__name__)
T = TypeVar("T")


async def gather_or_cancel(
    awaitables: Iterable[Awaitable[T]],
    on_error: Optional[Callable[[BaseException], None]] = None,
) -> List[T]:
    """Await all ``awaitables`` concurrently; on the first failure cancel the rest and re-raise.

    ``on_error`` sees the failure before any sibling is cancelled.
    """

    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException as exc:
        if on_error is not None:
            on_error(exc)
        for task in tasks:
            task.cancel()
        raise


def _partition(
    declarations: Sequence[DependencyDeclaration], organization: str
) -> Tuple[List[DependencyDeclaration], List[DependencyDeclaration]]:
    internal: List[DependencyDeclaration] = []
    external: List[DependencyDeclaration] = []
    for declaration in declarations:
        (internal if declaration.is_internal(organization) else external).append(declaration)
    return internal, external


@dataclass(slots=True)
class ResolutionStats:
    """Counters collected while crawling."""

    repositories: int = 0
    manifests_fetched: int = 0
    manifests_missing: int = 0
    dead_branches: List[str] = field(default_factory=list)
    empty_repositories: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "repositories": self.repositories,
            "manifests_fetched": self.manifests_fetched,
            "manifests_missing": self.manifests_missing,
            "dead_branches": sorted(self.dead_branches),
            "empty_repositories": sorted(self.empty_repositories),
        }


class DependencyResolver:
    """Builds a ``DependencyCache`` by following internal ``github:`` dependencies.

    Each ``(repository, commit)`` key is expanded at most once per resolver.
    Commit and default-branch lookups are shared between concurrent callers,
    so a branch head is read once per run even if it moves meanwhile.
    """

    def __init__(
        self,
        gateway: RepositoryGateway,
        organization: str,
        *,
        cache: Optional[DependencyCache] = None,
        manifest_filename: str = "package.json",
        dependency_sections: Sequence[str] = ("dependencies",),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not organization:
            raise ValueError("organization must be a non-empty string")
        self._gateway = gateway
        self._organization = organization
        self._cache = cache if cache is not None else DependencyCache()
        self._manifest_filename = manifest_filename
        self._dependency_sections = tuple(dependency_sections)
        self._logger = logger or _LOGGER
        self._in_flight = InFlightTable()
        self._default_branches: Dict[Hashable, "asyncio.Future[str]"] = {}
        self._commits: Dict[Hashable, "asyncio.Future[Optional[str]]"] = {}
        self._failure: Optional[BaseException] = None
        self.stats = ResolutionStats()

    @property
    def cache(self) -> DependencyCache:
        return self._cache

    @property
    def organization(self) -> str:
        return self._organization

    def is_organization_repository(self, repo_name: str) -> bool:
        return is_organization_repository(repo_name, self._organization)

    async def resolve_organization(self) -> DependencyCache:
        """Resolve every repository of the organization from its default branch."""

        repositories = await self._gateway.list_repositories(self._organization)
        self.stats.repositories = len(repositories)
        self._logger.info("Resolving %d repositories of %s", len(repositories), self._organization)
        try:
            await gather_or_cancel(
                (self.resolve(repo.full_name, repo.default_branch) for repo in repositories),
                on_error=self._note_failure,
            )
        except BaseException as exc:
            self.cancel_pending_lookups()
            if isinstance(exc, asyncio.CancelledError) and self._failure is not None:
                raise self._failure from None
            raise
        return self._cache

    def _note_failure(self, exc: BaseException) -> None:
        if self._failure is None and not isinstance(exc, asyncio.CancelledError):
            self._failure = exc

    def cancel_pending_lookups(self) -> None:
        """Cancel branch and commit lookups nobody will consume after an aborted run."""

        for table in (self._default_branches, self._commits):
            for future in table.values():
                if not future.done():
                    future.cancel()

    async def resolve(self, repo_name: str, branch: Optional[str] = None) -> Optional[str]:
        """Resolve ``repo_name`` at the head of ``branch`` and return the commit used as its key.

        Returns ``None`` for repositories outside the organization and for
        empty repositories; neither is recorded in the cache. A branch that no
        longer exists resolves to a ``[DEAD]<branch>`` commit with no
        dependencies.
        """

        return await self._resolve(repo_name, branch, requester=None)

    async def _resolve(self, repo_name: str, branch: Optional[str], *, requester: Optional[str]) -> Optional[str]:
        if not self.is_organization_repository(repo_name):
            self._logger.debug("Not following %s: outside %s", repo_name, self._organization)
            return None
        if branch is None:
            branch = await self._shared(
                self._default_branches, repo_name, lambda: self._gateway.get_default_branch(repo_name)
            )
        ref = branch
        commit = await self._shared(self._commits, (repo_name, ref), lambda: self._lookup_commit(repo_name, ref))
        if commit is None:
            return None

        node = ResolvedNode(repo_name=repo_name, commit=commit)
        key = node.key(self._organization)
        # Both presence checks must happen before descending; on a cyclic
        # graph they are the only thing that ends the recursion.
        if key in self._cache:
            return commit
        if key in self._in_flight:
            if not self._in_flight.would_deadlock(requester, key):
                await self._in_flight.wait_for(requester, key)
            return commit

        self._in_flight.start(key)
        try:
            with self._in_flight.waiting(requester, key):
                dependencies = await self._collect_dependencies(node, key)
        except BaseException as exc:
            # waiters on a key abandoned after a failure receive that failure
            if isinstance(exc, asyncio.CancelledError) and self._failure is not None:
                self._in_flight.finish(key, error=self._failure)
            else:
                self._in_flight.finish(key, error=exc)
            raise
        self._cache.record(key, dependencies)
        self._in_flight.finish(key)
        return commit

    async def _shared(
        self,
        table: Dict[Hashable, "asyncio.Future[Any]"],
        key: Hashable,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        future = table.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            table[key] = future
        return await asyncio.shield(future)

    async def _lookup_commit(self, repo_name: str, branch: str) -> Optional[str]:
        try:
            return await self._gateway.get_commit_sha(repo_name, branch)
        except NoCommitFoundError:
            self._logger.warning("Branch %s of %s does not resolve to a commit", branch, repo_name)
            self.stats.dead_branches.append(f"{repo_name}#{branch}")
            return dead_branch_commit(branch)
        except EmptyRepositoryError:
            self._logger.info("Repository %s is empty", repo_name)
            self.stats.empty_repositories.append(repo_name)
            return None

    async def _collect_dependencies(self, node: ResolvedNode, key: str) -> List[str]:
        if node.is_dead:
            return []
        text = await self._gateway.fetch_raw_file(node.repo_name, node.commit, self._manifest_filename)
        if text is None:
            self.stats.manifests_missing += 1
            return []
        self.stats.manifests_fetched += 1
        try:
            declarations = parse_manifest(text, self._dependency_sections)
        except ManifestError as exc:
            self._logger.warning("Ignoring manifest of %s: %s", key, exc)
            return []
        if not declarations:
            return []

        internal, external = _partition(declarations, self._organization)
        internal_keys = await gather_or_cancel(
            (self._internal_dependency_key(declaration, requester=key) for declaration in internal),
            on_error=self._note_failure,
        )
        return [*internal_keys, *(declaration.external_key for declaration in external)]

    async def _internal_dependency_key(self, declaration: DependencyDeclaration, *, requester: str) -> str:
        reference = declaration.git_reference()
        if reference is None or not self.is_organization_repository(reference.repo_path):
            return declaration.external_key
        commit = await self._resolve(reference.repo_path, reference.ref, requester=requester)
        if commit is None:
            return empty_repository_key(reference.repo_path, self._organization)
        return node_key(reference.repo_path, commit, self._organization)


__all__ = ["DependencyResolver", "ResolutionStats", "gather_or_cancel"]
