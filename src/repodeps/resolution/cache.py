"""Per-run dependency cache and the table of resolutions still in progress."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple


class CacheConflictError(RuntimeError):
    """Raised when an entry would be written twice for the same key."""


class DependencyCache:
    """Mapping of ``<name>@<commit>`` to the dependency keys it declares.

    Entries are only ever added; the cache is created once per run and handed
    to the resolver explicitly.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, List[str]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, key: str) -> Optional[List[str]]:
        entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    def record(self, key: str, dependencies: Sequence[str]) -> None:
        if key in self._entries:
            raise CacheConflictError(f"dependency entry for {key} already recorded")
        self._entries[key] = list(dependencies)

    def items(self) -> Iterator[Tuple[str, List[str]]]:
        for key, dependencies in self._entries.items():
            yield key, list(dependencies)

    def edge_count(self) -> int:
        return sum(len(dependencies) for dependencies in self._entries.values())

    def as_dict(self) -> Dict[str, List[str]]:
        return {key: list(dependencies) for key, dependencies in self._entries.items()}


def _consume_exception(future: "asyncio.Future[None]") -> None:
    if not future.cancelled():
        future.exception()


class InFlightTable:
    """Futures for keys whose resolution started but has not been recorded yet.

    Alongside the futures the table tracks which key is waiting on which, so a
    requester never awaits a key that is itself (transitively) waiting on the
    requester. Such a wait would never complete on a dependency cycle.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, "asyncio.Future[None]"] = {}
        self._waiting_on: Dict[str, List[str]] = defaultdict(list)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def start(self, key: str) -> None:
        if key in self._pending:
            raise CacheConflictError(f"resolution of {key} already in progress")
        future: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self._pending[key] = future

    def finish(self, key: str, error: Optional[BaseException] = None) -> None:
        future = self._pending.pop(key)
        if isinstance(error, asyncio.CancelledError):
            future.cancel()
        elif error is not None:
            future.set_exception(error)
        else:
            future.set_result(None)

    def would_deadlock(self, waiter: Optional[str], key: str) -> bool:
        """Return whether ``waiter`` awaiting ``key`` would close a wait cycle."""

        if waiter is None:
            return False
        stack = [key]
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current == waiter:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._waiting_on.get(current, ()))
        return False

    @contextmanager
    def waiting(self, waiter: Optional[str], key: str) -> Iterator[None]:
        if waiter is None:
            yield
            return
        self._waiting_on[waiter].append(key)
        try:
            yield
        finally:
            targets = self._waiting_on[waiter]
            targets.remove(key)
            if not targets:
                del self._waiting_on[waiter]

    async def wait_for(self, waiter: Optional[str], key: str) -> None:
        future = self._pending.get(key)
        if future is None:
            return
        with self.waiting(waiter, key):
            await asyncio.shield(future)


__all__ = ["CacheConflictError", "DependencyCache", "InFlightTable"]
