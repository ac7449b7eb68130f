"""Async-safe accumulators shared by concurrent aggregation tasks.

Fan-out tasks fetch their pages independently and merge partial results into
one accumulator. The lock is held only for the synchronous merge, never
across a remote call.

Note: This is not a singleton. Create one per aggregation run.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Generic, Hashable, Iterable, Set, Tuple, TypeVar

__all__ = ["SharedAccumulator", "AmountAccumulator", "MemberAccumulator"]

T = TypeVar("T")


class SharedAccumulator(Generic[T]):
    """Base class for concurrency-safe reductions.

    Subclasses implement ``_merge`` (mutating, lock held), ``_snapshot``
    (copy of the current state) and ``value`` (scalar view of a snapshot).
    """

    def __init__(self) -> None:
        self._lock: asyncio.Lock = asyncio.Lock()

    async def merge(self, contributions: Iterable[Any]) -> None:
        async with self._lock:
            for item in contributions:
                self._merge(item)

    async def snapshot(self) -> T:
        async with self._lock:
            return self._snapshot()

    def _merge(self, item: Any) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    def _snapshot(self) -> T:  # pragma: no cover - abstract
        raise NotImplementedError


class AmountAccumulator(SharedAccumulator[Dict[str, int]]):
    """Sums integer amounts per key (token type -> raw amount)."""

    def __init__(self) -> None:
        super().__init__()
        self._totals: Dict[str, int] = {}

    def _merge(self, item: Tuple[str, int]) -> None:
        key, amount = item
        self._totals[key] = self._totals.get(key, 0) + int(amount)

    def _snapshot(self) -> Dict[str, int]:
        return dict(self._totals)


class MemberAccumulator(SharedAccumulator[Set[Hashable]]):
    """Collects distinct members (set union)."""

    def __init__(self) -> None:
        super().__init__()
        self._members: Set[Hashable] = set()

    def _merge(self, item: Hashable) -> None:
        self._members.add(item)

    def _snapshot(self) -> Set[Hashable]:
        return set(self._members)
