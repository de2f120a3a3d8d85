from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import (
    Any, Awaitable, Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar,
)

from .errors import ResolutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

FailureCallback = Callable[[Any, Exception], None]
SuccessCallback = Callable[[Any, Any], None]


class FailurePolicy(str, Enum):
    """What `Queue.resolve_all` does when the operation for one element fails."""

    # Drop the failing element and carry on with the next one.
    COLLECT_SUCCESSES = "collect_successes"
    # Re-raise the first failure.
    FAIL_FAST = "fail_fast"


class Queue(Generic[T]):
    """Ordered, mutable sequence of playlist entries.

    Before flattening, an element may itself be a Queue (an album expands to a queue of
    tracks, an artist to a queue of album queues). Mutating operations return the queue
    itself so calls can be chained.
    """

    def __init__(self, items: Optional[Iterable[T]] = None) -> None:
        self._items: List[T] = list(items) if items is not None else []

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Queue({self._items!r})"

    def add(self, item: T) -> None:
        """Append an entry to the end of the queue."""
        self._items.append(item)

    def concat(self, other: "Queue[T]") -> "Queue[T]":
        """Return a new queue with this queue's entries followed by `other`'s."""
        return Queue(self._items + other.to_list())

    def contains(self, item: Any) -> bool:
        """Whether an equal entry (or the very same object) is in the queue."""
        return any(existing is item or existing == item for existing in self._items)

    def get(self, index: int) -> T:
        return self._items[index]

    def size(self) -> int:
        return len(self._items)

    def to_list(self) -> List[T]:
        return list(self._items)

    def map(self, fn: Callable[[T], R]) -> "Queue[R]":
        return Queue(fn(item) for item in self._items)

    def slice(self, start: int, end: Optional[int] = None) -> "Queue[T]":
        """Return a new queue over the half-open range [start, end)."""
        return Queue(self._items[start:end])

    def dedup(self) -> "Queue[T]":
        """Keep only the first occurrence of each entry, preserving order."""
        result: Queue[T] = Queue()
        for item in self._items:
            if not result.contains(item):
                result.add(item)
        self._items = result.to_list()
        return self

    def flatten(self) -> "Queue[Any]":
        """Splice nested queues into this one, recursively and in order."""
        result: List[Any] = []
        for item in self._items:
            if isinstance(item, Queue):
                result.extend(item.flatten().to_list())
            else:
                result.append(item)
        self._items = result
        return self

    def group(self, key_fn: Callable[[T], Any]) -> "Queue[T]":
        """Stable-partition entries by key.

        Buckets are concatenated in the order their key was first seen; within a bucket
        the original relative order is kept.
        """
        buckets: Dict[Any, List[T]] = {}
        for item in self._items:
            buckets.setdefault(key_fn(item), []).append(item)
        self._items = [item for bucket in buckets.values() for item in bucket]
        return self

    def sort(self, comparator: Callable[[T, T], int]) -> "Queue[T]":
        """Sort in place with a three-way comparator (negative, zero, positive)."""
        self._items.sort(key=functools.cmp_to_key(comparator))
        return self

    async def resolve_all(
        self,
        fn: Callable[[T], Awaitable[R]],
        policy: FailurePolicy = FailurePolicy.COLLECT_SUCCESSES,
        on_failure: Optional[FailureCallback] = None,
        on_success: Optional[SuccessCallback] = None,
    ) -> "Queue[R]":
        """Apply an async operation to every entry, strictly one at a time.

        The operation for an entry is not started before the previous one has settled,
        which keeps the request rate towards rate-limited services predictable. Results
        are collected in input order. Only `ResolutionError` counts as a failure of an
        entry; any other exception propagates.

        Args:
            fn: Coroutine function applied to each entry
            policy: Failure policy; by default failing entries are dropped
            on_failure: Called with (entry, error) for every dropped entry
            on_success: Called with (entry, result) for every resolved entry

        Returns:
            A new queue holding the successful results
        """
        result: Queue[R] = Queue()
        for item in self._items:
            try:
                value = await fn(item)
            except ResolutionError as e:
                if policy is FailurePolicy.FAIL_FAST:
                    raise
                if on_failure is not None:
                    logger.debug(f"Skipping entry '{item}': {type(e).__name__}: {e}")
                    on_failure(item, e)
                else:
                    logger.warning(f"Dropping entry '{item}': {type(e).__name__}: {e}")
                continue
            if on_success is not None:
                on_success(item, value)
            result.add(value)
        return result

    async def dispatch(
        self,
        catalog,
        policy: FailurePolicy = FailurePolicy.COLLECT_SUCCESSES,
        on_failure: Optional[FailureCallback] = None,
        on_success: Optional[SuccessCallback] = None,
    ) -> "Queue[Any]":
        """Resolve every entry against the catalog in sequence."""
        return await self.resolve_all(
            lambda entry: entry.dispatch(catalog),
            policy=policy,
            on_failure=on_failure,
            on_success=on_success,
        )
