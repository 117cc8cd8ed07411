from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


class KeyedLocks:
    """One lock per key, created on demand. Used for single-flight token refresh.

    Entries are reference counted and dropped once no thread holds or waits on
    them, so the registry only holds keys that are currently in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def fan_out(func: Callable[[T], R], items: Sequence[T], max_workers: int) -> list[R]:
    """Run func over items on a bounded pool and return results in input order.

    The pool is always joined, so calls already in flight finish (and persist
    whatever they write) even when another item raised. The first exception in
    input order is re-raised after the join.
    """
    if not items:
        return []
    workers = max(1, min(max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crosspost") as pool:
        futures = [pool.submit(func, item) for item in items]
    return [future.result() for future in futures]
