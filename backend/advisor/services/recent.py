"""Bounded FIFO of recently shown item ids."""

from collections import deque
from typing import Iterable


class RecentSet:
    """Oldest-first eviction once ``capacity`` ids are held.

    Copy-on-write: ``added`` returns a new set and leaves this one untouched,
    so a published instance can be shared without locking.
    """

    __slots__ = ("capacity", "_order", "_ids")

    def __init__(self, capacity: int, ids: Iterable[str] = ()):
        self.capacity = capacity
        self._order: deque[str] = deque()
        self._ids: set[str] = set()
        for item_id in ids:
            self._push(item_id)

    def _push(self, item_id: str) -> None:
        if item_id in self._ids:
            # re-shown: move to the newest position
            self._order.remove(item_id)
            self._order.append(item_id)
            return
        self._ids.add(item_id)
        self._order.append(item_id)
        while len(self._order) > self.capacity:
            self._ids.discard(self._order.popleft())

    def added(self, item_id: str) -> "RecentSet":
        copy = RecentSet(self.capacity, self._order)
        copy._push(item_id)
        return copy

    @property
    def last(self) -> str | None:
        return self._order[-1] if self._order else None

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self):
        return iter(self._order)
