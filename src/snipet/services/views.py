from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional


@dataclass(frozen=True)
class Ticket:
    key: Hashable
    generation: int


class ViewCache:
    """Per-view result cache that drops results of superseded requests.

    ``begin`` hands out a ticket for a view key; starting another request for
    the same key, or invalidating it, makes older tickets stale and their
    results are discarded by ``commit``.
    """

    def __init__(self) -> None:
        self._generations: Dict[Hashable, int] = {}
        self._values: Dict[Hashable, Any] = {}

    def begin(self, key: Hashable) -> Ticket:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return Ticket(key, generation)

    def is_current(self, ticket: Ticket) -> bool:
        return self._generations.get(ticket.key) == ticket.generation

    def commit(self, ticket: Ticket, value: Any) -> bool:
        if not self.is_current(ticket):
            return False
        self._values[ticket.key] = value
        return True

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def invalidate(self, key: Hashable) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1
        self._values.pop(key, None)

    def clear(self) -> None:
        for key in list(self._generations):
            self.invalidate(key)
        self._values.clear()
