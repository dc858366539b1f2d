"""Draft value object: the in-progress field values of one wizard session.

The draft is passed explicitly to every component that reads or mutates it
(resolver, validation gate, controller). Nothing else holds a copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def is_empty(value: Any) -> bool:
    """None, blank strings and empty collections count as empty; 0 and False do not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class DraftReadOnlyError(Exception):
    """Raised when a read-only (VIEW mode) draft is mutated."""


@dataclass
class Draft:
    values: dict[str, Any] = field(default_factory=dict)
    # Fields the user set directly (not derived), used for stale-reference warnings
    touched: set[str] = field(default_factory=set)
    read_only: bool = False

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def set(self, name: str, value: Any, *, touched: bool = False) -> None:
        if self.read_only:
            raise DraftReadOnlyError(f"Cannot change {name}: draft is read-only")
        self.values[name] = value
        if touched:
            self.touched.add(name)

    def clear(self, name: str) -> None:
        """Reset a field to its empty state and forget that it was touched."""
        self.set(name, None)
        self.touched.discard(name)

    def is_empty(self, name: str) -> bool:
        return is_empty(self.values.get(name))

    def populate(self, values: dict[str, Any]) -> None:
        """Replace all values with authoritative ones (e.g. after a fetch).

        Loading is not a user mutation, so read-only drafts accept it too.
        """
        self.values = dict(values)
        self.touched.clear()

    def reset(self) -> None:
        self.values = {}
        self.touched.clear()

    def snapshot(self) -> dict[str, Any]:
        return dict(self.values)
