"""Field dependency resolver — cascading auto-population between draft fields.

A parent field's value selects a record from that parent's option list
(e.g. picking a project selects the project record); each dependent field
takes one attribute of the selected record (CIF, completion date, ...).
When no record matches, dependents are cleared instead of left stale, and
the change cascades to dependents-of-dependents.

Edges only point parent → child and registration refuses cycles. Fields that
are two views of one selection (name vs. identifier) form a ViewGroup and are
updated together in one step rather than chained through the graph.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from escrowdesk.services.draft import Draft, is_empty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Derivation:
    target: str
    source: str  # attribute of the selected parent record


@dataclass
class ViewGroup:
    name: str
    views: dict[str, str]  # field name → record attribute it shows


@dataclass
class ChangeSet:
    """Everything a single user event changed, in application order."""
    changed: dict[str, Any] = field(default_factory=dict)
    cleared: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def record(self, name: str, value: Any) -> None:
        self.changed[name] = value
        if value is None and name not in self.cleared:
            self.cleared.append(name)
        elif value is not None and name in self.cleared:
            self.cleared.remove(name)


class FieldDependencyResolver:
    def __init__(self):
        self._dependents: dict[str, list[Derivation]] = {}
        self._groups: dict[str, ViewGroup] = {}
        self._group_of: dict[str, str] = {}
        # option tables keyed by parent field (or group name)
        self._options: dict[str, list[dict]] = {}
        self._option_keys: dict[str, str] = {}

    # ── Registration ─────────────────────────────────────────

    def add_dependency(self, parent: str, target: str, source: str) -> None:
        """``target`` takes ``record[source]`` of the record selected by ``parent``."""
        if parent == target or parent in self.transitive_dependents(target):
            raise ValueError(f"Dependency {parent} -> {target} would create a cycle")
        self._dependents.setdefault(parent, []).append(Derivation(target, source))

    def add_view_group(self, name: str, views: dict[str, str]) -> None:
        for view in views:
            if view in self._group_of:
                raise ValueError(f"{view} already belongs to view group {self._group_of[view]}")
        self._groups[name] = ViewGroup(name=name, views=dict(views))
        for view in views:
            self._group_of[view] = name

    def set_options(self, parent: str, records: list[dict], key: str = "id") -> None:
        """Register the option records a parent field (or its view group) selects from."""
        slot = self._group_of.get(parent, parent)
        self._options[slot] = list(records)
        self._option_keys[slot] = key

    def dependents_of(self, name: str) -> list[str]:
        return [d.target for d in self._dependents.get(name, [])]

    def transitive_dependents(self, name: str) -> list[str]:
        seen: list[str] = []
        queue = deque(self.dependents_of(name))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.append(current)
            queue.extend(self.dependents_of(current))
        return seen

    # ── Lookup ───────────────────────────────────────────────

    def lookup(self, name: str, value: Any) -> dict | None:
        """The option record selected by ``value`` in field ``name``, if any."""
        if is_empty(value):
            return None
        group = self._group_of.get(name)
        if group:
            records = self._options.get(group, [])
            attribute = self._groups[group].views[name]
        else:
            records = self._options.get(name, [])
            attribute = self._option_keys.get(name, "id")
        wanted = str(value)
        for record in records:
            if attribute in record and str(record[attribute]) == wanted:
                return record
        return None

    # ── Propagation ──────────────────────────────────────────

    def on_field_change(self, draft: Draft, name: str, value: Any) -> ChangeSet:
        """Apply a user change and every derived change, synchronously."""
        changes = ChangeSet()
        group = self._group_of.get(name)
        if group:
            self._set_group(draft, self._groups[group], name, value, changes)
        else:
            normalized = None if is_empty(value) else value
            draft.set(name, normalized, touched=normalized is not None)
            changes.record(name, normalized)
            self._propagate(draft, name, normalized, changes, visited={name})
        return changes

    def _set_group(
        self,
        draft: Draft,
        group: ViewGroup,
        name: str,
        value: Any,
        changes: ChangeSet,
    ) -> None:
        record = self.lookup(name, value)
        for view, attribute in group.views.items():
            view_value = record.get(attribute) if record else None
            if is_empty(view_value):
                view_value = None
            draft.set(view, view_value, touched=view_value is not None)
            changes.record(view, view_value)
        for view in group.views:
            self._propagate(draft, view, draft.get(view), changes, visited=set(group.views))

    def _propagate(
        self,
        draft: Draft,
        parent: str,
        value: Any,
        changes: ChangeSet,
        visited: set[str],
    ) -> None:
        derivations = self._dependents.get(parent, [])
        if not derivations:
            return
        record = self.lookup(parent, value)
        for derivation in derivations:
            if derivation.target in visited:
                continue
            derived = record.get(derivation.source) if record else None
            if is_empty(derived):
                derived = None
            draft.set(derivation.target, derived)
            draft.touched.discard(derivation.target)
            changes.record(derivation.target, derived)
            self._propagate(
                draft,
                derivation.target,
                derived,
                changes,
                visited | {derivation.target},
            )

    # ── Option list refresh ──────────────────────────────────

    def refresh_options(
        self,
        draft: Draft,
        parent: str,
        records: list[dict],
        key: str | None = None,
    ) -> ChangeSet:
        """Swap in a reloaded option list and heal any dangling selection.

        A selection that no longer exists in the new list is cleared together
        with all its dependents. A warning is attached only when one of those
        dependents held input the user typed themselves. When the selection
        is still valid, empty dependents are filled in from the new records.
        """
        slot = self._group_of.get(parent, parent)
        self.set_options(parent, records, key or self._option_keys.get(slot, "id"))

        changes = ChangeSet()
        current = draft.get(parent)
        if is_empty(current):
            return changes

        if self.lookup(parent, current) is not None:
            if any(draft.is_empty(d) for d in self.dependents_of(parent)):
                self._propagate(draft, parent, current, changes, visited={parent})
            return changes

        group = self._groups.get(slot) if slot in self._groups else None
        selection = list(group.views) if group else [parent]
        affected = list(selection)
        for view in selection:
            affected.extend(d for d in self.transitive_dependents(view) if d not in affected)

        user_input = [
            name for name in affected
            if name not in selection and name in draft.touched and not draft.is_empty(name)
        ]
        if user_input:
            changes.warnings.append(
                f"{parent} is no longer available; cleared dependent input: {', '.join(user_input)}"
            )

        logger.info(
            f"Clearing stale selection {parent}={current!r}",
            extra={"field": parent, "cleared": affected},
        )
        for name in affected:
            draft.clear(name)
            changes.record(name, None)
        return changes
