"""Declarative wizard definitions.

A definition describes one multi-step editor: its steps, the rules each
field must satisfy, the cascading field dependencies, how draft fields map
onto the upstream DTO, and any editable row collections it owns. The
controller is generic; everything entity-specific lives here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from escrowdesk.services.collection import RowMapper, RowSchema
from escrowdesk.services.draft import is_empty
from escrowdesk.services.field_dependencies import FieldDependencyResolver
from escrowdesk.services.validation_gate import Rule, ValidationGate


# ── Entity mapping ───────────────────────────────────────────


@dataclass
class FieldMapping:
    """Draft field ↔ upstream DTO path.

    ``path`` is dotted (``buildPartnerDTO.id``). ``reference`` fields are
    foreign keys: the draft holds the id, the payload holds ``{"id": n}``.
    """
    field: str
    path: str
    reference: bool = False


def _coerce_id(value: Any) -> Any:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _serialize(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass
class EntityMapper:
    mappings: list[FieldMapping]

    def to_draft(self, entity: dict) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for mapping in self.mappings:
            current: Any = entity
            for key in mapping.path.split("."):
                current = current.get(key) if isinstance(current, dict) else None
            if mapping.reference and current is not None:
                current = str(current)
            values[mapping.field] = current
        return values

    def to_payload(self, values: dict[str, Any], fields: list[str] | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for mapping in self.mappings:
            if fields is not None and mapping.field not in fields:
                continue
            value = values.get(mapping.field)
            if mapping.reference:
                value = _coerce_id(value)
                if is_empty(value):
                    continue
            keys = mapping.path.split(".")
            target = payload
            for key in keys[:-1]:
                target = target.setdefault(key, {})
            target[keys[-1]] = None if is_empty(value) else _serialize(value)
        return payload


# ── Steps & collections ──────────────────────────────────────


@dataclass
class WizardStep:
    key: str
    title: str
    label_id: str | None = None
    # Fields shown on the step; all are validated when leaving it
    fields: list[str] = field(default_factory=list)
    creates_entity: bool = False
    persists: bool = False
    skip_validation: bool = False
    # Leaving the step is blocked while this collection has unsaved rows
    guarded_collection: str | None = None


@dataclass
class CollectionSpec:
    name: str
    schema: RowSchema
    mapper: RowMapper
    resource: str
    parent_field: str
    parent_filter: str
    label: str = "rows"
    title: str = "Rows"


@dataclass
class WorkflowSpec:
    reference_type: str
    module_name: str
    action_key: str = "CREATE"


@dataclass
class WizardDefinition:
    kind: str
    resource: str
    base_path: str
    steps: list[WizardStep]
    mapper: EntityMapper
    rules: dict[str, list[Rule]] = field(default_factory=dict)
    # (parent, dependent, record attribute)
    dependencies: list[tuple[str, str, str]] = field(default_factory=list)
    # group name → {field: record attribute}
    view_groups: dict[str, dict[str, str]] = field(default_factory=dict)
    collections: list[CollectionSpec] = field(default_factory=list)
    workflow: WorkflowSpec | None = None
    reference_prefix: str | None = None
    reference_field: str | None = None

    def build_gate(self) -> ValidationGate:
        return ValidationGate(rules={name: list(rules) for name, rules in self.rules.items()})

    def build_resolver(self) -> FieldDependencyResolver:
        resolver = FieldDependencyResolver()
        for name, views in self.view_groups.items():
            resolver.add_view_group(name, views)
        for parent, dependent, source in self.dependencies:
            resolver.add_dependency(parent, dependent, source)
        return resolver

    def collection(self, name: str) -> CollectionSpec | None:
        for spec in self.collections:
            if spec.name == name:
                return spec
        return None
