"""Editable sub-resource collection (e.g. a project's installment plan).

Rows come from three places that must be reconciled without losing any:

  1. the authoritative list last fetched from the upstream API,
  2. rows the user added locally and hasn't saved yet (``row_id is None``),
  3. rows currently being edited (``edit_state == EDITING``).

Rules:
  - A fetched list never replaces local unsaved rows; they are appended
    after the server rows.
  - With nothing local to protect, the server list wins whenever its row
    identifiers differ from the displayed saved rows.
  - Saved rows mid-edit keep their local values and snapshot when the
    server list still contains them.
  - Sequence numbers are dense, 1-based, in display order.
  - For every aggregated numeric field the sum across all rows must stay
    within the ceiling (100); a violation blocks add and save.

Per-row state (snapshot, errors, in-flight flag) lives on the row object
itself, so renumbering after a delete can't attach it to the wrong row.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from escrowdesk.gateways.base import SubResourceGateway
from escrowdesk.schemas.common import OperationResult
from escrowdesk.services.draft import is_empty
from escrowdesk.services.validation_gate import to_decimal

logger = logging.getLogger(__name__)

NUMERIC_REGEX = re.compile(r"^\d+(\.\d{1,2})?$")


class RowEditState(str, Enum):
    READONLY = "readonly"
    EDITING = "editing"


class ReconcileOutcome(str, Enum):
    UNCHANGED = "unchanged"
    MERGED = "merged"
    REPLACED = "replaced"


@dataclass(eq=False)
class CollectionRow:
    row_id: Any | None
    sequence_number: int
    edit_state: RowEditState = RowEditState.READONLY
    fields: dict[str, str] = field(default_factory=dict)
    snapshot_before_edit: dict[str, str] | None = None
    errors: dict[str, str] = field(default_factory=dict)
    busy: bool = False

    @property
    def is_pending(self) -> bool:
        return self.row_id is None

    def as_dict(self) -> dict[str, Any]:
        return {
            "row_id": self.row_id,
            "sequence_number": self.sequence_number,
            "edit_state": self.edit_state.value,
            "fields": dict(self.fields),
            "errors": dict(self.errors),
            "pending": self.is_pending,
            "busy": self.busy,
        }


# ── Row schema & mapping ─────────────────────────────────────


@dataclass
class RowFieldSpec:
    name: str
    label: str
    required: bool = True
    minimum: float = 0.0
    maximum: float = 100.0
    max_length: int = 6
    aggregate: bool = True


@dataclass
class RowSchema:
    fields: list[RowFieldSpec]
    ceiling: float = 100.0

    def empty_fields(self) -> dict[str, str]:
        return {spec.name: "" for spec in self.fields}

    def spec(self, name: str) -> RowFieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def validate(self, values: dict[str, str]) -> dict[str, str]:
        """Presence, numeric format, bounds and length of one row's own values."""
        errors: dict[str, str] = {}
        for spec in self.fields:
            raw = values.get(spec.name)
            text = "" if raw is None else str(raw).strip()
            if not text:
                if spec.required:
                    errors[spec.name] = f"{spec.label} is required"
                continue
            if len(text) > spec.max_length:
                errors[spec.name] = f"{spec.label} must be at most {spec.max_length} characters"
                continue
            if not NUMERIC_REGEX.match(text):
                errors[spec.name] = f"{spec.label} must be a valid number (up to 2 decimals)"
                continue
            number = Decimal(text)
            if number < Decimal(str(spec.minimum)) or number > Decimal(str(spec.maximum)):
                errors[spec.name] = (
                    f"{spec.label} must be between {spec.minimum:g} and {spec.maximum:g}"
                )
        return errors


@dataclass
class RowMapper:
    """Maps upstream row DTOs to local string fields and back.

    ``field_keys`` maps local field name → upstream key.
    """
    field_keys: dict[str, str]
    sequence_key: str
    id_key: str = "id"

    def row_id(self, server_row: dict) -> Any | None:
        return server_row.get(self.id_key)

    def to_fields(self, server_row: dict) -> dict[str, str]:
        fields = {}
        for local, remote in self.field_keys.items():
            value = server_row.get(remote)
            fields[local] = "" if value is None else _format_number(value)
        return fields

    def to_payload(self, fields: dict[str, str], sequence_number: int) -> dict[str, Any]:
        payload: dict[str, Any] = {self.sequence_key: sequence_number}
        for local, remote in self.field_keys.items():
            number = to_decimal(fields.get(local))
            payload[remote] = float(number) if number is not None else None
        return payload


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ── Reconciler ───────────────────────────────────────────────


class EditableCollectionReconciler:
    def __init__(
        self,
        gateway: SubResourceGateway,
        schema: RowSchema,
        mapper: RowMapper,
        parent_id: Any | None = None,
        name: str = "rows",
    ):
        self.gateway = gateway
        self.schema = schema
        self.mapper = mapper
        self.parent_id = parent_id
        self.name = name
        self.rows: list[CollectionRow] = []
        self.read_only = False
        # Bumped whenever the collection is re-bound to another parent, so
        # late gateway responses for the old parent can be recognised.
        self._generation = 0
        self._refresh_task: asyncio.Task | None = None

    # ── Introspection ────────────────────────────────────────

    @property
    def has_unsaved_changes(self) -> bool:
        return any(r.is_pending or r.edit_state == RowEditState.EDITING for r in self.rows)

    def totals(self) -> dict[str, Decimal]:
        totals = {spec.name: Decimal("0") for spec in self.schema.fields if spec.aggregate}
        for row in self.rows:
            for name in totals:
                number = to_decimal(row.fields.get(name))
                if number is not None:
                    totals[name] += number
        return totals

    def aggregate_violations(self) -> dict[str, str]:
        ceiling = Decimal(str(self.schema.ceiling))
        violations = {}
        for name, total in self.totals().items():
            if total > ceiling:
                spec = self.schema.spec(name)
                violations[name] = f"Total {spec.label} is {total:f}% (maximum {self.schema.ceiling:g}%)"
        return violations

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "parent_id": self.parent_id,
            "rows": [row.as_dict() for row in self.rows],
            "totals": {k: float(v) for k, v in self.totals().items()},
            "has_unsaved_changes": self.has_unsaved_changes,
        }

    # ── Binding & fetch ──────────────────────────────────────

    def bind(self, parent_id: Any | None) -> None:
        """Attach the collection to a parent entity.

        Going from no parent to a parent (first save of the wizard) keeps the
        rows added so far; switching between two parents starts over.
        """
        if parent_id == self.parent_id:
            return
        if self.parent_id is not None:
            self.rows = []
        self.parent_id = parent_id
        self._generation += 1
        self._refresh_task = None

    async def refresh(self) -> OperationResult:
        """Fetch the authoritative list and reconcile it with local rows.

        Overlapping calls share a single upstream request.
        """
        if self.parent_id is None:
            return OperationResult.success(self.as_dict())
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._fetch(self.parent_id, self._generation))
        return await asyncio.shield(self._refresh_task)

    async def _fetch(self, parent_id: Any, generation: int) -> OperationResult:
        try:
            server_rows = await self.gateway.list(parent_id)
        except Exception as e:
            logger.warning(f"Failed to load {self.name} for {parent_id}: {e}")
            return OperationResult.failure(f"Could not load {self.name}: {_message(e)}")
        if generation != self._generation:
            logger.info(f"Discarding {self.name} list for abandoned parent {parent_id}")
            return OperationResult.failure("Parent record changed while loading", data=self.as_dict())
        outcome = self.on_authoritative_list_received(server_rows)
        return OperationResult.success({**self.as_dict(), "outcome": outcome.value})

    def on_authoritative_list_received(self, server_rows: list[dict]) -> ReconcileOutcome:
        unsaved = [r for r in self.rows if r.is_pending]
        saved = [r for r in self.rows if not r.is_pending]

        if not server_rows and not self.rows:
            return ReconcileOutcome.UNCHANGED

        if unsaved:
            self.rows = self._adopt(server_rows, saved) + unsaved
            self._renumber()
            logger.debug(
                f"Merged {len(server_rows)} server rows with {len(unsaved)} unsaved rows",
                extra={"collection": self.name},
            )
            return ReconcileOutcome.MERGED

        server_ids = {str(self.mapper.row_id(r)) for r in server_rows}
        local_ids = {str(r.row_id) for r in saved}
        if len(server_rows) != len(saved) or server_ids != local_ids:
            self.rows = self._adopt(server_rows, saved)
            self._renumber()
            return ReconcileOutcome.REPLACED

        return ReconcileOutcome.UNCHANGED

    def _adopt(self, server_rows: list[dict], saved: list[CollectionRow]) -> list[CollectionRow]:
        """Build rows from the server list, keeping local rows that are mid-edit."""
        in_progress = {
            str(r.row_id): r for r in saved
            if r.edit_state == RowEditState.EDITING or r.busy
        }
        rows = []
        for server_row in server_rows:
            row_id = self.mapper.row_id(server_row)
            local = in_progress.get(str(row_id))
            if local is not None:
                rows.append(local)
            else:
                rows.append(CollectionRow(
                    row_id=row_id,
                    sequence_number=0,
                    fields=self.mapper.to_fields(server_row),
                ))
        return rows

    def _collapse_duplicates(self, row: CollectionRow) -> None:
        """Keep one copy of a freshly created row.

        A refresh that lands while the create is in flight already lists the
        new row; ``row`` takes that copy's position and the copy is dropped.
        """
        key = str(row.row_id)
        rows = []
        placed = False
        for candidate in self.rows:
            if candidate is row:
                continue
            if candidate.row_id is not None and str(candidate.row_id) == key:
                if not placed:
                    rows.append(row)
                    placed = True
                continue
            rows.append(candidate)
        if not placed:
            return
        logger.debug(f"Collapsed duplicate {self.name} row {key}", extra={"collection": self.name})
        self.rows = rows
        self._renumber()

    def _renumber(self) -> None:
        for number, row in enumerate(self.rows, start=1):
            row.sequence_number = number

    # ── Row operations ───────────────────────────────────────

    def _row_at(self, index: int) -> CollectionRow | None:
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return None

    def _index_of(self, row: CollectionRow) -> int | None:
        for index, candidate in enumerate(self.rows):
            if candidate is row:
                return index
        return None

    def add_row(self) -> OperationResult:
        if self.read_only:
            return OperationResult.failure("Collection is read-only")
        violations = self.aggregate_violations()
        if violations:
            return OperationResult.failure(
                f"Cannot add a row: totals already exceed {self.schema.ceiling:g}%",
                field_errors=violations,
            )
        row = CollectionRow(
            row_id=None,
            sequence_number=len(self.rows) + 1,
            edit_state=RowEditState.EDITING,
            fields=self.schema.empty_fields(),
        )
        self.rows.append(row)
        return OperationResult.success({"index": len(self.rows) - 1, "row": row.as_dict()})

    def enable_edit(self, index: int) -> OperationResult:
        if self.read_only:
            return OperationResult.failure("Collection is read-only")
        row = self._row_at(index)
        if row is None:
            return OperationResult.failure(f"No row at position {index}")
        if row.edit_state == RowEditState.EDITING:
            return OperationResult.success(row.as_dict())
        row.snapshot_before_edit = dict(row.fields)
        row.edit_state = RowEditState.EDITING
        return OperationResult.success(row.as_dict())

    def update_field(self, index: int, name: str, value: Any) -> OperationResult:
        if self.read_only:
            return OperationResult.failure("Collection is read-only")
        row = self._row_at(index)
        if row is None:
            return OperationResult.failure(f"No row at position {index}")
        if row.edit_state != RowEditState.EDITING:
            return OperationResult.failure("Row is not being edited")
        if self.schema.spec(name) is None:
            return OperationResult.failure(f"Unknown field: {name}")
        row.fields[name] = "" if is_empty(value) else str(value).strip()
        row.errors.pop(name, None)
        return OperationResult.success(row.as_dict())

    def cancel_edit(self, index: int) -> OperationResult:
        row = self._row_at(index)
        if row is None:
            return OperationResult.failure(f"No row at position {index}")
        if row.busy:
            return OperationResult.failure("A save is in progress for this row")
        if row.is_pending:
            self.rows.pop(index)
            self._renumber()
            return OperationResult.success(self.as_dict())
        if row.edit_state == RowEditState.EDITING:
            if row.snapshot_before_edit is not None:
                row.fields = dict(row.snapshot_before_edit)
            row.snapshot_before_edit = None
            row.edit_state = RowEditState.READONLY
            row.errors = {}
        return OperationResult.success(row.as_dict())

    async def save_row(self, index: int) -> OperationResult:
        if self.read_only:
            return OperationResult.failure("Collection is read-only")
        row = self._row_at(index)
        if row is None:
            return OperationResult.failure(f"No row at position {index}")
        if row.busy:
            return OperationResult.failure("A save is already in progress for this row")
        if row.edit_state != RowEditState.EDITING:
            return OperationResult.failure("Row is not being edited")

        errors = self.schema.validate(row.fields)
        if errors:
            row.errors = errors
            return OperationResult.failure("Please fix the highlighted fields", field_errors=errors)

        # Re-check totals against every row as it is now, not as it was
        # when editing began.
        violations = self.aggregate_violations()
        if violations:
            row.errors = dict(violations)
            return OperationResult.failure(
                f"Totals cannot exceed {self.schema.ceiling:g}%",
                field_errors=violations,
            )

        if self.parent_id is None:
            return OperationResult.failure("Save the main record before saving rows")

        parent_id, generation = self.parent_id, self._generation
        payload = self.mapper.to_payload(row.fields, row.sequence_number)
        row.busy = True
        try:
            if row.is_pending:
                response = await self.gateway.create(parent_id, payload)
            else:
                response = await self.gateway.update(row.row_id, payload)
        except Exception as e:
            logger.warning(
                f"Saving {self.name} row {row.sequence_number} failed: {e}",
                extra={"collection": self.name, "parent_id": parent_id},
            )
            return OperationResult.failure(f"Could not save row: {_message(e)}")
        finally:
            row.busy = False

        if generation != self._generation or self._index_of(row) is None:
            logger.info(f"Discarding save response for abandoned {self.name} row")
            return OperationResult.failure("Row no longer exists")

        new_id = self.mapper.row_id(response or {})
        if new_id is not None:
            row.row_id = new_id
            self._collapse_duplicates(row)
        row.edit_state = RowEditState.READONLY
        row.snapshot_before_edit = None
        row.errors = {}
        return OperationResult.success(row.as_dict())

    async def delete_row(self, index: int) -> OperationResult:
        if self.read_only:
            return OperationResult.failure("Collection is read-only")
        row = self._row_at(index)
        if row is None:
            return OperationResult.failure(f"No row at position {index}")
        if row.busy:
            return OperationResult.failure("An operation is already in progress for this row")

        if not row.is_pending:
            generation = self._generation
            row.busy = True
            try:
                await self.gateway.delete(row.row_id)
            except Exception as e:
                logger.warning(f"Deleting {self.name} row {row.row_id} failed: {e}")
                return OperationResult.failure(f"Could not delete row: {_message(e)}")
            finally:
                row.busy = False
            if generation != self._generation:
                return OperationResult.failure("Parent record changed while deleting")

        # Position may have shifted while the delete was in flight
        current = self._index_of(row)
        if current is not None:
            self.rows.pop(current)
            self._renumber()
        return OperationResult.success(self.as_dict())


def _message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc)
