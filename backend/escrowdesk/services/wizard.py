"""Wizard controller — step progression, draft persistence and loading.

One controller per open wizard. It owns the session (active step, entity id,
mode), the draft, the validation gate and the field resolver, and drives the
row collections bound to the same entity.

Transitions:
  - next on the create step: validate → create upstream → CREATE becomes
    EDIT with the returned id → advance.
  - next on other steps: validate → (optional update) → advance.
  - next on the last step: validate → submit → session complete.
  - back: always allowed, floors at step 0.
  - VIEW mode: next/back only navigate; nothing is validated or written.

Every public operation returns an OperationResult; upstream failures leave
the draft exactly as the user left it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from escrowdesk.gateways.base import DraftPersistenceGateway, WorkflowRequestGateway
from escrowdesk.schemas.common import OperationResult
from escrowdesk.services.collection import EditableCollectionReconciler
from escrowdesk.services.draft import Draft
from escrowdesk.services.routes import StepIndicator, StepRoute
from escrowdesk.wizards.definition import WizardDefinition, WizardStep

logger = logging.getLogger(__name__)

UNSAVED_ROWS_MESSAGE = (
    "You have unsaved {label} data. Please save all rows or cancel editing "
    "before proceeding."
)
EXCEEDED_TOTALS_MESSAGE = (
    "{title} percentages exceed {ceiling:g}%. Please adjust the values before proceeding."
)


class WizardMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    VIEW = "view"


@dataclass
class WizardSession:
    entity_id: Any | None = None
    active_step_index: int = 0
    mode: WizardMode = WizardMode.CREATE
    completed_steps: set[int] = field(default_factory=set)
    is_complete: bool = False


class WizardController:
    def __init__(
        self,
        definition: WizardDefinition,
        gateway: DraftPersistenceGateway,
        collections: dict[str, EditableCollectionReconciler] | None = None,
        workflow_gateway: WorkflowRequestGateway | None = None,
        step_indicator: StepIndicator | None = None,
        session: WizardSession | None = None,
        draft: Draft | None = None,
    ):
        self.definition = definition
        self.gateway = gateway
        self.collections = collections or {}
        self.workflow_gateway = workflow_gateway
        self.step_indicator = step_indicator
        self.session = session or WizardSession()
        self.draft = draft or Draft()
        self.gate = definition.build_gate()
        self.resolver = definition.build_resolver()
        self.loading = False

        self._busy = False
        # Bumped when the wizard is abandoned or pointed at another entity;
        # responses that arrive for an older generation are ignored.
        self._generation = 0
        self._population_key: Any | None = None
        self._population_attempted = False
        self._load_task: asyncio.Task | None = None
        self._last_load: OperationResult | None = None

        self._apply_mode()
        for collection in self.collections.values():
            collection.bind(self.session.entity_id)

    @classmethod
    def from_route(cls, definition: WizardDefinition, route: StepRoute, **kwargs) -> "WizardController":
        """Open a wizard from route parameters (entity id, step, view flag)."""
        if route.entity_id is None:
            session = WizardSession()
        else:
            session = WizardSession(
                entity_id=route.entity_id,
                mode=WizardMode.VIEW if route.view else WizardMode.EDIT,
                active_step_index=min(route.step_index, len(definition.steps) - 1),
            )
        return cls(definition, session=session, **kwargs)

    # ── Introspection ────────────────────────────────────────

    @property
    def step_count(self) -> int:
        return len(self.definition.steps)

    @property
    def active_step(self) -> WizardStep:
        return self.definition.steps[self.session.active_step_index]

    @property
    def busy(self) -> bool:
        return self._busy

    def route(self) -> StepRoute:
        return StepRoute(
            base_path=self.definition.base_path,
            entity_id=self.session.entity_id,
            step_index=self.session.active_step_index,
            view=self.session.mode == WizardMode.VIEW,
        )

    def _sync_route(self) -> None:
        if self.step_indicator is not None:
            self.step_indicator.sync(self.route())

    def _apply_mode(self) -> None:
        read_only = self.session.mode == WizardMode.VIEW
        self.draft.read_only = read_only
        for collection in self.collections.values():
            collection.read_only = read_only

    # ── Field changes ────────────────────────────────────────

    def set_field(self, name: str, value: Any) -> OperationResult:
        """Apply a user edit, cascade dependants, re-run affected rules."""
        if self.session.mode == WizardMode.VIEW:
            return OperationResult.failure("Wizard is in view mode")
        changes = self.resolver.on_field_change(self.draft, name, value)
        self.gate.on_field_changed(self.draft, name)
        for changed in changes.changed:
            if changed != name:
                self.gate.on_field_changed(self.draft, changed, user_change=False)
        return OperationResult.success(
            {"changed": changes.changed, "cleared": changes.cleared, "errors": dict(self.gate.errors)},
            warnings=changes.warnings,
        )

    def refresh_options(self, name: str, records: list[dict], key: str | None = None) -> OperationResult:
        """Install a reloaded option list; heals selections that vanished from it."""
        if self.session.mode == WizardMode.VIEW:
            self.resolver.set_options(name, records, key or "id")
            return OperationResult.success({"changed": {}, "cleared": []})
        changes = self.resolver.refresh_options(self.draft, name, records, key)
        for changed in changes.changed:
            self.gate.on_field_changed(self.draft, changed, user_change=False)
        return OperationResult.success(
            {"changed": changes.changed, "cleared": changes.cleared},
            warnings=changes.warnings,
        )

    def generate_reference(self, generator) -> OperationResult:
        """Fill the definition's reference field from a ReferenceNumberGenerator."""
        field_name = self.definition.reference_field
        if not field_name or not self.definition.reference_prefix:
            return OperationResult.failure("This wizard has no reference number")
        return self.set_field(field_name, generator.generate(self.definition.reference_prefix))

    # ── Navigation ───────────────────────────────────────────

    async def go_next(self) -> OperationResult:
        session = self.session
        if session.is_complete:
            return OperationResult.failure("Wizard is already complete")
        # A pending load would replace the draft being validated here
        if self._busy or self.loading:
            return OperationResult.failure("An operation is already in progress")

        index = session.active_step_index
        step = self.active_step
        is_last = index >= self.step_count - 1

        if session.mode == WizardMode.VIEW:
            if is_last:
                return OperationResult.success({"exit": True, "step_index": index})
            self._advance(index)
            return OperationResult.success(self._state())

        if step.guarded_collection:
            collection = self.collections.get(step.guarded_collection)
            spec = self.definition.collection(step.guarded_collection)
            label = spec.label if spec else step.guarded_collection
            title = spec.title if spec else step.guarded_collection
            if collection is not None and collection.has_unsaved_changes:
                return OperationResult.failure(UNSAVED_ROWS_MESSAGE.format(label=label))
            if collection is not None:
                violations = collection.aggregate_violations()
                if violations:
                    return OperationResult.failure(
                        EXCEEDED_TOTALS_MESSAGE.format(
                            title=title, ceiling=collection.schema.ceiling
                        ),
                        field_errors=violations,
                    )

        if not step.skip_validation:
            failures = self.gate.validate_fields(self.draft, step.fields)
            if failures:
                logger.info(
                    f"Step {step.key} blocked by invalid fields",
                    extra={"wizard": self.definition.kind, "fields": sorted(failures)},
                )
                return OperationResult.failure(
                    "Please fix the validation errors highlighted in the form.",
                    field_errors=failures,
                )

        if step.creates_entity or (step.persists and session.entity_id is not None):
            result = await self._persist(step)
            if not result.ok:
                return result
            # The user may have moved while the save was in flight
            if session.active_step_index != index:
                return OperationResult.success(self._state())

        if is_last:
            return await self._submit()

        self._advance(index)
        return OperationResult.success(self._state())

    def go_back(self) -> OperationResult:
        if self.session.active_step_index > 0:
            self.session.active_step_index -= 1
        self._sync_route()
        return OperationResult.success(self._state())

    def reenter_step(self, index: int) -> OperationResult:
        """Jump to a step already reached; anything else is a no-op."""
        session = self.session
        if not 0 <= index < self.step_count:
            return OperationResult.failure(f"No step {index}")
        if index <= session.active_step_index or index in session.completed_steps:
            session.active_step_index = index
            self._sync_route()
            return OperationResult.success(self._state())
        return OperationResult.failure(f"Step {index + 1} has not been reached yet")

    def _advance(self, index: int) -> None:
        self.session.completed_steps.add(index)
        self.session.active_step_index = min(index + 1, self.step_count - 1)
        self._sync_route()

    # ── Persistence ──────────────────────────────────────────

    async def _persist(self, step: WizardStep) -> OperationResult:
        session = self.session
        entity_id = session.entity_id
        generation = self._generation
        if step.creates_entity:
            payload = self.definition.mapper.to_payload(self.draft.values)
        else:
            payload = self.definition.mapper.to_payload(self.draft.values, fields=step.fields)

        self._busy = True
        try:
            if entity_id is None:
                response = await self.gateway.create(payload)
            else:
                response = await self.gateway.update(entity_id, payload)
        except Exception as e:
            logger.warning(
                f"Saving {self.definition.kind} step {step.key} failed: {e}",
                extra={"wizard": self.definition.kind, "entity_id": entity_id},
            )
            return OperationResult.failure(f"Save failed: {getattr(e, 'message', None) or e}")
        finally:
            self._busy = False

        if generation != self._generation:
            logger.info(f"Discarding save response for abandoned {self.definition.kind} wizard")
            return OperationResult.failure("The wizard was closed before the save completed")

        if entity_id is None:
            new_id = (response or {}).get("id")
            if new_id is None:
                return OperationResult.failure("Save failed: upstream returned no id")
            session.entity_id = new_id
            session.mode = WizardMode.EDIT
            self._population_key = new_id
            self._population_attempted = True
            for collection in self.collections.values():
                collection.bind(new_id)
            logger.info(
                f"Created {self.definition.kind} {new_id}",
                extra={"wizard": self.definition.kind, "entity_id": new_id},
            )
        return OperationResult.success(response)

    async def _submit(self) -> OperationResult:
        session = self.session
        if session.entity_id is None:
            return OperationResult.failure("Nothing has been saved yet")
        request = None
        workflow = self.definition.workflow
        if workflow is not None and self.workflow_gateway is not None:
            generation = self._generation
            self._busy = True
            try:
                request = await self.workflow_gateway.submit(
                    reference_id=session.entity_id,
                    reference_type=workflow.reference_type,
                    module_name=workflow.module_name,
                    action_key=workflow.action_key,
                    payload=self.definition.mapper.to_payload(self.draft.values),
                )
            except Exception as e:
                logger.warning(f"Workflow submission for {session.entity_id} failed: {e}")
                return OperationResult.failure(
                    "Failed to submit workflow request. Please try again."
                )
            finally:
                self._busy = False
            if generation != self._generation:
                return OperationResult.failure("The wizard was closed before submission completed")

        session.completed_steps.add(session.active_step_index)
        session.is_complete = True
        logger.info(f"{self.definition.kind} {session.entity_id} submitted")
        return OperationResult.success({**self._state(), "workflow_request": request})

    # ── Loading ──────────────────────────────────────────────

    async def load_existing(self, entity_id: Any, refresh: bool = False) -> OperationResult:
        """Populate the draft from the upstream entity, at most once per id.

        Calls for the same id while a fetch is pending share that fetch.
        Once populated, further calls are no-ops until the id changes or
        ``refresh`` is passed. A refresh is refused while a save or
        submission is in flight.
        """
        if refresh and self._busy:
            return OperationResult.failure("An operation is already in progress")
        if entity_id != self._population_key:
            self._generation += 1
            self._population_key = entity_id
            self._population_attempted = False
            self._load_task = None
            self._last_load = None
            self.session.entity_id = entity_id
            self.session.is_complete = False
            if self.session.mode == WizardMode.CREATE:
                self.session.mode = WizardMode.EDIT
            self._apply_mode()
            for collection in self.collections.values():
                collection.bind(entity_id)

        if self._load_task is not None and not self._load_task.done():
            return await asyncio.shield(self._load_task)
        if self._population_attempted and not refresh:
            return self._last_load or OperationResult.success(self._state())

        self._population_attempted = True
        self.loading = True
        self._load_task = asyncio.ensure_future(self._load(entity_id, self._generation))
        return await asyncio.shield(self._load_task)

    async def _load(self, entity_id: Any, generation: int) -> OperationResult:
        try:
            entity = await self.gateway.get_by_id(entity_id)
        except Exception as e:
            logger.warning(
                f"Loading {self.definition.kind} {entity_id} failed: {e}",
                extra={"wizard": self.definition.kind, "entity_id": entity_id},
            )
            if generation == self._generation:
                self.draft.reset()
                self.gate.reset()
            result = OperationResult.failure(
                f"Could not load {self.definition.kind}: {getattr(e, 'message', None) or e}",
                data=self._state(),
            )
        else:
            if generation != self._generation:
                result = OperationResult.failure("Load superseded by another record")
            else:
                self.draft.populate(self.definition.mapper.to_draft(entity))
                self.gate.reset()
                if self.session.mode != WizardMode.VIEW:
                    self.session.mode = WizardMode.EDIT
                self._apply_mode()
                result = OperationResult.success(self._state())
        finally:
            if generation == self._generation:
                self.loading = False
        self._last_load = result
        return result

    def abandon(self) -> None:
        """User left the wizard; responses still in flight will be ignored."""
        self._generation += 1
        self.loading = False
        logger.debug(f"{self.definition.kind} wizard abandoned at step {self.session.active_step_index}")

    # ── Serialization ────────────────────────────────────────

    def _state(self) -> dict[str, Any]:
        return {
            "entity_id": self.session.entity_id,
            "step_index": self.session.active_step_index,
            "step_key": self.active_step.key,
            "mode": self.session.mode.value,
            "completed_steps": sorted(self.session.completed_steps),
            "is_complete": self.session.is_complete,
            "url": self.route().url(),
        }

    def as_dict(self) -> dict[str, Any]:
        return {
            **self._state(),
            "kind": self.definition.kind,
            "loading": self.loading,
            "busy": self._busy,
            "values": self.draft.snapshot(),
            "errors": dict(self.gate.errors),
            "collections": {name: c.as_dict() for name, c in self.collections.items()},
        }
