"""Wizard sessions — open, edit, navigate and submit multi-step drafts.

Endpoints:
  GET    /api/wizards/                                  → available wizards
  PUT    /api/wizards/labels                            → load step title labels
  POST   /api/wizards/sessions                          → open from route params
  GET    /api/wizards/sessions/{sid}                    → session snapshot
  DELETE /api/wizards/sessions/{sid}                    → abandon
  PUT    /api/wizards/sessions/{sid}/fields/{name}      → set a field (cascades)
  POST   /api/wizards/sessions/{sid}/options/{name}     → reload an option list
  POST   /api/wizards/sessions/{sid}/next               → validate, save, advance
  POST   /api/wizards/sessions/{sid}/back               → previous step
  POST   /api/wizards/sessions/{sid}/steps              → re-enter a reached step
  POST   /api/wizards/sessions/{sid}/reload             → re-fetch the record
  POST   /api/wizards/sessions/{sid}/reference          → generate a reference number

Design:
  - Wizard failures (validation, upstream errors, unsaved rows) are normal
    outcomes: 200 with ``ok=false`` in the OperationResult.
  - Only an unknown wizard kind or session is an HTTP error (404).
"""

from fastapi import APIRouter, Depends, Query, Request, status

from escrowdesk.schemas.common import OperationResult
from escrowdesk.schemas.wizard import (
    FieldUpdate,
    OptionsRefresh,
    ReloadRequest,
    SessionOpen,
    StepJump,
)
from escrowdesk.services.labels import LabelCatalog
from escrowdesk.services.reference_numbers import ReferenceNumberGenerator
from escrowdesk.services.sessions import SessionEntry, SessionRegistry
from escrowdesk.wizards import WIZARDS

router = APIRouter()


# ── Dependencies ─────────────────────────────────────────────

def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_labels(request: Request) -> LabelCatalog:
    return request.app.state.labels


def get_reference_generator(request: Request) -> ReferenceNumberGenerator:
    return request.app.state.references


def get_entry(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionEntry:
    return registry.get(session_id)


def _snapshot(entry: SessionEntry, labels: LabelCatalog, language: str | None) -> dict:
    definition = entry.controller.definition
    return {
        **entry.as_dict(),
        "steps": [
            {
                "key": step.key,
                "title": labels.get_label(step.label_id, language, step.title) if step.label_id else step.title,
            }
            for step in definition.steps
        ],
    }


# ── Catalog ──────────────────────────────────────────────────

@router.get("/")
async def list_wizards():
    return [
        {
            "kind": definition.kind,
            "base_path": definition.base_path,
            "steps": [step.key for step in definition.steps],
            "collections": [spec.name for spec in definition.collections],
        }
        for definition in WIZARDS.values()
    ]


@router.put("/labels")
async def load_labels(entries: list[dict], labels: LabelCatalog = Depends(get_labels)):
    """Load label rows (``configId``, ``configValue``, ``language``)."""
    return {"loaded": labels.load(entries)}


# ── Sessions ─────────────────────────────────────────────────

@router.post("/sessions", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
async def open_session(
    body: SessionOpen,
    registry: SessionRegistry = Depends(get_registry),
    labels: LabelCatalog = Depends(get_labels),
):
    entry = registry.open(body.kind, entity_id=body.entity_id, step=body.step, view=body.mode == "view")
    controller = entry.controller
    warnings: list[str] = []
    if body.entity_id is not None and body.load:
        loaded = await controller.load_existing(body.entity_id)
        if not loaded.ok:
            return OperationResult.failure(loaded.error, data=_snapshot(entry, labels, None))
        for collection in controller.collections.values():
            refreshed = await collection.refresh()
            if not refreshed.ok and refreshed.error:
                warnings.append(refreshed.error)
    return OperationResult.success(_snapshot(entry, labels, None), warnings=warnings)


@router.get("/sessions/{session_id}")
async def get_session(
    entry: SessionEntry = Depends(get_entry),
    labels: LabelCatalog = Depends(get_labels),
    language: str | None = Query(None, max_length=5),
):
    return _snapshot(entry, labels, language)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    registry.close(session_id)


@router.put("/sessions/{session_id}/fields/{name}", response_model=OperationResult)
async def set_field(name: str, body: FieldUpdate, entry: SessionEntry = Depends(get_entry)):
    return entry.controller.set_field(name, body.value)


@router.post("/sessions/{session_id}/options/{name}", response_model=OperationResult)
async def refresh_options(name: str, body: OptionsRefresh, entry: SessionEntry = Depends(get_entry)):
    return entry.controller.refresh_options(name, body.records, body.key)


# ── Navigation ───────────────────────────────────────────────

@router.post("/sessions/{session_id}/next", response_model=OperationResult)
async def go_next(entry: SessionEntry = Depends(get_entry)):
    return await entry.controller.go_next()


@router.post("/sessions/{session_id}/back", response_model=OperationResult)
async def go_back(entry: SessionEntry = Depends(get_entry)):
    return entry.controller.go_back()


@router.post("/sessions/{session_id}/steps", response_model=OperationResult)
async def reenter_step(body: StepJump, entry: SessionEntry = Depends(get_entry)):
    return entry.controller.reenter_step(body.index)


@router.post("/sessions/{session_id}/reload", response_model=OperationResult)
async def reload(body: ReloadRequest | None = None, entry: SessionEntry = Depends(get_entry)):
    controller = entry.controller
    if controller.session.entity_id is None:
        return OperationResult.failure("Nothing has been saved yet")
    refresh = body.refresh if body is not None else True
    return await controller.load_existing(controller.session.entity_id, refresh=refresh)


@router.post("/sessions/{session_id}/reference", response_model=OperationResult)
async def generate_reference(
    entry: SessionEntry = Depends(get_entry),
    generator: ReferenceNumberGenerator = Depends(get_reference_generator),
):
    return entry.controller.generate_reference(generator)
