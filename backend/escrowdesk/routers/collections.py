"""Editable row collections owned by a wizard session (e.g. payment plan).

Endpoints (prefix /api/wizards/sessions/{sid}/collections/{name}):
  GET    /                        → rows, totals, unsaved flag
  POST   /refresh                 → fetch server rows and reconcile
  POST   /rows                    → add a pending row
  PATCH  /rows/{index}            → change one field of a row being edited
  POST   /rows/{index}/edit       → start editing a saved row
  POST   /rows/{index}/cancel     → discard edits (pending rows are removed)
  POST   /rows/{index}/save       → validate and persist one row
  DELETE /rows/{index}            → delete upstream, then locally

``index`` is the 0-based display position.
"""

from fastapi import APIRouter, Depends

from escrowdesk.middleware.exceptions import ResourceNotFoundError
from escrowdesk.routers.wizard import get_entry
from escrowdesk.schemas.common import OperationResult
from escrowdesk.schemas.wizard import RowFieldUpdate
from escrowdesk.services.collection import EditableCollectionReconciler
from escrowdesk.services.sessions import SessionEntry

router = APIRouter()


def get_collection(name: str, entry: SessionEntry = Depends(get_entry)) -> EditableCollectionReconciler:
    collection = entry.controller.collections.get(name)
    if collection is None:
        raise ResourceNotFoundError("Collection", name)
    return collection


@router.get("/")
async def get_rows(collection: EditableCollectionReconciler = Depends(get_collection)):
    return collection.as_dict()


@router.post("/refresh", response_model=OperationResult)
async def refresh_rows(collection: EditableCollectionReconciler = Depends(get_collection)):
    return await collection.refresh()


@router.post("/rows", response_model=OperationResult)
async def add_row(collection: EditableCollectionReconciler = Depends(get_collection)):
    return collection.add_row()


@router.patch("/rows/{index}", response_model=OperationResult)
async def update_row_field(
    index: int,
    body: RowFieldUpdate,
    collection: EditableCollectionReconciler = Depends(get_collection),
):
    return collection.update_field(index, body.name, body.value)


@router.post("/rows/{index}/edit", response_model=OperationResult)
async def edit_row(index: int, collection: EditableCollectionReconciler = Depends(get_collection)):
    return collection.enable_edit(index)


@router.post("/rows/{index}/cancel", response_model=OperationResult)
async def cancel_row(index: int, collection: EditableCollectionReconciler = Depends(get_collection)):
    return collection.cancel_edit(index)


@router.post("/rows/{index}/save", response_model=OperationResult)
async def save_row(index: int, collection: EditableCollectionReconciler = Depends(get_collection)):
    return await collection.save_row(index)


@router.delete("/rows/{index}", response_model=OperationResult)
async def delete_row(index: int, collection: EditableCollectionReconciler = Depends(get_collection)):
    return await collection.delete_row(index)
