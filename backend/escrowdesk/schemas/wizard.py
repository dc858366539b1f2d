"""Request schemas for the wizard session API.

Responses are OperationResult (schemas.common) or the session snapshot
dict; only inputs are modelled here.
"""

from typing import Any

from pydantic import BaseModel, Field


# ── Sessions ─────────────────────────────────────────────────

class SessionOpen(BaseModel):
    """Route parameters the wizard was opened with."""
    kind: str
    entity_id: int | str | None = None
    step: int | None = Field(None, ge=1)
    mode: str | None = Field(None, pattern="^(view|edit)$")
    load: bool = True


class FieldUpdate(BaseModel):
    value: Any = None


class OptionsRefresh(BaseModel):
    records: list[dict[str, Any]]
    key: str | None = None


class StepJump(BaseModel):
    index: int = Field(..., ge=0)


class ReloadRequest(BaseModel):
    refresh: bool = True


# ── Collection rows ──────────────────────────────────────────

class RowFieldUpdate(BaseModel):
    name: str
    value: Any = None
