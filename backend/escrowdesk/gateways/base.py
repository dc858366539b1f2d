"""Gateway contracts for the upstream REST API.

The wizard never talks HTTP directly; it goes through these protocols so the
same controller runs against the real API (``gateways.http``) or an
in-process store (``gateways.memory``).

Payloads are plain dicts. Foreign references use the ``{"id": <number>}``
shape, e.g. ``{"realEstateAssestDTO": {"id": 42}}``.
"""

from typing import Any, Protocol


class DraftPersistenceGateway(Protocol):
    """CRUD endpoint for the entity a wizard edits."""

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, entity_id: Any, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def get_by_id(self, entity_id: Any) -> dict[str, Any]: ...

    async def delete(self, entity_id: Any) -> None: ...


class SubResourceGateway(Protocol):
    """Rows owned by a parent entity (e.g. installment plan entries)."""

    async def list(self, parent_id: Any) -> list[dict[str, Any]]: ...

    async def create(self, parent_id: Any, row: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, row_id: Any, row: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, row_id: Any) -> None: ...


class WorkflowRequestGateway(Protocol):
    """Submits a completed draft for maker/checker approval."""

    async def submit(
        self,
        reference_id: Any,
        reference_type: str,
        module_name: str,
        action_key: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]: ...
