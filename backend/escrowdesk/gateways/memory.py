"""In-process gateways for local development (``gateway_backend=memory``) and tests.

Records every call in ``calls`` and can be told to fail specific operations
via ``fail_on`` to rehearse upstream outages.
"""

from __future__ import annotations

import copy
import itertools
from typing import Any

from escrowdesk.middleware.exceptions import GatewayError


class _Recorder:
    def __init__(self):
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: set[str] = set()

    def _enter(self, operation: str, argument: Any = None) -> None:
        self.calls.append((operation, argument))
        if operation in self.fail_on:
            raise GatewayError(f"Simulated upstream failure on {operation}", upstream_status=503)

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)


class InMemoryEntityGateway(_Recorder):
    def __init__(self, records: dict[int, dict] | None = None):
        super().__init__()
        self.records: dict[int, dict] = {k: dict(v, id=k) for k, v in (records or {}).items()}
        self._ids = itertools.count(max(self.records, default=0) + 1)

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        self._enter("create", payload)
        entity_id = next(self._ids)
        self.records[entity_id] = {**copy.deepcopy(payload), "id": entity_id}
        return copy.deepcopy(self.records[entity_id])

    async def update(self, entity_id: Any, payload: dict[str, Any]) -> dict[str, Any]:
        self._enter("update", entity_id)
        key = int(entity_id)
        if key not in self.records:
            raise GatewayError(f"Entity not found: {entity_id}", upstream_status=404)
        self.records[key].update(copy.deepcopy(payload))
        self.records[key]["id"] = key
        return copy.deepcopy(self.records[key])

    async def get_by_id(self, entity_id: Any) -> dict[str, Any]:
        self._enter("get_by_id", entity_id)
        key = int(entity_id)
        if key not in self.records:
            raise GatewayError(f"Entity not found: {entity_id}", upstream_status=404)
        return copy.deepcopy(self.records[key])

    async def delete(self, entity_id: Any) -> None:
        self._enter("delete", entity_id)
        self.records.pop(int(entity_id), None)


class InMemorySubResourceGateway(_Recorder):
    def __init__(self):
        super().__init__()
        # row id → (parent id, row)
        self.rows: dict[int, tuple[Any, dict]] = {}
        self._ids = itertools.count(1)

    def seed(self, parent_id: Any, rows: list[dict]) -> list[dict]:
        """Insert server-side rows directly, bypassing the call log."""
        created = []
        for row in rows:
            row_id = next(self._ids)
            self.rows[row_id] = (str(parent_id), {**row, "id": row_id})
            created.append(dict(self.rows[row_id][1]))
        return created

    async def list(self, parent_id: Any) -> list[dict[str, Any]]:
        self._enter("list", parent_id)
        return [
            copy.deepcopy(row)
            for owner, row in self.rows.values()
            if owner == str(parent_id)
        ]

    async def create(self, parent_id: Any, row: dict[str, Any]) -> dict[str, Any]:
        self._enter("create", row)
        row_id = next(self._ids)
        self.rows[row_id] = (str(parent_id), {**copy.deepcopy(row), "id": row_id})
        return copy.deepcopy(self.rows[row_id][1])

    async def update(self, row_id: Any, row: dict[str, Any]) -> dict[str, Any]:
        self._enter("update", row_id)
        key = int(row_id)
        if key not in self.rows:
            raise GatewayError(f"Row not found: {row_id}", upstream_status=404)
        owner, existing = self.rows[key]
        self.rows[key] = (owner, {**existing, **copy.deepcopy(row), "id": key})
        return copy.deepcopy(self.rows[key][1])

    async def delete(self, row_id: Any) -> None:
        self._enter("delete", row_id)
        self.rows.pop(int(row_id), None)


class InMemoryWorkflowRequestGateway(_Recorder):
    def __init__(self):
        super().__init__()
        self.requests: list[dict[str, Any]] = []

    async def submit(
        self,
        reference_id: Any,
        reference_type: str,
        module_name: str,
        action_key: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        self._enter("submit", reference_id)
        request = {
            "id": len(self.requests) + 1,
            "referenceId": str(reference_id),
            "referenceType": reference_type,
            "moduleName": module_name,
            "actionKey": action_key,
            "payloadData": copy.deepcopy(payload),
        }
        self.requests.append(request)
        return dict(request)
