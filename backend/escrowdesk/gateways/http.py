"""httpx-backed gateways for the upstream REST API.

Contract:
- All methods are async and share one ``httpx.AsyncClient``
- HTTP and transport failures are converted to ``GatewayError``
- Responses are returned as parsed JSON; 204 becomes ``{}``
- No wizard logic here, only transport

Resource layout (upstream):
    POST   /<resource>                       create
    GET    /<resource>/<id>                  read
    PUT    /<resource>/<id>                  update
    DELETE /<resource>/<id>                  delete
    GET    /<resource>?<parent>.equals=<id>  list children of a parent
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from escrowdesk.middleware.exceptions import GatewayError

logger = logging.getLogger(__name__)


class UpstreamClient:
    """Thin JSON wrapper around httpx with error conversion."""

    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=True,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                body = e.response.json()
                detail = body.get("message") or body.get("detail") or str(e)
            except Exception:
                detail = str(e)
            logger.warning(
                f"Upstream {method} {path} failed: {e.response.status_code}",
                extra={"status": e.response.status_code, "path": path},
            )
            raise GatewayError(detail, upstream_status=e.response.status_code) from e
        except httpx.RequestError as e:
            logger.warning(f"Upstream {method} {path} unreachable: {e}")
            raise GatewayError(f"Request failed: {e}") from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


class RestEntityGateway:
    """DraftPersistenceGateway over ``/<resource>``."""

    def __init__(self, client: UpstreamClient, resource: str):
        self.client = client
        self.resource = "/" + resource.strip("/")

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.client.request("POST", self.resource, json=payload)

    async def update(self, entity_id: Any, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.client.request(
            "PUT", f"{self.resource}/{entity_id}", json={**payload, "id": entity_id}
        )

    async def get_by_id(self, entity_id: Any) -> dict[str, Any]:
        return await self.client.request("GET", f"{self.resource}/{entity_id}")

    async def delete(self, entity_id: Any) -> None:
        await self.client.request("DELETE", f"{self.resource}/{entity_id}")


class RestSubResourceGateway:
    """SubResourceGateway over ``/<resource>`` filtered by a parent reference.

    ``parent_field`` is the DTO key used to attach a row to its parent
    (``realEstateAssestDTO``) and ``parent_filter`` the list query parameter
    (``realEstateAssestId.equals``).
    """

    def __init__(self, client: UpstreamClient, resource: str, parent_field: str, parent_filter: str):
        self.client = client
        self.resource = "/" + resource.strip("/")
        self.parent_field = parent_field
        self.parent_filter = parent_filter

    async def list(self, parent_id: Any) -> list[dict[str, Any]]:
        data = await self.client.request(
            "GET", self.resource, params={self.parent_filter: parent_id, "deleted.equals": "false"}
        )
        # Some list endpoints wrap rows in a page object
        if isinstance(data, dict):
            return list(data.get("content", []))
        return list(data)

    async def create(self, parent_id: Any, row: dict[str, Any]) -> dict[str, Any]:
        payload = {**row, self.parent_field: {"id": parent_id}, "deleted": False}
        return await self.client.request("POST", self.resource, json=payload)

    async def update(self, row_id: Any, row: dict[str, Any]) -> dict[str, Any]:
        return await self.client.request("PUT", f"{self.resource}/{row_id}", json={**row, "id": row_id})

    async def delete(self, row_id: Any) -> None:
        # Upstream rows are soft-deleted
        await self.client.request("DELETE", f"{self.resource}/soft/{row_id}")


class RestWorkflowRequestGateway:
    def __init__(self, client: UpstreamClient, resource: str = "workflow-requests"):
        self.client = client
        self.resource = "/" + resource.strip("/")

    async def submit(
        self,
        reference_id: Any,
        reference_type: str,
        module_name: str,
        action_key: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        return await self.client.request(
            "POST",
            self.resource,
            json={
                "referenceId": str(reference_id),
                "referenceType": reference_type,
                "moduleName": module_name,
                "actionKey": action_key,
                "payloadData": payload,
            },
        )
