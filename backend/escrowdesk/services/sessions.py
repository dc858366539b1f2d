"""Live wizard sessions, owned by the FastAPI application.

A session is one open wizard (one browser tab): its controller, the row
collections bound to it and the step indicator that mirrors its route.
Sessions idle for longer than ``session_ttl_seconds`` are dropped on the
next registry access.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from escrowdesk.config import Settings
from escrowdesk.gateways.http import (
    RestEntityGateway,
    RestSubResourceGateway,
    RestWorkflowRequestGateway,
    UpstreamClient,
)
from escrowdesk.gateways.memory import (
    InMemoryEntityGateway,
    InMemorySubResourceGateway,
    InMemoryWorkflowRequestGateway,
)
from escrowdesk.middleware.exceptions import BusinessLogicError, ResourceNotFoundError
from escrowdesk.services.collection import EditableCollectionReconciler
from escrowdesk.services.routes import RecordingStepIndicator, StepRoute
from escrowdesk.services.wizard import WizardController
from escrowdesk.wizards import get_definition
from escrowdesk.wizards.definition import CollectionSpec

logger = logging.getLogger(__name__)


# ── Gateways ─────────────────────────────────────────────────


class GatewayProvider:
    """Hands out one gateway per upstream resource for the configured backend."""

    def __init__(self, backend: str = "http", client: UpstreamClient | None = None):
        if backend not in ("http", "memory"):
            raise ValueError(f"Unknown gateway backend: {backend}")
        if backend == "http" and client is None:
            raise ValueError("The http gateway backend needs an UpstreamClient")
        self.backend = backend
        self.client = client
        self._entities: dict[str, Any] = {}
        self._rows: dict[str, Any] = {}
        self._workflow: Any = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayProvider":
        if settings.gateway_backend == "memory":
            return cls("memory")
        client = UpstreamClient(settings.upstream_api_url, timeout=settings.upstream_timeout_seconds)
        return cls("http", client)

    def entity(self, resource: str):
        if resource not in self._entities:
            if self.backend == "memory":
                self._entities[resource] = InMemoryEntityGateway()
            else:
                self._entities[resource] = RestEntityGateway(self.client, resource)
        return self._entities[resource]

    def rows(self, spec: CollectionSpec):
        if spec.resource not in self._rows:
            if self.backend == "memory":
                self._rows[spec.resource] = InMemorySubResourceGateway()
            else:
                self._rows[spec.resource] = RestSubResourceGateway(
                    self.client, spec.resource, spec.parent_field, spec.parent_filter
                )
        return self._rows[spec.resource]

    def workflow(self):
        if self._workflow is None:
            if self.backend == "memory":
                self._workflow = InMemoryWorkflowRequestGateway()
            else:
                self._workflow = RestWorkflowRequestGateway(self.client)
        return self._workflow

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


# ── Registry ─────────────────────────────────────────────────


@dataclass
class SessionEntry:
    session_id: str
    kind: str
    controller: WizardController
    indicator: RecordingStepIndicator
    last_seen: float = field(default_factory=time.monotonic)

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            **self.controller.as_dict(),
            "history": list(self.indicator.history),
        }


class SessionRegistry:
    def __init__(self, gateways: GatewayProvider, ttl_seconds: int = 3600):
        self.gateways = gateways
        self.ttl_seconds = ttl_seconds
        self._sessions: dict[str, SessionEntry] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(
        self,
        kind: str,
        entity_id: Any | None = None,
        step: int | None = None,
        view: bool = False,
    ) -> SessionEntry:
        """Start a wizard from route parameters (``step`` is 1-based, as in URLs)."""
        self.prune()
        definition = get_definition(kind)
        if definition is None:
            raise ResourceNotFoundError("Wizard", kind)
        if view and entity_id is None:
            raise BusinessLogicError("View mode needs an existing record", error_code="VIEW_WITHOUT_ENTITY")

        route = StepRoute(
            base_path=definition.base_path,
            entity_id=entity_id,
            step_index=max((step or 1) - 1, 0),
            view=view,
        )
        collections = {
            spec.name: EditableCollectionReconciler(
                self.gateways.rows(spec),
                spec.schema,
                spec.mapper,
                name=spec.name,
            )
            for spec in definition.collections
        }
        indicator = RecordingStepIndicator()
        controller = WizardController.from_route(
            definition,
            route,
            gateway=self.gateways.entity(definition.resource),
            collections=collections,
            workflow_gateway=self.gateways.workflow(),
            step_indicator=indicator,
        )
        indicator.sync(controller.route())

        entry = SessionEntry(
            session_id=uuid.uuid4().hex,
            kind=kind,
            controller=controller,
            indicator=indicator,
        )
        self._sessions[entry.session_id] = entry
        logger.info(
            f"Opened {kind} wizard session",
            extra={"session_id": entry.session_id, "entity_id": entity_id, "mode": controller.session.mode.value},
        )
        return entry

    def get(self, session_id: str) -> SessionEntry:
        self.prune()
        entry = self._sessions.get(session_id)
        if entry is None:
            raise ResourceNotFoundError("Wizard session", session_id)
        entry.last_seen = time.monotonic()
        return entry

    def close(self, session_id: str) -> None:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            raise ResourceNotFoundError("Wizard session", session_id)
        entry.controller.abandon()
        logger.info(f"Closed {entry.kind} wizard session", extra={"session_id": session_id})

    def prune(self) -> int:
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [sid for sid, entry in self._sessions.items() if entry.last_seen < cutoff]
        for session_id in expired:
            self._sessions.pop(session_id).controller.abandon()
        if expired:
            logger.info(f"Pruned {len(expired)} idle wizard sessions")
        return len(expired)
