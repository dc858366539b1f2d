"""Pytest configuration and fixtures for EscrowDesk tests.

Provides in-memory gateways, controllers and reconcilers built from the
wizard catalog, and an ASGI client wired to memory-backed app state.
"""

from datetime import datetime
from random import Random
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from escrowdesk.gateways.memory import (
    InMemoryEntityGateway,
    InMemorySubResourceGateway,
    InMemoryWorkflowRequestGateway,
)
from escrowdesk.main import app, configure_state
from escrowdesk.services.collection import EditableCollectionReconciler
from escrowdesk.services.draft import Draft
from escrowdesk.services.reference_numbers import ReferenceNumberGenerator
from escrowdesk.services.routes import RecordingStepIndicator
from escrowdesk.services.sessions import GatewayProvider
from escrowdesk.services.wizard import WizardController
from escrowdesk.wizards.guarantee import GUARANTEE
from escrowdesk.wizards.project import PAYMENT_PLAN, PROJECT


PROJECT_OPTIONS = [
    {"id": 11, "reaId": "PRJ-001", "reaCif": "CIF-11", "reaCompletionDate": "2027-06-30"},
    {"id": 12, "reaId": "PRJ-002", "reaCif": "CIF-12", "reaCompletionDate": "2028-01-31"},
]

DEVELOPER_OPTIONS = [
    {"id": 7, "bpName": "Emaar Builders", "bpDeveloperId": "DEV-7", "bpCifrera": "CIF-7"},
    {"id": 8, "bpName": "Sobha Homes", "bpDeveloperId": "DEV-8", "bpCifrera": "CIF-8"},
]

GUARANTEE_VALUES = {
    "guaranteeRefNo": "GUA-20261019-101500-AB12C",
    "guaranteeType": "3",
    "guaranteeDate": "2026-10-01",
    "developerName": "7",
    "guaranteeAmount": "250000.00",
    "issuerBank": "2",
    "guaranteeExpirationDate": "2027-10-01",
}


# ── Gateways ─────────────────────────────────────────────────────

@pytest.fixture
def entity_gateway() -> InMemoryEntityGateway:
    return InMemoryEntityGateway()


@pytest.fixture
def rows_gateway() -> InMemorySubResourceGateway:
    return InMemorySubResourceGateway()


@pytest.fixture
def workflow_gateway() -> InMemoryWorkflowRequestGateway:
    return InMemoryWorkflowRequestGateway()


# ── Core objects ─────────────────────────────────────────────────

@pytest.fixture
def draft() -> Draft:
    return Draft()


@pytest.fixture
def payment_plan(rows_gateway) -> EditableCollectionReconciler:
    """Payment plan reconciler bound to parent 100."""
    return EditableCollectionReconciler(
        rows_gateway,
        PAYMENT_PLAN.schema,
        PAYMENT_PLAN.mapper,
        parent_id=100,
        name=PAYMENT_PLAN.name,
    )


@pytest.fixture
def indicator() -> RecordingStepIndicator:
    return RecordingStepIndicator()


@pytest.fixture
def guarantee_wizard(entity_gateway, workflow_gateway, indicator) -> WizardController:
    controller = WizardController(
        GUARANTEE,
        entity_gateway,
        workflow_gateway=workflow_gateway,
        step_indicator=indicator,
    )
    controller.resolver.set_options("projectName", PROJECT_OPTIONS)
    return controller


@pytest.fixture
def project_wizard(entity_gateway, rows_gateway, workflow_gateway, indicator) -> WizardController:
    collection = EditableCollectionReconciler(
        rows_gateway, PAYMENT_PLAN.schema, PAYMENT_PLAN.mapper, name=PAYMENT_PLAN.name
    )
    controller = WizardController(
        PROJECT,
        entity_gateway,
        collections={PAYMENT_PLAN.name: collection},
        workflow_gateway=workflow_gateway,
        step_indicator=indicator,
    )
    controller.resolver.set_options("developerName", DEVELOPER_OPTIONS)
    return controller


@pytest.fixture
def fill_guarantee():
    """Fill every guarantee detail field through the controller."""
    def fill(controller: WizardController, project: str = "11") -> None:
        for name, value in GUARANTEE_VALUES.items():
            controller.set_field(name, value)
        controller.set_field("projectName", project)
    return fill


@pytest.fixture
def reference_generator() -> ReferenceNumberGenerator:
    return ReferenceNumberGenerator(clock=lambda: datetime(2026, 10, 19, 14, 30, 5), rng=Random(42))


# ── HTTP ─────────────────────────────────────────────────────────

@pytest.fixture
def gateways() -> GatewayProvider:
    return GatewayProvider("memory")


@pytest_asyncio.fixture
async def client(gateways) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client over the app with fresh memory-backed state."""
    configure_state(app, gateways)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
