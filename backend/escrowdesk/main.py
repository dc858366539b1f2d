import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from escrowdesk.config import settings
from escrowdesk.middleware.exceptions import register_exception_handlers
from escrowdesk.routers import collections, health, wizard
from escrowdesk.services.labels import LabelCatalog
from escrowdesk.services.reference_numbers import ReferenceNumberGenerator
from escrowdesk.services.sessions import GatewayProvider, SessionRegistry

logger = logging.getLogger("escrowdesk")


def configure_state(app: FastAPI, gateways: GatewayProvider) -> None:
    """Attach the process-wide services the routers depend on."""
    app.state.gateways = gateways
    app.state.sessions = SessionRegistry(gateways, ttl_seconds=settings.session_ttl_seconds)
    app.state.references = ReferenceNumberGenerator()
    app.state.labels = LabelCatalog(default_language=settings.default_language)


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateways = GatewayProvider.from_settings(settings)
    configure_state(app, gateways)
    logger.info(f"EscrowDesk started with {gateways.backend} gateways")
    yield
    await gateways.close()
    logger.info("EscrowDesk stopped")


app = FastAPI(
    title="EscrowDesk",
    description="Escrow administration wizards: drafts, cascading fields and payment plans",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(wizard.router, prefix="/api/wizards", tags=["wizards"])
app.include_router(
    collections.router,
    prefix="/api/wizards/sessions/{session_id}/collections/{name}",
    tags=["collections"],
)
