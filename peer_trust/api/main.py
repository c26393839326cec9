"""FastAPI application factory"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from peer_trust.api.middleware import RequestIDMiddleware, MetricsMiddleware
from peer_trust.api.v1 import dashboard, groups, matches, transactions
from peer_trust.infrastructure.clients.executor import TransferExecutorClient
from peer_trust.infrastructure.clients.profiles import ProfileClient
from peer_trust.infrastructure.clients.validator import PaymentValidatorClient
from peer_trust.infrastructure.database.models import Base
from peer_trust.infrastructure.database.session import engine
from peer_trust.infrastructure.observability.logging import setup_logging
from peer_trust.network import PeerNetwork
from peer_trust.config import settings

setup_logging(settings.log_level)


def build_network() -> PeerNetwork:
    """Peer network backed by the HTTP collaborators from settings"""
    return PeerNetwork(
        profiles=ProfileClient(),
        validator=PaymentValidatorClient(),
        executor=TransferExecutorClient(),
        config=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


def create_app(network: Optional[PeerNetwork] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Peer Trust Gateway",
        description="Peer trust network, group matching and resilient P2P transfers",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.network = network or build_network()

    # Last added runs first
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name, **app.state.network.health()}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(groups.router, prefix="/v1", tags=["groups"])
    app.include_router(matches.router, prefix="/v1", tags=["matches"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(dashboard.router, prefix="/v1", tags=["dashboard"])

    return app


app = create_app()
