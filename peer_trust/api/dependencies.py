"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from peer_trust.infrastructure.database.repositories import TransferRepository
from peer_trust.infrastructure.database.session import get_db
from peer_trust.network import PeerNetwork


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_network(request: Request, db: Session = Depends(get_db)) -> PeerNetwork:
    """Process-wide peer network bound to this request's database session"""
    return request.app.state.network.bind(TransferRepository(db))
