"""Mapping from domain exceptions to HTTP errors"""

import logging
import math
from fastapi import HTTPException

from peer_trust.domain.exceptions import (
    CircuitOpenError,
    ExecutionError,
    InsufficientTrustError,
    LimitExceededError,
    NotFoundError,
    PeerNetworkError,
    RateLimitedError,
    RiskBlockedError,
    TransferDeclinedError,
    ValidationError,
    VipRequiredError,
)

STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (InsufficientTrustError, 403),
    (VipRequiredError, 403),
    (RiskBlockedError, 403),
    (TransferDeclinedError, 422),
    (LimitExceededError, 409),
    (RateLimitedError, 429),
    (CircuitOpenError, 503),
    (ExecutionError, 502),
]


def to_http_exception(error: PeerNetworkError, request_id: str) -> HTTPException:
    """Translate a domain error into the HTTPException a route raises"""
    status_code = next((code for cls, code in STATUS_CODES if isinstance(error, cls)), 500)
    detail: object = str(error)
    headers = None

    if isinstance(error, RiskBlockedError):
        detail = {
            "message": str(error),
            "transaction_id": error.transaction_id,
            "risk_score": error.assessment.score,
            "reasons": error.assessment.reasons,
        }
    elif isinstance(error, TransferDeclinedError):
        detail = {"message": str(error), "reason": error.reason}
    elif isinstance(error, LimitExceededError):
        detail = {"message": str(error), "limit": error.limit}
    elif isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(math.ceil(error.retry_after))}

    log = logging.warning if status_code < 500 else logging.error
    log(f"{type(error).__name__}: {error}", extra={"request_id": request_id, "status_code": status_code})
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def internal_error(error: Exception, request_id: str) -> HTTPException:
    logging.error(f"Unexpected error: {error}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
