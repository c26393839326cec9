"""Structured JSON logging for the peer trust gateway"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from peer_trust.config import settings

LOG_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"

# Set per HTTP request by RequestIDMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds timestamp, level, service and the current request ID to every record"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name
        log_record.setdefault("request_id", request_id_var.get())


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter(LOG_FORMAT))
    root.addHandler(handler)

    # httpx logs every request at INFO; collaborator calls are covered by our own logs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_transfer(
    request_id: str,
    transaction_id: str,
    requester_id: str,
    peer_id: str,
    status: str,
    amount: float,
    duration_ms: float,
) -> None:
    """One line per transfer request with its resulting status"""
    logging.info(
        f"Transfer {transaction_id} {status}",
        extra={
            "request_id": request_id,
            "transaction_id": transaction_id,
            "requester_id": requester_id,
            "peer_id": peer_id,
            "step": "transfer_complete",
            "status": status,
            "amount": amount,
            "duration_ms": round(duration_ms, 2),
        },
    )
