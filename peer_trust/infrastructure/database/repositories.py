"""Data access layer for the transfer audit trail"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from peer_trust.infrastructure.database.models import PeerTransferRecord, TransferGroupLink
from peer_trust.domain.models import (
    ALLOCATED_STATUSES,
    PaymentDetails,
    RiskAssessment,
    RiskDecision,
    Transfer,
    TransferRequest,
    TransferStatus,
)

ALLOCATED_STATUS_VALUES = [status.value for status in ALLOCATED_STATUSES]


def to_domain(record: PeerTransferRecord) -> Transfer:
    """Rebuild a domain Transfer from its row"""
    risk = None
    if record.risk_decision is not None:
        risk = RiskAssessment(
            score=record.risk_score,
            reasons=list(record.risk_reasons or []),
            decision=RiskDecision(record.risk_decision),
        )

    return Transfer(
        request=TransferRequest(
            requester_id=record.requester_id,
            peer_id=record.peer_id,
            amount=record.amount,
            payment_method=record.payment_method,
            details=PaymentDetails(
                sender_address=record.sender_address,
                recipient_address=record.recipient_address,
                country=record.country,
                note=record.note,
            ),
            transaction_id=record.transaction_id,
            group_id=record.requested_group_id,
        ),
        status=TransferStatus(record.status),
        match_score=record.match_score,
        risk=risk,
        group_ids=[link.group_id for link in record.groups],
        attempts=record.attempts,
        error=record.error,
        executor_reference=record.executor_reference,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class TransferRepository:
    """
    SQL-backed transfer ledger.

    Every save commits, so the audit trail keeps intermediate states even when
    the request that produced them ends in an error.
    """

    def __init__(self, db: Session):
        self.db = db

    def save(self, transfer: Transfer) -> Transfer:
        """Insert or update the row for a transfer"""
        record = self.db.get(PeerTransferRecord, transfer.transaction_id)
        if record is None:
            request = transfer.request
            record = PeerTransferRecord(
                transaction_id=request.transaction_id,
                requester_id=request.requester_id,
                peer_id=request.peer_id,
                amount=request.amount,
                payment_method=request.payment_method,
                sender_address=request.details.sender_address,
                recipient_address=request.details.recipient_address,
                country=request.details.country,
                note=request.details.note,
                requested_group_id=request.group_id,
                created_at=transfer.created_at,
            )
            self.db.add(record)

        record.status = transfer.status.value
        record.match_score = transfer.match_score
        record.attempts = transfer.attempts
        record.error = transfer.error
        record.executor_reference = transfer.executor_reference
        record.updated_at = transfer.updated_at
        if transfer.risk is not None:
            record.risk_score = transfer.risk.score
            record.risk_reasons = list(transfer.risk.reasons)
            record.risk_decision = transfer.risk.decision.value

        linked = [link.group_id for link in record.groups]
        if linked != transfer.group_ids:
            record.groups = [TransferGroupLink(group_id=group_id) for group_id in transfer.group_ids]

        self.db.commit()
        return transfer

    def get(self, transaction_id: str) -> Optional[Transfer]:
        record = self.db.get(PeerTransferRecord, transaction_id)
        return to_domain(record) if record is not None else None

    def allocated_since(self, customer_id: str, since: datetime) -> float:
        """Sum of amounts the customer has committed since a point in time"""
        total = (
            self.db.query(func.coalesce(func.sum(PeerTransferRecord.amount), 0.0))
            .filter(
                PeerTransferRecord.requester_id == customer_id,
                PeerTransferRecord.status.in_(ALLOCATED_STATUS_VALUES),
                PeerTransferRecord.created_at >= since,
            )
            .scalar()
        )
        return float(total)

    def group_volume_since(self, group_id: str, since: datetime) -> float:
        total = (
            self.db.query(func.coalesce(func.sum(PeerTransferRecord.amount), 0.0))
            .join(TransferGroupLink, TransferGroupLink.transaction_id == PeerTransferRecord.transaction_id)
            .filter(
                TransferGroupLink.group_id == group_id,
                PeerTransferRecord.status.in_(ALLOCATED_STATUS_VALUES),
                PeerTransferRecord.created_at >= since,
            )
            .scalar()
        )
        return float(total)

    def count_since(self, customer_id: str, since: datetime, exclude_id: Optional[str] = None) -> int:
        query = self.db.query(func.count(PeerTransferRecord.transaction_id)).filter(
            PeerTransferRecord.requester_id == customer_id,
            PeerTransferRecord.created_at >= since,
        )
        if exclude_id is not None:
            query = query.filter(PeerTransferRecord.transaction_id != exclude_id)
        return int(query.scalar())

    def customers_using_method(self, payment_method: str) -> List[str]:
        """Customers on either side of a completed transfer with this method"""
        rows = (
            self.db.query(PeerTransferRecord.requester_id, PeerTransferRecord.peer_id)
            .filter(
                PeerTransferRecord.payment_method == payment_method,
                PeerTransferRecord.status == TransferStatus.COMPLETED.value,
            )
            .order_by(PeerTransferRecord.created_at)
            .all()
        )
        customers = {}
        for requester_id, peer_id in rows:
            customers[requester_id] = None
            customers[peer_id] = None
        return list(customers)

    def has_used_method(self, customer_id: str, payment_method: str) -> bool:
        return customer_id in self.customers_using_method(payment_method)

