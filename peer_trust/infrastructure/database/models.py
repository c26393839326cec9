"""SQLAlchemy ORM models for the transfer audit trail"""

from sqlalchemy import Column, String, Float, DateTime, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship

from peer_trust.utils.date_utils import utcnow

Base = declarative_base()


class PeerTransferRecord(Base):
    """One transfer and its latest lifecycle state"""

    __tablename__ = "peer_transfer"

    transaction_id = Column(String(64), primary_key=True)
    requester_id = Column(Text, nullable=False, index=True)
    peer_id = Column(Text, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    payment_method = Column(Text, nullable=False, index=True)
    sender_address = Column(Text, nullable=False, default="")
    recipient_address = Column(Text, nullable=False, default="")
    country = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    requested_group_id = Column(Text, nullable=True)
    status = Column(Text, nullable=False, index=True)
    match_score = Column(Float, nullable=True)
    risk_score = Column(Float, nullable=True)
    risk_reasons = Column(JSON, nullable=True)
    risk_decision = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    executor_reference = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    groups = relationship("TransferGroupLink", back_populates="transfer", cascade="all, delete-orphan")


class TransferGroupLink(Base):
    """Group shared by both parties at the time of the transfer"""

    __tablename__ = "peer_transfer_group"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(
        String(64), ForeignKey("peer_transfer.transaction_id", ondelete="CASCADE"), nullable=False
    )
    group_id = Column(Text, nullable=False, index=True)

    transfer = relationship("PeerTransferRecord", back_populates="groups")
