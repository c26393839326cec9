"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from peer_trust.domain.models import GroupType, PeerGroup, PeerRelationship, Transfer


class GroupCreateRequest(BaseModel):
    """Request body for POST /v1/groups"""

    creator_id: str = Field(..., min_length=1, description="Customer creating the group")
    name: str = Field(..., min_length=1, description="Group display name")
    type: GroupType
    members: List[str] = Field(default_factory=list, description="Initial members besides the creator")
    rules: Optional[Dict[str, Any]] = Field(None, description="Overrides on the type's default rules")


class MemberAddRequest(BaseModel):
    """Request body for POST /v1/groups/{group_id}/members"""

    customer_id: str = Field(..., min_length=1)


class GroupRulesSchema(BaseModel):
    min_trust_score: float
    max_members: int
    allowed_payment_methods: List[str]
    min_amount: float
    max_amount: float
    daily_limit: float
    vip_only: bool
    auto_approval_threshold: float
    require_verification: bool
    escrow_required: bool


class GroupResponse(BaseModel):
    """Peer group with its rules and running stats"""

    group_id: str
    name: str
    type: GroupType
    creator_id: str
    members: List[str]
    member_count: int
    rules: GroupRulesSchema
    trust_score: float
    total_transactions: int
    total_volume: float
    success_rate: float
    common_payment_methods: List[str]
    created_at: str


class AutoFormResponse(BaseModel):
    """Response for POST /v1/groups/auto-form"""

    created: List[GroupResponse]


class PeerMatchSchema(BaseModel):
    peer_id: str
    match_score: float
    reasons: List[str]
    estimated_response_time: float
    common_history: int
    trust_score: float
    preferred_method: str


class GroupMatchSchema(BaseModel):
    group_id: str
    group_name: str
    match_score: float
    member_count: int
    success_rate: float


class MatchResponse(BaseModel):
    """Response for GET /v1/matches"""

    requester_id: str
    request_type: str
    peers: List[PeerMatchSchema]
    groups: List[GroupMatchSchema]


class TransferCreateRequest(BaseModel):
    """Request body for POST /v1/transactions"""

    requester_id: str = Field(..., min_length=1)
    peer_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, description="Transfer amount in dollars")
    payment_method: str = Field(..., min_length=1)
    sender_address: str = ""
    recipient_address: str = ""
    country: Optional[str] = Field(None, description="ISO country code of the transfer")
    note: Optional[str] = None
    group_id: Optional[str] = Field(None, description="Group both parties must belong to")


class RiskSchema(BaseModel):
    score: float
    reasons: List[str]
    decision: str


class TransferResponse(BaseModel):
    """Transfer record and its current status"""

    transaction_id: str
    status: str
    requester_id: str
    peer_id: str
    amount: float
    payment_method: str
    match_score: Optional[float] = None
    risk: Optional[RiskSchema] = None
    group_ids: List[str]
    attempts: int
    error: Optional[str] = None
    executor_reference: Optional[str] = None
    created_at: str
    updated_at: str


class RelationshipSchema(BaseModel):
    peer_id: str
    trust_score: float
    total_transactions: int
    successful_transactions: int
    total_volume: float
    average_amount: float
    reliability_score: float
    response_time_minutes: float
    common_payment_methods: List[str]
    last_transaction_at: Optional[str] = None


class NetworkStatsSchema(BaseModel):
    total_peers: int
    average_trust_score: float
    total_transactions: int
    success_rate: float
    network_strength: float


class RecommendationsSchema(BaseModel):
    suggested_peers: List[str]
    suggested_groups: List[str]
    improvement_actions: List[str]


class DashboardResponse(BaseModel):
    """Response for GET /v1/dashboard/{customer_id}"""

    customer_id: str
    relationships: List[RelationshipSchema]
    groups: List[GroupResponse]
    network_stats: NetworkStatsSchema
    recommendations: RecommendationsSchema


def group_response(group: PeerGroup) -> GroupResponse:
    rules = group.rules
    return GroupResponse(
        group_id=group.id,
        name=group.name,
        type=group.type,
        creator_id=group.creator_id,
        members=list(group.members),
        member_count=group.member_count,
        rules=GroupRulesSchema(
            min_trust_score=rules.min_trust_score,
            max_members=rules.max_members,
            allowed_payment_methods=list(rules.allowed_payment_methods),
            min_amount=rules.min_amount,
            max_amount=rules.max_amount,
            daily_limit=rules.daily_limit,
            vip_only=rules.vip_only,
            auto_approval_threshold=rules.auto_approval_threshold,
            require_verification=rules.require_verification,
            escrow_required=rules.escrow_required,
        ),
        trust_score=group.trust_score,
        total_transactions=group.total_transactions,
        total_volume=group.total_volume,
        success_rate=group.success_rate,
        common_payment_methods=list(group.common_payment_methods),
        created_at=group.created_at.isoformat(),
    )


def transfer_response(transfer: Transfer) -> TransferResponse:
    request = transfer.request
    risk = None
    if transfer.risk is not None:
        risk = RiskSchema(
            score=transfer.risk.score,
            reasons=list(transfer.risk.reasons),
            decision=transfer.risk.decision.value,
        )
    return TransferResponse(
        transaction_id=transfer.transaction_id,
        status=transfer.status.value,
        requester_id=request.requester_id,
        peer_id=request.peer_id,
        amount=request.amount,
        payment_method=request.payment_method,
        match_score=transfer.match_score,
        risk=risk,
        group_ids=list(transfer.group_ids),
        attempts=transfer.attempts,
        error=transfer.error,
        executor_reference=transfer.executor_reference,
        created_at=transfer.created_at.isoformat(),
        updated_at=transfer.updated_at.isoformat(),
    )


def relationship_schema(customer_id: str, rel: PeerRelationship) -> RelationshipSchema:
    return RelationshipSchema(
        peer_id=rel.other(customer_id),
        trust_score=rel.trust_score,
        total_transactions=rel.total_transactions,
        successful_transactions=rel.successful_transactions,
        total_volume=rel.total_volume,
        average_amount=rel.average_amount,
        reliability_score=rel.reliability_score,
        response_time_minutes=rel.response_time_minutes,
        common_payment_methods=sorted(rel.common_payment_methods),
        last_transaction_at=rel.last_transaction_at.isoformat() if rel.last_transaction_at else None,
    )
