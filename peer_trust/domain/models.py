"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set, Tuple

from peer_trust.utils.date_utils import utcnow

DEFAULT_TRUST_SCORE = 75.0
DEFAULT_RELIABILITY_SCORE = 85.0
DEFAULT_RESPONSE_TIME_MINUTES = 45.0


def clamp_score(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(value, high))


def pair_key(customer_a: str, customer_b: str) -> Tuple[str, str]:
    """Canonical key for an unordered customer pair"""
    return (customer_a, customer_b) if customer_a <= customer_b else (customer_b, customer_a)


@dataclass
class PeerRelationship:
    """Trust relationship between two customers (unordered pair)"""

    customer_a: str
    customer_b: str
    trust_score: float = DEFAULT_TRUST_SCORE
    total_transactions: int = 0
    successful_transactions: int = 0
    total_volume: float = 0.0
    average_amount: float = 0.0
    response_time_minutes: float = DEFAULT_RESPONSE_TIME_MINUTES
    reliability_score: float = DEFAULT_RELIABILITY_SCORE
    common_payment_methods: Set[str] = field(default_factory=set)
    last_transaction_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    archived: bool = False

    def __post_init__(self):
        self.customer_a, self.customer_b = pair_key(self.customer_a, self.customer_b)
        self.trust_score = clamp_score(self.trust_score)
        self.reliability_score = clamp_score(self.reliability_score)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.customer_a, self.customer_b)

    @property
    def success_rate(self) -> float:
        if self.total_transactions == 0:
            return 0.0
        return self.successful_transactions / self.total_transactions

    def involves(self, customer_id: str) -> bool:
        return customer_id in self.key

    def other(self, customer_id: str) -> str:
        return self.customer_b if customer_id == self.customer_a else self.customer_a


class GroupType(str, Enum):
    TRUST_CIRCLE = "trust_circle"
    PAYMENT_CIRCLE = "payment_circle"
    GEOGRAPHIC = "geographic"
    INTEREST_BASED = "interest_based"
    VIP_NETWORK = "vip_network"


@dataclass
class GroupRules:
    """Admission and transaction rules for a peer group"""

    min_trust_score: float = 70.0
    max_members: int = 50
    allowed_payment_methods: List[str] = field(
        default_factory=lambda: ["venmo", "cashapp", "paypal", "zelle"]
    )
    min_amount: float = 10.0
    max_amount: float = 1000.0
    daily_limit: float = 5000.0
    vip_only: bool = False
    auto_approval_threshold: float = 100.0  # transfers under this amount auto-approve
    require_verification: bool = True
    escrow_required: bool = True


@dataclass
class PeerGroup:
    """Named, rule-bound pool of customers eligible to match with each other"""

    id: str
    name: str
    type: GroupType
    rules: GroupRules
    creator_id: str
    members: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    trust_score: float = 85.0
    total_transactions: int = 0
    total_volume: float = 0.0
    success_rate: float = 1.0
    activity_score: float = 100.0
    common_payment_methods: List[str] = field(default_factory=list)

    @property
    def member_count(self) -> int:
        return len(self.members)

    def has_member(self, customer_id: str) -> bool:
        return customer_id in self.members

    def accepts_method(self, payment_method: str) -> bool:
        return (
            payment_method in self.common_payment_methods
            or payment_method in self.rules.allowed_payment_methods
        )


@dataclass
class CustomerProfile:
    """Customer profile from the external profile provider"""

    customer_id: str
    trust_score: float
    vip_tier: int = 0
    region: Optional[str] = None
    payment_methods: List[str] = field(default_factory=list)
    total_transactions: int = 0


@dataclass
class PaymentDetails:
    """Payment addressing for a transfer"""

    sender_address: str = ""
    recipient_address: str = ""
    country: Optional[str] = None
    note: Optional[str] = None


def generate_transaction_id() -> str:
    return f"txn_{uuid.uuid4().hex}"


@dataclass
class TransferRequest:
    """Single match-and-execute request"""

    requester_id: str
    peer_id: str
    amount: float
    payment_method: str
    details: PaymentDetails = field(default_factory=PaymentDetails)
    transaction_id: str = field(default_factory=generate_transaction_id)
    group_id: Optional[str] = None


class TransferStatus(str, Enum):
    CREATED = "created"
    MATCHED = "matched"
    RISK_CHECKED = "risk_checked"
    AUTO_APPROVED = "auto_approved"
    PENDING_MANUAL_REVIEW = "pending_manual_review"
    BLOCKED = "blocked"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses whose amount counts against allocation limits
ALLOCATED_STATUSES = frozenset(
    {
        TransferStatus.AUTO_APPROVED,
        TransferStatus.PENDING_MANUAL_REVIEW,
        TransferStatus.EXECUTING,
        TransferStatus.COMPLETED,
    }
)


class RiskDecision(str, Enum):
    AUTO_APPROVED = "auto_approved"
    PENDING_MANUAL_REVIEW = "pending_manual_review"
    BLOCKED = "blocked"


@dataclass
class RiskAssessment:
    """Output of risk assessment"""

    score: float
    reasons: List[str]
    decision: RiskDecision


@dataclass
class ValidationResult:
    """Payment validator verdict; treated as a risk signal"""

    validation_score: float
    risk_level: str  # "low", "medium", "high" or "critical"


@dataclass
class ExecutionResult:
    """Transfer executor response"""

    success: bool
    error: Optional[str] = None
    reference: Optional[str] = None


@dataclass
class Transfer:
    """Transaction record for one transfer through its lifecycle"""

    request: TransferRequest
    status: TransferStatus = TransferStatus.CREATED
    match_score: Optional[float] = None
    risk: Optional[RiskAssessment] = None
    group_ids: List[str] = field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None
    executor_reference: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def transaction_id(self) -> str:
        return self.request.transaction_id

    def transition(self, status: TransferStatus) -> None:
        self.status = status
        self.updated_at = utcnow()


@dataclass
class PeerMatch:
    """Scored candidate counterparty"""

    peer_id: str
    match_score: float
    reasons: List[str]
    estimated_response_time: float
    common_history: int
    trust_score: float
    preferred_method: str


@dataclass
class GroupMatch:
    """Scored candidate group"""

    group_id: str
    group_name: str
    match_score: float
    member_count: int
    success_rate: float


@dataclass
class MatchRecommendation:
    requester_id: str
    request_type: str
    peers: List[PeerMatch]
    groups: List[GroupMatch]


@dataclass
class NetworkStats:
    total_peers: int
    average_trust_score: float
    total_transactions: int
    success_rate: float
    network_strength: float


@dataclass
class Recommendations:
    suggested_peers: List[str]
    suggested_groups: List[str]
    improvement_actions: List[str]


@dataclass
class Dashboard:
    """Customer's view of their peer network"""

    customer_id: str
    relationships: List[PeerRelationship]
    groups: List[PeerGroup]
    network_stats: NetworkStats
    recommendations: Recommendations
