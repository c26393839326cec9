"""Risk & fraud assessment for proposed transfers"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

from peer_trust.domain.ledger import TransferLedger
from peer_trust.domain.models import (
    RiskAssessment,
    RiskDecision,
    TransferRequest,
    ValidationResult,
    clamp_score,
)
from peer_trust.utils.date_utils import minutes_ago, utcnow

# Geography check: returns True when the request passes
GeoCheck = Callable[[TransferRequest], bool]

VELOCITY_WINDOW_MINUTES = 60

# Risk added per validator risk level (per party)
VALIDATOR_RISK_WEIGHTS = {"medium": 10.0, "high": 25.0, "critical": 50.0}


def allow_all(request: TransferRequest) -> bool:
    return True


class CountryPolicy:
    """Geography check against allowed and blocked country codes"""

    def __init__(self, allowed: Sequence[str] = (), blocked: Sequence[str] = ()):
        self.allowed = {c.upper() for c in allowed}
        self.blocked = {c.upper() for c in blocked}

    def __call__(self, request: TransferRequest) -> bool:
        country = (request.details.country or "").upper()
        if not country:
            return not self.allowed
        if country in self.blocked:
            return False
        return not self.allowed or country in self.allowed


@dataclass
class RiskPolicy:
    """Thresholds and weights for risk scoring"""

    max_amount: float = 5000.0
    max_transfers_per_hour: int = 15
    suspicious_patterns: List[str] = field(default_factory=lambda: ["test@", "fake.com", "spam"])
    threshold_high: float = 80.0
    threshold_medium: float = 60.0


class RiskAssessor:
    """Additive risk scoring; score is clamped to 0-100 after all factors"""

    def __init__(
        self,
        ledger: TransferLedger,
        policy: Optional[RiskPolicy] = None,
        geo_check: GeoCheck = allow_all,
    ):
        self.ledger = ledger
        self.policy = policy or RiskPolicy()
        self.geo_check = geo_check

    def assess(
        self,
        request: TransferRequest,
        signals: Iterable[ValidationResult] = (),
    ) -> RiskAssessment:
        """
        Score a transfer request.

        Factors:
        - Amount above 80% of max: +20, above 90%: +30 more
        - Transfers in the last 60 minutes above the hourly cap: +40
        - Geography check fails: +50
        - Sender or recipient address matches a suspicious pattern: +35
        - Payment validator risk level per party: medium +10, high +25, critical +50
        """
        policy = self.policy
        score = 0.0
        reasons: List[str] = []

        if request.amount > policy.max_amount * 0.8:
            score += 20
            reasons.append("Amount above 80% of maximum")
            if request.amount > policy.max_amount * 0.9:
                score += 30
                reasons.append("Amount above 90% of maximum")

        recent = self.ledger.count_since(
            request.requester_id,
            minutes_ago(utcnow(), VELOCITY_WINDOW_MINUTES),
            exclude_id=request.transaction_id,
        )
        if recent > policy.max_transfers_per_hour:
            score += 40
            reasons.append(f"Velocity: {recent} transfers in the last hour")

        if not self.geo_check(request):
            score += 50
            reasons.append("Geographic restriction")

        pattern = self._suspicious_pattern(request)
        if pattern:
            score += 35
            reasons.append(f"Suspicious address pattern: {pattern}")

        for signal in signals:
            weight = VALIDATOR_RISK_WEIGHTS.get(signal.risk_level)
            if weight:
                score += weight
                reasons.append(f"Payment validator risk: {signal.risk_level}")

        score = clamp_score(score)
        return RiskAssessment(score=score, reasons=reasons, decision=self.decide(score))

    def decide(self, score: float) -> RiskDecision:
        if score > self.policy.threshold_high:
            return RiskDecision.BLOCKED
        if score >= self.policy.threshold_medium:
            return RiskDecision.PENDING_MANUAL_REVIEW
        return RiskDecision.AUTO_APPROVED

    def _suspicious_pattern(self, request: TransferRequest) -> Optional[str]:
        addresses = (request.details.sender_address.lower(), request.details.recipient_address.lower())
        for pattern in self.policy.suspicious_patterns:
            needle = pattern.lower()
            if needle and any(needle in address for address in addresses):
                return pattern
        return None
