"""Unit tests for risk and fraud assessment"""

from datetime import timedelta

import pytest

from peer_trust.domain.ledger import InMemoryTransferLedger
from peer_trust.domain.models import (
    PaymentDetails,
    RiskDecision,
    Transfer,
    TransferRequest,
    TransferStatus,
    ValidationResult,
)
from peer_trust.domain.risk import CountryPolicy, RiskAssessor, RiskPolicy
from peer_trust.utils.date_utils import utcnow


@pytest.fixture
def assessor(ledger: InMemoryTransferLedger) -> RiskAssessor:
    return RiskAssessor(ledger)


def request(amount: float = 100, sender: str = "alice@venmo", recipient: str = "bob@venmo", country=None):
    return TransferRequest(
        "alice",
        "bob",
        amount,
        "venmo",
        details=PaymentDetails(sender_address=sender, recipient_address=recipient, country=country),
    )


def test_ordinary_transfer_auto_approved(assessor: RiskAssessor):
    assessment = assessor.assess(request())

    assert assessment.score == 0
    assert assessment.reasons == []
    assert assessment.decision == RiskDecision.AUTO_APPROVED


def test_amount_above_eighty_percent(assessor: RiskAssessor):
    assessment = assessor.assess(request(amount=4100))

    assert assessment.score == 20
    assert assessment.decision == RiskDecision.AUTO_APPROVED


def test_amount_above_ninety_percent(assessor: RiskAssessor):
    """4600 > 4500: +20 and +30 = 50, still auto-approved"""
    assessment = assessor.assess(request(amount=4600))

    assert assessment.score == 50
    assert len(assessment.reasons) == 2


def test_suspicious_pattern_is_case_insensitive(assessor: RiskAssessor):
    assessment = assessor.assess(request(recipient="Someone@FAKE.com"))

    assert assessment.score == 35
    assert "fake.com" in assessment.reasons[0]


def test_large_suspicious_transfer_blocked(assessor: RiskAssessor):
    """20 + 30 + 35 = 85 > 80"""
    assessment = assessor.assess(request(amount=4700, sender="test@example.org"))

    assert assessment.score == 85
    assert assessment.decision == RiskDecision.BLOCKED


def test_review_band_boundaries():
    assessor = RiskAssessor(InMemoryTransferLedger())

    assert assessor.decide(59.9) == RiskDecision.AUTO_APPROVED
    assert assessor.decide(60) == RiskDecision.PENDING_MANUAL_REVIEW
    assert assessor.decide(80) == RiskDecision.PENDING_MANUAL_REVIEW
    assert assessor.decide(80.1) == RiskDecision.BLOCKED


def test_velocity_over_hourly_cap(ledger: InMemoryTransferLedger):
    assessor = RiskAssessor(ledger, RiskPolicy(max_transfers_per_hour=3))
    for _ in range(4):
        ledger.save(Transfer(request=request(), status=TransferStatus.COMPLETED))

    assessment = assessor.assess(request())

    assert assessment.score == 40
    assert assessment.reasons == ["Velocity: 4 transfers in the last hour"]


def test_velocity_ignores_old_and_current_transfers(ledger: InMemoryTransferLedger):
    assessor = RiskAssessor(ledger, RiskPolicy(max_transfers_per_hour=1))
    old = Transfer(request=request(), created_at=utcnow() - timedelta(hours=2))
    ledger.save(old)
    current = request()
    ledger.save(Transfer(request=current))

    assert assessor.assess(current).score == 0


def test_geography_restriction(ledger: InMemoryTransferLedger):
    assessor = RiskAssessor(ledger, geo_check=CountryPolicy(allowed=["US", "CA"], blocked=["KP"]))

    assert assessor.assess(request(country="us")).score == 0
    assert assessor.assess(request(country="KP")).score == 50
    assert assessor.assess(request(country="BR")).score == 50


def test_validator_signals_add_risk(assessor: RiskAssessor):
    """medium + high = 35; critical alone = 50"""
    mixed = assessor.assess(request(), [ValidationResult(70, "medium"), ValidationResult(40, "high")])
    critical = assessor.assess(request(), [ValidationResult(95, "low"), ValidationResult(10, "critical")])

    assert mixed.score == 35
    assert critical.score == 50


def test_score_is_clamped(ledger: InMemoryTransferLedger):
    assessor = RiskAssessor(ledger, geo_check=lambda _: False)
    signals = [ValidationResult(0, "critical"), ValidationResult(0, "critical")]

    assessment = assessor.assess(request(amount=4900, sender="spam@x"), signals)

    assert assessment.score == 100
    assert assessment.decision == RiskDecision.BLOCKED
