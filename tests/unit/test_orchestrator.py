"""Unit tests for the transfer orchestrator state machine"""

import asyncio
import math

import pytest

from peer_trust.config import Settings
from peer_trust.domain.exceptions import (
    CircuitOpenError,
    ExecutionError,
    LimitExceededError,
    NotFoundError,
    RateLimitedError,
    RiskBlockedError,
    TransferDeclinedError,
    ValidationError,
)
from peer_trust.domain.models import (
    ExecutionResult,
    GroupType,
    PaymentDetails,
    Transfer,
    TransferRequest,
    TransferStatus,
)
from peer_trust.domain.orchestrator import EXECUTOR_OPERATION, PairLocks
from peer_trust.infrastructure.resilience import CircuitState
from peer_trust.network import PeerNetwork


def completed(requester: str, peer: str, amount: float, group_ids=()) -> Transfer:
    return Transfer(
        request=TransferRequest(requester, peer, amount, "venmo"),
        status=TransferStatus.COMPLETED,
        group_ids=list(group_ids),
    )


async def test_successful_transfer_updates_relationship(network: PeerNetwork, executor, validator):
    transfer = await network.process_transaction("alice", "bob", 50, "venmo")

    assert transfer.status == TransferStatus.COMPLETED
    assert transfer.attempts == 1
    assert transfer.executor_reference == f"ref_{transfer.transaction_id}"
    assert transfer.match_score == pytest.approx(65.5)
    assert len(executor.calls) == 1
    assert sorted(validator.calls) == ["alice", "bob"]

    rel = network.relationships.get("bob", "alice")
    assert rel.trust_score == 77
    assert rel.total_transactions == 1
    assert rel.successful_transactions == 1
    assert rel.common_payment_methods == {"venmo"}
    assert network.ledger.get(transfer.transaction_id).status == TransferStatus.COMPLETED


@pytest.mark.parametrize(
    "requester, peer, amount, method",
    [
        ("alice", "bob", 4, "venmo"),
        ("alice", "bob", 5001, "venmo"),
        ("alice", "alice", 50, "venmo"),
        ("alice", "bob", -10, "venmo"),
        ("alice", "bob", math.nan, "venmo"),
        ("alice", "bob", 50, ""),
    ],
)
async def test_invalid_requests_rejected(network: PeerNetwork, executor, requester, peer, amount, method):
    with pytest.raises(ValidationError):
        await network.process_transaction(requester, peer, amount, method)

    assert executor.calls == []
    assert network.relationships.get(requester, peer) is None


async def test_rejected_transfer_is_recorded(network: PeerNetwork, ledger):
    with pytest.raises(ValidationError):
        await network.process_transaction("alice", "bob", 4, "venmo")

    [transfer] = ledger.all()
    assert transfer.status == TransferStatus.REJECTED
    assert "minimum" in transfer.error


async def test_daily_limit(network: PeerNetwork, ledger, executor):
    ledger.save(completed("alice", "carol", 4950))

    await network.process_transaction("alice", "bob", 50, "venmo")
    with pytest.raises(LimitExceededError) as exc:
        await network.process_transaction("alice", "bob", 10, "venmo")

    assert exc.value.limit == "customer_daily"
    assert len(executor.calls) == 1
    assert network.relationships.get("alice", "bob").total_transactions == 1


async def test_limit_checked_before_validation_and_risk(profiles, validator, executor, ledger):
    """1000 allocated against a 1000 cap; a 1200 transfer never reaches the validator"""
    config = Settings(retry_delay_seconds=0.0, customer_daily_limit=1000)
    network = PeerNetwork(profiles, validator, executor, config=config, ledger=ledger)
    ledger.save(completed("alice", "carol", 1000))

    with pytest.raises(LimitExceededError) as exc:
        await network.process_transaction("alice", "bob", 1200, "venmo")

    assert exc.value.limit == "customer_daily"
    assert validator.calls == []
    assert executor.calls == []
    [rejected] = [t for t in ledger.all() if t.request.amount == 1200]
    assert rejected.status == TransferStatus.REJECTED
    assert rejected.risk is None


async def test_monthly_limit(profiles, validator, executor, ledger):
    config = Settings(retry_delay_seconds=0.0, customer_monthly_limit=200)
    network = PeerNetwork(profiles, validator, executor, config=config, ledger=ledger)
    ledger.save(completed("alice", "carol", 150))

    with pytest.raises(LimitExceededError) as exc:
        await network.process_transaction("alice", "bob", 100, "venmo")

    assert exc.value.limit == "customer_monthly"


async def test_group_amount_limits(network: PeerNetwork, executor):
    await network.create_group("alice", "Small", GroupType.TRUST_CIRCLE, ["bob"], {"max_amount": 500})

    with pytest.raises(LimitExceededError) as too_big:
        await network.process_transaction("alice", "bob", 600, "venmo")
    with pytest.raises(LimitExceededError) as too_small:
        await network.process_transaction("alice", "bob", 7, "venmo")

    assert too_big.value.limit == "group_amount"
    assert too_small.value.limit == "group_amount"
    assert executor.calls == []


async def test_group_daily_limit(network: PeerNetwork, ledger):
    group = await network.create_group("alice", "Small", GroupType.TRUST_CIRCLE, ["bob", "erin"], {"daily_limit": 200})
    ledger.save(completed("erin", "bob", 150, group_ids=[group.id]))

    with pytest.raises(LimitExceededError) as exc:
        await network.process_transaction("alice", "bob", 100, "venmo")

    assert exc.value.limit == "group_daily"


async def test_requested_group_must_be_shared(network: PeerNetwork):
    group = await network.create_group("alice", "Pair", GroupType.TRUST_CIRCLE, ["bob"])

    with pytest.raises(ValidationError):
        await network.process_transaction("carol", "dave", 50, "venmo", group_id=group.id)
    with pytest.raises(NotFoundError):
        await network.process_transaction("alice", "bob", 50, "venmo", group_id="peer_group_missing")

    transfer = await network.process_transaction("alice", "bob", 50, "venmo", group_id=group.id)
    assert transfer.group_ids == [group.id]


async def test_shared_group_stats_updated(network: PeerNetwork):
    group = await network.create_group("alice", "Pair", GroupType.TRUST_CIRCLE, ["bob"])

    await network.process_transaction("alice", "bob", 120, "venmo")

    assert group.total_transactions == 1
    assert group.total_volume == 120
    assert group.trust_score == 86


async def test_high_risk_transfer_blocked(network: PeerNetwork, executor):
    with pytest.raises(RiskBlockedError) as exc:
        await network.process_transaction(
            "alice", "bob", 4700, "venmo", PaymentDetails(sender_address="test@example.org")
        )

    assert exc.value.assessment.score == 85
    assert executor.calls == []
    transfer = network.get_transaction(exc.value.transaction_id)
    assert transfer.status == TransferStatus.BLOCKED
    rel = network.relationships.get("alice", "bob")
    assert rel.trust_score == 75
    assert rel.total_transactions == 0


async def test_medium_risk_waits_for_review_then_executes(network: PeerNetwork, executor, validator):
    """4600 (+50) and a medium validator signal (+10) land on 60"""
    validator.levels["bob"] = "medium"

    pending = await network.process_transaction("alice", "bob", 4600, "venmo")

    assert pending.status == TransferStatus.PENDING_MANUAL_REVIEW
    assert pending.risk.score == 60
    assert executor.calls == []

    approved = await network.approve_transaction(pending.transaction_id)

    assert approved.status == TransferStatus.COMPLETED
    assert len(executor.calls) == 1
    assert network.relationships.get("alice", "bob").trust_score == 77

    with pytest.raises(ValidationError):
        await network.approve_transaction(pending.transaction_id)


async def test_pending_transfer_holds_allocation_until_cancelled(network: PeerNetwork, validator):
    validator.levels["bob"] = "medium"
    pending = await network.process_transaction("alice", "bob", 4600, "venmo")
    validator.levels.clear()

    with pytest.raises(LimitExceededError):
        await network.process_transaction("alice", "carol", 500, "venmo")

    cancelled = await network.cancel_transaction(pending.transaction_id)
    assert cancelled.status == TransferStatus.CANCELLED

    transfer = await network.process_transaction("alice", "carol", 500, "venmo")
    assert transfer.status == TransferStatus.COMPLETED

    with pytest.raises(ValidationError):
        await network.cancel_transaction(transfer.transaction_id)


async def test_unknown_transaction(network: PeerNetwork):
    with pytest.raises(NotFoundError):
        await network.approve_transaction("txn_missing")
    with pytest.raises(NotFoundError):
        network.get_transaction("txn_missing")


async def test_executor_decline_is_final(network: PeerNetwork, executor):
    executor.outcomes = [ExecutionResult(success=False, error="insufficient funds")]

    with pytest.raises(TransferDeclinedError) as exc:
        await network.process_transaction("alice", "bob", 50, "venmo")

    assert exc.value.attempts == 1
    assert exc.value.reason == "insufficient funds"
    assert len(executor.calls) == 1
    rel = network.relationships.get("alice", "bob")
    assert rel.trust_score == 70
    assert rel.reliability_score == 82
    assert rel.total_transactions == 1
    [transfer] = network.ledger.all()
    assert transfer.status == TransferStatus.FAILED
    assert transfer.attempts == 1
    assert "insufficient funds" in transfer.error
    breaker = network.guard.breaker(EXECUTOR_OPERATION)
    assert breaker.state == CircuitState.CLOSED
    assert breaker.consecutive_failures == 0


async def test_declines_do_not_open_circuit_for_other_customers(network: PeerNetwork, executor):
    pairs = [
        ("alice", "bob"), ("carol", "dave"), ("frank", "bob"),
        ("alice", "carol"), ("bob", "dave"), ("dave", "frank"),
    ]
    executor.outcomes = [ExecutionResult(success=False, error="declined")] * len(pairs)

    for requester, peer in pairs:
        with pytest.raises(TransferDeclinedError):
            await network.process_transaction(requester, peer, 50, "venmo")

    transfer = await network.process_transaction("erin", "grace", 50, "paypal")

    assert transfer.status == TransferStatus.COMPLETED
    assert len(executor.calls) == len(pairs) + 1
    assert network.guard.breaker(EXECUTOR_OPERATION).state == CircuitState.CLOSED


async def test_executor_outage_after_retries(network: PeerNetwork, executor):
    executor.outcomes = [ExecutionError("connection reset")] * 3

    with pytest.raises(ExecutionError) as exc:
        await network.process_transaction("alice", "bob", 50, "venmo")

    assert exc.value.attempts == 3
    assert len(executor.calls) == 3
    assert network.relationships.get("alice", "bob").trust_score == 70
    [transfer] = network.ledger.all()
    assert transfer.status == TransferStatus.FAILED
    assert transfer.attempts == 3
    assert network.guard.breaker(EXECUTOR_OPERATION).consecutive_failures == 3


async def test_transient_executor_error_retried(network: PeerNetwork, executor):
    executor.outcomes = [ExecutionError("connection reset")]

    transfer = await network.process_transaction("alice", "bob", 50, "venmo")

    assert transfer.status == TransferStatus.COMPLETED
    assert transfer.attempts == 2


async def test_open_circuit_fails_without_calling_executor(network: PeerNetwork, executor):
    breaker = network.guard.breaker(EXECUTOR_OPERATION)
    for _ in range(network.config.circuit_breaker_threshold):
        breaker.record_failure()

    with pytest.raises(CircuitOpenError):
        await network.process_transaction("alice", "bob", 50, "venmo")

    assert executor.calls == []
    assert network.relationships.get("alice", "bob").trust_score == 70
    [transfer] = network.ledger.all()
    assert transfer.status == TransferStatus.FAILED


async def test_rate_limited_transfer_records_no_outcome(profiles, validator, executor, ledger):
    config = Settings(retry_delay_seconds=0.0, rate_limit_requests=1)
    network = PeerNetwork(profiles, validator, executor, config=config, ledger=ledger)

    await network.process_transaction("alice", "bob", 50, "venmo")
    with pytest.raises(RateLimitedError):
        await network.process_transaction("alice", "carol", 50, "venmo")

    rel = network.relationships.get("alice", "carol")
    assert rel.trust_score == 75
    assert rel.total_transactions == 0
    assert len(executor.calls) == 1


async def test_validator_failure_marks_transfer_failed(network: PeerNetwork, validator, executor):
    validator.error = ExecutionError("validator timeout")

    with pytest.raises(ExecutionError):
        await network.process_transaction("alice", "bob", 50, "venmo")

    assert executor.calls == []
    assert network.relationships.get("alice", "bob").total_transactions == 0
    [transfer] = network.ledger.all()
    assert transfer.status == TransferStatus.FAILED


class SlowExecutor:
    """Tracks how many executions overlap"""

    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, request):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return ExecutionResult(success=True, reference="ref")


async def test_same_pair_transfers_serialized(profiles, validator, test_settings):
    executor = SlowExecutor()
    network = PeerNetwork(profiles, validator, executor, config=test_settings)

    results = await asyncio.gather(
        network.process_transaction("alice", "bob", 50, "venmo"),
        network.process_transaction("bob", "alice", 60, "venmo"),
    )

    assert [t.status for t in results] == [TransferStatus.COMPLETED] * 2
    assert executor.max_in_flight == 1
    rel = network.relationships.get("alice", "bob")
    assert rel.total_transactions == 2
    assert rel.trust_score == 79


async def test_different_pairs_run_concurrently(profiles, validator, test_settings):
    executor = SlowExecutor()
    network = PeerNetwork(profiles, validator, executor, config=test_settings)

    await asyncio.gather(
        network.process_transaction("alice", "bob", 50, "venmo"),
        network.process_transaction("carol", "dave", 50, "venmo"),
    )

    assert executor.max_in_flight == 2


async def test_pair_locks_are_unordered():
    locks = PairLocks()

    async with locks.hold("bob", "alice"):
        assert locks.locked("alice", "bob")
    assert not locks.locked("alice", "bob")


async def test_pair_locks_released_when_idle():
    locks = PairLocks()
    entered = asyncio.Event()

    async def holder():
        async with locks.hold("alice", "bob"):
            entered.set()
            await asyncio.sleep(0.01)

    async def waiter():
        await entered.wait()
        async with locks.hold("bob", "alice"):
            assert len(locks) == 1

    await asyncio.gather(holder(), waiter())

    assert len(locks) == 0
    assert not locks.locked("alice", "bob")


async def test_bound_network_shares_pair_locks(network: PeerNetwork, ledger):
    bound = network.bind(ledger)

    assert bound.locks is network.locks
    assert bound.guard is network.guard
