"""Transfer orchestrator - validates, matches, risk-checks and executes peer transfers"""

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Tuple

from peer_trust.domain.exceptions import (
    LimitExceededError,
    NotFoundError,
    PeerNetworkError,
    RateLimitedError,
    RiskBlockedError,
    TransferDeclinedError,
    ValidationError,
)
from peer_trust.domain.groups import GroupRegistry
from peer_trust.domain.ledger import TransferLedger
from peer_trust.domain.matching import MatchEngine
from peer_trust.domain.models import (
    ExecutionResult,
    PeerGroup,
    RiskDecision,
    Transfer,
    TransferRequest,
    TransferStatus,
    ValidationResult,
    pair_key,
)
from peer_trust.domain.ports import CallGuard, PaymentValidator, TransferExecutor
from peer_trust.domain.relationships import RelationshipStore
from peer_trust.domain.risk import RiskAssessor
from peer_trust.utils.date_utils import start_of_day, start_of_month, utcnow

logger = logging.getLogger(__name__)

EXECUTOR_OPERATION = "transfer_executor"
VALIDATION_CONTEXT = "p2p"


@dataclass
class AllocationLimits:
    """Per-transfer bounds and per-customer cumulative caps"""

    min_amount: float = 5.0
    max_amount: float = 5000.0
    customer_daily: float = 5000.0
    customer_monthly: float = 50000.0


class PairLocks:
    """
    One asyncio.Lock per unordered customer pair.

    A pair's lock lives only while a transfer holds or waits on it; the
    last user out removes it.
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._users: Dict[Tuple[str, str], int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, customer_a: str, customer_b: str) -> AsyncIterator[None]:
        key = pair_key(customer_a, customer_b)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, customer_a: str, customer_b: str) -> bool:
        lock = self._locks.get(pair_key(customer_a, customer_b))
        return lock is not None and lock.locked()


class TransferOrchestrator:
    """
    Drives one transfer through its state machine:

    created -> matched -> risk_checked -> auto_approved | pending_manual_review | blocked
    auto_approved -> executing -> completed | failed

    Validation and limit failures end in rejected; nothing past that point is
    called. Execution outcomes (success or failure) are applied to the pair's
    relationship and to every group the pair shares.
    """

    def __init__(
        self,
        relationships: RelationshipStore,
        groups: GroupRegistry,
        matcher: MatchEngine,
        assessor: RiskAssessor,
        ledger: TransferLedger,
        validator: PaymentValidator,
        executor: TransferExecutor,
        guard: CallGuard,
        locks: PairLocks,
        limits: AllocationLimits | None = None,
        executor_timeout: float | None = None,
    ):
        self.relationships = relationships
        self.groups = groups
        self.matcher = matcher
        self.assessor = assessor
        self.ledger = ledger
        self.validator = validator
        self.executor = executor
        self.guard = guard
        self.locks = locks
        self.limits = limits or AllocationLimits()
        self.executor_timeout = executor_timeout

    def get(self, transaction_id: str) -> Transfer:
        transfer = self.ledger.get(transaction_id)
        if transfer is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transfer

    async def process(self, request: TransferRequest) -> Transfer:
        """
        Run a transfer request end to end.

        Returns the transfer in completed or pending_manual_review state.

        Raises:
            ValidationError: Malformed request
            LimitExceededError: Allocation limit would be exceeded
            RiskBlockedError: Risk score above the blocking threshold
            RateLimitedError, CircuitOpenError, ExecutionError: Execution failed
            TransferDeclinedError: Executor refused the transfer (not retried)
        """
        transfer = Transfer(request=request)
        try:
            self._validate_shape(request)
        except ValidationError as e:
            self._reject(transfer, e)
            raise

        async with self.locks.hold(request.requester_id, request.peer_id):
            self.ledger.save(transfer)

            self.relationships.get_or_create(request.requester_id, request.peer_id)
            score, _ = self.matcher.score_peer(
                request.requester_id, request.peer_id, request.amount, request.payment_method
            )
            transfer.match_score = score
            transfer.transition(TransferStatus.MATCHED)

            try:
                shared = self._shared_groups(request)
                transfer.group_ids = [g.id for g in shared]
                self._check_allocation(request, shared)
            except (ValidationError, NotFoundError, LimitExceededError) as e:
                self._reject(transfer, e)
                raise

            try:
                signals = await self._validate_payment(request)
            except PeerNetworkError as e:
                self._fail(transfer, e)
                raise

            risk = self.assessor.assess(request, signals)
            transfer.risk = risk
            transfer.transition(TransferStatus.RISK_CHECKED)
            decision = risk.decision

            if decision == RiskDecision.BLOCKED:
                transfer.transition(TransferStatus.BLOCKED)
                self.ledger.save(transfer)
                logger.warning(
                    "Transfer blocked by risk assessment",
                    extra={
                        "step": "risk_blocked",
                        "transaction_id": transfer.transaction_id,
                        "risk_score": risk.score,
                        "reasons": risk.reasons,
                    },
                )
                raise RiskBlockedError(transfer.transaction_id, risk)

            if decision == RiskDecision.PENDING_MANUAL_REVIEW:
                transfer.transition(TransferStatus.PENDING_MANUAL_REVIEW)
                self.ledger.save(transfer)
                logger.info(
                    "Transfer queued for manual review",
                    extra={
                        "step": "manual_review",
                        "transaction_id": transfer.transaction_id,
                        "risk_score": risk.score,
                    },
                )
                return transfer

            transfer.transition(TransferStatus.AUTO_APPROVED)
            self.ledger.save(transfer)
            return await self._execute(transfer, shared)

    async def approve_pending(self, transaction_id: str) -> Transfer:
        """Execute a transfer a reviewer approved"""
        transfer = self.get(transaction_id)
        request = transfer.request
        async with self.locks.hold(request.requester_id, request.peer_id):
            transfer = self.get(transaction_id)
            if transfer.status != TransferStatus.PENDING_MANUAL_REVIEW:
                raise ValidationError(
                    f"Transaction {transaction_id} is {transfer.status.value}, not pending review"
                )
            shared = [self.groups.get(group_id) for group_id in transfer.group_ids]
            transfer.transition(TransferStatus.AUTO_APPROVED)
            self.ledger.save(transfer)
            return await self._execute(transfer, shared)

    async def cancel_pending(self, transaction_id: str) -> Transfer:
        """Cancel a transfer still waiting for manual review"""
        transfer = self.get(transaction_id)
        request = transfer.request
        async with self.locks.hold(request.requester_id, request.peer_id):
            transfer = self.get(transaction_id)
            if transfer.status != TransferStatus.PENDING_MANUAL_REVIEW:
                raise ValidationError(
                    f"Transaction {transaction_id} is {transfer.status.value} and cannot be cancelled"
                )
            transfer.transition(TransferStatus.CANCELLED)
            self.ledger.save(transfer)
            return transfer

    def _validate_shape(self, request: TransferRequest) -> None:
        if not request.requester_id or not request.peer_id:
            raise ValidationError("Requester and peer are required")
        if request.requester_id == request.peer_id:
            raise ValidationError("Requester and peer must differ")
        if not request.payment_method:
            raise ValidationError("Payment method is required")
        if not isinstance(request.amount, (int, float)) or not math.isfinite(request.amount):
            raise ValidationError("Amount must be a finite number")
        if request.amount <= 0:
            raise ValidationError("Amount must be positive")
        if request.amount < self.limits.min_amount:
            raise ValidationError(f"Amount is below the minimum of {self.limits.min_amount}")
        if request.amount > self.limits.max_amount:
            raise ValidationError(f"Amount is above the maximum of {self.limits.max_amount}")

    def _shared_groups(self, request: TransferRequest) -> List[PeerGroup]:
        shared = self.groups.shared_groups(request.requester_id, request.peer_id)
        if request.group_id is not None:
            group = self.groups.get(request.group_id)
            if group not in shared:
                raise ValidationError(f"Both parties must be members of group {request.group_id}")
        return shared

    def _check_allocation(self, request: TransferRequest, shared: List[PeerGroup]) -> None:
        now = utcnow()
        amount = request.amount

        daily = self.ledger.allocated_since(request.requester_id, start_of_day(now))
        if daily + amount > self.limits.customer_daily:
            raise LimitExceededError(
                "customer_daily",
                f"Daily limit of {self.limits.customer_daily} would be exceeded ({daily} allocated)",
            )

        monthly = self.ledger.allocated_since(request.requester_id, start_of_month(now))
        if monthly + amount > self.limits.customer_monthly:
            raise LimitExceededError(
                "customer_monthly",
                f"Monthly limit of {self.limits.customer_monthly} would be exceeded ({monthly} allocated)",
            )

        for group in shared:
            rules = group.rules
            if not rules.min_amount <= amount <= rules.max_amount:
                raise LimitExceededError(
                    "group_amount",
                    f"Amount {amount} outside group {group.id} limits {rules.min_amount}-{rules.max_amount}",
                )
            volume = self.ledger.group_volume_since(group.id, start_of_day(now))
            if volume + amount > rules.daily_limit:
                raise LimitExceededError(
                    "group_daily",
                    f"Group {group.id} daily limit of {rules.daily_limit} would be exceeded",
                )

    async def _validate_payment(self, request: TransferRequest) -> List[ValidationResult]:
        return list(
            await asyncio.gather(
                self.validator.validate(
                    request.requester_id,
                    request.payment_method,
                    request.details.sender_address,
                    request.amount,
                    VALIDATION_CONTEXT,
                ),
                self.validator.validate(
                    request.peer_id,
                    request.payment_method,
                    request.details.recipient_address,
                    request.amount,
                    VALIDATION_CONTEXT,
                ),
            )
        )

    async def _execute(self, transfer: Transfer, shared: List[PeerGroup]) -> Transfer:
        request = transfer.request
        transfer.transition(TransferStatus.EXECUTING)
        self.ledger.save(transfer)

        attempts = 0

        async def execute_once() -> ExecutionResult:
            nonlocal attempts
            attempts += 1
            result = await self.executor.execute(request)
            if not result.success:
                raise TransferDeclinedError(result.error or "no reason given", attempts=attempts)
            return result

        try:
            result = await self.guard.call(
                EXECUTOR_OPERATION,
                execute_once,
                rate_key=request.requester_id,
                timeout=self.executor_timeout,
            )
        except RateLimitedError as e:
            self._fail(transfer, e)
            raise
        except PeerNetworkError as e:
            transfer.attempts = attempts
            self._fail(transfer, e)
            self._record_outcome(request, shared, success=False)
            raise

        transfer.attempts = attempts
        transfer.executor_reference = result.reference
        transfer.transition(TransferStatus.COMPLETED)
        self.ledger.save(transfer)
        self._record_outcome(request, shared, success=True)
        return transfer

    def _record_outcome(self, request: TransferRequest, shared: List[PeerGroup], success: bool) -> None:
        self.relationships.record_outcome(
            request.requester_id,
            request.peer_id,
            request.amount,
            success,
            payment_method=request.payment_method,
        )
        for group in shared:
            self.groups.record_outcome(group.id, request.amount, success)

    def _reject(self, transfer: Transfer, error: Exception) -> None:
        transfer.error = str(error)
        transfer.transition(TransferStatus.REJECTED)
        self.ledger.save(transfer)

    def _fail(self, transfer: Transfer, error: Exception) -> None:
        transfer.error = str(error)
        transfer.transition(TransferStatus.FAILED)
        self.ledger.save(transfer)
