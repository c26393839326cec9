"""Peer network facade - wires the domain components together from settings"""

import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

from peer_trust.config import Settings, settings as default_settings
from peer_trust.domain.dashboard import build_dashboard
from peer_trust.domain.groups import GroupRegistry
from peer_trust.domain.ledger import InMemoryTransferLedger, TransferLedger
from peer_trust.domain.matching import MatchEngine
from peer_trust.domain.models import (
    Dashboard,
    GroupType,
    MatchRecommendation,
    PaymentDetails,
    PeerGroup,
    Transfer,
    TransferRequest,
)
from peer_trust.domain.orchestrator import AllocationLimits, PairLocks, TransferOrchestrator
from peer_trust.domain.ports import PaymentValidator, ProfileProvider, TransferExecutor
from peer_trust.domain.relationships import RelationshipStore
from peer_trust.domain.risk import CountryPolicy, RiskAssessor, RiskPolicy, allow_all
from peer_trust.infrastructure.observability.logging import log_transfer
from peer_trust.infrastructure.observability.metrics import (
    group_created_counter,
    record_transfer,
    risk_decision_counter,
)
from peer_trust.infrastructure.resilience import RateLimiter, ResilienceGuard, RetryPolicy


def build_guard(config: Settings) -> ResilienceGuard:
    return ResilienceGuard(
        rate_limiter=RateLimiter(config.rate_limit_requests, config.rate_limit_window_seconds),
        retry=RetryPolicy(config.retry_attempts, config.retry_delay_seconds),
        breaker_threshold=config.circuit_breaker_threshold,
        breaker_cooldown_seconds=config.circuit_breaker_cooldown_seconds,
    )


class PeerNetwork:
    """
    Entry point for groups, matching, transfers and dashboards.

    Relationships, groups, the resilience guard and pair locks are process
    state shared by every bound copy; the ledger can be swapped per request
    with bind() so each request writes through its own database session.
    """

    def __init__(
        self,
        profiles: ProfileProvider,
        validator: PaymentValidator,
        executor: TransferExecutor,
        config: Optional[Settings] = None,
        ledger: Optional[TransferLedger] = None,
        relationships: Optional[RelationshipStore] = None,
        groups: Optional[GroupRegistry] = None,
        guard: Optional[ResilienceGuard] = None,
        locks: Optional[PairLocks] = None,
    ):
        self.config = config or default_settings
        self.profiles = profiles
        self.validator = validator
        self.executor = executor
        self.ledger = ledger if ledger is not None else InMemoryTransferLedger()
        self.relationships = relationships if relationships is not None else RelationshipStore()
        self.groups = (
            groups if groups is not None else GroupRegistry(profiles, self.relationships, self.config.vip_min_tier)
        )
        self.guard = guard if guard is not None else build_guard(self.config)
        self.locks = locks if locks is not None else PairLocks()

        self.matcher = MatchEngine(
            self.relationships,
            self.groups,
            self.ledger,
            candidate_pool_size=self.config.candidate_pool_size,
            max_group_matches=self.config.max_group_matches,
        )
        self.assessor = RiskAssessor(
            self.ledger,
            RiskPolicy(
                max_amount=self.config.max_transfer_amount,
                max_transfers_per_hour=self.config.max_transfers_per_hour,
                suspicious_patterns=list(self.config.suspicious_patterns),
                threshold_high=self.config.risk_threshold_high,
                threshold_medium=self.config.risk_threshold_medium,
            ),
            geo_check=self._geo_check(),
        )
        self.orchestrator = TransferOrchestrator(
            self.relationships,
            self.groups,
            self.matcher,
            self.assessor,
            self.ledger,
            self.validator,
            self.executor,
            self.guard,
            self.locks,
            limits=AllocationLimits(
                min_amount=self.config.min_transfer_amount,
                max_amount=self.config.max_transfer_amount,
                customer_daily=self.config.customer_daily_limit,
                customer_monthly=self.config.customer_monthly_limit,
            ),
            executor_timeout=self.config.executor_timeout_seconds,
        )

    def bind(self, ledger: TransferLedger) -> "PeerNetwork":
        """Same network state, different transfer ledger"""
        return PeerNetwork(
            self.profiles,
            self.validator,
            self.executor,
            config=self.config,
            ledger=ledger,
            relationships=self.relationships,
            groups=self.groups,
            guard=self.guard,
            locks=self.locks,
        )

    # Groups

    async def create_group(
        self,
        creator_id: str,
        name: str,
        group_type: GroupType,
        members: Sequence[str] = (),
        rule_overrides: Optional[Mapping[str, Any]] = None,
    ) -> PeerGroup:
        group = await self.groups.create(creator_id, name, group_type, members, rule_overrides)
        group_created_counter.labels(group_type=group.type.value).inc()
        return group

    def get_group(self, group_id: str) -> PeerGroup:
        return self.groups.get(group_id)

    async def add_group_member(self, group_id: str, customer_id: str) -> PeerGroup:
        return await self.groups.add_member(group_id, customer_id)

    async def auto_form_groups(self) -> List[PeerGroup]:
        """Cluster every known profile into geographic, payment and activity groups"""
        profiles = await self.profiles.list_profiles()
        created = await self.groups.auto_form(profiles)
        for group in created:
            group_created_counter.labels(group_type=group.type.value).inc()
        return created

    # Matching and dashboards

    def find_matches(
        self,
        requester_id: str,
        request_type: str,
        amount: float,
        payment_method: str,
        max_results: Optional[int] = None,
    ) -> MatchRecommendation:
        return self.matcher.find_matches(
            requester_id,
            request_type,
            amount,
            payment_method,
            max_results=max_results or self.config.max_peer_matches,
        )

    def dashboard(self, customer_id: str) -> Dashboard:
        return build_dashboard(customer_id, self.relationships, self.groups)

    # Transfers

    async def process_transaction(
        self,
        requester_id: str,
        peer_id: str,
        amount: float,
        payment_method: str,
        details: Optional[PaymentDetails] = None,
        group_id: Optional[str] = None,
        request_id: str = "unknown",
    ) -> Transfer:
        """
        Match, risk-check and execute a transfer.

        The final status is recorded in metrics and logs whether the
        orchestrator returns or raises.
        """
        request = TransferRequest(
            requester_id=requester_id,
            peer_id=peer_id,
            amount=amount,
            payment_method=payment_method,
            details=details or PaymentDetails(),
            group_id=group_id,
        )
        start_time = time.time()
        try:
            return await self.orchestrator.process(request)
        finally:
            self._observe(request.transaction_id, start_time, request_id)

    async def approve_transaction(self, transaction_id: str, request_id: str = "unknown") -> Transfer:
        start_time = time.time()
        try:
            return await self.orchestrator.approve_pending(transaction_id)
        finally:
            self._observe(transaction_id, start_time, request_id, count_risk=False)

    async def cancel_transaction(self, transaction_id: str, request_id: str = "unknown") -> Transfer:
        start_time = time.time()
        try:
            return await self.orchestrator.cancel_pending(transaction_id)
        finally:
            self._observe(transaction_id, start_time, request_id, count_risk=False)

    def get_transaction(self, transaction_id: str) -> Transfer:
        return self.orchestrator.get(transaction_id)

    def health(self) -> Dict[str, Any]:
        return {
            "breakers": self.guard.snapshot(),
            "relationships": len(self.relationships),
            "groups": len(self.groups),
        }

    def _geo_check(self):
        if not self.config.geo_restrictions_enabled:
            return allow_all
        return CountryPolicy(self.config.allowed_countries, self.config.blocked_countries)

    def _observe(self, transaction_id: str, start_time: float, request_id: str, count_risk: bool = True) -> None:
        transfer = self.ledger.get(transaction_id)
        if transfer is None:
            return
        duration_ms = (time.time() - start_time) * 1000
        record_transfer(transfer.status.value, transfer.request.amount)
        if count_risk and transfer.risk is not None:
            risk_decision_counter.labels(decision=transfer.risk.decision.value).inc()
        log_transfer(
            request_id,
            transaction_id,
            transfer.request.requester_id,
            transfer.request.peer_id,
            transfer.status.value,
            transfer.request.amount,
            duration_ms,
        )
