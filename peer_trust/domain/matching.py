"""Match scoring engine - ranks candidate peers and groups for a transfer"""

from typing import Dict, List, Tuple

from peer_trust.domain.groups import GroupRegistry
from peer_trust.domain.ledger import TransferLedger
from peer_trust.domain.models import (
    GroupMatch,
    MatchRecommendation,
    PeerGroup,
    PeerMatch,
    clamp_score,
)
from peer_trust.domain.relationships import RelationshipStore

BASE_SCORE = 50.0
PEER_MATCH_THRESHOLD = 50.0
GROUP_MATCH_THRESHOLD = 60.0
GROUP_ACTIVITY_THRESHOLD = 70.0

# Fallbacks when a candidate has no relationship with the requester
DEFAULT_RESPONSE_TIME = 45.0
DEFAULT_CANDIDATE_TRUST = 70.0


def score_group(group: PeerGroup, amount: float, payment_method: str) -> float:
    """
    Score a group's suitability for a transfer.

    - Group trust: (trust - 50) * 0.3
    - Success rate: (rate - 0.5) * 50
    - Size sweet spot (between 5 and 30 members, exclusive): +15
    - Payment method accepted by the group: +10
    - Amount inside the group's transaction limits: +10
    """
    score = BASE_SCORE
    score += (group.trust_score - 50) * 0.3
    score += (group.success_rate - 0.5) * 50

    if 5 < group.member_count < 30:
        score += 15
    if group.accepts_method(payment_method):
        score += 10
    if group.rules.min_amount <= amount <= group.rules.max_amount:
        score += 10

    return clamp_score(score)


class MatchEngine:
    """Read-only scoring over the relationship store, groups and ledger"""

    def __init__(
        self,
        relationships: RelationshipStore,
        groups: GroupRegistry,
        ledger: TransferLedger,
        candidate_pool_size: int = 50,
        max_group_matches: int = 5,
    ):
        self.relationships = relationships
        self.groups = groups
        self.ledger = ledger
        self.candidate_pool_size = candidate_pool_size
        self.max_group_matches = max_group_matches

    def score_peer(
        self,
        requester_id: str,
        candidate_id: str,
        amount: float,
        payment_method: str,
    ) -> Tuple[float, List[str]]:
        """
        Score a candidate counterparty from 0 to 100 with audit reasons.

        Starts at 50 and adds trust, history, success rate, payment method,
        response time, shared group and amount-fit components.
        """
        score = BASE_SCORE
        reasons: List[str] = []

        rel = self.relationships.get(requester_id, candidate_id)
        if rel is not None and not rel.archived:
            score += (rel.trust_score - 50) * 0.5
            reasons.append(f"Trust score: {rel.trust_score:.0f}/100")

            if rel.total_transactions > 0:
                score += min(rel.total_transactions * 2, 20)
                reasons.append(f"Transaction history: {rel.total_transactions} transactions")

                score += (rel.success_rate - 0.5) * 40
                reasons.append(f"Success rate: {round(rel.success_rate * 100)}%")

            if payment_method in rel.common_payment_methods:
                score += 15
                reasons.append(f"Common payment method: {payment_method}")

            score += max(0.0, 60 - rel.response_time_minutes) * 0.2
            reasons.append(f"Average response time: {rel.response_time_minutes:.0f} minutes")

        shared = self.groups.shared_groups(requester_id, candidate_id)
        if shared:
            score += 5 * len(shared)
            reasons.append(f"Common peer groups: {len(shared)}")

        if rel is not None and rel.average_amount > 0:
            if abs(amount - rel.average_amount) / rel.average_amount < 0.5:
                score += 10
                reasons.append("Amount matches historical average")

        return clamp_score(score), reasons

    def candidates(self, requester_id: str, payment_method: str) -> List[str]:
        """Fellow group members, then customers using the same method; capped"""
        pool: Dict[str, None] = {}
        for group in self.groups.groups_of(requester_id):
            for member in group.members:
                pool[member] = None

        if self.ledger.has_used_method(requester_id, payment_method):
            for customer in self.ledger.customers_using_method(payment_method):
                pool[customer] = None

        pool.pop(requester_id, None)
        eligible = []
        for customer in pool:
            rel = self.relationships.get(requester_id, customer)
            if rel is None or not rel.archived:
                eligible.append(customer)
        return eligible[: self.candidate_pool_size]

    def relevant_groups(self, requester_id: str, payment_method: str) -> List[PeerGroup]:
        return [
            g
            for g in self.groups.groups_of(requester_id)
            if g.activity_score > GROUP_ACTIVITY_THRESHOLD and g.accepts_method(payment_method)
        ]

    def find_matches(
        self,
        requester_id: str,
        request_type: str,
        amount: float,
        payment_method: str,
        max_results: int = 10,
    ) -> MatchRecommendation:
        """Rank peers (score > 50, top max_results) and groups (score > 60, top 5)"""
        peers: List[PeerMatch] = []
        for candidate in self.candidates(requester_id, payment_method):
            score, reasons = self.score_peer(requester_id, candidate, amount, payment_method)
            if score <= PEER_MATCH_THRESHOLD:
                continue
            rel = self.relationships.get(requester_id, candidate)
            peers.append(
                PeerMatch(
                    peer_id=candidate,
                    match_score=score,
                    reasons=reasons,
                    estimated_response_time=rel.response_time_minutes if rel else DEFAULT_RESPONSE_TIME,
                    common_history=rel.total_transactions if rel else 0,
                    trust_score=rel.trust_score if rel else DEFAULT_CANDIDATE_TRUST,
                    preferred_method=self._preferred_method(rel, payment_method),
                )
            )
        peers.sort(key=lambda m: m.match_score, reverse=True)

        groups: List[GroupMatch] = []
        for group in self.relevant_groups(requester_id, payment_method):
            score = score_group(group, amount, payment_method)
            if score > GROUP_MATCH_THRESHOLD:
                groups.append(
                    GroupMatch(
                        group_id=group.id,
                        group_name=group.name,
                        match_score=score,
                        member_count=group.member_count,
                        success_rate=group.success_rate,
                    )
                )
        groups.sort(key=lambda m: m.match_score, reverse=True)

        return MatchRecommendation(
            requester_id=requester_id,
            request_type=request_type,
            peers=peers[:max_results],
            groups=groups[: self.max_group_matches],
        )

    @staticmethod
    def _preferred_method(rel, payment_method: str) -> str:
        if rel is None or not rel.common_payment_methods or payment_method in rel.common_payment_methods:
            return payment_method
        return sorted(rel.common_payment_methods)[0]
