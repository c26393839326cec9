"""Relationship store - pairwise trust between customers"""

import logging
import threading
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Tuple

from peer_trust.domain.models import PeerRelationship, clamp_score, pair_key
from peer_trust.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

# Outcome deltas
SUCCESS_TRUST_DELTA = 2
SUCCESS_RELIABILITY_DELTA = 1
FAILURE_TRUST_DELTA = -5
FAILURE_RELIABILITY_DELTA = -3


class RelationshipStore:
    """
    In-memory store holding exactly one relationship per unordered pair.

    Relationships are never removed; archive() hides them from matching
    and dashboards while keeping their history.
    """

    def __init__(self):
        self._relationships: Dict[Tuple[str, str], PeerRelationship] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._relationships)

    def get(self, customer_a: str, customer_b: str) -> Optional[PeerRelationship]:
        return self._relationships.get(pair_key(customer_a, customer_b))

    def get_or_create(self, customer_a: str, customer_b: str) -> PeerRelationship:
        """Return the pair's relationship, creating a neutral one if absent"""
        with self._lock:
            return self._get_or_create_locked(customer_a, customer_b)

    def upsert(self, relationship: PeerRelationship) -> PeerRelationship:
        with self._lock:
            self._relationships[relationship.key] = relationship
        return relationship

    def seed_pairs(self, members: Iterable[str]) -> int:
        """
        Create a relationship for every unordered pair of members.

        Existing relationships are left untouched. Cost is O(n^2) in the
        number of members; groups are capped well below where this matters.

        Returns:
            Number of relationships created
        """
        created = 0
        with self._lock:
            for customer_a, customer_b in combinations(dict.fromkeys(members), 2):
                key = pair_key(customer_a, customer_b)
                if key not in self._relationships:
                    self._relationships[key] = PeerRelationship(customer_a, customer_b)
                    created += 1
        return created

    def record_outcome(
        self,
        customer_a: str,
        customer_b: str,
        amount: float,
        success: bool,
        payment_method: Optional[str] = None,
    ) -> PeerRelationship:
        """Apply a transfer outcome to the pair's statistics and scores"""
        with self._lock:
            rel = self._get_or_create_locked(customer_a, customer_b)

            rel.total_transactions += 1
            rel.total_volume += amount
            rel.average_amount = rel.total_volume / rel.total_transactions
            rel.last_transaction_at = utcnow()

            if success:
                rel.successful_transactions += 1
                rel.trust_score = clamp_score(rel.trust_score + SUCCESS_TRUST_DELTA)
                rel.reliability_score = clamp_score(rel.reliability_score + SUCCESS_RELIABILITY_DELTA)
                if payment_method:
                    rel.common_payment_methods.add(payment_method)
            else:
                rel.trust_score = clamp_score(rel.trust_score + FAILURE_TRUST_DELTA)
                rel.reliability_score = clamp_score(rel.reliability_score + FAILURE_RELIABILITY_DELTA)

        logger.info(
            "Relationship outcome recorded",
            extra={
                "step": "relationship_outcome",
                "pair": "|".join(rel.key),
                "success": success,
                "trust_score": rel.trust_score,
            },
        )
        return rel

    def relationships_of(self, customer_id: str, include_archived: bool = False) -> List[PeerRelationship]:
        return [
            rel
            for rel in list(self._relationships.values())
            if rel.involves(customer_id) and (include_archived or not rel.archived)
        ]

    def archive(self, customer_a: str, customer_b: str) -> Optional[PeerRelationship]:
        with self._lock:
            rel = self._relationships.get(pair_key(customer_a, customer_b))
            if rel is not None:
                rel.archived = True
        return rel

    def _get_or_create_locked(self, customer_a: str, customer_b: str) -> PeerRelationship:
        key = pair_key(customer_a, customer_b)
        rel = self._relationships.get(key)
        if rel is None:
            rel = PeerRelationship(*key)
            self._relationships[key] = rel
        return rel
