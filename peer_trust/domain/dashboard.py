"""Peer network dashboard: stats and recommendations for one customer"""

from typing import List

from peer_trust.domain.groups import GroupRegistry
from peer_trust.domain.models import Dashboard, NetworkStats, PeerGroup, PeerRelationship, Recommendations
from peer_trust.domain.relationships import RelationshipStore

MAX_SUGGESTED_PEERS = 5
MAX_SUGGESTED_GROUPS = 3


def calculate_network_stats(relationships: List[PeerRelationship], groups: List[PeerGroup]) -> NetworkStats:
    """
    Aggregate a customer's direct relationships.

    network_strength = avg_trust/100 * 40 + success_rate * 100 * 0.4
                       + min(groups * 10, 20), capped at 100
    """
    total_peers = len(relationships)
    average_trust = sum(r.trust_score for r in relationships) / total_peers if total_peers else 0.0
    total_transactions = sum(r.total_transactions for r in relationships)
    successful = sum(r.successful_transactions for r in relationships)
    success_rate = successful / total_transactions if total_transactions else 0.0

    strength = min(
        (average_trust / 100) * 40 + success_rate * 100 * 0.4 + min(len(groups) * 10, 20),
        100,
    )

    return NetworkStats(
        total_peers=total_peers,
        average_trust_score=round(average_trust),
        total_transactions=total_transactions,
        success_rate=round(success_rate, 2),
        network_strength=round(strength),
    )


def generate_recommendations(
    customer_id: str,
    relationships: List[PeerRelationship],
    member_of: List[PeerGroup],
    all_groups: List[PeerGroup],
    stats: NetworkStats,
) -> Recommendations:
    """Suggest untried peers, open groups and actions to strengthen the network"""
    untried = sorted(
        (r for r in relationships if r.total_transactions == 0),
        key=lambda r: r.trust_score,
        reverse=True,
    )
    suggested_peers = [r.other(customer_id) for r in untried[:MAX_SUGGESTED_PEERS]]

    open_groups = sorted(
        (g for g in all_groups if not g.has_member(customer_id) and g.member_count < g.rules.max_members),
        key=lambda g: g.trust_score,
        reverse=True,
    )
    suggested_groups = [g.id for g in open_groups[:MAX_SUGGESTED_GROUPS]]

    actions = []
    if stats.total_transactions < 5:
        actions.append("Complete more P2P transactions to build trust")
    if len(member_of) < 2:
        actions.append("Join additional peer groups")
    if stats.total_transactions > 0 and stats.success_rate < 0.9:
        actions.append("Maintain a high success rate")

    return Recommendations(
        suggested_peers=suggested_peers,
        suggested_groups=suggested_groups,
        improvement_actions=actions,
    )


def build_dashboard(customer_id: str, relationships: RelationshipStore, groups: GroupRegistry) -> Dashboard:
    direct = relationships.relationships_of(customer_id)
    member_of = groups.groups_of(customer_id)
    stats = calculate_network_stats(direct, member_of)
    return Dashboard(
        customer_id=customer_id,
        relationships=direct,
        groups=member_of,
        network_stats=stats,
        recommendations=generate_recommendations(customer_id, direct, member_of, groups.all(), stats),
    )
