"""GET /v1/dashboard/{customer_id} - a customer's peer network at a glance"""

from fastapi import APIRouter, Depends

from peer_trust.api.dependencies import get_network
from peer_trust.api.v1.schemas import (
    DashboardResponse,
    NetworkStatsSchema,
    RecommendationsSchema,
    group_response,
    relationship_schema,
)
from peer_trust.network import PeerNetwork

router = APIRouter()


@router.get("/dashboard/{customer_id}", response_model=DashboardResponse)
def get_dashboard(customer_id: str, network: PeerNetwork = Depends(get_network)):
    dashboard = network.dashboard(customer_id)
    stats = dashboard.network_stats
    recommendations = dashboard.recommendations

    return DashboardResponse(
        customer_id=customer_id,
        relationships=[relationship_schema(customer_id, r) for r in dashboard.relationships],
        groups=[group_response(g) for g in dashboard.groups],
        network_stats=NetworkStatsSchema(
            total_peers=stats.total_peers,
            average_trust_score=stats.average_trust_score,
            total_transactions=stats.total_transactions,
            success_rate=stats.success_rate,
            network_strength=stats.network_strength,
        ),
        recommendations=RecommendationsSchema(
            suggested_peers=recommendations.suggested_peers,
            suggested_groups=recommendations.suggested_groups,
            improvement_actions=recommendations.improvement_actions,
        ),
    )
