"""GET /v1/matches - ranked peers and groups for a transfer"""

from fastapi import APIRouter, Depends, Query

from peer_trust.api.dependencies import get_network
from peer_trust.api.v1.schemas import GroupMatchSchema, MatchResponse, PeerMatchSchema
from peer_trust.network import PeerNetwork

router = APIRouter()


@router.get("/matches", response_model=MatchResponse)
def find_matches(
    requester_id: str = Query(..., min_length=1),
    amount: float = Query(..., gt=0),
    payment_method: str = Query(..., min_length=1),
    request_type: str = Query("send"),
    max_results: int = Query(10, ge=1, le=50),
    network: PeerNetwork = Depends(get_network),
):
    """Peers scoring above 50 and groups scoring above 60, best first"""
    recommendation = network.find_matches(requester_id, request_type, amount, payment_method, max_results)

    return MatchResponse(
        requester_id=recommendation.requester_id,
        request_type=recommendation.request_type,
        peers=[
            PeerMatchSchema(
                peer_id=m.peer_id,
                match_score=m.match_score,
                reasons=m.reasons,
                estimated_response_time=m.estimated_response_time,
                common_history=m.common_history,
                trust_score=m.trust_score,
                preferred_method=m.preferred_method,
            )
            for m in recommendation.peers
        ],
        groups=[
            GroupMatchSchema(
                group_id=m.group_id,
                group_name=m.group_name,
                match_score=m.match_score,
                member_count=m.member_count,
                success_rate=m.success_rate,
            )
            for m in recommendation.groups
        ],
    )
