"""Peer group endpoints - creation, lookup, membership and auto-forming"""

from fastapi import APIRouter, Depends, Request

from peer_trust.api.dependencies import get_network, get_request_id
from peer_trust.api.errors import internal_error, to_http_exception
from peer_trust.api.v1.schemas import (
    AutoFormResponse,
    GroupCreateRequest,
    GroupResponse,
    MemberAddRequest,
    group_response,
)
from peer_trust.domain.exceptions import PeerNetworkError
from peer_trust.network import PeerNetwork

router = APIRouter()


@router.post("/groups", response_model=GroupResponse, status_code=201)
async def create_group(
    request_body: GroupCreateRequest,
    request: Request,
    network: PeerNetwork = Depends(get_network),
):
    """
    Create a peer group.

    The creator must meet the type's trust threshold; every initial member
    must satisfy the group's admission rules. Relationships are seeded for
    every pair of members.
    """
    request_id = get_request_id(request)
    try:
        group = await network.create_group(
            request_body.creator_id,
            request_body.name,
            request_body.type,
            request_body.members,
            request_body.rules,
        )
    except PeerNetworkError as e:
        raise to_http_exception(e, request_id)
    except Exception as e:
        raise internal_error(e, request_id)
    return group_response(group)


@router.post("/groups/auto-form", response_model=AutoFormResponse)
async def auto_form_groups(request: Request, network: PeerNetwork = Depends(get_network)):
    """Cluster known customers into geographic, payment-method and activity groups"""
    request_id = get_request_id(request)
    try:
        created = await network.auto_form_groups()
    except PeerNetworkError as e:
        raise to_http_exception(e, request_id)
    except Exception as e:
        raise internal_error(e, request_id)
    return AutoFormResponse(created=[group_response(g) for g in created])


@router.get("/groups/{group_id}", response_model=GroupResponse)
def get_group(group_id: str, request: Request, network: PeerNetwork = Depends(get_network)):
    try:
        group = network.get_group(group_id)
    except PeerNetworkError as e:
        raise to_http_exception(e, get_request_id(request))
    return group_response(group)


@router.post("/groups/{group_id}/members", response_model=GroupResponse)
async def add_member(
    group_id: str,
    request_body: MemberAddRequest,
    request: Request,
    network: PeerNetwork = Depends(get_network),
):
    request_id = get_request_id(request)
    try:
        group = await network.add_group_member(group_id, request_body.customer_id)
    except PeerNetworkError as e:
        raise to_http_exception(e, request_id)
    except Exception as e:
        raise internal_error(e, request_id)
    return group_response(group)
