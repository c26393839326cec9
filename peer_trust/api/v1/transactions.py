"""Transfer endpoints - submit, inspect, approve and cancel"""

from fastapi import APIRouter, Depends, Request

from peer_trust.api.dependencies import get_network, get_request_id
from peer_trust.api.errors import internal_error, to_http_exception
from peer_trust.api.v1.schemas import TransferCreateRequest, TransferResponse, transfer_response
from peer_trust.domain.exceptions import PeerNetworkError
from peer_trust.domain.models import PaymentDetails
from peer_trust.network import PeerNetwork

router = APIRouter()


@router.post("/transactions", response_model=TransferResponse)
async def create_transaction(
    request_body: TransferCreateRequest,
    request: Request,
    network: PeerNetwork = Depends(get_network),
):
    """
    Submit a peer transfer.

    Flow:
    1. Validate the request and match the pair
    2. Check daily, monthly and group limits
    3. Validate both parties' payment method and assess risk
    4. Execute when auto-approved; otherwise hold for review or block
    """
    request_id = get_request_id(request)
    try:
        transfer = await network.process_transaction(
            request_body.requester_id,
            request_body.peer_id,
            request_body.amount,
            request_body.payment_method,
            details=PaymentDetails(
                sender_address=request_body.sender_address,
                recipient_address=request_body.recipient_address,
                country=request_body.country,
                note=request_body.note,
            ),
            group_id=request_body.group_id,
            request_id=request_id,
        )
    except PeerNetworkError as e:
        raise to_http_exception(e, request_id)
    except Exception as e:
        raise internal_error(e, request_id)
    return transfer_response(transfer)


@router.get("/transactions/{transaction_id}", response_model=TransferResponse)
def get_transaction(transaction_id: str, request: Request, network: PeerNetwork = Depends(get_network)):
    try:
        transfer = network.get_transaction(transaction_id)
    except PeerNetworkError as e:
        raise to_http_exception(e, get_request_id(request))
    return transfer_response(transfer)


@router.post("/transactions/{transaction_id}/approve", response_model=TransferResponse)
async def approve_transaction(transaction_id: str, request: Request, network: PeerNetwork = Depends(get_network)):
    """Execute a transfer held for manual review"""
    request_id = get_request_id(request)
    try:
        transfer = await network.approve_transaction(transaction_id, request_id=request_id)
    except PeerNetworkError as e:
        raise to_http_exception(e, request_id)
    except Exception as e:
        raise internal_error(e, request_id)
    return transfer_response(transfer)


@router.post("/transactions/{transaction_id}/cancel", response_model=TransferResponse)
async def cancel_transaction(transaction_id: str, request: Request, network: PeerNetwork = Depends(get_network)):
    request_id = get_request_id(request)
    try:
        transfer = await network.cancel_transaction(transaction_id, request_id=request_id)
    except PeerNetworkError as e:
        raise to_http_exception(e, request_id)
    except Exception as e:
        raise internal_error(e, request_id)
    return transfer_response(transfer)
