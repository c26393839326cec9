"""Integration tests for the HTTP collaborator clients against mock transports"""

import json

import httpx
import pytest

from peer_trust.domain.exceptions import ExecutionError, ValidationError
from peer_trust.domain.models import PaymentDetails, TransferRequest
from peer_trust.infrastructure.clients.executor import TransferExecutorClient
from peer_trust.infrastructure.clients.profiles import ProfileClient
from peer_trust.infrastructure.clients.validator import PaymentValidatorClient

BASE = "http://collaborator.test"


def transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def status(code: int, body=None):
    return transport(lambda request: httpx.Response(code, json=body or {}))


async def test_get_profile():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/profiles/alice"
        return httpx.Response(
            200,
            json={
                "customer_id": "alice",
                "trust_score": 88,
                "vip_tier": 2,
                "region": "US-West",
                "payment_methods": ["venmo", "zelle"],
                "total_transactions": 12,
            },
        )

    client = ProfileClient(base_url=BASE, transport=transport(handler))
    profile = await client.get_profile("alice")

    assert profile.trust_score == 88
    assert profile.vip_tier == 2
    assert profile.payment_methods == ["venmo", "zelle"]


async def test_unknown_profile_is_none():
    client = ProfileClient(base_url=BASE, transport=status(404))

    assert await client.get_profile("nobody") is None


async def test_list_profiles():
    body = {"profiles": [{"customer_id": "a", "trust_score": 70}, {"customer_id": "b", "trust_score": 90}]}
    client = ProfileClient(base_url=BASE, transport=status(200, body))

    profiles = await client.list_profiles()

    assert [p.customer_id for p in profiles] == ["a", "b"]
    assert profiles[0].vip_tier == 0


@pytest.mark.parametrize("code, error", [(500, ExecutionError), (503, ExecutionError), (400, ValidationError)])
async def test_profile_error_mapping(code, error):
    client = ProfileClient(base_url=BASE, transport=status(code))

    with pytest.raises(error):
        await client.get_profile("alice")


async def test_malformed_profile_rejected():
    client = ProfileClient(base_url=BASE, transport=status(200, {"customer_id": "alice"}))

    with pytest.raises(ValidationError):
        await client.get_profile("alice")


async def test_profile_timeout_maps_to_execution_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = ProfileClient(base_url=BASE, transport=transport(handler))

    with pytest.raises(ExecutionError):
        await client.get_profile("alice")


async def test_validate_sends_context():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"validation_score": 72.5, "risk_level": "medium"})

    client = PaymentValidatorClient(base_url=BASE, transport=transport(handler))
    result = await client.validate("alice", "venmo", "@alice", 100.0, "p2p")

    assert result.validation_score == 72.5
    assert result.risk_level == "medium"
    assert seen == {"customer_id": "alice", "method": "venmo", "address": "@alice", "amount": 100.0, "context": "p2p"}


async def test_validator_unknown_risk_level_rejected():
    client = PaymentValidatorClient(
        base_url=BASE, transport=status(200, {"validation_score": 50, "risk_level": "extreme"})
    )

    with pytest.raises(ValidationError):
        await client.validate("alice", "venmo", "@alice", 100.0, "p2p")


async def test_validator_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = PaymentValidatorClient(base_url=BASE, transport=transport(handler))

    with pytest.raises(ExecutionError):
        await client.validate("alice", "venmo", "@alice", 100.0, "p2p")


async def test_execute_transfer():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "reference": "exec_123"})

    client = TransferExecutorClient(base_url=BASE, transport=transport(handler))
    request = TransferRequest(
        "alice", "bob", 75.0, "zelle", PaymentDetails(sender_address="a@bank", recipient_address="b@bank")
    )

    result = await client.execute(request)

    assert result.success is True
    assert result.reference == "exec_123"
    assert seen["transaction_id"] == request.transaction_id
    assert seen["recipient_address"] == "b@bank"


async def test_executor_reported_failure_is_returned():
    client = TransferExecutorClient(base_url=BASE, transport=status(200, {"success": False, "error": "declined"}))

    result = await client.execute(TransferRequest("alice", "bob", 75.0, "zelle"))

    assert result.success is False
    assert result.error == "declined"


@pytest.mark.parametrize("code, error", [(502, ExecutionError), (422, ValidationError)])
async def test_executor_error_mapping(code, error):
    client = TransferExecutorClient(base_url=BASE, transport=status(code))

    with pytest.raises(error):
        await client.execute(TransferRequest("alice", "bob", 75.0, "zelle"))
