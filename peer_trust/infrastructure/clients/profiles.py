"""Profile provider HTTP client for customer trust and VIP data"""

import httpx
from typing import Any, Dict, List, Optional
from peer_trust.domain.models import CustomerProfile
from peer_trust.domain.exceptions import ExecutionError, ValidationError
from peer_trust.config import settings


def parse_profile(data: Dict[str, Any]) -> CustomerProfile:
    return CustomerProfile(
        customer_id=data["customer_id"],
        trust_score=float(data["trust_score"]),
        vip_tier=int(data.get("vip_tier", 0)),
        region=data.get("region"),
        payment_methods=list(data.get("payment_methods", [])),
        total_transactions=int(data.get("total_transactions", 0)),
    )


class ProfileClient:
    """Client for the external customer profile API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.profile_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_profile(self, customer_id: str) -> Optional[CustomerProfile]:
        """
        Fetch one customer's profile.

        Returns:
            The profile, or None when the provider does not know the customer

        Raises:
            ExecutionError: On timeout, transport errors or 5xx
            ValidationError: On other HTTP errors or malformed data
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}/profiles/{customer_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return parse_profile(response.json())

            except httpx.TimeoutException as e:
                raise ExecutionError(f"Profile API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    raise ExecutionError(f"Profile API error: {e.response.status_code}") from e
                raise ValidationError(f"Profile API rejected request: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ExecutionError(f"Profile API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ValidationError(f"Invalid profile data: {e}") from e

    async def list_profiles(self) -> List[CustomerProfile]:
        """Fetch every profile, used by the auto-grouping job"""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}/profiles")
                response.raise_for_status()
                return [parse_profile(p) for p in response.json().get("profiles", [])]

            except httpx.TimeoutException as e:
                raise ExecutionError(f"Profile API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ExecutionError(f"Profile API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ExecutionError(f"Profile API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ValidationError(f"Invalid profile data: {e}") from e
