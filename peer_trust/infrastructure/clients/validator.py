"""Payment validator HTTP client"""

import httpx
from peer_trust.domain.models import ValidationResult
from peer_trust.domain.exceptions import ExecutionError, ValidationError
from peer_trust.config import settings

RISK_LEVELS = {"low", "medium", "high", "critical"}


class PaymentValidatorClient:
    """Client for the external payment-method validation service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.validator_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def validate(
        self,
        customer_id: str,
        method: str,
        address: str,
        amount: float,
        context: str,
    ) -> ValidationResult:
        """
        Validate a customer's payment method for a transfer.

        Raises:
            ExecutionError: On timeout, transport errors or 5xx
            ValidationError: On 4xx or an unexpected response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/validate",
                    json={
                        "customer_id": customer_id,
                        "method": method,
                        "address": address,
                        "amount": amount,
                        "context": context,
                    },
                )
                response.raise_for_status()
                data = response.json()

                risk_level = data["risk_level"]
                if risk_level not in RISK_LEVELS:
                    raise ValueError(f"unknown risk level {risk_level!r}")
                return ValidationResult(
                    validation_score=float(data["validation_score"]),
                    risk_level=risk_level,
                )

            except httpx.TimeoutException as e:
                raise ExecutionError(f"Validator timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    raise ExecutionError(f"Validator error: {e.response.status_code}") from e
                raise ValidationError(f"Validator rejected request: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ExecutionError(f"Validator unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ValidationError(f"Invalid validator response: {e}") from e
