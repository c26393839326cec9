"""Transfer executor HTTP client - the external system that moves funds"""

import httpx
from peer_trust.domain.models import ExecutionResult, TransferRequest
from peer_trust.domain.exceptions import ExecutionError, ValidationError
from peer_trust.config import settings
from peer_trust.infrastructure.observability.metrics import executor_latency_histogram


class TransferExecutorClient:
    """
    Client for the transfer executor.

    Makes a single attempt per call; retries, circuit breaking and timeouts
    are applied by the resilience layer around it.
    """

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url or settings.executor_api_base
        self.transport = transport

    async def execute(self, request: TransferRequest) -> ExecutionResult:
        """
        Submit a transfer for execution.

        Raises:
            ExecutionError: On transport errors or 5xx (retryable)
            ValidationError: On 4xx or an unexpected response (not retryable)
        """
        async with httpx.AsyncClient(transport=self.transport) as client:
            try:
                with executor_latency_histogram.time():
                    response = await client.post(
                        f"{self.base_url}/transfers",
                        json={
                            "transaction_id": request.transaction_id,
                            "requester_id": request.requester_id,
                            "peer_id": request.peer_id,
                            "amount": request.amount,
                            "payment_method": request.payment_method,
                            "sender_address": request.details.sender_address,
                            "recipient_address": request.details.recipient_address,
                        },
                        timeout=None,
                    )
                    response.raise_for_status()
                data = response.json()

                return ExecutionResult(
                    success=bool(data["success"]),
                    error=data.get("error"),
                    reference=data.get("reference"),
                )

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    raise ExecutionError(f"Executor error: {e.response.status_code}") from e
                raise ValidationError(f"Executor rejected transfer: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ExecutionError(f"Executor unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ValidationError(f"Invalid executor response: {e}") from e
