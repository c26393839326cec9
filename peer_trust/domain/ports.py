"""Interfaces of the external collaborators the core calls through"""

from typing import Any, Awaitable, Callable, List, Optional, Protocol

from peer_trust.domain.models import CustomerProfile, ExecutionResult, TransferRequest, ValidationResult


class ProfileProvider(Protocol):
    async def get_profile(self, customer_id: str) -> Optional[CustomerProfile]:
        ...

    async def list_profiles(self) -> List[CustomerProfile]:
        ...


class PaymentValidator(Protocol):
    async def validate(
        self,
        customer_id: str,
        method: str,
        address: str,
        amount: float,
        context: str,
    ) -> ValidationResult:
        ...


class TransferExecutor(Protocol):
    async def execute(self, request: TransferRequest) -> ExecutionResult:
        ...


class CallGuard(Protocol):
    async def call(
        self,
        operation: str,
        func: Callable[[], Awaitable[Any]],
        *,
        rate_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        ...
