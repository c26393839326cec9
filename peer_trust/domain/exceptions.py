"""Domain-specific exceptions"""


class PeerNetworkError(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(PeerNetworkError):
    """Request is malformed or violates a static rule; never retried"""

    pass


class NotFoundError(PeerNetworkError):
    """Unknown customer, group, relationship or transaction"""

    pass


class InsufficientTrustError(PeerNetworkError):
    """Customer trust score is below the required threshold"""

    def __init__(self, customer_id: str, score: float, required: float):
        super().__init__(f"Customer {customer_id} trust score {score} is below required {required}")
        self.customer_id = customer_id
        self.score = score
        self.required = required


class VipRequiredError(PeerNetworkError):
    """Group admits VIP customers only"""

    def __init__(self, customer_id: str, vip_tier: int, required_tier: int):
        super().__init__(f"Customer {customer_id} VIP tier {vip_tier} is below required {required_tier}")
        self.customer_id = customer_id
        self.vip_tier = vip_tier
        self.required_tier = required_tier


class LimitExceededError(PeerNetworkError):
    """Allocation limit (daily, monthly, group, capacity) would be exceeded"""

    def __init__(self, limit: str, message: str):
        super().__init__(message)
        self.limit = limit


class RiskBlockedError(PeerNetworkError):
    """Risk score is above the blocking threshold"""

    def __init__(self, transaction_id: str, assessment):
        super().__init__(f"Transaction {transaction_id} blocked with risk score {assessment.score}")
        self.transaction_id = transaction_id
        self.assessment = assessment


class RateLimitedError(PeerNetworkError):
    """Too many requests for this identifier in the current window"""

    def __init__(self, key: str, retry_after: float):
        super().__init__(f"Rate limit exceeded for {key}, retry after {retry_after:.1f}s")
        self.key = key
        self.retry_after = retry_after


class CircuitOpenError(PeerNetworkError):
    """Circuit breaker is open; the call was not attempted"""

    def __init__(self, operation: str):
        super().__init__(f"Circuit open for {operation}")
        self.operation = operation


class ExecutionError(PeerNetworkError):
    """Transient failure in an external call (network, timeout, 5xx)"""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class TransferDeclinedError(PeerNetworkError):
    """Executor answered and refused the transfer; final, never retried"""

    def __init__(self, reason: str, attempts: int = 1):
        super().__init__(f"Transfer declined by executor: {reason}")
        self.reason = reason
        self.attempts = attempts
