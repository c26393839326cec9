"""Transfer ledger - audit trail of transfers and the sums derived from it"""

import copy
import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from peer_trust.domain.models import ALLOCATED_STATUSES, Transfer, TransferStatus


class TransferLedger(Protocol):
    def save(self, transfer: Transfer) -> Transfer:
        ...

    def get(self, transaction_id: str) -> Optional[Transfer]:
        ...

    def allocated_since(self, customer_id: str, since: datetime) -> float:
        ...

    def group_volume_since(self, group_id: str, since: datetime) -> float:
        ...

    def count_since(self, customer_id: str, since: datetime, exclude_id: Optional[str] = None) -> int:
        ...

    def customers_using_method(self, payment_method: str) -> List[str]:
        ...

    def has_used_method(self, customer_id: str, payment_method: str) -> bool:
        ...


class InMemoryTransferLedger:
    """Process-local ledger; default for the domain layer and tests"""

    def __init__(self):
        self._transfers: Dict[str, Transfer] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._transfers)

    def save(self, transfer: Transfer) -> Transfer:
        with self._lock:
            self._transfers[transfer.transaction_id] = copy.deepcopy(transfer)
        return transfer

    def get(self, transaction_id: str) -> Optional[Transfer]:
        stored = self._transfers.get(transaction_id)
        return copy.deepcopy(stored) if stored is not None else None

    def allocated_since(self, customer_id: str, since: datetime) -> float:
        return sum(
            t.request.amount
            for t in self.all()
            if t.request.requester_id == customer_id
            and t.status in ALLOCATED_STATUSES
            and t.created_at >= since
        )

    def group_volume_since(self, group_id: str, since: datetime) -> float:
        return sum(
            t.request.amount
            for t in self.all()
            if group_id in t.group_ids and t.status in ALLOCATED_STATUSES and t.created_at >= since
        )

    def count_since(self, customer_id: str, since: datetime, exclude_id: Optional[str] = None) -> int:
        return sum(
            1
            for t in self.all()
            if t.request.requester_id == customer_id
            and t.created_at >= since
            and t.transaction_id != exclude_id
        )

    def customers_using_method(self, payment_method: str) -> List[str]:
        customers: Dict[str, None] = {}
        for t in self.all():
            if t.status == TransferStatus.COMPLETED and t.request.payment_method == payment_method:
                customers[t.request.requester_id] = None
                customers[t.request.peer_id] = None
        return list(customers)

    def has_used_method(self, customer_id: str, payment_method: str) -> bool:
        return customer_id in self.customers_using_method(payment_method)

    def all(self) -> List[Transfer]:
        with self._lock:
            return list(self._transfers.values())
