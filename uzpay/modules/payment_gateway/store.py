"""Transaction store used by the Payme webhook dispatcher.

The dispatcher decides when a transaction is created or changes state;
the store only persists what it is told. Implementations must allow at
most one writer per transaction id at a time.
"""

import threading
from dataclasses import replace
from typing import Optional, Protocol, runtime_checkable

from uzpay.modules.payment_gateway.models import Transaction, TransactionState


class TransactionNotFoundError(KeyError):
    """Raised when updating a transaction the store does not hold."""


@runtime_checkable
class TransactionStore(Protocol):
    """Persistence capability for Payme transactions."""

    def get(self, transaction_id: str) -> Optional[Transaction]:
        """Get a transaction by Payme id, or None."""
        ...

    def put(self, transaction: Transaction) -> None:
        """Insert or overwrite a transaction."""
        ...

    def update_state(
        self,
        transaction_id: str,
        state: TransactionState,
        *,
        perform_time: Optional[int] = None,
        cancel_time: Optional[int] = None,
        reason: Optional[int] = None,
    ) -> Transaction:
        """Move a transaction to a new state and return the new snapshot.

        Time and reason arguments left as None keep their stored value.
        """
        ...

    def find_by_create_time(self, start: int, end: int) -> list[Transaction]:
        """Get transactions with ``start <= create_time <= end``, oldest first."""
        ...


class InMemoryTransactionStore:
    """Dict-backed TransactionStore for tests and single-process hosts."""

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._transactions: dict[str, Transaction] = {}
        self._lock = threading.Lock()
        for transaction in transactions or []:
            self._transactions[transaction.id] = transaction

    def __len__(self) -> int:
        return len(self._transactions)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def put(self, transaction: Transaction) -> None:
        with self._lock:
            self._transactions[transaction.id] = transaction

    def update_state(
        self,
        transaction_id: str,
        state: TransactionState,
        *,
        perform_time: Optional[int] = None,
        cancel_time: Optional[int] = None,
        reason: Optional[int] = None,
    ) -> Transaction:
        with self._lock:
            current = self._transactions.get(transaction_id)
            if current is None:
                raise TransactionNotFoundError(transaction_id)

            changes: dict = {"state": state}
            if perform_time is not None:
                changes["perform_time"] = perform_time
            if cancel_time is not None:
                changes["cancel_time"] = cancel_time
            if reason is not None:
                changes["reason"] = reason

            updated = replace(current, **changes)
            self._transactions[transaction_id] = updated
            return updated

    def find_by_create_time(self, start: int, end: int) -> list[Transaction]:
        matches = [
            tx for tx in self._transactions.values()
            if start <= tx.create_time <= end
        ]
        return sorted(matches, key=lambda tx: tx.create_time)
