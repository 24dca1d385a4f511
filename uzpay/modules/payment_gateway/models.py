"""Payment gateway models, status enums and protocol error codes.

Transaction is the Payme merchant-side record tracked through the
webhook lifecycle. Its persistence is owned by a TransactionStore.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional


class GatewayProvider(str, Enum):
    """Supported payment gateway providers."""
    CLICK = "click"
    PAYME = "payme"


class PaymentStatus(str, Enum):
    """Unified payment status reported by verify_payment."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentErrorCode(str, Enum):
    """Error codes for normalized outbound operation failures."""
    CREATE_ERROR = "PAYMENT_CREATE_ERROR"
    VERIFY_ERROR = "PAYMENT_VERIFY_ERROR"
    CANCEL_ERROR = "PAYMENT_CANCEL_ERROR"
    TIMEOUT = "PAYMENT_TIMEOUT"


class ClickErrorCode(IntEnum):
    """Error codes of the Click prepare/complete protocol."""
    SUCCESS = 0
    SIGNATURE_FAILURE = -1
    INVALID_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    USER_NOT_FOUND = -5
    TRANSACTION_NOT_FOUND = -6
    UPDATE_FAILED = -7
    BAD_REQUEST = -8
    TRANSACTION_CANCELLED = -9


class ClickAction(IntEnum):
    """Click webhook phases."""
    PREPARE = 0
    COMPLETE = 1


class PaymeErrorCode(IntEnum):
    """JSON-RPC error codes of the Payme merchant API."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    AUTHORIZATION_FAILURE = -32504
    INTERNAL_ERROR = -32400
    INVALID_AMOUNT = -31001
    TRANSACTION_NOT_FOUND = -31003
    UNABLE_TO_CANCEL = -31007
    UNABLE_TO_PERFORM = -31008
    INVALID_ACCOUNT = -31050


class PaymeMethod(str, Enum):
    """Merchant API methods Payme calls on the webhook endpoint."""
    CHECK_PERFORM_TRANSACTION = "CheckPerformTransaction"
    CREATE_TRANSACTION = "CreateTransaction"
    PERFORM_TRANSACTION = "PerformTransaction"
    CANCEL_TRANSACTION = "CancelTransaction"
    CHECK_TRANSACTION = "CheckTransaction"
    GET_STATEMENT = "GetStatement"


class TransactionState(IntEnum):
    """Payme transaction states."""
    CREATED = 1
    COMPLETED = 2
    CANCELLED = -1
    CANCELLED_AFTER_COMPLETE = -2


class CancelReason(IntEnum):
    """Payme cancellation reason codes."""
    RECEIVER_NOT_FOUND = 1
    DEBIT_OPERATION_ERROR = 2
    TRANSACTION_ERROR = 3
    TIMEOUT = 4
    REFUND = 5
    UNKNOWN = 10


# Unpaid transactions older than this are expired (12 hours)
TRANSACTION_TIMEOUT_MS = 12 * 60 * 60 * 1000

# Payme accounts amounts in tiyin
MINOR_UNITS_PER_UNIT = 100


def now_ms() -> int:
    """Current unix time in milliseconds, the Payme time unit."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Transaction:
    """Payme transaction snapshot.

    Times are unix milliseconds. ``time`` is Payme's own creation time
    while ``create_time`` is when this merchant recorded it.
    """
    id: str
    create_time: int
    state: TransactionState = TransactionState.CREATED
    time: Optional[int] = None
    amount: Optional[int] = None
    account: dict = field(default_factory=dict)
    perform_time: Optional[int] = None
    cancel_time: Optional[int] = None
    reason: Optional[int] = None

    @property
    def is_completed(self) -> bool:
        return self.state == TransactionState.COMPLETED

    @property
    def is_cancelled(self) -> bool:
        return self.state in (
            TransactionState.CANCELLED,
            TransactionState.CANCELLED_AFTER_COMPLETE,
        )

    def to_check_result(self) -> dict:
        """Snapshot in the CheckTransaction result shape."""
        return {
            "create_time": self.create_time,
            "perform_time": self.perform_time or 0,
            "cancel_time": self.cancel_time or 0,
            "transaction": self.id,
            "state": int(self.state),
            "reason": self.reason,
        }

    def to_statement_entry(self) -> dict:
        """Snapshot in the GetStatement entry shape."""
        entry = {
            "id": self.id,
            "time": self.time,
            "amount": self.amount,
            "account": dict(self.account),
        }
        entry.update(self.to_check_result())
        return entry


def is_transaction_expired(transaction: Transaction, now: Optional[int] = None) -> bool:
    """Check whether an unpaid transaction has outlived the payment window.

    Only transactions still in CREATED state can expire. Acting on an
    expired transaction is left to the caller.

    Args:
        transaction: Transaction snapshot
        now: Current time in milliseconds (defaults to the wall clock)

    Returns:
        True if the transaction is unpaid and older than 12 hours
    """
    if transaction.state != TransactionState.CREATED:
        return False
    current = now_ms() if now is None else now
    return current - transaction.create_time > TRANSACTION_TIMEOUT_MS
