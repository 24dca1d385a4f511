"""Payment Gateway Interface - Abstract base class for all gateway implementations.

Defines the contract that Click and Payme adapters follow so callers can
treat gateways interchangeably: identical result shapes, no branching on
gateway-specific fields.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from uzpay.core.http import RetryingHttpClient, is_timeout_error
from uzpay.modules.payment_gateway.config import GatewayConfig
from uzpay.modules.payment_gateway.models import (
    GatewayProvider,
    PaymentErrorCode,
    PaymentStatus,
)


@dataclass(frozen=True)
class PaymentAmount:
    """Order amount in whole currency units."""
    amount: int
    currency: str = "UZS"


@dataclass(frozen=True)
class PaymentOrder:
    """Merchant order to be paid through a gateway."""
    id: str
    amount: PaymentAmount
    description: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    extra_params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentError:
    """Error detail attached to a failed result."""
    code: str
    message: str


@dataclass(frozen=True)
class PaymentResult:
    """Result from payment creation or cancellation."""
    success: bool
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None
    error: Optional[PaymentError] = None


@dataclass(frozen=True)
class PaymentVerifyResult(PaymentResult):
    """Result from payment verification."""
    status: Optional[PaymentStatus] = None
    paid_amount: Optional[float] = None
    paid_time: Optional[datetime] = None


class PaymentGatewayInterface(ABC):
    """Abstract interface for all payment gateway implementations.

    Outbound operations never raise: every failure is normalized into a
    result with ``success=False``. Webhook handlers never raise either;
    protocol errors come back in the gateway's own error envelope.
    """

    provider: GatewayProvider

    def __init__(
        self,
        config: GatewayConfig,
        http_client: Optional[RetryingHttpClient] = None,
    ):
        """Initialize gateway with a resolved configuration.

        Args:
            config: Fully resolved gateway configuration
            http_client: Outbound client (built from config when omitted)
        """
        self.config = config
        self.http_client = http_client or RetryingHttpClient(
            timeout=config.timeout,
            retries=config.retries,
            retry_delay=config.retry_delay,
        )

    @property
    def is_test_mode(self) -> bool:
        """Check if gateway talks to the test environment."""
        return self.config.test_mode

    @abstractmethod
    def generate_payment_url(self, order: PaymentOrder) -> str:
        """Build the redirect URL the payer is sent to. Performs no I/O."""

    @abstractmethod
    async def create_payment(self, order: PaymentOrder) -> PaymentResult:
        """Create a new payment.

        Args:
            order: Order to pay

        Returns:
            PaymentResult with transaction ID and payment URL
        """

    @abstractmethod
    async def verify_payment(self, transaction_id: str) -> PaymentVerifyResult:
        """Verify payment status.

        Args:
            transaction_id: Gateway transaction ID

        Returns:
            PaymentVerifyResult with current status
        """

    @abstractmethod
    async def cancel_payment(self, transaction_id: str) -> PaymentResult:
        """Cancel a payment.

        Args:
            transaction_id: Gateway transaction ID

        Returns:
            PaymentResult of the cancellation
        """

    @abstractmethod
    def handle_webhook(self, payload: dict, authorization: Optional[str] = None) -> dict:
        """Handle a webhook callback from the gateway.

        Args:
            payload: Decoded request body
            authorization: Authorization header, for gateways that use one

        Returns:
            Response body to send back verbatim
        """


def failure_result(
    error: BaseException,
    error_code: PaymentErrorCode,
) -> PaymentResult:
    """Normalize an exception into a failed PaymentResult."""
    return PaymentResult(success=False, error=_to_payment_error(error, error_code))


def failed_verification(
    error: BaseException,
    error_code: PaymentErrorCode = PaymentErrorCode.VERIFY_ERROR,
) -> PaymentVerifyResult:
    """Normalize an exception into a failed PaymentVerifyResult."""
    return PaymentVerifyResult(
        success=False,
        status=PaymentStatus.FAILED,
        error=_to_payment_error(error, error_code),
    )


def _to_payment_error(error: BaseException, error_code: PaymentErrorCode) -> PaymentError:
    code = PaymentErrorCode.TIMEOUT if is_timeout_error(error) else error_code
    return PaymentError(code=code.value, message=str(error) or "Unknown error")
