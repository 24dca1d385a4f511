"""Click payment gateway implementation.

Redirect URLs are plain query strings; verify and cancel are MD5-signed
POSTs to the merchant API. Click reports payments through a two-phase
webhook: Prepare (action=0) reserves, Complete (action=1) commits.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from uzpay.core.logging import log_error, log_warning
from uzpay.modules.payment_gateway.interface import (
    PaymentError,
    PaymentGatewayInterface,
    PaymentOrder,
    PaymentResult,
    PaymentVerifyResult,
    failed_verification,
    failure_result,
)
from uzpay.modules.payment_gateway.models import (
    ClickAction,
    ClickErrorCode,
    GatewayProvider,
    PaymentErrorCode,
    PaymentStatus,
)
from uzpay.modules.payment_gateway.responses import (
    click_complete_success,
    click_error,
    click_prepare_success,
    click_response,
)
from uzpay.modules.payment_gateway.schemas import ClickWebhookRequest
from uzpay.modules.payment_gateway.signature import (
    compute_hash_signature,
    verify_hash_signature,
)

logger = logging.getLogger(__name__)


class MerchantIdSequence:
    """Strictly increasing, millisecond-seeded id generator.

    Used for prepare and confirm ids so that two callbacks landing in
    the same millisecond still get distinct ids.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(self._last + 1, int(time.time() * 1000))
            return self._last


_merchant_ids = MerchantIdSequence()


def map_click_status(status: Any) -> PaymentStatus:
    """Map a Click transaction status to PaymentStatus."""
    mapping = {
        1: PaymentStatus.COMPLETED,
        0: PaymentStatus.PENDING,
        -1: PaymentStatus.CANCELLED,
    }
    try:
        return mapping.get(int(status), PaymentStatus.FAILED)
    except (TypeError, ValueError):
        return PaymentStatus.FAILED


def _parse_payment_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_error(value: Any) -> Optional[PaymentError]:
    if not isinstance(value, dict):
        return None
    return PaymentError(code=str(value.get("code", "")), message=str(value.get("message", "")))


class ClickGateway(PaymentGatewayInterface):
    """Click payment gateway implementation."""

    provider = GatewayProvider.CLICK

    PAY_TEST_URL = "https://test.click.uz/services/pay"
    PAY_PRODUCTION_URL = "https://my.click.uz/services/pay"

    MERCHANT_API_TEST_URL = "https://test.click.uz/api/v2/merchant"
    MERCHANT_API_PRODUCTION_URL = "https://click.uz/api/v2/merchant"

    def __init__(self, config, http_client=None, id_sequence: Optional[MerchantIdSequence] = None):
        super().__init__(config, http_client)
        self._ids = id_sequence or _merchant_ids

    @property
    def pay_url(self) -> str:
        """Get Click payment page URL based on mode."""
        return self.PAY_TEST_URL if self.is_test_mode else self.PAY_PRODUCTION_URL

    @property
    def merchant_api_url(self) -> str:
        """Get Click merchant API URL based on mode."""
        return self.MERCHANT_API_TEST_URL if self.is_test_mode else self.MERCHANT_API_PRODUCTION_URL

    def _signed_payload(self, transaction_id: str) -> dict:
        payload = {
            "merchant_id": self.config.merchant_id,
            "transaction_id": transaction_id,
            "timestamp": int(time.time()),
        }
        payload["signature"] = compute_hash_signature(
            payload.values(), self.config.secret_key
        )
        return payload

    def generate_payment_url(self, order: PaymentOrder) -> str:
        params = {
            "service_id": self.config.service_id,
            "merchant_id": self.config.merchant_id,
            "amount": str(order.amount.amount),
            "transaction_param": order.id,
            "return_url": order.return_url or "",
        }
        params.update(order.extra_params or {})
        return f"{self.pay_url}?{urlencode(params)}"

    async def create_payment(self, order: PaymentOrder) -> PaymentResult:
        """Create a Click payment.

        Click has no create call; the payer is redirected to the payment
        page and the transaction appears through the Prepare webhook.
        """
        try:
            return PaymentResult(
                success=True,
                transaction_id=order.id,
                payment_url=self.generate_payment_url(order),
            )
        except Exception as e:
            log_error(logger, "Click create_payment error", e, order_id=order.id)
            return failure_result(e, PaymentErrorCode.CREATE_ERROR)

    async def verify_payment(self, transaction_id: str) -> PaymentVerifyResult:
        """Verify Click transaction status.

        Args:
            transaction_id: Click transaction ID

        Returns:
            PaymentVerifyResult with current status
        """
        try:
            response = await self.http_client.post_json(
                f"{self.merchant_api_url}/check_transaction",
                self._signed_payload(transaction_id),
            )

            return PaymentVerifyResult(
                success=bool(response.get("success")),
                transaction_id=response.get("transaction_id"),
                status=map_click_status(response.get("status")),
                paid_amount=response.get("amount"),
                paid_time=_parse_payment_time(response.get("payment_time")),
                error=_parse_error(response.get("error")),
            )

        except Exception as e:
            log_error(logger, "Click verify_payment error", e, transaction_id=transaction_id)
            return failed_verification(e)

    async def cancel_payment(self, transaction_id: str) -> PaymentResult:
        """Cancel a Click transaction.

        Args:
            transaction_id: Click transaction ID

        Returns:
            PaymentResult of the cancellation
        """
        try:
            response = await self.http_client.post_json(
                f"{self.merchant_api_url}/cancel_transaction",
                self._signed_payload(transaction_id),
            )

            return PaymentResult(
                success=bool(response.get("success")),
                transaction_id=response.get("transaction_id"),
                error=_parse_error(response.get("error")),
            )

        except Exception as e:
            log_error(logger, "Click cancel_payment error", e, transaction_id=transaction_id)
            return failure_result(e, PaymentErrorCode.CANCEL_ERROR)

    def verify_webhook_signature(self, request: ClickWebhookRequest) -> bool:
        """Verify the ``sign_string`` of a Click callback."""
        return verify_hash_signature(
            request.signed_fields(),
            self.config.secret_key,
            request.sign_string,
        )

    def handle_webhook(self, payload: dict, authorization: Optional[str] = None) -> dict:
        """Handle a Click Prepare or Complete callback.

        Args:
            payload: Callback fields (JSON or form body)
            authorization: Unused, Click signs the payload itself

        Returns:
            Click response body
        """
        try:
            request = ClickWebhookRequest.model_validate(payload)
        except ValidationError as e:
            log_warning(logger, "Malformed Click webhook", errors=e.errors(include_url=False, include_input=False))
            return click_error(payload, ClickErrorCode.BAD_REQUEST, "Invalid request")

        if not self.verify_webhook_signature(request):
            log_warning(
                logger,
                "Click webhook signature mismatch",
                click_trans_id=request.click_trans_id,
                merchant_trans_id=request.merchant_trans_id,
            )
            return click_response(
                request.click_trans_id,
                request.merchant_trans_id,
                ClickErrorCode.SIGNATURE_FAILURE,
                "Invalid signature",
            )

        if request.action == ClickAction.PREPARE:
            return self._handle_prepare(request)
        if request.action == ClickAction.COMPLETE:
            return self._handle_complete(request)

        return click_response(
            request.click_trans_id,
            request.merchant_trans_id,
            ClickErrorCode.BAD_REQUEST,
            "Invalid action",
        )

    def _handle_prepare(self, request: ClickWebhookRequest) -> dict:
        prepare_id = self._ids.next()
        logger.info(
            "Click prepare accepted",
            extra={
                "click_trans_id": request.click_trans_id,
                "merchant_trans_id": request.merchant_trans_id,
                "merchant_prepare_id": prepare_id,
            },
        )
        return click_prepare_success(request.click_trans_id, request.merchant_trans_id, prepare_id)

    def _handle_complete(self, request: ClickWebhookRequest) -> dict:
        # Click reports a failed payment with a negative error; echo it back
        if request.error < 0:
            logger.info(
                "Click complete reported failure",
                extra={
                    "click_trans_id": request.click_trans_id,
                    "merchant_trans_id": request.merchant_trans_id,
                    "click_error": request.error,
                },
            )
            return click_response(
                request.click_trans_id,
                request.merchant_trans_id,
                request.error,
                request.error_note,
            )

        confirm_id = self._ids.next()
        logger.info(
            "Click complete accepted",
            extra={
                "click_trans_id": request.click_trans_id,
                "merchant_trans_id": request.merchant_trans_id,
                "merchant_confirm_id": confirm_id,
            },
        )
        return click_complete_success(request.click_trans_id, request.merchant_trans_id, confirm_id)
