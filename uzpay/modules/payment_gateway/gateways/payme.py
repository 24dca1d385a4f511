"""Payme payment gateway implementation.

Outbound calls are JSON-RPC requests to a single endpoint authenticated
with a basic-auth token. Inbound, Payme drives the transaction lifecycle
by calling six merchant API methods on the webhook endpoint; this module
dispatches them and tracks state through an injected TransactionStore.
"""

import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

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
    MINOR_UNITS_PER_UNIT,
    CancelReason,
    GatewayProvider,
    PaymeErrorCode,
    PaymeMethod,
    PaymentErrorCode,
    PaymentStatus,
    Transaction,
    TransactionState,
    now_ms,
)
from uzpay.modules.payment_gateway.responses import payme_error, payme_result
from uzpay.modules.payment_gateway.schemas import (
    CancelTransactionParams,
    CheckPerformTransactionParams,
    CheckTransactionParams,
    CreateTransactionParams,
    GetStatementParams,
    PerformTransactionParams,
    parse_payme_request,
)
from uzpay.modules.payment_gateway.signature import (
    build_authorization_header,
    verify_authorization,
)
from uzpay.modules.payment_gateway.store import InMemoryTransactionStore, TransactionStore

logger = logging.getLogger(__name__)

# Decides whether an order may be paid: (amount in tiyin, account) -> allowed
PerformPolicy = Callable[[int, dict], bool]


class PaymeWebhookError(Exception):
    """Protocol error raised inside a webhook handler.

    The dispatcher turns it into a JSON-RPC error envelope.
    """

    def __init__(self, code: PaymeErrorCode, message: str, data: Optional[str] = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


def to_minor_units(amount: float) -> int:
    """Convert whole sums to tiyin."""
    return int(round(amount * MINOR_UNITS_PER_UNIT))


def from_minor_units(amount: float) -> float:
    """Convert tiyin to whole sums."""
    return amount / MINOR_UNITS_PER_UNIT


def map_payme_state(state: Any) -> PaymentStatus:
    """Map a Payme transaction state to PaymentStatus."""
    mapping = {
        TransactionState.COMPLETED: PaymentStatus.COMPLETED,
        TransactionState.CREATED: PaymentStatus.PENDING,
        TransactionState.CANCELLED: PaymentStatus.CANCELLED,
        TransactionState.CANCELLED_AFTER_COMPLETE: PaymentStatus.CANCELLED,
    }
    try:
        return mapping.get(TransactionState(int(state)), PaymentStatus.FAILED)
    except (TypeError, ValueError):
        return PaymentStatus.FAILED


def encode_checkout_payload(params: dict) -> str:
    """Encode checkout params as URL-safe, unpadded base64 JSON."""
    raw = json.dumps(params, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_checkout_payload(encoded: str) -> dict:
    """Decode the path segment produced by ``encode_checkout_payload``."""
    segment = encoded.rstrip("/").rsplit("/", 1)[-1]
    padded = segment + "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))


def _ms_to_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _rpc_error(response: dict) -> Optional[PaymentError]:
    error = response.get("error")
    if not error:
        return None
    if not isinstance(error, dict):
        return PaymentError(code=str(error), message="Unknown error")

    message = error.get("message")
    # Payme localizes messages as {"ru": ..., "uz": ..., "en": ...}
    if isinstance(message, dict):
        message = message.get("en") or next(iter(message.values()), None)
    return PaymentError(code=str(error.get("code", "")), message=str(message or "Unknown error"))


class PaymeGateway(PaymentGatewayInterface):
    """Payme payment gateway implementation."""

    provider = GatewayProvider.PAYME

    API_TEST_URL = "https://checkout.test.paycom.uz/api"
    API_PRODUCTION_URL = "https://checkout.paycom.uz/api"

    CHECKOUT_TEST_URL = "https://test.checkout.paycom.uz"
    CHECKOUT_PRODUCTION_URL = "https://checkout.paycom.uz"

    def __init__(
        self,
        config,
        http_client=None,
        store: Optional[TransactionStore] = None,
        perform_policy: Optional[PerformPolicy] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize Payme gateway.

        Args:
            config: Resolved gateway configuration
            http_client: Outbound client (built from config when omitted)
            store: Transaction persistence for webhooks
            perform_policy: Order validation hook for CheckPerformTransaction
            clock: Millisecond clock used to stamp transaction times
        """
        super().__init__(config, http_client)
        self.store = store if store is not None else InMemoryTransactionStore()
        self.perform_policy = perform_policy
        self._clock = clock
        self._handlers: dict[PaymeMethod, Callable[[Any], dict]] = {
            PaymeMethod.CHECK_PERFORM_TRANSACTION: self._check_perform_transaction,
            PaymeMethod.CREATE_TRANSACTION: self._create_transaction,
            PaymeMethod.PERFORM_TRANSACTION: self._perform_transaction,
            PaymeMethod.CANCEL_TRANSACTION: self._cancel_transaction,
            PaymeMethod.CHECK_TRANSACTION: self._check_transaction,
            PaymeMethod.GET_STATEMENT: self._get_statement,
        }

    @property
    def api_url(self) -> str:
        """Get Payme merchant API URL based on mode."""
        return self.API_TEST_URL if self.is_test_mode else self.API_PRODUCTION_URL

    @property
    def checkout_url(self) -> str:
        """Get Payme checkout URL based on mode."""
        return self.CHECKOUT_TEST_URL if self.is_test_mode else self.CHECKOUT_PRODUCTION_URL

    @property
    def authorization_header(self) -> str:
        return build_authorization_header(self.config.login, self.config.secret_key)

    @property
    def handled_methods(self) -> frozenset:
        return frozenset(self._handlers)

    # ==================== Outbound ====================

    def _account(self, order: PaymentOrder) -> dict:
        account = {"order_id": order.id}
        account.update(order.extra_params or {})
        return account

    async def _call(self, method: PaymeMethod, params: dict) -> dict:
        response = await self.http_client.post_json(
            self.api_url,
            {"method": method.value, "params": params},
            headers={"Authorization": self.authorization_header},
        )
        if not isinstance(response, dict):
            raise ValueError(f"Unexpected Payme response: {response!r}")
        return response

    def generate_payment_url(self, order: PaymentOrder) -> str:
        params = {
            "m": self.config.merchant_id,
            "ac": self._account(order),
            "a": order.amount.amount,
            "l": order.return_url or "",
            "c": order.cancel_url or "",
        }
        return f"{self.checkout_url}/{encode_checkout_payload(params)}"

    async def create_payment(self, order: PaymentOrder) -> PaymentResult:
        """Create a Payme transaction and return the checkout URL.

        Args:
            order: Order to pay

        Returns:
            PaymentResult with Payme transaction ID and checkout URL
        """
        try:
            response = await self._call(
                PaymeMethod.CREATE_TRANSACTION,
                {
                    "id": order.id,
                    "time": self._clock(),
                    "amount": to_minor_units(order.amount.amount),
                    "account": self._account(order),
                },
            )

            error = _rpc_error(response)
            if error:
                return PaymentResult(success=False, transaction_id=order.id, error=error)

            result = response.get("result") or {}
            return PaymentResult(
                success=True,
                transaction_id=str(result.get("transaction") or order.id),
                payment_url=self.generate_payment_url(order),
            )

        except Exception as e:
            log_error(logger, "Payme create_payment error", e, order_id=order.id)
            return failure_result(e, PaymentErrorCode.CREATE_ERROR)

    async def verify_payment(self, transaction_id: str) -> PaymentVerifyResult:
        """Verify Payme transaction state.

        Args:
            transaction_id: Payme transaction ID

        Returns:
            PaymentVerifyResult with current status and amount in sums
        """
        try:
            response = await self._call(PaymeMethod.CHECK_TRANSACTION, {"id": transaction_id})

            error = _rpc_error(response)
            if error:
                return PaymentVerifyResult(
                    success=False,
                    transaction_id=transaction_id,
                    status=PaymentStatus.FAILED,
                    error=error,
                )

            result = response.get("result") or {}
            amount = result.get("amount")
            return PaymentVerifyResult(
                success=True,
                transaction_id=str(result.get("transaction") or transaction_id),
                status=map_payme_state(result.get("state")),
                paid_amount=from_minor_units(amount) if amount is not None else None,
                paid_time=_ms_to_datetime(result.get("perform_time")),
            )

        except Exception as e:
            log_error(logger, "Payme verify_payment error", e, transaction_id=transaction_id)
            return failed_verification(e)

    async def cancel_payment(
        self,
        transaction_id: str,
        reason: CancelReason = CancelReason.UNKNOWN,
    ) -> PaymentResult:
        """Cancel a Payme transaction.

        Args:
            transaction_id: Payme transaction ID
            reason: Payme cancellation reason code

        Returns:
            PaymentResult of the cancellation
        """
        try:
            response = await self._call(
                PaymeMethod.CANCEL_TRANSACTION,
                {"id": transaction_id, "reason": int(reason)},
            )

            error = _rpc_error(response)
            if error:
                return PaymentResult(success=False, transaction_id=transaction_id, error=error)

            result = response.get("result") or {}
            return PaymentResult(
                success=True,
                transaction_id=str(result.get("transaction") or transaction_id),
            )

        except Exception as e:
            log_error(logger, "Payme cancel_payment error", e, transaction_id=transaction_id)
            return failure_result(e, PaymentErrorCode.CANCEL_ERROR)

    # ==================== Webhook ====================

    def handle_webhook(self, payload: dict, authorization: Optional[str] = None) -> dict:
        """Dispatch a Payme merchant API call.

        Args:
            payload: JSON-RPC envelope
            authorization: Authorization header sent by Payme

        Returns:
            JSON-RPC response envelope with either ``result`` or ``error``
        """
        request_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(request_id, (int, str)):
            request_id = None

        if not verify_authorization(authorization, self.config.login, self.config.secret_key):
            log_warning(logger, "Payme webhook authorization failed")
            return payme_error(
                PaymeErrorCode.AUTHORIZATION_FAILURE,
                "Insufficient privilege to perform this method",
                request_id,
            )

        if not isinstance(payload, dict):
            log_warning(logger, "Payme webhook envelope is not an object", body_type=type(payload).__name__)
            return payme_error(PaymeErrorCode.INVALID_REQUEST, "Invalid request")

        raw_method = payload.get("method")
        try:
            method = PaymeMethod(raw_method)
        except ValueError:
            log_warning(logger, "Payme webhook method not found", method=str(raw_method))
            return payme_error(PaymeErrorCode.METHOD_NOT_FOUND, "Method not found", request_id, data=str(raw_method))

        try:
            request = parse_payme_request(payload)
        except ValidationError as e:
            log_warning(logger, "Malformed Payme webhook", method=method.value, errors=e.errors(include_url=False, include_input=False))
            return payme_error(PaymeErrorCode.INVALID_REQUEST, "Invalid request", request_id)

        try:
            result = self._handlers[method](request.params)
        except PaymeWebhookError as e:
            logger.info(
                "Payme %s rejected: %s", method.value, e.message,
                extra={"payme_error": int(e.code)},
            )
            return payme_error(e.code, e.message, request_id, data=e.data)
        except Exception as e:
            log_error(logger, "Payme webhook handler error", e, method=method.value)
            return payme_error(PaymeErrorCode.INTERNAL_ERROR, "Internal error", request_id)

        return payme_result(result, request_id)

    def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.store.get(transaction_id)
        if transaction is None:
            raise PaymeWebhookError(PaymeErrorCode.TRANSACTION_NOT_FOUND, "Transaction not found")
        return transaction

    def _ensure_payable(self, amount: int, account: dict) -> None:
        if amount <= 0:
            raise PaymeWebhookError(PaymeErrorCode.INVALID_AMOUNT, "Invalid amount")
        if self.perform_policy is not None and not self.perform_policy(amount, account):
            raise PaymeWebhookError(PaymeErrorCode.INVALID_ACCOUNT, "Invalid account", data="account")

    def _check_perform_transaction(self, params: CheckPerformTransactionParams) -> dict:
        self._ensure_payable(params.amount, params.account)
        return {"allow": True}

    def _create_transaction(self, params: CreateTransactionParams) -> dict:
        transaction = self.store.get(params.id)
        if transaction is None:
            self._ensure_payable(params.amount, params.account)
            transaction = Transaction(
                id=params.id,
                create_time=self._clock(),
                state=TransactionState.CREATED,
                time=params.time,
                amount=params.amount,
                account=dict(params.account),
            )
            self.store.put(transaction)
            logger.info("Payme transaction created", extra={"transaction_id": transaction.id})
        elif transaction.state != TransactionState.CREATED:
            raise PaymeWebhookError(PaymeErrorCode.UNABLE_TO_PERFORM, "Unable to complete operation")

        return {
            "create_time": transaction.create_time,
            "transaction": transaction.id,
            "state": int(transaction.state),
        }

    def _perform_transaction(self, params: PerformTransactionParams) -> dict:
        transaction = self._get_transaction(params.id)
        if transaction.state == TransactionState.CREATED:
            transaction = self.store.update_state(
                transaction.id,
                TransactionState.COMPLETED,
                perform_time=self._clock(),
            )
            logger.info("Payme transaction performed", extra={"transaction_id": transaction.id})
        elif transaction.state != TransactionState.COMPLETED:
            raise PaymeWebhookError(PaymeErrorCode.UNABLE_TO_PERFORM, "Unable to complete operation")

        return {
            "transaction": transaction.id,
            "perform_time": transaction.perform_time,
            "state": int(transaction.state),
        }

    def _cancel_transaction(self, params: CancelTransactionParams) -> dict:
        transaction = self._get_transaction(params.id)
        if not transaction.is_cancelled:
            new_state = (
                TransactionState.CANCELLED_AFTER_COMPLETE
                if transaction.is_completed
                else TransactionState.CANCELLED
            )
            transaction = self.store.update_state(
                transaction.id,
                new_state,
                cancel_time=self._clock(),
                reason=params.reason,
            )
            logger.info(
                "Payme transaction cancelled",
                extra={"transaction_id": transaction.id, "state": int(new_state), "reason": params.reason},
            )

        return {
            "transaction": transaction.id,
            "cancel_time": transaction.cancel_time,
            "state": int(transaction.state),
        }

    def _check_transaction(self, params: CheckTransactionParams) -> dict:
        return self._get_transaction(params.id).to_check_result()

    def _get_statement(self, params: GetStatementParams) -> dict:
        transactions = self.store.find_by_create_time(params.from_time, params.to_time)
        return {"transactions": [tx.to_statement_entry() for tx in transactions]}
