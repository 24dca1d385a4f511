"""Property-based tests for the Payme merchant API webhook.

Tests that:
- Requests without the exact basic-auth header are refused
- Unknown methods and malformed params map to JSON-RPC errors
- The transaction state machine only moves along allowed transitions
- Create, perform and cancel are idempotent for repeated deliveries
- GetStatement returns transactions within the inclusive time range
- The dispatcher handles every merchant API method
"""

import pytest
from hypothesis import given, settings, strategies as st

from uzpay.modules.payment_gateway.config import GatewayConfig
from uzpay.modules.payment_gateway.gateways import PaymeGateway
from uzpay.modules.payment_gateway.models import (
    TRANSACTION_TIMEOUT_MS,
    GatewayProvider,
    PaymeErrorCode,
    PaymeMethod,
    Transaction,
    TransactionState,
    is_transaction_expired,
)
from uzpay.modules.payment_gateway.signature import build_authorization_header
from uzpay.modules.payment_gateway.store import InMemoryTransactionStore


KEY = "payme_key"
AUTH = build_authorization_header("Paycom", KEY)
START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock advancing by a fixed step on each reading."""

    def __init__(self, start: int = START_MS, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current


class FailingStore(InMemoryTransactionStore):
    def get(self, transaction_id):
        raise RuntimeError("database unavailable")


def make_gateway(store=None, perform_policy=None, clock=None) -> PaymeGateway:
    config = GatewayConfig(provider=GatewayProvider.PAYME, merchant_id="merchant_1", secret_key=KEY)
    return PaymeGateway(
        config,
        store=store if store is not None else InMemoryTransactionStore(),
        perform_policy=perform_policy,
        clock=clock or FakeClock(),
    )


def rpc(method: str, params: dict, request_id=1) -> dict:
    return {"id": request_id, "method": method, "params": params}


def create(gateway: PaymeGateway, tx_id: str = "tx_1", amount: int = 500000, request_id=1) -> dict:
    return gateway.handle_webhook(
        rpc("CreateTransaction", {
            "id": tx_id,
            "time": START_MS,
            "amount": amount,
            "account": {"order_id": "order_1"},
        }, request_id),
        AUTH,
    )


def call(gateway: PaymeGateway, method: str, tx_id: str = "tx_1", **params) -> dict:
    return gateway.handle_webhook(rpc(method, {"id": tx_id, **params}), AUTH)


class TestAuthorization:
    """Every call is authenticated before dispatch."""

    @given(header=st.one_of(st.none(), st.text(max_size=60)))
    @settings(max_examples=100)
    def test_wrong_header_is_refused(self, header) -> None:
        """*For any* header other than the exact token, the error SHALL be -32504."""
        if header == AUTH:
            return
        gateway = make_gateway()

        response = gateway.handle_webhook(rpc("CheckTransaction", {"id": "tx_1"}), header)

        assert response["error"]["code"] == PaymeErrorCode.AUTHORIZATION_FAILURE
        assert "result" not in response

    def test_auth_checked_before_method(self) -> None:
        response = make_gateway().handle_webhook(rpc("NoSuchMethod", {}), "Basic wrong")
        assert response["error"]["code"] == PaymeErrorCode.AUTHORIZATION_FAILURE

    def test_wrong_login_is_refused(self) -> None:
        header = build_authorization_header("Someone", KEY)
        response = make_gateway().handle_webhook(rpc("CheckTransaction", {"id": "tx_1"}), header)
        assert response["error"]["code"] == PaymeErrorCode.AUTHORIZATION_FAILURE


class TestEnvelope:
    """JSON-RPC envelope handling."""

    def test_unknown_method(self) -> None:
        response = make_gateway().handle_webhook(rpc("ChangePassword", {}, request_id=7), AUTH)

        assert response["error"]["code"] == PaymeErrorCode.METHOD_NOT_FOUND
        assert response["error"]["data"] == "ChangePassword"
        assert response["id"] == 7

    def test_missing_method(self) -> None:
        response = make_gateway().handle_webhook({"id": 1, "params": {}}, AUTH)
        assert response["error"]["code"] == PaymeErrorCode.METHOD_NOT_FOUND

    @pytest.mark.parametrize("payload", [[1, 2], "CheckTransaction", 42, None])
    def test_non_object_envelope(self, payload) -> None:
        response = make_gateway().handle_webhook(payload, AUTH)

        assert response["error"]["code"] == PaymeErrorCode.INVALID_REQUEST
        assert "id" not in response

    def test_non_object_envelope_still_requires_auth(self) -> None:
        response = make_gateway().handle_webhook([1, 2], None)
        assert response["error"]["code"] == PaymeErrorCode.AUTHORIZATION_FAILURE

    @pytest.mark.parametrize(
        "method, params",
        [
            ("CreateTransaction", {"id": "tx_1", "amount": 100}),
            ("CreateTransaction", {"id": "tx_1", "time": "yesterday", "amount": 100}),
            ("PerformTransaction", {}),
            ("GetStatement", {"from": 1}),
            ("CheckPerformTransaction", {"account": {}}),
        ],
    )
    def test_malformed_params(self, method: str, params: dict) -> None:
        response = make_gateway().handle_webhook(rpc(method, params), AUTH)
        assert response["error"]["code"] == PaymeErrorCode.INVALID_REQUEST

    def test_request_id_is_echoed_on_success(self) -> None:
        response = create(make_gateway(), request_id="abc")
        assert response["id"] == "abc"
        assert "result" in response

    def test_store_failure_becomes_internal_error(self) -> None:
        response = call(make_gateway(store=FailingStore()), "CheckTransaction")

        assert response["error"]["code"] == PaymeErrorCode.INTERNAL_ERROR

    def test_every_method_is_dispatched(self) -> None:
        assert make_gateway().handled_methods == frozenset(PaymeMethod)


class TestCheckPerformTransaction:
    """Order payability check."""

    def test_allowed_by_default(self) -> None:
        response = make_gateway().handle_webhook(
            rpc("CheckPerformTransaction", {"amount": 500000, "account": {"order_id": "1"}}), AUTH
        )
        assert response["result"] == {"allow": True}

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount(self, amount: int) -> None:
        response = make_gateway().handle_webhook(
            rpc("CheckPerformTransaction", {"amount": amount, "account": {}}), AUTH
        )
        assert response["error"]["code"] == PaymeErrorCode.INVALID_AMOUNT

    def test_policy_rejects_account(self) -> None:
        seen = []

        def policy(amount: int, account: dict) -> bool:
            seen.append((amount, account))
            return account.get("order_id") == "known"

        gateway = make_gateway(perform_policy=policy)

        ok = gateway.handle_webhook(rpc("CheckPerformTransaction", {"amount": 100, "account": {"order_id": "known"}}), AUTH)
        bad = gateway.handle_webhook(rpc("CheckPerformTransaction", {"amount": 100, "account": {"order_id": "other"}}), AUTH)

        assert ok["result"] == {"allow": True}
        assert bad["error"]["code"] == PaymeErrorCode.INVALID_ACCOUNT
        assert bad["error"]["data"] == "account"
        assert seen[0] == (100, {"order_id": "known"})


class TestCreateTransaction:
    """CreateTransaction records a new transaction once."""

    def test_create_records_transaction(self) -> None:
        store = InMemoryTransactionStore()
        gateway = make_gateway(store=store, clock=FakeClock(start=START_MS + 5))

        response = create(gateway)

        assert response["result"] == {
            "create_time": START_MS + 5,
            "transaction": "tx_1",
            "state": 1,
        }
        stored = store.get("tx_1")
        assert stored.state == TransactionState.CREATED
        assert stored.time == START_MS
        assert stored.amount == 500000
        assert stored.account == {"order_id": "order_1"}

    def test_repeated_create_is_idempotent(self) -> None:
        gateway = make_gateway()

        first = create(gateway)
        second = create(gateway)

        assert first["result"] == second["result"]

    def test_create_after_perform_is_refused(self) -> None:
        gateway = make_gateway()
        create(gateway)
        call(gateway, "PerformTransaction")

        response = create(gateway)

        assert response["error"]["code"] == PaymeErrorCode.UNABLE_TO_PERFORM

    def test_create_checks_amount(self) -> None:
        store = InMemoryTransactionStore()
        response = create(make_gateway(store=store), amount=0)

        assert response["error"]["code"] == PaymeErrorCode.INVALID_AMOUNT
        assert len(store) == 0


class TestPerformTransaction:
    """PerformTransaction completes a created transaction."""

    def test_perform_completes(self) -> None:
        gateway = make_gateway(clock=FakeClock(step=10))
        create(gateway)

        response = call(gateway, "PerformTransaction")

        assert response["result"]["state"] == 2
        assert response["result"]["transaction"] == "tx_1"
        assert response["result"]["perform_time"] == START_MS + 10

    def test_repeated_perform_is_idempotent(self) -> None:
        gateway = make_gateway()
        create(gateway)

        first = call(gateway, "PerformTransaction")
        second = call(gateway, "PerformTransaction")

        assert first["result"] == second["result"]

    def test_perform_unknown_transaction(self) -> None:
        response = call(make_gateway(), "PerformTransaction", tx_id="missing")
        assert response["error"]["code"] == PaymeErrorCode.TRANSACTION_NOT_FOUND

    def test_perform_after_cancel_is_refused(self) -> None:
        gateway = make_gateway()
        create(gateway)
        call(gateway, "CancelTransaction", reason=3)

        response = call(gateway, "PerformTransaction")

        assert response["error"]["code"] == PaymeErrorCode.UNABLE_TO_PERFORM


class TestCancelTransaction:
    """CancelTransaction before and after completion."""

    def test_cancel_created(self) -> None:
        gateway = make_gateway()
        create(gateway)

        response = call(gateway, "CancelTransaction", reason=3)

        assert response["result"]["state"] == TransactionState.CANCELLED
        assert response["result"]["cancel_time"] > 0

    def test_cancel_completed(self) -> None:
        store = InMemoryTransactionStore()
        gateway = make_gateway(store=store)
        create(gateway)
        call(gateway, "PerformTransaction")

        response = call(gateway, "CancelTransaction", reason=5)

        assert response["result"]["state"] == TransactionState.CANCELLED_AFTER_COMPLETE
        assert store.get("tx_1").reason == 5

    def test_repeated_cancel_is_idempotent(self) -> None:
        gateway = make_gateway()
        create(gateway)

        first = call(gateway, "CancelTransaction", reason=3)
        second = call(gateway, "CancelTransaction", reason=4)

        assert first["result"] == second["result"]

    def test_cancel_unknown_transaction(self) -> None:
        response = call(make_gateway(), "CancelTransaction", tx_id="missing", reason=1)
        assert response["error"]["code"] == PaymeErrorCode.TRANSACTION_NOT_FOUND


class TestStateMachine:
    """Only allowed transitions are ever taken."""

    ALLOWED = {
        (None, TransactionState.CREATED),
        (TransactionState.CREATED, TransactionState.CREATED),
        (TransactionState.CREATED, TransactionState.COMPLETED),
        (TransactionState.CREATED, TransactionState.CANCELLED),
        (TransactionState.COMPLETED, TransactionState.COMPLETED),
        (TransactionState.COMPLETED, TransactionState.CANCELLED_AFTER_COMPLETE),
        (TransactionState.CANCELLED, TransactionState.CANCELLED),
        (TransactionState.CANCELLED_AFTER_COMPLETE, TransactionState.CANCELLED_AFTER_COMPLETE),
    }

    @given(
        methods=st.lists(
            st.sampled_from(["CreateTransaction", "PerformTransaction", "CancelTransaction", "CheckTransaction"]),
            min_size=1,
            max_size=12,
        )
    )
    @settings(max_examples=100)
    def test_any_call_sequence_follows_allowed_transitions(self, methods: list) -> None:
        """*For any* sequence of calls, every state change SHALL be an allowed transition."""
        store = InMemoryTransactionStore()
        gateway = make_gateway(store=store)

        for method in methods:
            before = store.get("tx_1")
            before_state = before.state if before else None

            if method == "CreateTransaction":
                response = create(gateway)
            elif method == "CancelTransaction":
                response = call(gateway, method, reason=3)
            else:
                response = call(gateway, method)

            after = store.get("tx_1")
            after_state = after.state if after else None

            if after_state != before_state:
                assert (before_state, after_state) in self.ALLOWED
            if "result" in response and "state" in response["result"]:
                assert response["result"]["state"] == int(after_state)

    @given(
        methods=st.lists(
            st.sampled_from(["PerformTransaction", "CancelTransaction", "CheckTransaction"]),
            max_size=8,
        )
    )
    @settings(max_examples=50)
    def test_cancelled_is_terminal(self, methods: list) -> None:
        gateway = make_gateway()
        create(gateway)
        call(gateway, "CancelTransaction", reason=3)

        for method in methods:
            if method == "CancelTransaction":
                call(gateway, method, reason=3)
            else:
                call(gateway, method)

        response = call(gateway, "CheckTransaction")
        assert response["result"]["state"] == TransactionState.CANCELLED


class TestCheckTransaction:
    """CheckTransaction reports the stored snapshot."""

    def test_check_created(self) -> None:
        gateway = make_gateway(clock=FakeClock(start=START_MS))
        create(gateway)

        response = call(gateway, "CheckTransaction")

        assert response["result"] == {
            "create_time": START_MS,
            "perform_time": 0,
            "cancel_time": 0,
            "transaction": "tx_1",
            "state": 1,
            "reason": None,
        }

    def test_check_unknown(self) -> None:
        response = call(make_gateway(), "CheckTransaction", tx_id="missing")
        assert response["error"]["code"] == PaymeErrorCode.TRANSACTION_NOT_FOUND


class TestGetStatement:
    """GetStatement lists transactions by creation time."""

    def test_range_is_inclusive(self) -> None:
        store = InMemoryTransactionStore([
            Transaction(id="a", create_time=100, amount=1, time=90),
            Transaction(id="b", create_time=200, amount=2, time=190),
            Transaction(id="c", create_time=300, amount=3, time=290),
            Transaction(id="d", create_time=400, amount=4, time=390),
        ])
        gateway = make_gateway(store=store)

        response = gateway.handle_webhook(rpc("GetStatement", {"from": 200, "to": 300}), AUTH)

        entries = response["result"]["transactions"]
        assert [entry["id"] for entry in entries] == ["b", "c"]
        assert entries[0]["amount"] == 2
        assert entries[0]["time"] == 190
        assert entries[0]["transaction"] == "b"

    def test_empty_range(self) -> None:
        response = make_gateway().handle_webhook(rpc("GetStatement", {"from": 0, "to": 10}), AUTH)
        assert response["result"] == {"transactions": []}


class TestExpiry:
    """12-hour payment window for created transactions."""

    @given(elapsed=st.integers(min_value=0, max_value=3 * TRANSACTION_TIMEOUT_MS))
    @settings(max_examples=100)
    def test_expired_only_after_window(self, elapsed: int) -> None:
        """*For any* elapsed time, a created transaction SHALL expire only past 12 hours."""
        tx = Transaction(id="tx", create_time=START_MS)
        assert is_transaction_expired(tx, now=START_MS + elapsed) == (elapsed > TRANSACTION_TIMEOUT_MS)

    @pytest.mark.parametrize(
        "state",
        [TransactionState.COMPLETED, TransactionState.CANCELLED, TransactionState.CANCELLED_AFTER_COMPLETE],
    )
    def test_settled_transactions_never_expire(self, state) -> None:
        tx = Transaction(id="tx", create_time=0, state=state)
        assert is_transaction_expired(tx, now=START_MS) is False
