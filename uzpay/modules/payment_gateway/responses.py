"""Webhook response builders for Click and Payme.

Hosts return these bodies verbatim, so every field name and value type
here is fixed by the gateway protocols.
"""

from typing import Any, Optional, Union

from uzpay.modules.payment_gateway.models import ClickErrorCode, PaymeErrorCode

RequestId = Optional[Union[int, str]]


# ==================== Click ====================

def _echo_id(value: Any) -> Optional[Union[int, str]]:
    # Only JSON scalars are echoed back
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    return value


def _click_trans_id(value: Any) -> Any:
    try:
        return int(value)
    except (TypeError, ValueError):
        return _echo_id(value)


def click_response(
    click_trans_id: Any,
    merchant_trans_id: Any,
    error: int,
    error_note: str,
    merchant_prepare_id: Optional[int] = None,
    merchant_confirm_id: Optional[int] = None,
) -> dict:
    """Build a Click callback response body.

    Correlation ids are included only when issued.
    """
    body = {
        "click_trans_id": _click_trans_id(click_trans_id),
        "merchant_trans_id": merchant_trans_id,
    }
    if merchant_prepare_id is not None:
        body["merchant_prepare_id"] = merchant_prepare_id
    if merchant_confirm_id is not None:
        body["merchant_confirm_id"] = merchant_confirm_id
    body["error"] = int(error)
    body["error_note"] = error_note
    return body


def click_prepare_success(click_trans_id: Any, merchant_trans_id: str, prepare_id: int) -> dict:
    return click_response(
        click_trans_id,
        merchant_trans_id,
        ClickErrorCode.SUCCESS,
        "Success",
        merchant_prepare_id=prepare_id,
    )


def click_complete_success(click_trans_id: Any, merchant_trans_id: str, confirm_id: int) -> dict:
    return click_response(
        click_trans_id,
        merchant_trans_id,
        ClickErrorCode.SUCCESS,
        "Success",
        merchant_confirm_id=confirm_id,
    )


def click_error(
    payload: Any,
    error: Union[ClickErrorCode, int],
    error_note: str,
) -> dict:
    """Build a Click error body from a possibly malformed payload."""
    source = payload if isinstance(payload, dict) else {}
    return click_response(
        _echo_id(source.get("click_trans_id")),
        _echo_id(source.get("merchant_trans_id")),
        error,
        error_note,
    )


# ==================== Payme ====================

def payme_result(result: dict, request_id: RequestId = None) -> dict:
    """Build a JSON-RPC success envelope."""
    body: dict[str, Any] = {"result": result}
    if request_id is not None:
        body["id"] = request_id
    return body


def payme_error(
    code: Union[PaymeErrorCode, int],
    message: str,
    request_id: RequestId = None,
    data: Optional[str] = None,
) -> dict:
    """Build a JSON-RPC error envelope.

    Args:
        code: Payme error code
        message: Human readable description
        request_id: JSON-RPC id echoed from the request
        data: Name of the offending field, for account errors
    """
    error: dict[str, Any] = {"code": int(code), "message": message}
    if data is not None:
        error["data"] = data
    body: dict[str, Any] = {"error": error}
    if request_id is not None:
        body["id"] = request_id
    return body
