"""Pydantic schemas for inbound gateway webhooks.

Payloads are validated here, at the boundary, before any dispatch.
Click sends one flat payload for both phases. Payme sends a JSON-RPC
envelope whose params depend on the method, modelled as a union
discriminated on ``method``.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from uzpay.modules.payment_gateway.signature import format_sign_value


# ==================== Click ====================

class ClickWebhookRequest(BaseModel):
    """Prepare (action=0) or Complete (action=1) callback from Click."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    click_trans_id: int
    service_id: int
    click_paydoc_id: int
    merchant_trans_id: str = Field(..., min_length=1)
    merchant_prepare_id: Optional[int] = None
    amount: str
    action: int
    error: int = 0
    error_note: str = ""
    sign_time: str
    sign_string: str

    @field_validator("amount", mode="before")
    @classmethod
    def keep_signed_amount(cls, value: Any) -> str:
        # Kept as text so the signature is checked against what Click sent
        if isinstance(value, bool):
            raise ValueError("amount must be a number")
        if isinstance(value, (int, float)):
            return format_sign_value(value)
        if isinstance(value, str):
            try:
                float(value)
            except ValueError:
                raise ValueError("amount must be a number") from None
            return value
        raise ValueError("amount must be a number")

    def signed_fields(self) -> tuple:
        """Field values covered by ``sign_string``, in protocol order."""
        return (
            self.click_trans_id,
            self.service_id,
            self.click_paydoc_id,
            self.merchant_trans_id,
            self.amount,
            self.action,
            self.sign_time,
        )


# ==================== Payme ====================

class _PaymeParams(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class CheckPerformTransactionParams(_PaymeParams):
    amount: int
    account: dict[str, Any] = Field(default_factory=dict)


class CreateTransactionParams(_PaymeParams):
    id: str = Field(..., min_length=1)
    time: int
    amount: int
    account: dict[str, Any] = Field(default_factory=dict)


class PerformTransactionParams(_PaymeParams):
    id: str = Field(..., min_length=1)


class CancelTransactionParams(_PaymeParams):
    id: str = Field(..., min_length=1)
    reason: Optional[int] = None


class CheckTransactionParams(_PaymeParams):
    id: str = Field(..., min_length=1)


class GetStatementParams(_PaymeParams):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_time: int = Field(..., alias="from")
    to_time: int = Field(..., alias="to")


class _PaymeEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = None


class CheckPerformTransactionRequest(_PaymeEnvelope):
    method: Literal["CheckPerformTransaction"]
    params: CheckPerformTransactionParams


class CreateTransactionRequest(_PaymeEnvelope):
    method: Literal["CreateTransaction"]
    params: CreateTransactionParams


class PerformTransactionRequest(_PaymeEnvelope):
    method: Literal["PerformTransaction"]
    params: PerformTransactionParams


class CancelTransactionRequest(_PaymeEnvelope):
    method: Literal["CancelTransaction"]
    params: CancelTransactionParams


class CheckTransactionRequest(_PaymeEnvelope):
    method: Literal["CheckTransaction"]
    params: CheckTransactionParams


class GetStatementRequest(_PaymeEnvelope):
    method: Literal["GetStatement"]
    params: GetStatementParams


PaymeWebhookRequest = Annotated[
    Union[
        CheckPerformTransactionRequest,
        CreateTransactionRequest,
        PerformTransactionRequest,
        CancelTransactionRequest,
        CheckTransactionRequest,
        GetStatementRequest,
    ],
    Field(discriminator="method"),
]

_payme_request_adapter: TypeAdapter = TypeAdapter(PaymeWebhookRequest)


def parse_payme_request(payload: Any) -> PaymeWebhookRequest:
    """Validate a Payme JSON-RPC payload.

    Raises:
        pydantic.ValidationError: If the envelope or params are malformed
    """
    return _payme_request_adapter.validate_python(payload)
