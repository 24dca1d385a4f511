"""Webhook endpoints for Click and Payme callbacks.

The handlers' return values are sent back verbatim with HTTP 200; both
gateways read the outcome from the body, never from the status code.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from uzpay.core.logging import set_gateway
from uzpay.modules.payment_gateway.gateways import ClickGateway, PaymeGateway
from uzpay.modules.payment_gateway.models import GatewayProvider, PaymeErrorCode
from uzpay.modules.payment_gateway.responses import payme_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["payment-webhooks"])


def _configured_gateway(request: Request, provider: GatewayProvider):
    gateways = getattr(request.app.state, "gateways", None) or {}
    gateway = gateways.get(provider)
    if gateway is None:
        raise HTTPException(status_code=503, detail=f"{provider.value} gateway is not configured")
    return gateway


def get_click_gateway(request: Request) -> ClickGateway:
    """Dependency resolving the Click gateway from app state."""
    return _configured_gateway(request, GatewayProvider.CLICK)


def get_payme_gateway(request: Request) -> PaymeGateway:
    """Dependency resolving the Payme gateway from app state."""
    return _configured_gateway(request, GatewayProvider.PAYME)


@router.post("/click")
async def click_webhook(
    request: Request,
    gateway: ClickGateway = Depends(get_click_gateway),
):
    """Handle Click Prepare/Complete callbacks.

    Click posts form-encoded fields; JSON bodies are accepted as well.
    """
    set_gateway(GatewayProvider.CLICK.value)
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
    else:
        form = await request.form()
        # File parts carry no callback field
        payload = {key: value for key, value in form.items() if isinstance(value, str)}

    body = await run_in_threadpool(gateway.handle_webhook, payload)
    return JSONResponse(content=body)


@router.post("/payme")
async def payme_webhook(
    request: Request,
    gateway: PaymeGateway = Depends(get_payme_gateway),
):
    """Handle Payme merchant API calls."""
    set_gateway(GatewayProvider.PAYME.value)
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Payme webhook body is not valid JSON")
        return JSONResponse(content=payme_error(PaymeErrorCode.PARSE_ERROR, "Parse error"))

    body = await run_in_threadpool(
        gateway.handle_webhook,
        payload,
        request.headers.get("Authorization"),
    )
    return JSONResponse(content=body)
