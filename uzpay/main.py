"""FastAPI application entry point.

Reference host for the webhook endpoints. Gateways whose credentials are
not configured are skipped, and their endpoint answers 503.
"""

import logging
from typing import Optional

from fastapi import FastAPI

from uzpay.core.config import ConfigurationError, Settings, settings
from uzpay.core.logging import setup_logging
from uzpay.core.middleware import CorrelationIdMiddleware
from uzpay.modules.payment_gateway.interface import PaymentGatewayInterface
from uzpay.modules.payment_gateway.models import GatewayProvider
from uzpay.modules.payment_gateway.router import router as payment_webhook_router
from uzpay.modules.payment_gateway.service import create_gateway

logger = logging.getLogger(__name__)


def load_gateways() -> dict[GatewayProvider, PaymentGatewayInterface]:
    """Build every gateway that has credentials in the environment."""
    gateways = {}
    for provider in GatewayProvider:
        try:
            gateways[provider] = create_gateway(provider)
        except ConfigurationError as e:
            logger.warning("Skipping %s gateway: %s", provider.value, e)
    return gateways


def create_app(
    gateways: Optional[dict[GatewayProvider, PaymentGatewayInterface]] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the webhook host application.

    Args:
        gateways: Gateways to serve (resolved from the environment when omitted)
        app_settings: Application settings

    Returns:
        Configured FastAPI app
    """
    app_settings = app_settings or settings
    setup_logging(level=app_settings.LOG_LEVEL, json_format=app_settings.LOG_JSON)

    app = FastAPI(title=app_settings.PROJECT_NAME, version=app_settings.VERSION)
    app.add_middleware(CorrelationIdMiddleware)
    app.state.gateways = gateways if gateways is not None else load_gateways()
    app.include_router(payment_webhook_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "gateways": sorted(provider.value for provider in app.state.gateways),
        }

    return app
