"""Payment gateway selection.

Callers pick a gateway by provider tag and get back an object that
satisfies PaymentGatewayInterface, so orchestration code never branches
on which gateway it talks to.
"""

import logging
from typing import Any, Optional, Type, Union

from uzpay.modules.payment_gateway.config import GatewayConfig, resolve_gateway_config
from uzpay.modules.payment_gateway.gateways import ClickGateway, PaymeGateway
from uzpay.modules.payment_gateway.interface import PaymentGatewayInterface
from uzpay.modules.payment_gateway.models import GatewayProvider

logger = logging.getLogger(__name__)


class PaymentGatewayFactory:
    """Factory for creating payment gateway instances."""

    _gateways: dict[str, Type[PaymentGatewayInterface]] = {
        GatewayProvider.CLICK.value: ClickGateway,
        GatewayProvider.PAYME.value: PaymeGateway,
    }

    @classmethod
    def create(
        cls,
        config: GatewayConfig,
        **kwargs: Any,
    ) -> PaymentGatewayInterface:
        """Create a gateway instance from a resolved configuration.

        Args:
            config: Resolved gateway configuration
            **kwargs: Adapter-specific collaborators (http_client, store, ...)

        Returns:
            Configured gateway instance

        Raises:
            ValueError: If provider is not supported
        """
        gateway_class = cls._gateways.get(config.provider.value)
        if not gateway_class:
            raise ValueError(f"Unsupported gateway provider: {config.provider}")
        return gateway_class(config, **kwargs)

    @classmethod
    def register(
        cls,
        provider: str,
        gateway_class: Type[PaymentGatewayInterface],
    ) -> None:
        """Register a gateway implementation under a provider tag."""
        cls._gateways[provider] = gateway_class

    @classmethod
    def get_supported_providers(cls) -> list[str]:
        """Get list of supported provider identifiers."""
        return list(cls._gateways.keys())


def create_gateway(
    provider: Union[GatewayProvider, str],
    *,
    http_client: Optional[Any] = None,
    **kwargs: Any,
) -> PaymentGatewayInterface:
    """Resolve configuration for a provider and build its gateway.

    Keyword arguments naming GatewayConfig fields are explicit config
    values; the rest are passed to the adapter constructor.

    Raises:
        ConfigurationError: If required configuration is missing
    """
    config_fields = set(GatewayConfig.model_fields) - {"provider"}
    overrides = {k: v for k, v in kwargs.items() if k in config_fields}
    adapter_kwargs = {k: v for k, v in kwargs.items() if k not in config_fields}

    config = resolve_gateway_config(provider, **overrides)
    logger.info(
        "Payment gateway configured",
        extra={"provider": config.provider.value, "test_mode": config.test_mode},
    )
    return PaymentGatewayFactory.create(config, http_client=http_client, **adapter_kwargs)
