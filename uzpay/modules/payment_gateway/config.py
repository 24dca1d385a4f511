"""Gateway configuration resolution.

Adapters never read the environment themselves. Callers resolve a
GatewayConfig once, explicit values first and environment variables as
fallback, then hand the frozen result to the adapter.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from uzpay.core.config import ConfigurationError, Settings
from uzpay.core.http import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
)
from uzpay.modules.payment_gateway.models import GatewayProvider

DEFAULT_PAYME_LOGIN = "Paycom"


class ClickSettings(BaseSettings):
    """Click credentials from CLICK_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="CLICK_", env_file=".env", extra="ignore")

    merchant_id: str = ""
    service_id: str = ""
    secret_key: str = Field("", validation_alias="CLICK_SECRET")
    test_mode: Optional[bool] = None
    timeout: Optional[int] = None
    retries: Optional[int] = None
    retry_delay: Optional[int] = None


class PaymeSettings(BaseSettings):
    """Payme credentials from PAYME_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="PAYME_", env_file=".env", extra="ignore")

    merchant_id: str = ""
    secret_key: str = Field("", validation_alias="PAYME_KEY")
    login: str = ""
    test_mode: Optional[bool] = None
    timeout: Optional[int] = None
    retries: Optional[int] = None
    retry_delay: Optional[int] = None


class GatewayConfig(BaseModel):
    """Fully resolved, immutable gateway configuration.

    Durations are in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    provider: GatewayProvider
    merchant_id: str = Field(..., min_length=1)
    secret_key: str = Field(..., min_length=1, repr=False)
    service_id: str = ""
    login: str = DEFAULT_PAYME_LOGIN
    test_mode: bool = True
    timeout: int = Field(DEFAULT_TIMEOUT_MS, gt=0)
    retries: int = Field(DEFAULT_RETRIES, ge=0)
    retry_delay: int = Field(DEFAULT_RETRY_DELAY_MS, ge=0)


_ENV_SOURCES: dict[GatewayProvider, type[BaseSettings]] = {
    GatewayProvider.CLICK: ClickSettings,
    GatewayProvider.PAYME: PaymeSettings,
}

# Env variable names quoted in error messages
_REQUIRED_ENV_NAMES: dict[GatewayProvider, dict[str, str]] = {
    GatewayProvider.CLICK: {"merchant_id": "CLICK_MERCHANT_ID", "secret_key": "CLICK_SECRET"},
    GatewayProvider.PAYME: {"merchant_id": "PAYME_MERCHANT_ID", "secret_key": "PAYME_KEY"},
}

_RESOLVABLE_FIELDS = (
    "merchant_id", "secret_key", "service_id", "login",
    "test_mode", "timeout", "retries", "retry_delay",
)


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def resolve_gateway_config(
    provider: Union[GatewayProvider, str],
    *,
    app_settings: Optional[Settings] = None,
    env_settings: Optional[BaseSettings] = None,
    **overrides: Any,
) -> GatewayConfig:
    """Resolve a gateway configuration from explicit values and environment.

    For each field an explicit, non-empty override wins, then the
    provider's environment variable, then the default. ``test_mode``
    defaults to True everywhere except ``ENVIRONMENT=production``.

    Args:
        provider: Gateway provider tag
        app_settings: Application settings (read from env when omitted)
        env_settings: Provider settings (read from env when omitted)
        **overrides: Explicit GatewayConfig field values

    Returns:
        Frozen GatewayConfig

    Raises:
        ConfigurationError: If the provider is unknown, a required value
            is absent from both sources, or a value is invalid
    """
    try:
        provider = GatewayProvider(provider)
    except ValueError:
        raise ConfigurationError(f"Unsupported gateway provider: {provider}") from None

    unknown = set(overrides) - set(_RESOLVABLE_FIELDS)
    if unknown:
        raise ConfigurationError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

    env = env_settings if env_settings is not None else _ENV_SOURCES[provider]()
    app_settings = app_settings if app_settings is not None else Settings()

    resolved: dict[str, Any] = {"provider": provider}
    for name in _RESOLVABLE_FIELDS:
        value = overrides.get(name)
        if _is_missing(value):
            value = getattr(env, name, None)
        if not _is_missing(value):
            resolved[name] = value

    for name, env_name in _REQUIRED_ENV_NAMES[provider].items():
        if name not in resolved:
            raise ConfigurationError(
                f"{name} is required. Provide it in config or set {env_name} environment variable"
            )

    resolved.setdefault("test_mode", not app_settings.is_production)

    try:
        return GatewayConfig(**resolved)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {provider.value} configuration: {e}") from e
