"""Application configuration settings.

Process-wide values are loaded from environment variables (.env file).
Gateway credentials are resolved separately, see
``uzpay.modules.payment_gateway.config``.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "uzpay"
    VERSION: str = "0.1.0"

    # production switches every gateway to live endpoints unless overridden
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
