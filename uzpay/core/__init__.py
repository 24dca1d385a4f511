"""Core module for configuration and utilities."""

from uzpay.core.config import ConfigurationError, Settings, settings
from uzpay.core.http import RetryingHttpClient
from uzpay.core.logging import setup_logging

__all__ = [
    "ConfigurationError",
    "Settings",
    "settings",
    "RetryingHttpClient",
    "setup_logging",
]
