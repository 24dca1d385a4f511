"""Payment gateway implementations.

Contains implementations for Click and Payme.
"""

from .click import ClickGateway
from .payme import PaymeGateway, PaymeWebhookError

__all__ = ["ClickGateway", "PaymeGateway", "PaymeWebhookError"]
