"""Payment Gateway Module.

Click and Payme behind one provider interface, with the webhook state
machines each gateway's callback protocol requires.
"""

from uzpay.modules.payment_gateway.config import (
    GatewayConfig,
    resolve_gateway_config,
)
from uzpay.modules.payment_gateway.models import (
    CancelReason,
    ClickErrorCode,
    GatewayProvider,
    PaymeErrorCode,
    PaymeMethod,
    PaymentErrorCode,
    PaymentStatus,
    Transaction,
    TransactionState,
    is_transaction_expired,
)
from uzpay.modules.payment_gateway.interface import (
    PaymentAmount,
    PaymentError,
    PaymentGatewayInterface,
    PaymentOrder,
    PaymentResult,
    PaymentVerifyResult,
)
from uzpay.modules.payment_gateway.signature import (
    compute_auth_token,
    compute_hash_signature,
)
from uzpay.modules.payment_gateway.store import (
    InMemoryTransactionStore,
    TransactionStore,
)
from uzpay.modules.payment_gateway.gateways import (
    ClickGateway,
    PaymeGateway,
    PaymeWebhookError,
)
from uzpay.modules.payment_gateway.service import (
    PaymentGatewayFactory,
    create_gateway,
)

__all__ = [
    # Config
    "GatewayConfig",
    "resolve_gateway_config",
    # Models
    "CancelReason",
    "ClickErrorCode",
    "GatewayProvider",
    "PaymeErrorCode",
    "PaymeMethod",
    "PaymentErrorCode",
    "PaymentStatus",
    "Transaction",
    "TransactionState",
    "is_transaction_expired",
    # Interface
    "PaymentAmount",
    "PaymentError",
    "PaymentGatewayInterface",
    "PaymentOrder",
    "PaymentResult",
    "PaymentVerifyResult",
    # Signatures
    "compute_auth_token",
    "compute_hash_signature",
    # Store
    "InMemoryTransactionStore",
    "TransactionStore",
    # Gateways
    "ClickGateway",
    "PaymeGateway",
    "PaymeWebhookError",
    # Services
    "PaymentGatewayFactory",
    "create_gateway",
]
