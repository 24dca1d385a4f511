"""uzpay - Click and Payme payment gateway integration.

One provider interface over two Uzbek payment gateways, plus the inbound
webhook handlers that reconcile transaction state for each of them.

Modules:
    - core: Configuration, structured logging, retrying HTTP client
    - modules.payment_gateway: Provider contract, Click and Payme adapters,
      webhook schemas and response builders, transaction store, router
"""

__version__ = "0.1.0"
