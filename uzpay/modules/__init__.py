"""Application modules.

- payment_gateway: Click and Payme adapters behind one provider interface
"""
