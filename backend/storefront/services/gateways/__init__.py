"""
Payment gateway package.

One interface, one implementation per processor, and a registry that picks
the implementation for a purchase.
"""
from .base import (
    PaymentGateway,
    GatewayName,
    GatewayCredentials,
    GatewayInfo,
    PaymentResult,
    RetrievedPayment,
    RefundResult,
)
from .stripe_gateway import StripeGateway
from .placeholders import SquareGateway, PayPalGateway, CryptoGateway
from .registry import GatewayRegistry

__all__ = [
    "PaymentGateway",
    "GatewayName",
    "GatewayCredentials",
    "GatewayInfo",
    "PaymentResult",
    "RetrievedPayment",
    "RefundResult",
    "StripeGateway",
    "SquareGateway",
    "PayPalGateway",
    "CryptoGateway",
    "GatewayRegistry",
]
