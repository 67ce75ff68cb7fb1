"""
Placeholder Gateways

Square, PayPal and crypto integrations are registered so they show up in the
gateway listing, but they are inactive: every payment operation fails with
GatewayNotImplementedError.
"""
from decimal import Decimal
from typing import Optional, Dict, List

from ...exceptions import GatewayNotImplementedError
from .base import (
    PaymentGateway,
    GatewayName,
    GatewayCredentials,
    GatewayInfo,
    PaymentResult,
    RetrievedPayment,
    RefundResult,
)


class PlaceholderGateway(PaymentGateway):
    """Common behavior for gateways that are listed but not yet implemented."""

    supported_methods: List[str] = []
    required_env_vars: List[str] = []

    def __init__(self, configured: bool = False):
        self._configured = configured

    def _not_implemented(self, hint: bool = False) -> GatewayNotImplementedError:
        message = f"{self.display_name} gateway is not yet implemented."
        if hint:
            message += " Set PAYMENT_GATEWAY=stripe to use Stripe."
        return GatewayNotImplementedError(message)

    async def create_payment(
        self,
        amount: Decimal,
        currency: str = "usd",
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> PaymentResult:
        raise self._not_implemented(hint=True)

    async def retrieve_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> RetrievedPayment:
        raise self._not_implemented()

    async def cancel_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> None:
        raise self._not_implemented()

    async def refund_payment(
        self,
        payment_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> RefundResult:
        raise self._not_implemented()

    def get_publishable_key(self, credentials: Optional[GatewayCredentials] = None) -> str:
        raise self._not_implemented()

    def is_configured(self) -> bool:
        return self._configured

    def get_info(self) -> GatewayInfo:
        return GatewayInfo(
            name=self.name.value,
            display_name=self.display_name,
            is_active=False,
            supported_methods=list(self.supported_methods),
            required_env_vars=list(self.required_env_vars),
        )


class SquareGateway(PlaceholderGateway):
    name = GatewayName.SQUARE
    display_name = "Square"
    supported_methods = ["card", "apple_pay", "google_pay", "cash_app"]
    required_env_vars = [
        "SQUARE_ACCESS_TOKEN",
        "SQUARE_LOCATION_ID",
        "SQUARE_APPLICATION_ID",
    ]


class PayPalGateway(PlaceholderGateway):
    name = GatewayName.PAYPAL
    display_name = "PayPal"
    supported_methods = ["paypal", "venmo", "card", "pay_later"]
    required_env_vars = ["PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET"]


class CryptoGateway(PlaceholderGateway):
    name = GatewayName.CRYPTO
    display_name = "Crypto"
    supported_methods = ["bitcoin", "ethereum", "usdc", "usdt"]
    required_env_vars = ["CRYPTO_GATEWAY_API_KEY"]

    async def refund_payment(
        self,
        payment_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> RefundResult:
        raise GatewayNotImplementedError("Crypto gateway does not support automatic refunds.")
