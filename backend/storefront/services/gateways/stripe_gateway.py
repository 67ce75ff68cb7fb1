"""
Stripe Gateway

Cash App Pay through Stripe PaymentIntents. One StripeClient is kept per
secret key so the platform account and any number of integrator-owned
accounts can be used concurrently.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Callable, Any

import stripe

from ...exceptions import ProcessorError, CashAppUnavailableError, CredentialValidationError
from ..encryption import are_keys_mismatched, mask_key
from .base import (
    PaymentGateway,
    GatewayName,
    GatewayCredentials,
    GatewayInfo,
    PaymentResult,
    RetrievedPayment,
    RefundResult,
    PaymentStatus,
    credential_fingerprint,
)

logger = logging.getLogger(__name__)

STRIPE_TIMEOUT_SECONDS = 10
STRIPE_MAX_NETWORK_RETRIES = 2


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents, half-up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))


def map_stripe_status(native_status: Optional[str]) -> PaymentStatus:
    """Collapse PaymentIntent statuses onto pending | succeeded | canceled."""
    if native_status == "succeeded":
        return "succeeded"
    if native_status == "canceled":
        return "canceled"
    return "pending"


def is_cashapp_unavailable(error: "stripe.StripeError") -> bool:
    """
    Recognize Stripe's rejection of the cashapp method for a non-US account.
    """
    text = str(error).lower()
    if isinstance(error, stripe.InvalidRequestError):
        text += " invalid_request_error"
    return "cashapp" in text and any(
        marker in text for marker in ("not supported", "not available", "invalid_request_error")
    )


def _default_client_factory(secret_key: str) -> stripe.StripeClient:
    return stripe.StripeClient(
        secret_key,
        max_network_retries=STRIPE_MAX_NETWORK_RETRIES,
        http_client=stripe.HTTPXClient(timeout=STRIPE_TIMEOUT_SECONDS),
    )


class StripeGateway(PaymentGateway):
    """
    Stripe PaymentIntents restricted to the `cashapp` payment method.

    Args:
        secret_key: Platform secret key
        publishable_key: Platform publishable key
        client_factory: Builds a StripeClient for a secret key (swapped in tests)
    """

    name = GatewayName.STRIPE
    display_name = "Stripe (Cash App Pay)"

    def __init__(
        self,
        secret_key: str = "",
        publishable_key: str = "",
        client_factory: Callable[[str], Any] = _default_client_factory
    ):
        self._secret_key = secret_key
        self._publishable_key = publishable_key
        self._client_factory = client_factory
        self._clients: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Client cache
    # ------------------------------------------------------------------

    def client_for(self, credentials: Optional[GatewayCredentials] = None):
        """
        StripeClient for the integrator's key, or the platform key.

        Raises:
            ProcessorError: no secret key is available at all
        """
        secret_key = (credentials.stripe_secret_key if credentials else None) or self._secret_key
        if not secret_key:
            logger.error("STRIPE_SECRET_KEY environment variable is not set")
            raise ProcessorError("Payment processor is not configured")

        fingerprint = credential_fingerprint(secret_key)
        client = self._clients.get(fingerprint)
        if client is None:
            client = self._client_factory(secret_key)
            self._clients[fingerprint] = client
        return client

    def clear_clients(self) -> None:
        """Drop cached clients, e.g. after an integrator rotates keys."""
        self._clients.clear()

    @property
    def cached_client_count(self) -> int:
        return len(self._clients)

    # ------------------------------------------------------------------
    # PaymentGateway
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        amount: Decimal,
        currency: str = "usd",
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> PaymentResult:
        """
        Create a cashapp PaymentIntent.

        Raises:
            CashAppUnavailableError: the account cannot offer Cash App Pay
            ProcessorError: any other Stripe failure
        """
        client = self.client_for(credentials)

        params: Dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "payment_method_types": ["cashapp"],
            "metadata": metadata or {},
        }
        if description:
            params["description"] = description

        options = {"idempotency_key": idempotency_key} if idempotency_key else None
        try:
            intent = await client.v1.payment_intents.create_async(params=params, options=options)
        except stripe.StripeError as e:
            logger.error(f"Error creating payment intent: {e}", exc_info=True)
            if is_cashapp_unavailable(e):
                raise CashAppUnavailableError() from e
            raise ProcessorError("Failed to create payment") from e

        logger.info(f"Created PaymentIntent {intent.id} for {amount} {currency}")

        return PaymentResult(
            payment_id=intent.id,
            client_secret=intent.client_secret,
            status=map_stripe_status(intent.status),
            amount=Decimal(str(amount)),
            currency=currency,
        )

    async def retrieve_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> RetrievedPayment:
        client = self.client_for(credentials)
        try:
            intent = await client.v1.payment_intents.retrieve_async(payment_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve payment intent {payment_id}: {e}", exc_info=True)
            raise ProcessorError("Failed to retrieve payment session") from e

        return RetrievedPayment(
            payment_id=intent.id,
            client_secret=intent.client_secret,
            status=map_stripe_status(intent.status),
            amount=from_minor_units(intent.amount),
            native_status=intent.status,
        )

    async def cancel_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> None:
        client = self.client_for(credentials)
        try:
            await client.v1.payment_intents.cancel_async(payment_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to cancel payment intent {payment_id}: {e}", exc_info=True)
            raise ProcessorError("Failed to cancel payment") from e
        logger.info(f"Canceled PaymentIntent {payment_id}")

    async def refund_payment(
        self,
        payment_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> RefundResult:
        client = self.client_for(credentials)

        params: Dict[str, Any] = {"payment_intent": payment_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        if reason:
            params["reason"] = reason

        try:
            refund = await client.v1.refunds.create_async(params=params)
        except stripe.StripeError as e:
            logger.error(f"Failed to refund payment intent {payment_id}: {e}", exc_info=True)
            raise ProcessorError("Failed to refund payment") from e
        logger.info(f"Refund {refund.id} for PaymentIntent {payment_id}: {refund.status}")

        return RefundResult(
            refund_id=refund.id,
            amount=from_minor_units(refund.amount),
            status=refund.status or "pending",
        )

    def get_publishable_key(self, credentials: Optional[GatewayCredentials] = None) -> str:
        if credentials and credentials.stripe_publishable_key:
            return credentials.stripe_publishable_key
        return self._publishable_key

    def check_credentials(self, credentials: Optional[GatewayCredentials] = None) -> None:
        """
        Reject a secret/publishable pair that mixes test and live mode.

        The pair checked is the one a purchase would actually use, so an
        integrator secret key falling back to the platform publishable key
        counts too.

        Raises:
            CredentialValidationError: the modes differ
        """
        secret_key = (credentials.stripe_secret_key if credentials else None) or self._secret_key
        publishable_key = self.get_publishable_key(credentials)
        if are_keys_mismatched(secret_key, publishable_key):
            logger.error(
                f"Stripe key mode mismatch: secret={mask_key(secret_key)}, "
                f"publishable={mask_key(publishable_key)}"
            )
            raise CredentialValidationError([
                "Secret key and publishable key mode mismatch. Both must be test or both must be live."
            ])

    def is_configured(self) -> bool:
        return bool(self._secret_key and self._publishable_key)

    def get_info(self) -> GatewayInfo:
        return GatewayInfo(
            name=self.name.value,
            display_name=self.display_name,
            is_active=True,
            supported_methods=["cashapp"],
            required_env_vars=[
                "STRIPE_SECRET_KEY",
                "STRIPE_PUBLISHABLE_KEY",
                "STRIPE_WEBHOOK_SECRET",
            ],
        )
