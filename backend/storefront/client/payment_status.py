"""
Payment Status Poller

After the processor redirects a buyer back with `payment_intent`,
`payment_intent_client_secret` and a claimed `redirect_status`, the claim is
not trusted. The payment intent is re-read from the processor with the
publishable key and client secret, and only if that read fails does the
redirect claim decide the displayed status.

Verification is tied to a CancellationToken owned by the page or component;
cancelling it aborts the in-flight read and no status is reported.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Optional

import httpx

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com"

VerifiedStatus = Literal["succeeded", "processing", "failed", "pending"]


class CancellationToken:
    """Explicit cancellation signal for one component lifetime."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("payment status verification cancelled")


@dataclass
class PaymentStatusResult:
    status: VerifiedStatus
    source: Literal["processor", "redirect"]


def map_intent_status(native_status: Optional[str]) -> VerifiedStatus:
    """Processor PaymentIntent status to the page's status vocabulary."""
    if native_status == "succeeded":
        return "succeeded"
    if native_status == "processing":
        return "processing"
    if native_status == "canceled" or (native_status or "").startswith("requires_"):
        return "failed"
    return "pending"


def map_redirect_status(redirect_status: Optional[str]) -> VerifiedStatus:
    if redirect_status in ("succeeded", "processing", "failed"):
        return redirect_status
    return "pending"


async def _retrieve_intent_status(
    client: httpx.AsyncClient,
    api_base: str,
    payment_intent_id: str,
    client_secret: str,
    publishable_key: str
) -> Optional[str]:
    """Native status from the processor, or None if the read did not succeed."""
    try:
        response = await client.get(
            f"{api_base}/v1/payment_intents/{payment_intent_id}",
            params={"key": publishable_key, "client_secret": client_secret},
            headers={"Authorization": f"Bearer {publishable_key}"},
        )
    except httpx.HTTPError as e:
        logger.warning(f"Payment intent retrieval failed: {type(e).__name__}: {e}")
        return None

    if not response.is_success:
        logger.warning(f"Payment intent retrieval returned HTTP {response.status_code}")
        return None
    try:
        return response.json().get("status")
    except ValueError:
        logger.warning("Payment intent retrieval returned a non-JSON body")
        return None


async def verify_payment_status(
    payment_intent_id: str,
    client_secret: str,
    redirect_status: Optional[str],
    publishable_key: Optional[str],
    cancel_token: Optional[CancellationToken] = None,
    client: Optional[httpx.AsyncClient] = None,
    api_base: str = STRIPE_API_BASE
) -> PaymentStatusResult:
    """
    Independently verify a payment after a processor redirect.

    Args:
        payment_intent_id: `payment_intent` query parameter
        client_secret: `payment_intent_client_secret` query parameter
        redirect_status: `redirect_status` query parameter (untrusted)
        publishable_key: Processor publishable key for the account
        cancel_token: Aborts verification when cancelled
        client: httpx.AsyncClient to use (one is created if omitted)
        api_base: Processor API origin

    Returns:
        PaymentStatusResult; source is "redirect" when the independent read failed

    Raises:
        asyncio.CancelledError: cancel_token was cancelled before a result
    """
    token = cancel_token or CancellationToken()
    token.raise_if_cancelled()

    if not publishable_key:
        logger.warning("No publishable key available; falling back to redirect status")
        return PaymentStatusResult(status=map_redirect_status(redirect_status), source="redirect")

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=10.0)
    try:
        retrieval = asyncio.ensure_future(
            _retrieve_intent_status(http, api_base, payment_intent_id, client_secret, publishable_key)
        )
        cancelled = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({retrieval, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not retrieval.done():
                retrieval.cancel()

        if token.cancelled:
            logger.debug(f"Verification of {payment_intent_id} cancelled")
            raise asyncio.CancelledError("payment status verification cancelled")

        native_status = retrieval.result()
    finally:
        if owns_client:
            await http.aclose()

    if native_status is None:
        return PaymentStatusResult(status=map_redirect_status(redirect_status), source="redirect")
    return PaymentStatusResult(status=map_intent_status(native_status), source="processor")
