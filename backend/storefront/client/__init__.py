"""Client-side helpers for pages returning from the processor redirect."""
from .payment_status import CancellationToken, PaymentStatusResult, verify_payment_status

__all__ = ["CancellationToken", "PaymentStatusResult", "verify_payment_status"]
