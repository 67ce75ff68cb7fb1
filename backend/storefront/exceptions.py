"""
Storefront Exception Hierarchy

Every error raised by the payment backend carries a stable error code, a
caller-safe message and the HTTP status the API layer responds with.
"""
from typing import Optional, Dict, Any, List


class StorefrontError(Exception):
    """
    Base exception for all storefront payment errors.

    Messages are safe to show to the caller; diagnostic detail belongs in
    the logs, not in `message`.
    """

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        body: Dict[str, Any] = {
            "error": self.message,
            "errorCode": self.error_code,
        }
        if self.details:
            body["details"] = self.details
        return body


# ============================================================================
# Input validation and lookup errors
# ============================================================================

class InvalidRequestError(StorefrontError):
    """A required field is missing or malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_REQUEST", message, details, status_code=400)


class InvalidCheckoutTokenError(StorefrontError):
    """
    Checkout token does not have the expected shape.

    The message is the same for every malformed token.
    """

    def __init__(self):
        super().__init__("INVALID_CHECKOUT_TOKEN", "Invalid checkout link", status_code=400)


class CheckoutSessionNotFoundError(StorefrontError):
    """No order is addressed by a well-formed checkout token."""

    def __init__(self):
        super().__init__(
            "CHECKOUT_SESSION_NOT_FOUND",
            "Checkout session not found or expired",
            status_code=404
        )


class ServiceNotFoundError(StorefrontError):
    """Requested service does not exist in the catalog."""

    def __init__(self, message: str = "Service not found"):
        super().__init__("SERVICE_NOT_FOUND", message, status_code=404)


class ProviderAuthenticationError(StorefrontError):
    """Integrator API key missing, unknown or belongs to an inactive integrator."""

    def __init__(self, message: str = "Invalid or inactive API key"):
        super().__init__("PROVIDER_UNAUTHORIZED", message, status_code=401)


# ============================================================================
# Processor errors
# ============================================================================

class ProcessorError(StorefrontError):
    """
    Communication with the payment processor failed.

    Examples:
    - Network failure talking to the processor
    - Processor rejected the request
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("PROCESSOR_ERROR", message, details, status_code=500)


class CashAppUnavailableError(StorefrontError):
    """
    Cash App Pay is not enabled for the processor account.

    Cash App Pay is only offered to US-based processor accounts; the client
    renders a dedicated explanation for this code.
    """

    def __init__(self):
        super().__init__(
            "CASHAPP_UNAVAILABLE",
            "Cash App payments are not available for this service. Please contact support.",
            {
                "reason": "The Stripe account for this service is not based in the United States, "
                          "which is required for Cash App payments."
            },
            status_code=400
        )


class UnknownGatewayError(StorefrontError):
    """Gateway name is not one of the registered gateways."""

    def __init__(self, name: str, available: List[str]):
        super().__init__(
            "UNKNOWN_GATEWAY",
            f'Unknown payment gateway: "{name}". Available gateways: {", ".join(available)}',
            {"available": available},
            status_code=500
        )


class GatewayNotImplementedError(StorefrontError):
    """An inactive placeholder gateway was asked to do real work."""

    def __init__(self, message: str):
        super().__init__("GATEWAY_NOT_IMPLEMENTED", message, status_code=501)


# ============================================================================
# Credential and webhook errors
# ============================================================================

class CredentialValidationError(StorefrontError):
    """
    Integrator gateway credentials failed validation.

    All problems found are reported together in `errors`.
    """

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(
            "CREDENTIAL_VALIDATION_FAILED",
            f"Stripe credential validation failed: {'; '.join(errors)}",
            {"errors": errors},
            status_code=400
        )


class SignatureInvalidError(StorefrontError):
    """Inbound webhook signature did not validate against any registered secret."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__("SIGNATURE_INVALID", message, status_code=400)


class WebhookConfigurationError(StorefrontError):
    """No webhook signing secret is configured anywhere."""

    def __init__(self, message: str = "Webhook secret not configured"):
        super().__init__("WEBHOOK_NOT_CONFIGURED", message, status_code=500)


class EventPayloadError(StorefrontError):
    """A verified event of a handled type does not have the expected shape."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("EVENT_PAYLOAD_INVALID", message, details, status_code=400)


class WebhookProcessingError(StorefrontError):
    """
    A verified event failed while being applied.

    Surfaced as 500 so the processor redelivers the event.
    """

    def __init__(self, event_id: str, event_type: str):
        super().__init__(
            "WEBHOOK_PROCESSING_FAILED",
            "Error processing webhook",
            {"eventId": event_id, "eventType": event_type},
            status_code=500
        )
