"""
Payment Gateway Interface

Uniform contract every processor integration implements. Amounts cross this
interface in major currency units (dollars); conversion to minor units is the
concrete gateway's job. Statuses are normalized to pending | succeeded |
canceled whatever the processor's own vocabulary is.
"""
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, List, Literal

PaymentStatus = Literal["pending", "succeeded", "canceled"]


class GatewayName(str, Enum):
    """Closed set of gateways the registry can construct."""
    STRIPE = "stripe"
    SQUARE = "square"
    PAYPAL = "paypal"
    CRYPTO = "crypto"


@dataclass(frozen=True)
class GatewayCredentials:
    """
    Per-integrator processor credentials, decrypted in memory.

    Absent fields fall back to the platform account.
    """
    stripe_secret_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None


def credential_fingerprint(secret: str) -> str:
    """Cache key for a secret that does not keep the secret itself in memory maps."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@dataclass
class PaymentResult:
    payment_id: str
    client_secret: str
    status: PaymentStatus
    amount: Decimal
    currency: str = "usd"


@dataclass
class RetrievedPayment:
    payment_id: str
    client_secret: Optional[str]
    status: PaymentStatus
    amount: Decimal
    native_status: Optional[str] = None


@dataclass
class RefundResult:
    refund_id: str
    amount: Decimal
    status: str


@dataclass
class GatewayInfo:
    """Self-description used by admin and diagnostic surfaces."""
    name: str
    display_name: str
    is_active: bool
    supported_methods: List[str] = field(default_factory=list)
    required_env_vars: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "isActive": self.is_active,
            "supportedMethods": list(self.supported_methods),
            "requiredEnvVars": list(self.required_env_vars),
        }


class PaymentGateway(ABC):
    """
    Base class for processor integrations.

    Implementations are long-lived singletons owned by the GatewayRegistry and
    must be safe to share between concurrent requests.
    """

    name: GatewayName
    display_name: str

    @abstractmethod
    async def create_payment(
        self,
        amount: Decimal,
        currency: str = "usd",
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> PaymentResult:
        """Create a payment the customer completes client-side."""

    @abstractmethod
    async def retrieve_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> RetrievedPayment:
        """Fetch the live payment object from the processor."""

    @abstractmethod
    async def cancel_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> None:
        """Cancel a payment that has not completed."""

    @abstractmethod
    async def refund_payment(
        self,
        payment_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> RefundResult:
        """Refund a completed payment; omitted amount means a full refund."""

    @abstractmethod
    def get_publishable_key(self, credentials: Optional[GatewayCredentials] = None) -> str:
        """Integrator's client-safe key if supplied, else the platform key."""

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the platform credentials for this gateway are present."""

    @abstractmethod
    def get_info(self) -> GatewayInfo:
        """Describe this gateway."""

    def check_credentials(self, credentials: Optional[GatewayCredentials] = None) -> None:
        """
        Reject a credential pair that cannot be used together.

        Called before an order is created. Gateways without key modes accept
        everything.
        """
