"""
Gateway Registry

Maps each GatewayName to a factory and lazily builds one instance per name.
The registry is created once in the application lifespan and handed to
request handlers through a FastAPI dependency, so tests can build their own
with fake gateways.

Resolution order for a purchase: integrator override -> platform default.
"""
import logging
from typing import Callable, Dict, List, Mapping, Optional, Union

from ...config import Settings
from ...exceptions import UnknownGatewayError, CredentialValidationError
from ..encryption import are_keys_mismatched
from .base import PaymentGateway, GatewayName, GatewayInfo
from .placeholders import SquareGateway, PayPalGateway, CryptoGateway
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[], PaymentGateway]

# Integrator value meaning "use the platform default"
DEFAULT_SENTINEL = "default"


class GatewayRegistry:
    """
    Closed mapping from gateway name to a lazily constructed singleton.

    Args:
        factories: One factory per GatewayName
        default_name: Platform-wide default gateway

    Raises:
        UnknownGatewayError: default_name is not registered
    """

    def __init__(self, factories: Mapping[GatewayName, GatewayFactory], default_name: str = "stripe"):
        self._factories: Dict[GatewayName, GatewayFactory] = dict(factories)
        self._instances: Dict[GatewayName, PaymentGateway] = {}
        self._default = self._coerce(default_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayRegistry":
        """
        Registry wired to the platform credentials in settings.

        Raises:
            UnknownGatewayError: PAYMENT_GATEWAY names no registered gateway
            CredentialValidationError: the platform Stripe keys mix test and live mode
        """
        if are_keys_mismatched(settings.stripe_secret_key, settings.stripe_publishable_key):
            raise CredentialValidationError([
                "STRIPE_SECRET_KEY and STRIPE_PUBLISHABLE_KEY mode mismatch. "
                "Both must be test or both must be live."
            ])

        factories: Dict[GatewayName, GatewayFactory] = {
            GatewayName.STRIPE: lambda: StripeGateway(
                secret_key=settings.stripe_secret_key,
                publishable_key=settings.stripe_publishable_key,
            ),
            GatewayName.SQUARE: lambda: SquareGateway(
                configured=bool(settings.square_access_token and settings.square_location_id)
            ),
            GatewayName.PAYPAL: lambda: PayPalGateway(
                configured=bool(settings.paypal_client_id and settings.paypal_client_secret)
            ),
            GatewayName.CRYPTO: lambda: CryptoGateway(
                configured=bool(settings.crypto_gateway_api_key)
            ),
        }
        return cls(factories, default_name=settings.payment_gateway or GatewayName.STRIPE.value)

    def _coerce(self, name: Union[str, GatewayName]) -> GatewayName:
        try:
            gateway_name = GatewayName(name)
        except ValueError:
            raise UnknownGatewayError(str(name), self.registered_names()) from None
        if gateway_name not in self._factories:
            raise UnknownGatewayError(gateway_name.value, self.registered_names())
        return gateway_name

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get(self, name: Union[str, GatewayName]) -> PaymentGateway:
        """
        Singleton gateway for a name.

        Raises:
            UnknownGatewayError: name is not registered (message lists valid names)
        """
        gateway_name = self._coerce(name)
        instance = self._instances.get(gateway_name)
        if instance is None:
            instance = self._factories[gateway_name]()
            self._instances[gateway_name] = instance
            logger.debug(f"Constructed gateway: {gateway_name.value}")
        return instance

    def default(self) -> PaymentGateway:
        return self.get(self._default)

    def for_provider(self, provider_gateway: Optional[str]) -> PaymentGateway:
        """
        Gateway for an integrator.

        Args:
            provider_gateway: The integrator's explicit choice; None, "" or
                "default" select the platform default

        Raises:
            UnknownGatewayError: explicit choice is not a registered gateway
        """
        if not provider_gateway or provider_gateway == DEFAULT_SENTINEL:
            return self.default()
        return self.get(provider_gateway)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active_gateway_name(self) -> str:
        return self._default.value

    def registered_names(self) -> List[str]:
        return [name.value for name in self._factories]

    def is_valid_name(self, name: str) -> bool:
        return name in self.registered_names()

    def all_info(self) -> List[GatewayInfo]:
        return [self.get(name).get_info() for name in self._factories]

    def active_gateways(self) -> List[GatewayInfo]:
        return [info for info in self.all_info() if info.is_active]
