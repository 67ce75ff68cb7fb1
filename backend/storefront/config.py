"""
Storefront Configuration Module

Loads environment variables for the payment backend: processor credentials,
the credential vault master secret, integrator notification policy and
database location.
"""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Platform processor keys are the fallback for integrators that do not
      bring their own credentials
    - ENCRYPTION_KEY is the vault master secret; APP_SECRET is only used when
      it is unset
    """

    # Gateway selection (stripe | square | paypal | crypto)
    payment_gateway: str = "stripe"

    # Stripe (platform account)
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""

    # Placeholder gateways, reported by the gateway listing only
    square_access_token: str = ""
    square_location_id: str = ""
    square_application_id: str = ""
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    crypto_gateway_api_key: str = ""

    # Credential vault master secrets
    encryption_key: str = ""
    app_secret: str = ""

    # Integrator notifications
    notifier_max_attempts: int = 5
    notifier_base_delay_seconds: float = 1.0
    notifier_request_timeout_seconds: float = 2.0
    notifier_deadline_seconds: float = 20.0

    # Public URL used to build integrator checkout links
    public_base_url: str = "http://localhost:3000"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Database
    database_path: str = "./storefront.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
