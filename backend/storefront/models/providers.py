"""
Pydantic Provider Models

Integrator registration input. Credentials arrive in plaintext here and are
validated and encrypted by the provider service before they are stored.
"""
from typing import Optional, Literal
from pydantic import BaseModel, Field

ProviderGatewayChoice = Literal["default", "stripe", "square", "paypal", "crypto"]


class ProviderRegistration(BaseModel):
    """
    New integrator definition.

    Redirect URL templates may contain an {orderId} placeholder.
    """
    name: str = Field(min_length=1)
    slug: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")
    payment_gateway: ProviderGatewayChoice = "default"
    use_own_gateway_credentials: bool = False
    stripe_secret_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    webhook_url: Optional[str] = None
    success_redirect_url: Optional[str] = None
    cancel_redirect_url: Optional[str] = None
    description: Optional[str] = None
    status: Literal["active", "inactive"] = "active"

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "name": "Acme Platform",
                "slug": "acme",
                "payment_gateway": "default",
                "use_own_gateway_credentials": False,
                "webhook_url": "https://acme.example/hooks/payments",
                "success_redirect_url": "https://acme.example/orders/{orderId}/thanks",
                "cancel_redirect_url": "https://acme.example/orders/{orderId}/cancel"
            }
        }
    }
