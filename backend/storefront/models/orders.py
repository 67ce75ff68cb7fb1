"""
Pydantic Order Models

Order status vocabulary and the outbound integrator notification payload.
"""
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

OrderStatus = Literal["pending", "paid", "failed", "refunded", "disputed"]

NotificationEvent = Literal[
    "payment_succeeded",
    "payment_failed",
    "payment_disputed",
    "dispute_won",
    "payment_refunded",
]


class IntegratorNotification(BaseModel):
    """
    Body POSTed to an integrator's webhook URL.

    Field names are camelCase on the wire.
    """
    event: NotificationEvent
    order_id: str
    external_id: Optional[str] = None
    provider_id: str
    provider_name: str
    service_id: Optional[str] = None
    service_name: str
    amount: float
    status: OrderStatus
    stripe_payment_intent_id: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "event": "payment_succeeded",
                "orderId": "7c0e0f1e-8f8e-4a53-9d0c-3f4b8f7d2a11",
                "externalId": "inv_1042",
                "providerId": "prov_01",
                "providerName": "Acme Platform",
                "serviceId": None,
                "serviceName": "Consulting hour",
                "amount": 150.0,
                "status": "paid",
                "stripePaymentIntentId": "pi_123",
                "timestamp": "2025-10-17T14:35:00Z"
            }
        }
    )
