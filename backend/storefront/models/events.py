"""
Processor Event Models

Stripe webhook events parsed into a discriminated union at the boundary.
Only the fields the reconciler reads are modeled; everything else in the
payload is ignored. Event types outside the union become UnhandledEvent.
"""
from typing import Optional, Dict, Literal, Union, Annotated, Any
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..exceptions import EventPayloadError


class _StripeObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PaymentIntentObject(_StripeObject):
    id: str
    amount: int = 0
    currency: str = "usd"
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class DisputeObject(_StripeObject):
    id: str
    payment_intent: Optional[str] = None
    charge: Optional[str] = None
    amount: int = 0
    reason: Optional[str] = None
    status: str


class PaymentIntentData(_StripeObject):
    object: PaymentIntentObject


class DisputeData(_StripeObject):
    object: DisputeObject


class _EventBase(_StripeObject):
    id: str
    created: Optional[int] = None
    livemode: bool = False


class PaymentIntentSucceededEvent(_EventBase):
    type: Literal["payment_intent.succeeded"]
    data: PaymentIntentData


class PaymentIntentFailedEvent(_EventBase):
    type: Literal["payment_intent.payment_failed"]
    data: PaymentIntentData


class DisputeEvent(_EventBase):
    type: Literal["charge.dispute.created", "charge.dispute.updated", "charge.dispute.closed"]
    data: DisputeData


class UnhandledEvent(_EventBase):
    """Any verified event type the reconciler does not act on."""
    type: str


HandledEvent = Annotated[
    Union[PaymentIntentSucceededEvent, PaymentIntentFailedEvent, DisputeEvent],
    Field(discriminator="type"),
]

ProcessorEvent = Union[PaymentIntentSucceededEvent, PaymentIntentFailedEvent, DisputeEvent, UnhandledEvent]

HANDLED_EVENT_TYPES = frozenset({
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "charge.dispute.created",
    "charge.dispute.updated",
    "charge.dispute.closed",
})

_handled_adapter: TypeAdapter = TypeAdapter(HandledEvent)


def parse_event(payload: Dict[str, Any]) -> ProcessorEvent:
    """
    Validate a verified event body.

    Args:
        payload: Decoded JSON event

    Returns:
        A handled event variant, or UnhandledEvent for other types

    Raises:
        EventPayloadError: envelope is malformed or a handled type has the wrong shape
    """
    event_type = payload.get("type") if isinstance(payload, dict) else None
    try:
        if event_type in HANDLED_EVENT_TYPES:
            return _handled_adapter.validate_python(payload)
        return UnhandledEvent.model_validate(payload)
    except ValidationError as e:
        raise EventPayloadError(
            f"Malformed {event_type or 'unknown'} event",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)}
        ) from e
