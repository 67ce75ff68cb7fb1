"""
SQLAlchemy ORM Models for the Storefront

Defines database models matching the schema in init_db.py.
Orders are never deleted; terminal statuses are permanent business records.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Text, Numeric, CheckConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


ORDER_STATUSES = ("pending", "paid", "failed", "refunded", "disputed")


class ServiceModel(Base):
    """
    ORM model for services table.

    Catalog entries maintained by the CMS; only display fields and price
    are used by checkout.
    """
    __tablename__ = "services"

    id = Column(String, primary_key=True)
    slug = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    price = Column(Numeric(12, 2), nullable=False)
    price_unit = Column(String)
    icon = Column(String)
    features = Column(Text)  # JSON list of {"feature": str}
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ProviderModel(Base):
    """
    ORM model for providers table.

    Integrators creating payments on behalf of their own customers.
    Secret-bearing credential columns hold vault ciphertext, never plaintext.
    """
    __tablename__ = "providers"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    api_key = Column(String, nullable=False, unique=True)
    payment_gateway = Column(String, nullable=False, default="default")
    use_own_gateway_credentials = Column(Boolean, nullable=False, default=False)
    stripe_secret_key = Column(Text)  # encrypted
    stripe_publishable_key = Column(String)
    stripe_webhook_secret = Column(Text)  # encrypted
    stripe_key_mode = Column(String)
    status = Column(String, nullable=False, default="active")
    webhook_url = Column(String)
    success_redirect_url = Column(String)
    cancel_redirect_url = Column(String)
    description = Column(Text)
    last_used_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "payment_gateway IN ('default', 'stripe', 'square', 'paypal', 'crypto')",
            name="provider_gateway_check"
        ),
        CheckConstraint("status IN ('active', 'inactive')", name="provider_status_check"),
    )


class OrderModel(Base):
    """
    ORM model for orders table (the Order Ledger).

    `checkout_token` is the only externally shareable handle;
    `stripe_payment_intent_id` joins processor events and reads to the order.
    """
    __tablename__ = "orders"

    id = Column(String, primary_key=True)
    order_id = Column(String, unique=True)
    external_id = Column(String)
    checkout_token = Column(String, nullable=False, unique=True)
    total = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    currency = Column(String, nullable=False, default="usd")
    status = Column(String, nullable=False, default="pending", index=True)
    stripe_payment_intent_id = Column(String, unique=True)
    service_id = Column(String, ForeignKey("services.id"))
    provider_id = Column(String, ForeignKey("providers.id"))
    item_name = Column(String)
    item_description = Column(Text)
    dispute_id = Column(String)
    dispute_status = Column(String)
    dispute_amount = Column(Numeric(12, 2))
    dispute_reason = Column(String)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'refunded', 'disputed')",
            name="order_status_check"
        ),
    )


class WebhookEventModel(Base):
    """
    ORM model for webhook_events table.

    One row per processor event id that has been fully applied.
    """
    __tablename__ = "webhook_events"

    event_id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False)
    processed_at = Column(DateTime, nullable=False, default=utcnow)
