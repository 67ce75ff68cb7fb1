"""
Database package for the storefront.

Exports database initialization, models, and session management.
"""
from .init_db import initialize_database, get_db, get_async_session, build_engine, build_session_factory
from .models import (
    Base,
    ServiceModel,
    ProviderModel,
    OrderModel,
    WebhookEventModel,
    ORDER_STATUSES,
)

__all__ = [
    "initialize_database",
    "get_db",
    "get_async_session",
    "build_engine",
    "build_session_factory",
    "Base",
    "ServiceModel",
    "ProviderModel",
    "OrderModel",
    "WebhookEventModel",
    "ORDER_STATUSES",
]
