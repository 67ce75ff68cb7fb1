"""
Database Initialization

Creates the SQLite tables for the storefront payment backend.
Tables: services, providers, orders, webhook_events

Status columns carry CHECK constraints so a write outside the order status
vocabulary fails at the storage layer as well.
"""
import logging
import sqlite3
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker

from ..config import settings

logger = logging.getLogger(__name__)


def create_tables(conn: sqlite3.Connection) -> None:
    """
    Create all database tables with indexes.

    Tables:
    - services: Catalog entries supplied by the CMS
    - providers: Integrators and their (encrypted) gateway credentials
    - orders: The Order Ledger
    - webhook_events: Processor event ids already applied

    Also enables WAL mode for better concurrency.
    """
    cursor = conn.cursor()

    # WAL lets the webhook writer and checkout readers proceed concurrently
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA synchronous=NORMAL")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS services (
            id TEXT PRIMARY KEY,
            slug TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            description TEXT,
            price NUMERIC NOT NULL,
            price_unit TEXT,
            icon TEXT,
            features TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS providers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            api_key TEXT NOT NULL UNIQUE,
            payment_gateway TEXT NOT NULL DEFAULT 'default'
                CHECK(payment_gateway IN ('default', 'stripe', 'square', 'paypal', 'crypto')),
            use_own_gateway_credentials BOOLEAN NOT NULL DEFAULT FALSE,
            stripe_secret_key TEXT,
            stripe_publishable_key TEXT,
            stripe_webhook_secret TEXT,
            stripe_key_mode TEXT,
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'inactive')),
            webhook_url TEXT,
            success_redirect_url TEXT,
            cancel_redirect_url TEXT,
            description TEXT,
            last_used_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY,
            order_id TEXT UNIQUE,
            external_id TEXT,
            checkout_token TEXT NOT NULL UNIQUE,
            total NUMERIC NOT NULL,
            quantity INTEGER NOT NULL DEFAULT 1,
            currency TEXT NOT NULL DEFAULT 'usd',
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'paid', 'failed', 'refunded', 'disputed')),
            stripe_payment_intent_id TEXT UNIQUE,
            service_id TEXT,
            provider_id TEXT,
            item_name TEXT,
            item_description TEXT,
            dispute_id TEXT,
            dispute_status TEXT,
            dispute_amount NUMERIC,
            dispute_reason TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (service_id) REFERENCES services(id),
            FOREIGN KEY (provider_id) REFERENCES providers(id)
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_provider ON orders(provider_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at DESC)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS webhook_events (
            event_id TEXT PRIMARY KEY,
            event_type TEXT NOT NULL,
            processed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.commit()
    logger.info("All tables created successfully")


def initialize_database(database_path: Optional[str] = None) -> None:
    """
    Initialize the database with all required tables.

    Called during FastAPI startup.

    Args:
        database_path: SQLite file to initialize; defaults to settings.database_path
    """
    db_path = Path(database_path or settings.database_path)
    logger.info(f"Initializing database at: {db_path}")

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        create_tables(conn)
        logger.info(f"Database initialized successfully at {db_path}")
    finally:
        conn.close()


# ============================================================================
# SQLAlchemy Async Session Setup for FastAPI
# ============================================================================

def build_engine(database_path: str, **engine_kwargs) -> AsyncEngine:
    """
    Create an async engine for a SQLite file.

    Args:
        database_path: SQLite file path
        **engine_kwargs: Extra create_async_engine options (e.g. poolclass)

    Returns:
        AsyncEngine bound to the aiosqlite driver
    """
    return create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        echo=False,
        connect_args={
            "timeout": 30,  # lock acquisition
            "check_same_thread": False
        },
        **engine_kwargs
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_path, pool_pre_ping=True, pool_recycle=3600)
AsyncSessionLocal = build_session_factory(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions in FastAPI.

    Usage:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        yield session


# Alias for FastAPI Depends
get_db = get_async_session


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=logging.INFO)
    initialize_database()


if __name__ == "__main__":
    main()
