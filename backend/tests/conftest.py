"""
Shared fixtures for the storefront payment backend tests.

Every test gets its own SQLite file, a fake processor gateway registered
under the stripe name, a credential vault and an integrator notifier whose
HTTP traffic goes to an httpx.MockTransport.
"""
import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.pool import NullPool

from storefront.config import Settings
from storefront.db.init_db import initialize_database, build_engine, build_session_factory, get_db
from storefront.db.models import ServiceModel, ProviderModel, OrderModel
from storefront.dependencies import get_settings
from storefront.exceptions import ProcessorError
from storefront.services.checkout_token import generate_checkout_token
from storefront.services.encryption import CredentialVault
from storefront.services.gateways.base import (
    PaymentGateway,
    GatewayName,
    GatewayCredentials,
    GatewayInfo,
    PaymentResult,
    RetrievedPayment,
    RefundResult,
)
from storefront.services.gateways.placeholders import SquareGateway, PayPalGateway, CryptoGateway
from storefront.services.gateways.registry import GatewayRegistry
from storefront.services.gateways.stripe_gateway import map_stripe_status, to_minor_units
from storefront.services.notifier import IntegratorNotifier

PLATFORM_WEBHOOK_SECRET = "whsec_platformplatformplatform0001"
PLATFORM_PUBLISHABLE_KEY = "pk_test_platformplatformplatform01"
PUBLIC_BASE_URL = "https://shop.example"
VAULT_SECRET = "test-master-secret"


# ============================================================================
# Fake processor
# ============================================================================

class FakeGateway(PaymentGateway):
    """In-memory stand-in for the Stripe gateway."""

    name = GatewayName.STRIPE
    display_name = "Stripe (Cash App Pay)"

    def __init__(self):
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.create_calls: List[Dict[str, Any]] = []
        self.retrieve_calls: List[str] = []
        self.create_error: Optional[Exception] = None
        self.retrieve_error: Optional[Exception] = None
        self._by_idempotency_key: Dict[str, str] = {}

    def set_status(self, payment_id: str, native_status: str) -> None:
        self.payments[payment_id]["status"] = native_status

    async def create_payment(
        self,
        amount: Decimal,
        currency: str = "usd",
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> PaymentResult:
        self.create_calls.append({
            "amount": amount,
            "currency": currency,
            "description": description,
            "metadata": dict(metadata or {}),
            "idempotency_key": idempotency_key,
            "credentials": credentials,
        })
        if self.create_error is not None:
            raise self.create_error

        payment_id = self._by_idempotency_key.get(idempotency_key) if idempotency_key else None
        if payment_id is None:
            payment_id = f"pi_fake_{len(self.payments) + 1}"
            self.payments[payment_id] = {
                "client_secret": f"{payment_id}_secret_abc",
                "status": "requires_payment_method",
                "amount": to_minor_units(amount),
                "metadata": dict(metadata or {}),
            }
            if idempotency_key:
                self._by_idempotency_key[idempotency_key] = payment_id

        payment = self.payments[payment_id]
        return PaymentResult(
            payment_id=payment_id,
            client_secret=payment["client_secret"],
            status=map_stripe_status(payment["status"]),
            amount=Decimal(str(amount)),
            currency=currency,
        )

    async def retrieve_payment(
        self,
        payment_id: str,
        credentials: Optional[GatewayCredentials] = None
    ) -> RetrievedPayment:
        self.retrieve_calls.append(payment_id)
        if self.retrieve_error is not None:
            raise self.retrieve_error
        payment = self.payments.get(payment_id)
        if payment is None:
            raise ProcessorError("Failed to retrieve payment session")
        return RetrievedPayment(
            payment_id=payment_id,
            client_secret=payment["client_secret"],
            status=map_stripe_status(payment["status"]),
            amount=Decimal(payment["amount"]) / 100,
            native_status=payment["status"],
        )

    async def cancel_payment(self, payment_id: str, credentials: Optional[GatewayCredentials] = None) -> None:
        self.set_status(payment_id, "canceled")

    async def refund_payment(
        self,
        payment_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        credentials: Optional[GatewayCredentials] = None
    ) -> RefundResult:
        return RefundResult(refund_id=f"re_{payment_id}", amount=amount or Decimal("0"), status="succeeded")

    def get_publishable_key(self, credentials: Optional[GatewayCredentials] = None) -> str:
        if credentials and credentials.stripe_publishable_key:
            return credentials.stripe_publishable_key
        return PLATFORM_PUBLISHABLE_KEY

    def is_configured(self) -> bool:
        return True

    def get_info(self) -> GatewayInfo:
        return GatewayInfo(
            name=self.name.value,
            display_name=self.display_name,
            is_active=True,
            supported_methods=["cashapp"],
        )


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def database_path(tmp_path) -> str:
    path = str(tmp_path / "storefront.db")
    initialize_database(path)
    return path


@pytest_asyncio.fixture
async def engine(database_path):
    engine = build_engine(database_path, poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def load_order(session_factory):
    """Read an order through a fresh session, bypassing any cached state."""
    async def _load(order_id: str) -> Optional[OrderModel]:
        async with session_factory() as session:
            return await session.get(OrderModel, order_id)
    return _load


# ============================================================================
# Collaborators
# ============================================================================

@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def registry(fake_gateway) -> GatewayRegistry:
    return GatewayRegistry(
        {
            GatewayName.STRIPE: lambda: fake_gateway,
            GatewayName.SQUARE: SquareGateway,
            GatewayName.PAYPAL: PayPalGateway,
            GatewayName.CRYPTO: CryptoGateway,
        },
        default_name="stripe",
    )


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(VAULT_SECRET)


@pytest.fixture
def integrator_requests() -> List[httpx.Request]:
    """Requests received by integrator webhook endpoints."""
    return []


@pytest.fixture
def integrator_status_codes() -> List[int]:
    """Status codes integrator endpoints answer with, in order; 200 once exhausted."""
    return []


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest_asyncio.fixture
async def notifier(integrator_requests, integrator_status_codes, sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        integrator_requests.append(request)
        status = integrator_status_codes.pop(0) if integrator_status_codes else 200
        return httpx.Response(status, json={"ok": status < 300})

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    notifier = IntegratorNotifier(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=fake_sleep,
    )
    yield notifier
    await notifier.drain()
    await notifier._client.aclose()


@pytest.fixture
def app_settings() -> Settings:
    return Settings(
        stripe_webhook_secret=PLATFORM_WEBHOOK_SECRET,
        stripe_publishable_key=PLATFORM_PUBLISHABLE_KEY,
        encryption_key=VAULT_SECRET,
        public_base_url=PUBLIC_BASE_URL,
    )


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def app(session_factory, registry, vault, notifier, app_settings):
    from storefront.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.state.registry = registry
    app.state.vault = vault
    app.state.notifier = notifier
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: app_settings
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


# ============================================================================
# Seed data
# ============================================================================

@pytest.fixture
def make_service(db):
    async def _make(
        service_id: str = "svc_web_audit",
        slug: str = "web-audit",
        title: str = "Website Audit",
        price: str = "50.00",
        features: Optional[List[Any]] = None
    ) -> ServiceModel:
        service = ServiceModel(
            id=service_id,
            slug=slug,
            title=title,
            description=f"{title} by our team",
            price=Decimal(price),
            price_unit="per site",
            icon="search",
            features=json.dumps(features if features is not None else [{"feature": "Full report"}]),
        )
        db.add(service)
        await db.commit()
        return service
    return _make


@pytest.fixture
def make_provider(db, vault):
    async def _make(
        name: str = "Acme Platform",
        slug: Optional[str] = None,
        webhook_url: Optional[str] = "https://acme.example/hooks/payments",
        status: str = "active",
        payment_gateway: str = "default",
        own_secret_key: Optional[str] = None,
        own_publishable_key: Optional[str] = None,
        own_webhook_secret: Optional[str] = None,
        success_redirect_url: Optional[str] = None,
        cancel_redirect_url: Optional[str] = None
    ) -> ProviderModel:
        provider = ProviderModel(
            id=str(uuid.uuid4()),
            name=name,
            slug=slug or f"acme-{uuid.uuid4().hex[:6]}",
            api_key=f"prov_{uuid.uuid4().hex}",
            payment_gateway=payment_gateway,
            use_own_gateway_credentials=bool(own_secret_key or own_webhook_secret),
            stripe_secret_key=vault.encrypt(own_secret_key) if own_secret_key else None,
            stripe_publishable_key=own_publishable_key,
            stripe_webhook_secret=vault.encrypt(own_webhook_secret) if own_webhook_secret else None,
            status=status,
            webhook_url=webhook_url,
            success_redirect_url=success_redirect_url,
            cancel_redirect_url=cancel_redirect_url,
        )
        db.add(provider)
        await db.commit()
        return provider
    return _make


@pytest.fixture
def make_order(db):
    async def _make(
        status: str = "pending",
        total: str = "50.00",
        payment_id: Optional[str] = None,
        service_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        item_name: Optional[str] = None,
        order_number: Optional[str] = None
    ) -> OrderModel:
        order = OrderModel(
            id=str(uuid.uuid4()),
            order_id=order_number,
            checkout_token=generate_checkout_token(),
            total=Decimal(total),
            status=status,
            stripe_payment_intent_id=payment_id,
            service_id=service_id,
            provider_id=provider_id,
            item_name=item_name,
        )
        db.add(order)
        await db.commit()
        return order
    return _make


# ============================================================================
# Processor webhooks
# ============================================================================

def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for a payload."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def build_event(event_type: str, obj: Dict[str, Any], event_id: Optional[str] = None) -> bytes:
    return json.dumps({
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    }).encode("utf-8")


def payment_intent(payment_id: str, amount: int = 5000, metadata: Optional[Dict[str, str]] = None, status: str = "succeeded"):
    return {
        "id": payment_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "status": status,
        "metadata": metadata or {},
    }


def dispute(payment_id: str, status: str, dispute_id: str = "dp_1", amount: int = 5000, reason: str = "fraudulent"):
    return {
        "id": dispute_id,
        "object": "dispute",
        "payment_intent": payment_id,
        "charge": "ch_1",
        "amount": amount,
        "reason": reason,
        "status": status,
    }


@pytest.fixture
def post_event(client):
    """POST a signed processor event to the webhook endpoint."""
    async def _post(
        payload: bytes,
        secret: str = PLATFORM_WEBHOOK_SECRET,
        path: str = "/api/v1/stripe/webhooks"
    ) -> httpx.Response:
        return await client.post(
            path,
            content=payload,
            headers={"stripe-signature": sign_payload(payload, secret), "Content-Type": "application/json"},
        )
    return _post
