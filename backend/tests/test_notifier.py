"""Tests for integrator notification delivery and retry policy."""
import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from storefront.db.models import OrderModel, ProviderModel, ServiceModel
from storefront.models.orders import IntegratorNotification
from storefront.services.notifier import IntegratorNotifier, PendingNotification, build_notification


def _notification(url: str = "https://acme.example/hooks") -> PendingNotification:
    payload = IntegratorNotification(
        event="payment_succeeded",
        order_id="order-1",
        external_id="inv_1",
        provider_id="prov-1",
        provider_name="Acme",
        service_name="Widget",
        amount=20.0,
        status="paid",
        stripe_payment_intent_id="pi_1",
        timestamp=datetime(2025, 10, 17, 14, 35, tzinfo=timezone.utc),
    )
    return PendingNotification(url=url, provider_name="Acme", payload=payload)


class TestBuildNotification:
    def _order(self, **fields):
        defaults = dict(
            id="order-1", total=20, status="paid", stripe_payment_intent_id="pi_1",
            service_id=None, item_name="Widget", external_id=None,
        )
        defaults.update(fields)
        return OrderModel(**defaults)

    def test_no_webhook_url_means_no_notification(self):
        provider = ProviderModel(id="prov-1", name="Acme", webhook_url=None)
        assert build_notification("payment_succeeded", self._order(), provider) is None

    def test_service_title_preferred_over_item_name(self):
        provider = ProviderModel(id="prov-1", name="Acme", webhook_url="https://acme.example/hooks")
        service = ServiceModel(id="svc_1", title="Website Audit")

        pending = build_notification("payment_succeeded", self._order(service_id="svc_1"), provider, service)

        assert pending.payload.service_name == "Website Audit"
        assert pending.payload.service_id == "svc_1"

    def test_item_name_and_fallback(self):
        provider = ProviderModel(id="prov-1", name="Acme", webhook_url="https://acme.example/hooks")

        assert build_notification("payment_failed", self._order(), provider).payload.service_name == "Widget"
        unnamed = build_notification("payment_failed", self._order(item_name=None), provider)
        assert unnamed.payload.service_name == "Unknown Service"

    def test_wire_format_is_camel_case(self):
        body = _notification().payload.model_dump(mode="json", by_alias=True)
        assert set(body) == {
            "event", "orderId", "externalId", "providerId", "providerName", "serviceId",
            "serviceName", "amount", "status", "stripePaymentIntentId", "timestamp",
        }


class TestIntegratorNotifier:
    def test_backoff_schedule(self):
        notifier = IntegratorNotifier(client=httpx.AsyncClient())
        assert [notifier.delay_before(n) for n in range(1, 6)] == [0, 1, 2, 4, 8]

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, notifier, integrator_requests, sleeps):
        delivered = await notifier.deliver(_notification())

        assert delivered is True
        assert len(integrator_requests) == 1
        assert sleeps == []
        assert json.loads(integrator_requests[0].content)["orderId"] == "order-1"

    @pytest.mark.asyncio
    async def test_gives_up_after_five_attempts(self, notifier, integrator_requests, integrator_status_codes, sleeps):
        integrator_status_codes.extend([500] * 5)

        delivered = await notifier.deliver(_notification())

        assert delivered is False
        assert len(integrator_requests) == 5
        assert sleeps == [1, 2, 4, 8]

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self, notifier, integrator_requests, integrator_status_codes, sleeps):
        integrator_status_codes.extend([503, 404])

        assert await notifier.deliver(_notification()) is True
        assert len(integrator_requests) == 3
        assert sleeps == [1, 2]

    @pytest.mark.asyncio
    async def test_network_errors_count_as_failures(self, sleeps):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(204)

        async def fake_sleep(delay):
            sleeps.append(delay)

        notifier = IntegratorNotifier(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), sleep=fake_sleep)

        assert await notifier.deliver(_notification()) is True
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_deadline_bounds_all_attempts(self, sleeps):
        attempts = []

        async def hanging(request):
            attempts.append(request)
            await asyncio.sleep(5)
            return httpx.Response(204)

        async def fake_sleep(delay):
            sleeps.append(delay)

        notifier = IntegratorNotifier(
            client=httpx.AsyncClient(transport=httpx.MockTransport(hanging)),
            deadline=0.05,
            sleep=fake_sleep,
        )

        started = asyncio.get_running_loop().time()
        delivered = await notifier.deliver(_notification())

        assert delivered is False
        assert len(attempts) == 1
        assert asyncio.get_running_loop().time() - started < 1

    def test_default_budget_is_bounded(self):
        notifier = IntegratorNotifier(client=httpx.AsyncClient())
        backoff = sum(notifier.delay_before(n) for n in range(1, notifier.max_attempts + 1))
        assert backoff == 15
        assert notifier.deadline == 20.0

    @pytest.mark.asyncio
    async def test_dispatch_runs_in_background(self, notifier, integrator_requests):
        task = notifier.dispatch(_notification())
        await notifier.drain()

        assert task.done()
        assert task.result() is True
        assert notifier.in_flight == 0
        assert len(integrator_requests) == 1
