"""Tests for post-redirect payment status verification."""
import asyncio

import httpx
import pytest

from storefront.client.payment_status import (
    CancellationToken,
    map_intent_status,
    map_redirect_status,
    verify_payment_status,
)

PUBLISHABLE_KEY = "pk_test_51AbCdEfGhIjKlMnOpQrStUvWx"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestStatusMapping:
    def test_intent_statuses(self):
        assert map_intent_status("succeeded") == "succeeded"
        assert map_intent_status("processing") == "processing"
        assert map_intent_status("requires_payment_method") == "failed"
        assert map_intent_status("requires_action") == "failed"
        assert map_intent_status("canceled") == "failed"
        assert map_intent_status(None) == "pending"

    def test_redirect_statuses(self):
        assert map_redirect_status("succeeded") == "succeeded"
        assert map_redirect_status("failed") == "failed"
        assert map_redirect_status("bogus") == "pending"
        assert map_redirect_status(None) == "pending"


class TestVerifyPaymentStatus:
    @pytest.mark.asyncio
    async def test_processor_read_overrides_redirect_claim(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "pi_1", "status": "requires_payment_method"})

        async with _client(handler) as client:
            result = await verify_payment_status("pi_1", "pi_1_secret", "succeeded", PUBLISHABLE_KEY, client=client)

        assert result.status == "failed"
        assert result.source == "processor"
        assert seen[0].url.path == "/v1/payment_intents/pi_1"
        assert seen[0].url.params["client_secret"] == "pi_1_secret"
        assert seen[0].url.params["key"] == PUBLISHABLE_KEY

    @pytest.mark.asyncio
    async def test_http_error_falls_back_to_redirect(self):
        async with _client(lambda request: httpx.Response(500)) as client:
            result = await verify_payment_status("pi_1", "pi_1_secret", "succeeded", PUBLISHABLE_KEY, client=client)

        assert result.status == "succeeded"
        assert result.source == "redirect"

    @pytest.mark.asyncio
    async def test_network_error_falls_back_to_redirect(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        async with _client(handler) as client:
            result = await verify_payment_status("pi_1", "pi_1_secret", "processing", PUBLISHABLE_KEY, client=client)

        assert result.status == "processing"
        assert result.source == "redirect"

    @pytest.mark.asyncio
    async def test_missing_publishable_key_uses_redirect(self):
        result = await verify_payment_status("pi_1", "pi_1_secret", "failed", None)

        assert result.status == "failed"
        assert result.source == "redirect"

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(asyncio.CancelledError):
            await verify_payment_status("pi_1", "pi_1_secret", "succeeded", PUBLISHABLE_KEY, cancel_token=token)

    @pytest.mark.asyncio
    async def test_cancel_during_retrieval_reports_nothing(self):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(200, json={"status": "succeeded"})

        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)

        async with _client(handler) as client:
            with pytest.raises(asyncio.CancelledError):
                await verify_payment_status(
                    "pi_1", "pi_1_secret", "succeeded", PUBLISHABLE_KEY, cancel_token=token, client=client
                )
        assert token.cancelled
