"""
Order status across every interleaving of the three reconciliation sources.

An order is created through the storefront payment flow, then the
processor webhook (success or failure) and the checkout page fallback sync
arrive in every possible order. Whatever the interleaving, the stored status
only ever moves along legal edges and settles on the processor's outcome.
"""
import itertools

import pytest

from storefront.services.checkout_session import resolve_checkout_session
from storefront.services.order_service import can_transition, get_order_by_token
from storefront.services.payment_service import create_service_payment
from storefront.services.webhook_service import apply_event, decode_event

from conftest import build_event, payment_intent

STEPS = ("success", "fail", "sync")


async def _stored_status(session_factory, checkout_token: str) -> str:
    async with session_factory() as session:
        return (await get_order_by_token(session, checkout_token)).status


class TestReconciliationOrdering:
    @pytest.mark.asyncio
    async def test_every_interleaving_is_monotonic(
        self, db, registry, vault, fake_gateway, session_factory, make_service
    ):
        service = await make_service()

        for sequence in itertools.product(STEPS, repeat=3):
            created = await create_service_payment(db, registry, service.id)
            token = created.checkout_token
            async with session_factory() as session:
                payment_id = (await get_order_by_token(session, token)).stripe_payment_intent_id
            succeeded = failed = False

            status = await _stored_status(session_factory, token)
            assert status == "pending"

            for step in sequence:
                if step == "success":
                    succeeded = True
                    fake_gateway.set_status(payment_id, "succeeded")
                    await apply_event(db, decode_event(build_event(
                        "payment_intent.succeeded", payment_intent(payment_id)
                    )))
                elif step == "fail":
                    failed = True
                    if not succeeded:
                        fake_gateway.set_status(payment_id, "canceled")
                    await apply_event(db, decode_event(build_event(
                        "payment_intent.payment_failed",
                        payment_intent(payment_id, status="requires_payment_method"),
                    )))
                else:
                    await resolve_checkout_session(db, registry, vault, token)

                after = await _stored_status(session_factory, token)
                assert after == status or can_transition(status, after), (sequence, step, status, after)
                if status == "paid":
                    assert after == "paid", (sequence, step)
                status = after

            if succeeded:
                expected = "paid"
            elif failed:
                expected = "failed"
            else:
                expected = "pending"
            assert status == expected, sequence

    @pytest.mark.asyncio
    async def test_sync_alone_settles_a_succeeded_payment(
        self, db, registry, vault, fake_gateway, session_factory, make_service
    ):
        service = await make_service()
        created = await create_service_payment(db, registry, service.id)
        fake_gateway.set_status("pi_fake_1", "succeeded")

        session = await resolve_checkout_session(db, registry, vault, created.checkout_token)

        assert session.status == "paid"
        assert await _stored_status(session_factory, created.checkout_token) == "paid"
