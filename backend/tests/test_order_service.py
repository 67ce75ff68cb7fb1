"""Tests for the order ledger: status graph, conditional transitions, creation."""
import itertools
from decimal import Decimal

import pytest
from sqlalchemy import update

from storefront.db.models import OrderModel, ORDER_STATUSES
from storefront.services.order_service import (
    TRANSITIONS,
    can_transition,
    legal_sources,
    create_order,
    create_order_for_payment,
    transition_order,
    record_dispute,
    get_order_by_token,
    get_order_by_payment_id,
)


class TestStatusGraph:
    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(ORDER_STATUSES)

    def test_refunded_is_terminal(self):
        assert all(not can_transition("refunded", target) for target in ORDER_STATUSES)

    def test_legal_edges(self):
        assert can_transition("pending", "paid")
        assert can_transition("pending", "failed")
        assert can_transition("failed", "paid")
        assert can_transition("paid", "disputed")
        assert can_transition("disputed", "paid")
        assert can_transition("disputed", "refunded")

    def test_no_regression_to_pending(self):
        assert legal_sources("pending") == frozenset()

    def test_paid_never_goes_back_to_failed(self):
        assert not can_transition("paid", "failed")
        assert not can_transition("paid", "refunded")


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_creates_pending_order_with_token(self, db):
        order = await create_order(db, total=Decimal("50.00"), stripe_payment_intent_id="pi_1")
        await db.commit()

        assert order.status == "pending"
        assert len(order.checkout_token) == 32
        assert (await get_order_by_token(db, order.checkout_token)).id == order.id
        assert (await get_order_by_payment_id(db, "pi_1")).id == order.id

    @pytest.mark.asyncio
    async def test_concurrent_insert_returns_existing_row(self, db, make_order):
        existing = await make_order(status="paid", payment_id="pi_dup")

        order, created = await create_order_for_payment(db, "pi_dup", total=Decimal("50.00"), status="paid")

        assert created is False
        assert order.id == existing.id


class TestTransitionOrder:
    @pytest.mark.asyncio
    async def test_legal_transition_changes_status(self, db, make_order):
        order = await make_order(status="pending")

        result = await transition_order(db, order, "paid")
        await db.commit()

        assert result.changed
        assert result.previous_status == "pending"
        assert order.status == "paid"

    @pytest.mark.asyncio
    async def test_illegal_transition_is_a_no_op(self, db, make_order):
        order = await make_order(status="refunded")

        result = await transition_order(db, order, "paid")

        assert not result.changed
        assert order.status == "refunded"

    @pytest.mark.asyncio
    async def test_stale_reader_cannot_regress_status(self, db, make_order):
        order = await make_order(status="pending")
        # Another writer refunds the order behind this session's back
        await db.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id)
            .values(status="refunded")
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        assert order.status == "pending"

        result = await transition_order(db, order, "paid")

        assert not result.changed
        assert order.status == "refunded"

    @pytest.mark.asyncio
    async def test_allowed_from_narrows_sources(self, db, make_order):
        order = await make_order(status="disputed")

        result = await transition_order(db, order, "paid", allowed_from={"pending", "failed"})

        assert not result.changed
        assert order.status == "disputed"

    @pytest.mark.asyncio
    async def test_record_dispute_keeps_status(self, db, make_order):
        order = await make_order(status="paid", payment_id="pi_d")

        await record_dispute(db, order, "dp_1", "needs_response", Decimal("50.00"), "fraudulent")
        await db.commit()

        assert order.status == "paid"
        assert order.dispute_id == "dp_1"
        assert order.dispute_status == "needs_response"
        assert order.dispute_amount == Decimal("50.00")


class TestMonotonicity:
    @pytest.mark.asyncio
    async def test_no_sequence_takes_an_illegal_edge(self, db):
        targets = ("pending", "paid", "failed", "disputed", "refunded")
        for sequence in itertools.product(targets, repeat=3):
            order = await create_order(db, total=Decimal("10.00"))
            for target in sequence:
                before = order.status
                result = await transition_order(db, order, target)
                if result.changed:
                    assert can_transition(before, order.status), (sequence, before, order.status)
                else:
                    assert order.status == before
            await db.commit()
