"""
Order Ledger Service

Creates and looks up orders and moves them along the status graph.

Status changes are conditional writes: a single UPDATE guarded by
`status IN (<legal sources>)`. Three writers race on the same order (payment
creation, webhooks, checkout-session fallback sync) and whichever arrives
with a stale view simply matches zero rows.

Functions flush but do not commit; the caller owns the transaction.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, Optional, Iterable, Any, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OrderModel, utcnow
from ..models.orders import OrderStatus
from .checkout_token import generate_checkout_token

logger = logging.getLogger(__name__)


# ============================================================================
# Status graph
# ============================================================================

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"paid", "failed"}),
    # A declined attempt can still be completed by a later successful one
    "failed": frozenset({"paid"}),
    "paid": frozenset({"disputed"}),
    "disputed": frozenset({"paid", "refunded"}),
    "refunded": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def legal_sources(target: str) -> FrozenSet[str]:
    """Statuses from which `target` is reachable in one step."""
    return frozenset(source for source, targets in TRANSITIONS.items() if target in targets)


@dataclass
class TransitionResult:
    order: OrderModel
    previous_status: str
    changed: bool


# ============================================================================
# Lookups
# ============================================================================

async def get_order_by_id(db: AsyncSession, order_id: str) -> Optional[OrderModel]:
    return await db.get(OrderModel, order_id)


async def get_order_by_token(db: AsyncSession, checkout_token: str) -> Optional[OrderModel]:
    result = await db.execute(
        select(OrderModel).where(OrderModel.checkout_token == checkout_token)
    )
    return result.scalar_one_or_none()


async def get_order_by_payment_id(db: AsyncSession, payment_id: str) -> Optional[OrderModel]:
    result = await db.execute(
        select(OrderModel).where(OrderModel.stripe_payment_intent_id == payment_id)
    )
    return result.scalar_one_or_none()


async def get_order_by_order_number(db: AsyncSession, order_number: str) -> Optional[OrderModel]:
    result = await db.execute(
        select(OrderModel).where(OrderModel.order_id == order_number)
    )
    return result.scalar_one_or_none()


# ============================================================================
# Creation
# ============================================================================

async def create_order(
    db: AsyncSession,
    total: Decimal,
    status: OrderStatus = "pending",
    quantity: int = 1,
    currency: str = "usd",
    order_number: Optional[str] = None,
    external_id: Optional[str] = None,
    stripe_payment_intent_id: Optional[str] = None,
    service_id: Optional[str] = None,
    provider_id: Optional[str] = None,
    item_name: Optional[str] = None,
    item_description: Optional[str] = None
) -> OrderModel:
    """
    Insert a new order with a fresh checkout token.

    Args:
        db: Database session
        total: Amount in major currency units
        status: Initial status (pending for pre-created orders)
        order_number: Optional human-readable ORD-... number
        stripe_payment_intent_id: Processor payment id, if already known

    Returns:
        The flushed OrderModel

    Raises:
        IntegrityError: order number or payment id already recorded
    """
    order = OrderModel(
        id=str(uuid.uuid4()),
        order_id=order_number,
        external_id=external_id,
        checkout_token=generate_checkout_token(),
        total=Decimal(str(total)),
        quantity=quantity,
        currency=currency,
        status=status,
        stripe_payment_intent_id=stripe_payment_intent_id,
        service_id=service_id,
        provider_id=provider_id,
        item_name=item_name,
        item_description=item_description,
    )
    db.add(order)
    await db.flush()

    logger.info(
        f"Created order: {order.id}, status={status}, total={order.total}, "
        f"payment={stripe_payment_intent_id}, provider={provider_id}"
    )
    return order


async def create_order_for_payment(
    db: AsyncSession,
    stripe_payment_intent_id: str,
    **fields: Any
) -> Tuple[OrderModel, bool]:
    """
    Insert an order keyed by processor payment id, tolerating a concurrent insert.

    Used when a terminal event arrives for a payment the ledger never
    recorded. If another writer inserted the same payment id first, the
    pending changes in this session are rolled back and that row is returned.

    Returns:
        (order, created) where created is False if the row already existed
    """
    try:
        order = await create_order(db, stripe_payment_intent_id=stripe_payment_intent_id, **fields)
        return order, True
    except IntegrityError:
        await db.rollback()
        logger.info(f"Order for payment {stripe_payment_intent_id} inserted concurrently, re-reading")
        existing = await get_order_by_payment_id(db, stripe_payment_intent_id)
        if existing is None:
            raise
        return existing, False


# ============================================================================
# Status changes
# ============================================================================

async def transition_order(
    db: AsyncSession,
    order: OrderModel,
    target: OrderStatus,
    allowed_from: Optional[Iterable[str]] = None,
    **fields: Any
) -> TransitionResult:
    """
    Move an order to `target` if its current stored status allows it.

    Args:
        db: Database session
        order: Order to change (refreshed from the database afterwards)
        target: Desired status
        allowed_from: Further restricts the legal source statuses
        **fields: Extra columns written together with the status

    Returns:
        TransitionResult; `changed` is False when the stored status made the
        move illegal (or it was already `target`)
    """
    previous_status = order.status
    sources = legal_sources(target)
    if allowed_from is not None:
        sources = sources & frozenset(allowed_from)

    changed = False
    if sources:
        result = await db.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.status.in_(sources))
            .values(status=target, updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1

    await db.refresh(order)

    if changed:
        logger.info(f"Order {order.id} status {previous_status} -> {target}")
    elif order.status != target:
        logger.warning(
            f"Rejected transition for order {order.id}: {order.status} -> {target}"
        )
    return TransitionResult(order=order, previous_status=previous_status, changed=changed)


async def record_dispute(
    db: AsyncSession,
    order: OrderModel,
    dispute_id: str,
    dispute_status: str,
    dispute_amount: Decimal,
    dispute_reason: Optional[str]
) -> None:
    """Persist dispute details; status is changed separately via transition_order."""
    await db.execute(
        update(OrderModel)
        .where(OrderModel.id == order.id)
        .values(
            dispute_id=dispute_id,
            dispute_status=dispute_status,
            dispute_amount=dispute_amount,
            dispute_reason=dispute_reason,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(order)
    logger.info(f"Order {order.id} dispute {dispute_id} recorded as {dispute_status}")
