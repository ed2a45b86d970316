"""
Order store: durable order records and their audit trail.

Every write that depends on the order's current state goes through
conditional_update(): a single UPDATE guarded on the status (and, where it
matters, the courier) that was read. When the guard no longer holds, the
write matches zero rows and ConflictError is raised; the caller's
transaction is left untouched so it can be rolled back.
"""

import logging
import random
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, OrderItem, Restaurant, StatusHistoryEntry
from domain.constants import (
    ACTIVE_DRIVER_STATUSES,
    CANCELLED_STATUSES,
    LOCATION_SHARING_STATUSES,
    SAFETY_WORDS,
)
from domain.enums import OrderStatus, PaymentStatus
from domain.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Sentinel: do not guard the write on the courier column.
ANY_DRIVER = object()

DRIVER_ORDER_SCOPES = ("assigned", "completed", "all")


async def create_order(
    db: AsyncSession,
    *,
    customer_id: str,
    restaurant: Restaurant,
    items: Sequence[dict],
    delivery_address: str,
    notes: str | None = None,
) -> Order:
    """
    Create a pending order priced from the restaurant's menu.

    items: [{"name": str, "quantity": int}]; unit prices are never taken
    from the caller.
    """
    if not items:
        raise ValidationError("Order must contain at least one item", field="items")

    menu = restaurant.menu
    unknown = [item["name"] for item in items if item["name"] not in menu]
    if unknown:
        raise ValidationError(
            "Some items are not on the restaurant's menu",
            field="items",
            details={"invalidItems": unknown},
        )

    order = Order(
        customer_id=customer_id,
        restaurant_id=restaurant.id,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        delivery_fee=settings.delivery_fee,
        delivery_address=delivery_address.strip(),
        notes=notes,
        safety_word=random.choice(SAFETY_WORDS),
    )
    order.items = [
        OrderItem(
            position=position,
            name=item["name"],
            unit_price=menu[item["name"]],
            quantity=item["quantity"],
        )
        for position, item in enumerate(items)
    ]
    order.recalculate_totals()

    db.add(order)
    await db.flush()
    logger.info(f"Order {order.id} created for customer {customer_id} (total {order.total:.2f})")
    return await get_order(db, order.id, refresh=True)


async def get_order(db: AsyncSession, order_id: str, *, refresh: bool = False) -> Order | None:
    """Load an order with items and history; refresh=True overwrites stale identity-map state."""
    stmt = select(Order).where(Order.id == order_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def require_order(db: AsyncSession, order_id: str) -> Order:
    order = await get_order(db, order_id, refresh=True)
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def conditional_update(
    db: AsyncSession,
    order: Order,
    *,
    expected_status: str,
    values: dict,
    history: Iterable[StatusHistoryEntry] = (),
    expected_driver_id=ANY_DRIVER,
    conditions: Sequence = (),
) -> Order:
    """
    Apply `values` to the order iff it is still in `expected_status`.

    expected_driver_id: None requires no courier, a string requires that
    courier, ANY_DRIVER skips the check. `conditions` are extra WHERE
    clauses on the orders table.

    History rows are appended in the given order within the same
    transaction, only after the guarded write matched.
    """
    stmt = update(Order).where(Order.id == order.id, Order.status == expected_status)
    if expected_driver_id is None:
        stmt = stmt.where(Order.driver_id.is_(None))
    elif expected_driver_id is not ANY_DRIVER:
        stmt = stmt.where(Order.driver_id == expected_driver_id)
    for clause in conditions:
        stmt = stmt.where(clause)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = await db.execute(stmt)
    if result.rowcount == 0:
        logger.warning(
            f"Stale write rejected for order {order.id} (expected status '{expected_status}')"
        )
        raise ConflictError(
            "Order was modified by another request; reload and retry",
            details={"orderId": order.id, "expectedStatus": expected_status},
        )

    for entry in history:
        entry.order_id = order.id
        db.add(entry)
    await db.flush()

    return await get_order(db, order.id, refresh=True)


async def set_payment_status(db: AsyncSession, order: Order, *, paid: bool) -> Order:
    """
    Record the payment collaborator's verdict.

    Repeating the current verdict is a no-op. A paid order cannot be moved
    back to failed, and cancelled orders no longer accept payment signals.
    """
    target = PaymentStatus.PAID if paid else PaymentStatus.FAILED
    current = order.payment_status

    if current == target.value:
        return order
    if OrderStatus(order.status) in CANCELLED_STATUSES:
        raise ConflictError(
            "Order is cancelled; payment status can no longer change",
            details={"orderId": order.id, "status": order.status},
        )
    if current == PaymentStatus.PAID.value:
        raise ConflictError(
            "Order is already paid",
            details={"orderId": order.id, "paymentStatus": current},
        )

    updated = await conditional_update(
        db,
        order,
        expected_status=order.status,
        values={"payment_status": target.value, "updated_at": datetime.utcnow()},
        conditions=(Order.payment_status == current,),
    )
    logger.info(f"Order {order.id} payment {current} -> {target.value}")
    return updated


async def list_orders(
    db: AsyncSession,
    *,
    customer_id: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Order]:
    """Newest first; customer_id narrows to one customer's orders."""
    stmt = select(Order)
    if customer_id is not None:
        stmt = stmt.where(Order.customer_id == customer_id)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    res = await db.execute(stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset))
    return list(res.scalars().all())


async def list_driver_orders(db: AsyncSession, driver_id: str, scope: str = "all") -> list[Order]:
    """Orders of one courier, newest first. 'all' excludes cancellations."""
    if scope not in DRIVER_ORDER_SCOPES:
        raise ValidationError(
            f"must be one of {', '.join(DRIVER_ORDER_SCOPES)}", field="status"
        )

    stmt = select(Order).where(Order.driver_id == driver_id)
    if scope == "assigned":
        stmt = stmt.where(Order.status.in_([s.value for s in ACTIVE_DRIVER_STATUSES]))
    elif scope == "completed":
        stmt = stmt.where(Order.status == OrderStatus.COMPLETED.value)
    else:
        stmt = stmt.where(Order.status.not_in([s.value for s in CANCELLED_STATUSES]))

    res = await db.execute(stmt.order_by(Order.created_at.desc()))
    return list(res.scalars().all())


async def driver_order_counts(db: AsyncSession, driver_id: str) -> dict:
    """Dashboard counters for one courier; completedToday is keyed on delivered_at."""
    start_of_today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    async def _count(*clauses) -> int:
        res = await db.execute(
            select(func.count(Order.id)).where(Order.driver_id == driver_id, *clauses)
        )
        return res.scalar_one()

    completed = Order.status == OrderStatus.COMPLETED.value
    return {
        "assigned": await _count(Order.status.in_([s.value for s in ACTIVE_DRIVER_STATUSES])),
        "completedToday": await _count(completed, Order.delivered_at >= start_of_today),
        "completedTotal": await _count(completed),
    }


async def dispatcher_order_counts(db: AsyncSession) -> dict:
    """
    Dispatcher dashboard counters over paid orders.

    active: a courier is working the order (assigned through on_the_way).
    awaitingAssignment: paid, pending and without a courier, i.e. the queue
    assign_driver works from.
    """
    paid = Order.payment_status == PaymentStatus.PAID.value
    in_progress = [s.value for s in LOCATION_SHARING_STATUSES]

    active = await db.execute(select(func.count(Order.id)).where(paid, Order.status.in_(in_progress)))
    queued = await db.execute(
        select(func.count(Order.id)).where(
            paid, Order.status == OrderStatus.PENDING.value, Order.driver_id.is_(None)
        )
    )
    return {"active": active.scalar_one(), "awaitingAssignment": queued.scalar_one()}
