"""
Assignment coordinator: attaches a courier to a paid order.

Initial assignment moves a pending order to 'assigned'. Reassignment swaps
the courier on an order that has not left the restaurant yet and restarts
the courier sub-flow at 'assigned'; it must be requested explicitly
(reassign=True) so a repeated click cannot move an order by accident.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import StatusHistoryEntry, User
from domain.actor import Actor
from domain.constants import REASSIGNABLE_STATUSES
from domain.enums import ActorRole, OrderStatus, PaymentStatus, REASSIGNED_MARKER
from domain.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from domain.events import OrderAssigned, OrderReassignedAway, OrderReassignedTo, OrderStatusChanged
from services import order_store, state_machine
from services.state_machine import TransitionResult

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = REASSIGNABLE_STATUSES | {OrderStatus.PENDING}


async def get_driver(db: AsyncSession, driver_id: str) -> User | None:
    res = await db.execute(
        select(User).where(User.id == driver_id, User.role == ActorRole.DRIVER.value)
    )
    return res.scalar_one_or_none()


async def list_available_drivers(db: AsyncSession) -> list[User]:
    res = await db.execute(
        select(User)
        .where(User.role == ActorRole.DRIVER.value, User.is_available.is_(True))
        .order_by(User.driver_rating.desc(), User.name)
    )
    return list(res.scalars().all())


async def set_driver_availability(
    db: AsyncSession, actor: Actor, driver_id: str, available: bool
) -> User:
    """
    Toggle whether a courier is offered for new assignments.

    Couriers switch their own flag; dispatchers may switch anyone's. Orders
    the courier already holds are not touched.
    """
    if actor.role == ActorRole.DRIVER:
        if actor.user_id != driver_id:
            raise PermissionDeniedError("Couriers can only change their own availability")
    elif not actor.is_admin:
        raise PermissionDeniedError("Only couriers and dispatchers can change availability")

    driver = await get_driver(db, driver_id)
    if not driver:
        raise NotFoundError("Driver", driver_id)

    await db.execute(update(User).where(User.id == driver.id).values(is_available=available))
    await db.refresh(driver)
    logger.info(f"Courier {driver.id} availability set to {available} by {actor.role.value} {actor.user_id}")
    return driver


async def assign_driver(
    db: AsyncSession,
    actor: Actor,
    order_id: str,
    driver_id: str,
    reassign: bool = False,
) -> TransitionResult:
    if not actor.is_admin:
        raise PermissionDeniedError("Only dispatchers can assign couriers")

    order = await order_store.require_order(db, order_id)
    driver = await get_driver(db, driver_id)
    if not driver:
        raise NotFoundError("Driver", driver_id)

    status = OrderStatus(order.status)
    # Terminal orders and orders already en route keep their courier.
    if status not in ASSIGNABLE_STATUSES:
        raise InvalidTransitionError(
            status.value,
            OrderStatus.ASSIGNED.value,
            message=f"A courier cannot be assigned while the order is '{status.value}'",
        )
    if order.payment_status != PaymentStatus.PAID.value:
        raise ConflictError(
            "Couriers can only be assigned to orders with confirmed payment",
            details={"orderId": order.id, "paymentStatus": order.payment_status},
        )

    if order.driver_id is None:
        return await _assign(db, actor, order, driver)

    if not reassign:
        raise ConflictError(
            "This order already has a courier; request a reassignment instead",
            details={"orderId": order.id, "driverId": order.driver_id},
        )
    if order.driver_id == driver.id:
        raise ConflictError(
            "The order is already assigned to this courier",
            details={"orderId": order.id, "driverId": driver.id},
        )
    return await _reassign(db, actor, order, driver)


async def _assign(db: AsyncSession, actor: Actor, order, driver: User) -> TransitionResult:
    updated = await state_machine.apply_transition(
        db,
        order,
        actor,
        OrderStatus.ASSIGNED,
        values={"driver_id": driver.id},
        expected_driver_id=None,
    )
    logger.info(f"Order {updated.id} assigned to courier {driver.id}")

    restaurant_name = updated.restaurant.name if updated.restaurant else None
    return TransitionResult(
        updated,
        [
            OrderAssigned(
                order_id=updated.id,
                recipient_id=driver.id,
                status=updated.status,
                restaurant_name=restaurant_name,
                message=f"You have a new order: #{updated.id[-6:]}",
            ),
            OrderStatusChanged(
                order_id=updated.id,
                recipient_id=updated.customer_id,
                status=updated.status,
                message="A courier was assigned to your order.",
            ),
        ],
    )


async def _reassign(db: AsyncSession, actor: Actor, order, driver: User) -> TransitionResult:
    previous = order.driver
    previous_id = order.driver_id
    old_label = previous.display_name if previous else "previous courier"
    new_label = driver.display_name

    marker = StatusHistoryEntry(
        status=REASSIGNED_MARKER,
        actor_id=actor.user_id,
        actor_role=actor.role.value,
        timestamp=datetime.utcnow(),
        notes=f"Order reassigned from {old_label} to {new_label}",
    )
    updated = await state_machine.apply_transition(
        db,
        order,
        actor,
        OrderStatus.ASSIGNED,
        values={"driver_id": driver.id},
        preceding_history=[marker],
        expected_driver_id=previous_id,
        reassignment=True,
    )
    logger.info(f"Order {updated.id} reassigned from courier {previous_id} to {driver.id}")

    short_id = updated.id[-6:]
    restaurant_name = updated.restaurant.name if updated.restaurant else None
    return TransitionResult(
        updated,
        [
            OrderReassignedAway(
                order_id=updated.id,
                recipient_id=previous_id,
                new_driver_name=new_label,
                message=f"Order #{short_id} was reassigned to another courier.",
            ),
            OrderReassignedTo(
                order_id=updated.id,
                recipient_id=driver.id,
                status=updated.status,
                restaurant_name=restaurant_name,
                message=f"Order #{short_id} was reassigned to you.",
            ),
            OrderStatusChanged(
                order_id=updated.id,
                recipient_id=updated.customer_id,
                status=updated.status,
                message="Your order was handed to a different courier.",
            ),
        ],
    )
