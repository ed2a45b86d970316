"""
Order lifecycle operations exposed to the transport layer.

Each operation validates the request, applies at most one state change via
the state machine, and returns a TransitionResult. Callers commit the
session first and only then hand result.events to the notifier.
"""

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Restaurant, User
from domain.actor import Actor
from domain.constants import DRIVER_TARGET_STATUSES, LOCATION_SHARING_STATUSES
from domain.enums import ActorRole, OrderStatus
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from domain.events import (
    DriverArrivedAtRestaurant,
    DriverHeadingToRestaurant,
    DriverLocationUpdate,
    NewOrderCreated,
    OrderCompleted,
    OrderDelivered,
    OrderOnTheWay,
    OrderReadyForPickup,
    OrderStatusChanged,
)
from services import order_store, state_machine
from services.assignment_service import assign_driver  # noqa: F401
from services.cancellation_service import cancel_order  # noqa: F401
from services.rating_service import rate_order  # noqa: F401
from services.state_machine import TransitionResult

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    OrderStatus.ASSIGNED: "A courier was assigned to your order.",
    OrderStatus.HEADING_TO_RESTAURANT: "Your courier is heading to the restaurant.",
    OrderStatus.READY_FOR_PICKUP: "Your order is ready for pickup.",
    OrderStatus.AT_RESTAURANT: "Your courier is at the restaurant.",
    OrderStatus.ON_THE_WAY: "Your order is on the way.",
    OrderStatus.DELIVERED: "Your order was delivered. Please confirm receipt.",
    OrderStatus.COMPLETED: "Thanks! Your order is complete.",
}


def _status_changed(order) -> OrderStatusChanged:
    return OrderStatusChanged(
        order_id=order.id,
        recipient_id=order.customer_id,
        status=order.status,
        message=_STATUS_MESSAGES.get(OrderStatus(order.status), ""),
    )


def _courier_name(order) -> str:
    return order.driver.display_name if order.driver else "Your courier"


async def place_order(
    db: AsyncSession,
    actor: Actor,
    *,
    restaurant_id: str,
    items: Sequence[dict],
    delivery_address: str,
    notes: str | None = None,
) -> TransitionResult:
    if actor.role != ActorRole.CLIENT:
        raise PermissionDeniedError("Only customers can place orders")
    if not (delivery_address or "").strip():
        raise ValidationError("A delivery address is required", field="deliveryAddress")

    res = await db.execute(
        select(Restaurant).where(Restaurant.id == restaurant_id, Restaurant.is_active.is_(True))
    )
    restaurant = res.scalar_one_or_none()
    if not restaurant:
        raise NotFoundError("Restaurant", restaurant_id)

    order = await order_store.create_order(
        db,
        customer_id=actor.user_id,
        restaurant=restaurant,
        items=items,
        delivery_address=delivery_address,
        notes=notes,
    )
    customer_name = order.customer.display_name if order.customer else actor.user_id
    return TransitionResult(
        order,
        [
            NewOrderCreated(
                order_id=order.id,
                customer_name=customer_name,
                restaurant_name=restaurant.name,
                total=order.total,
                message=f"New order #{order.id[-6:]} from {customer_name}",
            )
        ],
    )


async def set_ready_for_pickup(db: AsyncSession, actor: Actor, order_id: str) -> TransitionResult:
    order = await order_store.require_order(db, order_id)
    updated = await state_machine.apply_transition(db, order, actor, OrderStatus.READY_FOR_PICKUP)

    events = []
    if updated.driver_id:
        events.append(
            OrderReadyForPickup(
                order_id=updated.id,
                recipient_id=updated.driver_id,
                restaurant_name=updated.restaurant.name if updated.restaurant else None,
                message=f"Order #{updated.id[-6:]} is ready for pickup.",
            )
        )
    events.append(_status_changed(updated))
    return TransitionResult(updated, events)


async def advance_driver_status(db: AsyncSession, actor: Actor, order_id: str, target) -> TransitionResult:
    """Courier-driven steps: heading_to_restaurant, at_restaurant, on_the_way, delivered."""
    try:
        target = OrderStatus(target)
    except ValueError:
        raise ValidationError(f"Unknown status '{target}'", field="status")
    if target not in DRIVER_TARGET_STATUSES:
        raise ValidationError(
            f"Couriers can only set: {', '.join(s.value for s in DRIVER_TARGET_STATUSES)}",
            field="status",
        )

    order = await order_store.require_order(db, order_id)
    updated = await state_machine.apply_transition(db, order, actor, target)

    courier = _courier_name(updated)
    if target == OrderStatus.HEADING_TO_RESTAURANT:
        event = DriverHeadingToRestaurant(
            order_id=updated.id,
            driver_name=courier,
            message=f"{courier} is heading to the restaurant for order #{updated.id[-6:]}",
        )
    elif target == OrderStatus.AT_RESTAURANT:
        event = DriverArrivedAtRestaurant(
            order_id=updated.id,
            recipient_id=updated.customer_id,
            driver_name=courier,
            message=f"{courier} arrived at the restaurant.",
        )
    elif target == OrderStatus.ON_THE_WAY:
        event = OrderOnTheWay(
            order_id=updated.id,
            recipient_id=updated.customer_id,
            driver_name=courier,
            message=f"{courier} is on the way with your order.",
        )
    else:
        event = OrderDelivered(
            order_id=updated.id,
            recipient_id=updated.customer_id,
            message="Your order was delivered. Please confirm receipt.",
        )
    return TransitionResult(updated, [event, _status_changed(updated)])


async def confirm_delivery(db: AsyncSession, actor: Actor, order_id: str) -> TransitionResult:
    order = await order_store.require_order(db, order_id)
    updated = await state_machine.apply_transition(db, order, actor, OrderStatus.COMPLETED)

    if updated.driver_id:
        await db.execute(
            update(User)
            .where(User.id == updated.driver_id)
            .values(total_deliveries=User.total_deliveries + 1)
        )
        logger.info(f"Order {updated.id} completed; courier {updated.driver_id} delivery count incremented")

    completed = OrderCompleted(
        order_id=updated.id,
        recipient_id=updated.driver_id,
        message=f"The customer confirmed delivery of order #{updated.id[-6:]}.",
    )
    return TransitionResult(updated, [completed, _status_changed(updated)])


async def confirm_payment(db: AsyncSession, order_id: str, paid: bool) -> TransitionResult:
    """Payment collaborator signal. No status change, so no notifications."""
    order = await order_store.require_order(db, order_id)
    updated = await order_store.set_payment_status(db, order, paid=paid)
    return TransitionResult(updated)


async def share_driver_location(
    db: AsyncSession, actor: Actor, order_id: str, lat: float, lng: float
) -> DriverLocationUpdate:
    """Validate a courier's position report and wrap it for the order channel."""
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise ValidationError("Coordinates out of range", field="location")

    order = await order_store.require_order(db, order_id)
    if actor.role != ActorRole.DRIVER or order.driver_id != actor.user_id:
        raise PermissionDeniedError("Only the assigned courier can share location for this order")
    if OrderStatus(order.status) not in LOCATION_SHARING_STATUSES:
        raise ConflictError(
            "Location sharing is only available while the order is being delivered",
            details={"orderId": order.id, "status": order.status},
        )

    return DriverLocationUpdate(
        order_id=order.id,
        driver_id=actor.user_id,
        lat=lat,
        lng=lng,
        timestamp=datetime.utcnow(),
    )
