"""
Order endpoints: placing orders and every lifecycle mutation.

Each mutation commits first, then publishes the events it produced. A
notification failure can never undo or fail a committed change.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import commit_and_publish, get_notifier, require_admin, require_client, require_driver
from domain.actor import Actor
from domain.enums import ActorRole
from domain.errors import PermissionDeniedError
from domain.responses import ORDER_ERROR_RESPONSES, success_response
from middleware.auth import get_current_actor
from models import (
    AssignDriverRequest,
    CancelOrderRequest,
    PlaceOrderRequest,
    RateOrderRequest,
    UpdateStatusRequest,
    serialize_order,
)
from services import order_service, order_store
from services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"], responses=ORDER_ERROR_RESPONSES)


def _can_view(order, actor: Actor) -> bool:
    if actor.role in (ActorRole.ADMIN, ActorRole.SYSTEM):
        return True
    if actor.role == ActorRole.CLIENT:
        return order.customer_id == actor.user_id
    return order.driver_id == actor.user_id


@router.post("", status_code=201)
async def place_order(
    body: PlaceOrderRequest,
    actor: Actor = Depends(require_client),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.place_order(
        db,
        actor,
        restaurant_id=body.restaurant_id,
        items=[item.model_dump() for item in body.items],
        delivery_address=body.delivery_address,
        notes=body.notes,
    )
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.get("")
async def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Customers see their own orders; dispatchers see everything."""
    if actor.role == ActorRole.CLIENT:
        orders = await order_store.list_orders(
            db, customer_id=actor.user_id, status=status, limit=limit, offset=offset
        )
    elif actor.role == ActorRole.ADMIN:
        orders = await order_store.list_orders(db, status=status, limit=limit, offset=offset)
    else:
        raise PermissionDeniedError("Couriers list their orders under /driver/orders")
    return success_response(
        [serialize_order(o, actor) for o in orders],
        meta={"limit": limit, "offset": offset, "count": len(orders)},
    )


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    order = await order_store.require_order(db, order_id)
    if not _can_view(order, actor):
        raise PermissionDeniedError("You are not a party to this order")
    return success_response(serialize_order(order, actor))


@router.put("/{order_id}/assign")
async def assign_driver(
    order_id: str,
    body: AssignDriverRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.assign_driver(db, actor, order_id, body.driver_id, body.reassign)
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.put("/{order_id}/ready")
async def set_ready_for_pickup(
    order_id: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.set_ready_for_pickup(db, actor, order_id)
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.put("/{order_id}/status")
async def update_status(
    order_id: str,
    body: UpdateStatusRequest,
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.advance_driver_status(db, actor, order_id, body.status)
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.put("/{order_id}/confirm-delivery")
async def confirm_delivery(
    order_id: str,
    actor: Actor = Depends(require_client),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.confirm_delivery(db, actor, order_id)
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.post("/{order_id}/rate")
async def rate_order(
    order_id: str,
    body: RateOrderRequest,
    actor: Actor = Depends(require_client),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.rate_order(
        db,
        actor,
        order_id,
        driver_stars=body.driver_rating,
        driver_comment=body.driver_comment,
        restaurant_stars=body.restaurant_rating,
        restaurant_comment=body.restaurant_comment,
    )
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await order_service.cancel_order(db, actor, order_id, body.reason)
    await commit_and_publish(db, notifier, result)
    order = result.order
    return success_response(
        serialize_order(order, actor),
        meta={"penaltyAmount": order.penalty_amount, "refundAmount": order.refund_amount},
    )
