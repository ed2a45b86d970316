"""
Courier endpoints: dashboard listings, availability and the arrival shortcut.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import commit_and_publish, get_notifier, require_driver
from domain.actor import Actor
from domain.enums import OrderStatus
from domain.responses import ORDER_ERROR_RESPONSES, success_response
from models import DriverAvailabilityRequest, DriverSummary, serialize_order
from services import assignment_service, order_service, order_store
from services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/driver", tags=["driver"], responses=ORDER_ERROR_RESPONSES)


@router.get("/orders")
async def list_my_orders(
    status: str = Query("all", description="assigned | completed | all (all excludes cancellations)"),
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_store.list_driver_orders(db, actor.user_id, status)
    return success_response(
        [serialize_order(o, actor) for o in orders],
        meta={"count": len(orders)},
    )


@router.get("/orders/counts")
async def my_order_counts(
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await order_store.driver_order_counts(db, actor.user_id))


@router.put("/orders/{order_id}/arrived")
async def arrived_at_restaurant(
    order_id: str,
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Same as PUT /orders/{id}/status with status=at_restaurant."""
    result = await order_service.advance_driver_status(db, actor, order_id, OrderStatus.AT_RESTAURANT)
    await commit_and_publish(db, notifier, result)
    return success_response(serialize_order(result.order, actor))


@router.put("/availability")
async def set_my_availability(
    body: DriverAvailabilityRequest,
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
):
    driver = await assignment_service.set_driver_availability(db, actor, actor.user_id, body.is_available)
    await db.commit()
    return success_response(DriverSummary.model_validate(driver).model_dump(by_alias=True))
