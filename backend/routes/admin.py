"""
Dispatcher endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_connections, require_admin
from domain.actor import Actor
from domain.responses import ORDER_ERROR_RESPONSES, success_response
from models import DriverAvailabilityRequest, DriverSummary
from services import assignment_service, order_store
from services.notification_service import ConnectionRegistry

router = APIRouter(prefix="/admin", tags=["admin"], responses=ORDER_ERROR_RESPONSES)


@router.get("/drivers/available")
async def available_drivers(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    connections: ConnectionRegistry = Depends(get_connections),
):
    """Couriers marked available, best rated first, with their live-connection state."""
    drivers = await assignment_service.list_available_drivers(db)
    data = []
    for driver in drivers:
        row = DriverSummary.model_validate(driver).model_dump(by_alias=True)
        row["online"] = connections.is_connected(driver.id)
        data.append(row)
    return success_response(data, meta={"count": len(data)})


@router.put("/drivers/{driver_id}/availability")
async def set_driver_availability(
    driver_id: str,
    body: DriverAvailabilityRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Take a courier off (or put them back on) the assignment list."""
    driver = await assignment_service.set_driver_availability(db, actor, driver_id, body.is_available)
    await db.commit()
    return success_response(DriverSummary.model_validate(driver).model_dump(by_alias=True))


@router.get("/orders/counts")
async def order_counts(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await order_store.dispatcher_order_counts(db))
