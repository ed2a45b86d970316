"""
Payment collaborator hook.

The payment service (after verifying its provider's webhook) reports the
outcome here. This core never creates payment sessions or checks provider
signatures; it only records paid / failed.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import require_payment_signal
from domain.actor import Actor
from domain.responses import ORDER_ERROR_RESPONSES, success_response
from models import PaymentSignalRequest, serialize_order
from services import order_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"], responses=ORDER_ERROR_RESPONSES)


@router.post("/{order_id}/status")
async def record_payment(
    order_id: str,
    body: PaymentSignalRequest,
    actor: Actor = Depends(require_payment_signal),
    db: AsyncSession = Depends(get_db),
):
    result = await order_service.confirm_payment(db, order_id, body.paid)
    await db.commit()
    logger.info(f"Payment signal for order {order_id} from {actor.role.value}: paid={body.paid}")
    return success_response(serialize_order(result.order, actor))
