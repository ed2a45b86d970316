"""
WebSocket endpoint for real-time order notifications.

Connect with /ws?token=<jwt>. The socket is registered on the user's own
channel (and the dispatcher pool for admins). Client messages:

    {"type": "joinOrder",      "orderId": ...}          subscribe to an order channel
    {"type": "leaveOrder",     "orderId": ...}
    {"type": "driverLocation", "orderId": ..., "lat": ..., "lng": ...}

Order channels carry only live location updates, never status events.
"""

import json
import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.actor import Actor
from domain.enums import ActorRole
from domain.errors import DomainError, PermissionDeniedError, ValidationError
from middleware.auth import actor_from_token
from models import LocationMessage
from services import order_service, order_store
from services.notification_service import ConnectionRegistry, NotificationDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


async def _require_party(db: AsyncSession, actor: Actor, order_id: str) -> None:
    order = await order_store.require_order(db, order_id)
    if actor.role == ActorRole.ADMIN:
        return
    if actor.user_id not in (order.customer_id, order.driver_id):
        raise PermissionDeniedError("You are not a party to this order")


async def handle_message(
    db: AsyncSession,
    actor: Actor,
    target,
    message: dict,
    connections: ConnectionRegistry,
    notifier: NotificationDispatcher,
) -> Optional[dict]:
    """Apply one client message. Returns an acknowledgement to send back, if any."""
    kind = message.get("type")
    order_id = message.get("orderId")

    if kind in ("joinOrder", "leaveOrder"):
        if not order_id:
            raise ValidationError("orderId is required", field="orderId")
        if kind == "joinOrder":
            await _require_party(db, actor, order_id)
            connections.join_order(order_id, target)
            return {"event": "joinedOrder", "data": {"orderId": order_id}}
        connections.leave_order(order_id, target)
        return {"event": "leftOrder", "data": {"orderId": order_id}}

    if kind == "driverLocation":
        try:
            location = LocationMessage.model_validate(message)
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid location message ({e.error_count()} errors)", field="location")
        event = await order_service.share_driver_location(
            db, actor, location.order_id, location.lat, location.lng
        )
        notifier.publish([event])
        return None

    raise ValidationError(f"Unknown message type {kind!r}", field="type")


def _error_frame(code: str, message: str) -> dict:
    return {"event": "error", "data": {"code": code, "message": message}}


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    token: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    connections: ConnectionRegistry = websocket.app.state.connections
    notifier: NotificationDispatcher = websocket.app.state.notifier

    try:
        actor = actor_from_token(token)
    except DomainError as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    await websocket.accept()
    connections.connect(actor.user_id, websocket, dispatcher=actor.is_admin)
    logger.info(f"Realtime session opened for {actor.role.value} {actor.user_id}")
    await websocket.send_json(
        {"event": "connected", "data": {"userId": actor.user_id, "role": actor.role.value}}
    )

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                if not isinstance(message, dict):
                    raise ValueError("message must be a JSON object")
                reply = await handle_message(db, actor, websocket, message, connections, notifier)
            except ValueError as e:
                reply = _error_frame("validation_failed", str(e))
            except DomainError as e:
                reply = _error_frame(e.code, e.message)
            finally:
                # End the read transaction so writers are not blocked for the socket's lifetime.
                await db.commit()
            if reply:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.info(f"Realtime session closed for {actor.role.value} {actor.user_id}")
    finally:
        connections.disconnect(websocket)
