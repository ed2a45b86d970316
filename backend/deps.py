"""
Shared FastAPI dependencies.

Routers import identity guards and the per-application notifier from here.
"""

from __future__ import annotations

from fastapi import Depends, Request

from domain.actor import Actor
from domain.enums import ActorRole
from domain.errors import PermissionDeniedError
from middleware.auth import get_current_actor
from services.notification_service import ConnectionRegistry, NotificationDispatcher


def _require_roles(*roles: ActorRole):
    allowed = ", ".join(r.value for r in roles)

    async def guard(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise PermissionDeniedError(f"This endpoint requires role: {allowed}")
        return actor

    return guard


require_client = _require_roles(ActorRole.CLIENT)
require_admin = _require_roles(ActorRole.ADMIN)
require_driver = _require_roles(ActorRole.DRIVER)
require_payment_signal = _require_roles(ActorRole.ADMIN, ActorRole.SYSTEM)


def get_notifier(request: Request) -> NotificationDispatcher:
    return request.app.state.notifier


def get_connections(request: Request) -> ConnectionRegistry:
    return request.app.state.connections


async def commit_and_publish(db, notifier: NotificationDispatcher, result) -> None:
    """Make the transition durable, then fan out its events. Never the other way round."""
    await db.commit()
    if result.events:
        notifier.publish(result.events)
