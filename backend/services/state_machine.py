"""
Order state machine.

TRANSITIONS is the complete edge table: which statuses an order may move
from, where to, and which actors may trigger the move. apply_transition()
is the only code that writes Order.status; every other service calls it.

Rejections, in the order they are checked:
    unknown target / no edge into target        -> InvalidTransitionError
    role not on the edge, wrong courier/owner   -> PermissionDeniedError
    current status is not a source of the edge  -> InvalidTransitionError
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, StatusHistoryEntry
from domain.actor import Actor
from domain.constants import CANCELLED_STATUSES, NON_TERMINAL_STATUSES, REASSIGNABLE_STATUSES
from domain.enums import ActorRole, OrderStatus
from domain.errors import InvalidTransitionError, PermissionDeniedError
from domain.events import OrderEvent
from services import order_store
from services.order_store import ANY_DRIVER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    sources: frozenset[OrderStatus]
    target: OrderStatus
    roles: frozenset[ActorRole]
    assigned_driver_only: bool = False
    owner_only: bool = False
    # Only the assignment coordinator's reassignment path may use this edge.
    reassignment: bool = False


def _edge(sources, target, *roles, **flags) -> Edge:
    return Edge(frozenset(sources), target, frozenset(roles), **flags)


S = OrderStatus

TRANSITIONS: tuple[Edge, ...] = (
    _edge({S.PENDING}, S.ASSIGNED, ActorRole.ADMIN),
    _edge(REASSIGNABLE_STATUSES, S.ASSIGNED, ActorRole.ADMIN, reassignment=True),
    _edge({S.ASSIGNED, S.HEADING_TO_RESTAURANT}, S.READY_FOR_PICKUP, ActorRole.ADMIN),
    _edge({S.ASSIGNED}, S.HEADING_TO_RESTAURANT, ActorRole.DRIVER, assigned_driver_only=True),
    _edge({S.READY_FOR_PICKUP}, S.AT_RESTAURANT, ActorRole.DRIVER, assigned_driver_only=True),
    _edge({S.AT_RESTAURANT}, S.ON_THE_WAY, ActorRole.DRIVER, assigned_driver_only=True),
    _edge({S.ON_THE_WAY}, S.DELIVERED, ActorRole.DRIVER, assigned_driver_only=True),
    _edge({S.DELIVERED}, S.COMPLETED, ActorRole.CLIENT, owner_only=True),
    # Cancellations
    _edge(NON_TERMINAL_STATUSES, S.CANCELLED_BY_CLIENT, ActorRole.CLIENT, owner_only=True),
    _edge(NON_TERMINAL_STATUSES, S.CANCELLED_BY_CLIENT_WITH_PENALTY, ActorRole.CLIENT, owner_only=True),
    _edge(NON_TERMINAL_STATUSES, S.CANCELLED_BY_ADMIN, ActorRole.ADMIN),
    _edge(NON_TERMINAL_STATUSES, S.CANCELLED_BY_ADMIN_WITH_PENALTY, ActorRole.ADMIN),
    _edge({S.PENDING}, S.CANCELLED, ActorRole.SYSTEM),
)


@dataclass
class TransitionResult:
    """Outcome of a lifecycle operation: the re-read order plus events to publish after commit."""
    order: Order
    events: list[OrderEvent] = field(default_factory=list)


def _coerce_status(order: Order, target) -> OrderStatus:
    try:
        return OrderStatus(target)
    except ValueError:
        raise InvalidTransitionError(order.status, str(target), message=f"Unknown order status '{target}'")


def authorize(order: Order, actor: Actor, target, *, reassignment: bool = False) -> Edge:
    """Return the edge that lets `actor` move `order` to `target`, or raise."""
    target = _coerce_status(order, target)
    current = OrderStatus(order.status)

    candidates = [e for e in TRANSITIONS if e.target == target and e.reassignment == reassignment]
    if not candidates:
        raise InvalidTransitionError(current.value, target.value)

    permitted = [e for e in candidates if actor.role in e.roles]
    if not permitted:
        raise PermissionDeniedError(
            f"Role '{actor.role.value}' cannot move an order to '{target.value}'",
            details={"role": actor.role.value, "requestedStatus": target.value},
        )

    for edge in permitted:
        if edge.assigned_driver_only and order.driver_id != actor.user_id:
            raise PermissionDeniedError("Only the assigned courier can update this order")
        if edge.owner_only and order.customer_id != actor.user_id:
            raise PermissionDeniedError("Only the customer who placed this order can do that")

    for edge in permitted:
        if current in edge.sources:
            return edge

    raise InvalidTransitionError(current.value, target.value)


async def apply_transition(
    db: AsyncSession,
    order: Order,
    actor: Actor,
    target,
    *,
    values: dict | None = None,
    notes: str | None = None,
    preceding_history: Iterable[StatusHistoryEntry] = (),
    expected_driver_id=ANY_DRIVER,
    reassignment: bool = False,
) -> Order:
    """
    Validate and persist one status change.

    Writes status, updated_at, delivered_at/cancelled_at where they apply,
    plus `values`, in one write guarded on the status that was read.
    Appends `preceding_history` then exactly one entry for the new status.
    """
    edge = authorize(order, actor, target, reassignment=reassignment)
    target = edge.target
    previous = order.status
    now = datetime.utcnow()

    changes = {"status": target.value, "updated_at": now}
    if target == OrderStatus.DELIVERED:
        changes["delivered_at"] = now
    if target in CANCELLED_STATUSES:
        changes["cancelled_at"] = now
    changes.update(values or {})

    if edge.assigned_driver_only and expected_driver_id is ANY_DRIVER:
        expected_driver_id = actor.user_id

    history = list(preceding_history)
    history.append(
        StatusHistoryEntry(
            status=target.value,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            timestamp=now,
            notes=notes,
        )
    )

    updated = await order_store.conditional_update(
        db,
        order,
        expected_status=previous,
        values=changes,
        history=history,
        expected_driver_id=expected_driver_id,
    )
    logger.info(f"Order {order.id}: {previous} -> {target.value} by {actor.role.value} {actor.user_id}")
    return updated
