"""
Cancellation policy.

A paid order is cancelled with a penalty (settings.cancellation_penalty_rate
of the total) and the remainder refunded; an unpaid order is cancelled
free of charge. The terminal status records who cancelled and whether a
penalty applied. Couriers never cancel through this path.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from domain.actor import Actor
from domain.constants import TERMINAL_STATUSES
from domain.enums import ActorRole, OrderStatus, PaymentStatus
from domain.errors import InvalidTransitionError, PermissionDeniedError, ValidationError
from domain.events import OrderCancelled, OrderStatusChanged
from services import order_store, state_machine
from services.state_machine import TransitionResult

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")

_TERMINALS: dict[ActorRole, tuple[OrderStatus, OrderStatus]] = {
    # role: (unpaid, paid)
    ActorRole.CLIENT: (OrderStatus.CANCELLED_BY_CLIENT, OrderStatus.CANCELLED_BY_CLIENT_WITH_PENALTY),
    ActorRole.ADMIN: (OrderStatus.CANCELLED_BY_ADMIN, OrderStatus.CANCELLED_BY_ADMIN_WITH_PENALTY),
    ActorRole.SYSTEM: (OrderStatus.CANCELLED, OrderStatus.CANCELLED),
}


@dataclass(frozen=True)
class CancellationOutcome:
    status: OrderStatus
    penalty: float
    refund: float


def round_money(value) -> float:
    """Round to cents, halves away from zero."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def compute_cancellation(total: float, payment_status: str, role: ActorRole) -> CancellationOutcome:
    if role not in _TERMINALS:
        raise PermissionDeniedError(f"Role '{role.value}' cannot cancel orders")

    unpaid_status, paid_status = _TERMINALS[role]
    if payment_status != PaymentStatus.PAID.value:
        return CancellationOutcome(unpaid_status, 0.0, 0.0)

    total_dec = Decimal(str(total))
    if role == ActorRole.SYSTEM:
        # Internal cancellations (e.g. payment expiry) never charge the customer.
        return CancellationOutcome(paid_status, 0.0, round_money(total_dec))

    penalty = round_money(total_dec * Decimal(str(settings.cancellation_penalty_rate)))
    refund = round_money(total_dec - Decimal(str(penalty)))
    return CancellationOutcome(paid_status, penalty, refund)


async def cancel_order(db: AsyncSession, actor: Actor, order_id: str, reason: str | None) -> TransitionResult:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A cancellation reason is required", field="reason")

    order = await order_store.require_order(db, order_id)

    if actor.role not in _TERMINALS:
        raise PermissionDeniedError("Couriers cannot cancel orders; contact a dispatcher")
    if actor.role == ActorRole.CLIENT and order.customer_id != actor.user_id:
        raise PermissionDeniedError("You can only cancel your own orders")
    if OrderStatus(order.status) in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            order.status, "cancelled", message=f"Order is already '{order.status}' and cannot be cancelled"
        )

    outcome = compute_cancellation(order.total, order.payment_status, actor.role)
    previous_driver_id = order.driver_id

    updated = await state_machine.apply_transition(
        db,
        order,
        actor,
        outcome.status,
        values={
            "penalty_amount": outcome.penalty,
            "refund_amount": outcome.refund,
            "driver_id": None,
            "cancelled_by": actor.user_id,
            "cancelled_by_role": actor.role.value,
            "cancellation_reason": reason,
        },
        notes=reason,
        expected_driver_id=previous_driver_id,
    )
    logger.info(
        f"Order {order_id} cancelled by {actor.role.value} "
        f"(penalty {outcome.penalty:.2f}, refund {outcome.refund:.2f})"
    )

    events = []
    if previous_driver_id:
        events.append(
            OrderCancelled(
                order_id=updated.id,
                recipient_id=previous_driver_id,
                status=updated.status,
                message=f"Order #{updated.id[-6:]} was cancelled and removed from your list.",
            )
        )
    events.append(
        OrderStatusChanged(
            order_id=updated.id,
            recipient_id=updated.customer_id,
            status=updated.status,
            message="Your order was cancelled.",
        )
    )
    return TransitionResult(updated, events)
