"""
Rating aggregator.

A customer rates a completed order once per target (courier, restaurant).
After each stored rating the target's average is recomputed from every
rated order that references it. Ratings are infrequent, so the full scan
stays cheap.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, Restaurant, User
from domain.actor import Actor
from domain.constants import (
    DEFAULT_DRIVER_RATING,
    DEFAULT_RESTAURANT_RATING,
    RATING_MAX_STARS,
    RATING_MIN_STARS,
)
from domain.enums import ActorRole, OrderStatus
from domain.errors import ConflictError, InvalidTransitionError, PermissionDeniedError, ValidationError
from services import order_store
from services.state_machine import TransitionResult

logger = logging.getLogger(__name__)


def _validate_stars(value, field: str) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("must be an integer", field=field)
    if not RATING_MIN_STARS <= value <= RATING_MAX_STARS:
        raise ValidationError(
            f"must be between {RATING_MIN_STARS} and {RATING_MAX_STARS}", field=field
        )
    return value


def _clean_comment(comment: str | None) -> str | None:
    if comment is None:
        return None
    comment = comment.strip()[: settings.rating_comment_max_length]
    return comment or None


def _clamp_average(mean, low: float, high: float, default: float) -> float:
    """One decimal, halves rounded up (4.25 -> 4.3), then clamped to [low, high]."""
    if mean is None:
        return default
    rounded = float(Decimal(str(mean)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    return min(high, max(low, rounded))


async def recompute_driver_rating(db: AsyncSession, driver_id: str) -> float:
    res = await db.execute(
        select(func.avg(Order.driver_rating_stars)).where(
            Order.driver_id == driver_id, Order.driver_rating_stars.is_not(None)
        )
    )
    average = _clamp_average(res.scalar_one(), RATING_MIN_STARS, RATING_MAX_STARS, DEFAULT_DRIVER_RATING)
    await db.execute(update(User).where(User.id == driver_id).values(driver_rating=average))
    return average


async def recompute_restaurant_rating(db: AsyncSession, restaurant_id: str) -> float:
    res = await db.execute(
        select(func.avg(Order.restaurant_rating_stars)).where(
            Order.restaurant_id == restaurant_id, Order.restaurant_rating_stars.is_not(None)
        )
    )
    average = _clamp_average(res.scalar_one(), 0.0, RATING_MAX_STARS, DEFAULT_RESTAURANT_RATING)
    await db.execute(update(Restaurant).where(Restaurant.id == restaurant_id).values(rating=average))
    return average


async def rate_order(
    db: AsyncSession,
    actor: Actor,
    order_id: str,
    *,
    driver_stars: int | None = None,
    driver_comment: str | None = None,
    restaurant_stars: int | None = None,
    restaurant_comment: str | None = None,
) -> TransitionResult:
    """
    Store the customer's ratings and refresh the affected averages.

    Each target can be rated once; a second attempt raises ConflictError
    instead of overwriting. Produces no notifications.
    """
    order = await order_store.require_order(db, order_id)

    if actor.role != ActorRole.CLIENT or order.customer_id != actor.user_id:
        raise PermissionDeniedError("Only the customer who placed this order can rate it")
    if order.status != OrderStatus.COMPLETED.value:
        raise InvalidTransitionError(
            order.status,
            OrderStatus.COMPLETED.value,
            message="Only completed orders can be rated",
        )
    if driver_stars is None and restaurant_stars is None:
        raise ValidationError("Rate the courier, the restaurant, or both")

    now = datetime.utcnow()
    values: dict = {"updated_at": now}
    conditions = []

    if driver_stars is not None:
        if order.driver_id is None:
            raise ValidationError("This order has no courier to rate", field="driverRating")
        if order.driver_rating_stars is not None:
            raise ConflictError("The courier was already rated for this order")
        values.update(
            driver_rating_stars=_validate_stars(driver_stars, "driverRating"),
            driver_rating_comment=_clean_comment(driver_comment),
            driver_rated_at=now,
        )
        conditions.append(Order.driver_rating_stars.is_(None))

    if restaurant_stars is not None:
        if order.restaurant_rating_stars is not None:
            raise ConflictError("The restaurant was already rated for this order")
        values.update(
            restaurant_rating_stars=_validate_stars(restaurant_stars, "restaurantRating"),
            restaurant_rating_comment=_clean_comment(restaurant_comment),
            restaurant_rated_at=now,
        )
        conditions.append(Order.restaurant_rating_stars.is_(None))

    updated = await order_store.conditional_update(
        db,
        order,
        expected_status=OrderStatus.COMPLETED.value,
        values=values,
        conditions=conditions,
    )

    if driver_stars is not None:
        average = await recompute_driver_rating(db, updated.driver_id)
        logger.info(f"Courier {updated.driver_id} rated {driver_stars} on order {order_id}; average {average}")
    if restaurant_stars is not None:
        average = await recompute_restaurant_rating(db, updated.restaurant_id)
        logger.info(
            f"Restaurant {updated.restaurant_id} rated {restaurant_stars} on order {order_id}; average {average}"
        )

    return TransitionResult(updated)
