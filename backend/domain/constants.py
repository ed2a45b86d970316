"""
Domain constants used across services/routers.
"""
from domain.enums import OrderStatus

CANCELLED_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.CANCELLED,
        OrderStatus.CANCELLED_BY_CLIENT,
        OrderStatus.CANCELLED_BY_CLIENT_WITH_PENALTY,
        OrderStatus.CANCELLED_BY_ADMIN,
        OrderStatus.CANCELLED_BY_ADMIN_WITH_PENALTY,
        OrderStatus.CANCELLED_BY_DRIVER,
    }
)

# No forward transition leaves these.
TERMINAL_STATUSES: frozenset[OrderStatus] = CANCELLED_STATUSES | {OrderStatus.COMPLETED}

NON_TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(OrderStatus) - TERMINAL_STATUSES

# A courier is working the order (courier reference must be set).
ACTIVE_DRIVER_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.ASSIGNED,
        OrderStatus.HEADING_TO_RESTAURANT,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.AT_RESTAURANT,
        OrderStatus.ON_THE_WAY,
        OrderStatus.DELIVERED,
    }
)

# Ownership is frozen from on_the_way onwards.
REASSIGNABLE_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.ASSIGNED,
        OrderStatus.HEADING_TO_RESTAURANT,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.AT_RESTAURANT,
    }
)

# Targets a courier may request through advance_driver_status.
DRIVER_TARGET_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.HEADING_TO_RESTAURANT,
    OrderStatus.AT_RESTAURANT,
    OrderStatus.ON_THE_WAY,
    OrderStatus.DELIVERED,
)

# Location sharing is only relayed while the courier is still en route.
LOCATION_SHARING_STATUSES: frozenset[OrderStatus] = ACTIVE_DRIVER_STATUSES - {OrderStatus.DELIVERED}

RATING_MIN_STARS = 1
RATING_MAX_STARS = 5

DEFAULT_DRIVER_RATING = 5.0
DEFAULT_RESTAURANT_RATING = 0.0

# Handoff confirmation words (one is drawn per order)
SAFETY_WORDS: tuple[str, ...] = (
    "taco", "salsa", "guacamole", "nacho", "lime", "cilantro", "corn", "chili",
    "sun", "moon", "star", "river", "flower", "stone", "cloud", "wind",
    "fire", "water", "tree", "cat", "tiger", "lion", "bear", "wolf",
    "fox", "dolphin", "turtle", "apple", "orange", "grape", "melon", "mango",
    "coconut", "cherry", "peach", "bell", "door", "window", "key", "garden",
    "table", "chair", "book", "light", "clock", "map",
)
