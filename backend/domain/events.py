"""
Real-time notification events.

One pydantic model per EventType, each with its own payload shape. Payloads
serialize camelCase (orderId, driverName, ...). Routing fields such as
recipient_id are excluded from the wire payload; the dispatcher reads them
to address user channels.

DISPATCH_TABLE fixes which audiences receive each event kind. It must cover
every EventType; this is asserted at import time.
"""
from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventType(str, Enum):
    NEW_ORDER_CREATED = "newOrderCreated"
    ORDER_ASSIGNED = "orderAssigned"
    ORDER_READY_FOR_PICKUP = "orderReadyForPickup"
    ORDER_REASSIGNED_TO = "orderReassignedToYou"
    ORDER_REASSIGNED_AWAY = "orderReassignedAway"
    ORDER_CANCELLED = "orderCancelled"
    DRIVER_HEADING_TO_RESTAURANT = "driverHeadingToRestaurant"
    DRIVER_ARRIVED_AT_RESTAURANT = "driverArrivedAtRestaurant"
    ORDER_ON_THE_WAY = "orderOnTheWay"
    ORDER_DELIVERED = "orderDelivered"
    ORDER_COMPLETED = "orderCompleted"
    ORDER_STATUS_CHANGED = "orderStatusChanged"
    DRIVER_LOCATION_UPDATE = "driverLocationUpdate"


class Audience(str, Enum):
    USER = "user"                # the event's recipient_id
    DISPATCHERS = "dispatchers"  # every connected dispatcher session
    ORDER = "order"              # subscribers of the event's order channel


DISPATCH_TABLE: dict[EventType, tuple[Audience, ...]] = {
    EventType.NEW_ORDER_CREATED: (Audience.DISPATCHERS,),
    EventType.ORDER_ASSIGNED: (Audience.USER,),
    EventType.ORDER_READY_FOR_PICKUP: (Audience.USER,),
    EventType.ORDER_REASSIGNED_TO: (Audience.USER,),
    EventType.ORDER_REASSIGNED_AWAY: (Audience.USER,),
    EventType.ORDER_CANCELLED: (Audience.USER,),
    EventType.DRIVER_HEADING_TO_RESTAURANT: (Audience.DISPATCHERS,),
    EventType.DRIVER_ARRIVED_AT_RESTAURANT: (Audience.USER,),
    EventType.ORDER_ON_THE_WAY: (Audience.USER, Audience.DISPATCHERS),
    EventType.ORDER_DELIVERED: (Audience.USER,),
    EventType.ORDER_COMPLETED: (Audience.USER, Audience.DISPATCHERS),
    EventType.ORDER_STATUS_CHANGED: (Audience.USER,),
    EventType.DRIVER_LOCATION_UPDATE: (Audience.ORDER,),
}


class OrderEvent(BaseModel):
    """Base for every notification; subclasses pin event_type."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    event_type: ClassVar[EventType]

    order_id: str
    message: str = ""
    # None for broadcast-only events, or when the addressed user is unknown
    recipient_id: str | None = Field(default=None, exclude=True)

    @property
    def name(self) -> str:
        return self.event_type.value

    @property
    def audiences(self) -> tuple[Audience, ...]:
        return DISPATCH_TABLE[self.event_type]

    def payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ── Dispatcher-facing ───────────────────────────────────────────────

class NewOrderCreated(OrderEvent):
    event_type: ClassVar[EventType] = EventType.NEW_ORDER_CREATED

    customer_name: str
    restaurant_name: str
    total: float


class DriverHeadingToRestaurant(OrderEvent):
    event_type: ClassVar[EventType] = EventType.DRIVER_HEADING_TO_RESTAURANT

    driver_name: str


# ── Courier-facing ──────────────────────────────────────────────────

class OrderAssigned(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_ASSIGNED

    status: str
    restaurant_name: str | None = None


class OrderReadyForPickup(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_READY_FOR_PICKUP

    restaurant_name: str | None = None


class OrderReassignedTo(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_REASSIGNED_TO

    status: str
    restaurant_name: str | None = None


class OrderReassignedAway(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_REASSIGNED_AWAY

    new_driver_name: str | None = None


class OrderCancelled(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_CANCELLED

    status: str


class OrderCompleted(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_COMPLETED


# ── Customer-facing ─────────────────────────────────────────────────

class DriverArrivedAtRestaurant(OrderEvent):
    event_type: ClassVar[EventType] = EventType.DRIVER_ARRIVED_AT_RESTAURANT

    driver_name: str


class OrderOnTheWay(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_ON_THE_WAY

    driver_name: str


class OrderDelivered(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_DELIVERED


class OrderStatusChanged(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_STATUS_CHANGED

    status: str


# ── Order channel ───────────────────────────────────────────────────

class DriverLocationUpdate(OrderEvent):
    event_type: ClassVar[EventType] = EventType.DRIVER_LOCATION_UPDATE

    driver_id: str
    lat: float
    lng: float
    timestamp: datetime


EVENT_CLASSES: dict[EventType, type[OrderEvent]] = {
    cls.event_type: cls for cls in OrderEvent.__subclasses__()
}

if set(DISPATCH_TABLE) != set(EventType) or set(EVENT_CLASSES) != set(EventType):
    raise RuntimeError("Notification dispatch table is not exhaustive over EventType")
