"""
Pydantic models for request/response validation.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt

from domain.actor import Actor
from domain.enums import ActorRole


class ApiModel(BaseModel):
    """Shared base: allows construction by Python name or camelCase alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Requests ────────────────────────────────────────────────────────

class OrderItemRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., ge=1, le=100)


class PlaceOrderRequest(ApiModel):
    restaurant_id: str = Field(..., alias="restaurantId", min_length=1)
    items: list[OrderItemRequest] = Field(..., min_length=1)
    delivery_address: str = Field(..., alias="deliveryAddress", max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)


class AssignDriverRequest(ApiModel):
    driver_id: str = Field(..., alias="driverId", min_length=1)
    reassign: bool = False


class UpdateStatusRequest(ApiModel):
    status: str = Field(..., description="Target status requested by the courier")


class CancelOrderRequest(ApiModel):
    # Blank reasons are rejected by the cancellation service with a domain error.
    reason: str = Field("", max_length=1000)


class RateOrderRequest(ApiModel):
    """
    Stars must be JSON integers (true or 4.5 are rejected here); the range
    is checked by the rating service.
    """
    driver_rating: Optional[StrictInt] = Field(default=None, alias="driverRating")
    driver_comment: Optional[str] = Field(default=None, alias="driverComment")
    restaurant_rating: Optional[StrictInt] = Field(default=None, alias="restaurantRating")
    restaurant_comment: Optional[str] = Field(default=None, alias="restaurantComment")


class PaymentSignalRequest(ApiModel):
    paid: bool


class DriverAvailabilityRequest(ApiModel):
    is_available: StrictBool = Field(..., alias="isAvailable")


class LocationMessage(ApiModel):
    order_id: str = Field(..., alias="orderId", min_length=1)
    lat: float
    lng: float


# ── Responses ───────────────────────────────────────────────────────

class OrderItemResponse(ApiModel):
    name: str
    unit_price: float = Field(..., alias="unitPrice")
    quantity: int
    subtotal: float


class StatusHistoryResponse(ApiModel):
    status: str
    actor_id: str = Field(..., alias="actorId")
    actor_role: str = Field(..., alias="actorRole")
    timestamp: datetime
    notes: Optional[str] = None


class RatingResponse(ApiModel):
    stars: int
    comment: Optional[str] = None
    rated_at: Optional[datetime] = Field(default=None, alias="ratedAt")


class OrderResponse(ApiModel):
    id: str
    customer_id: str = Field(..., alias="customerId")
    restaurant_id: str = Field(..., alias="restaurantId")
    restaurant_name: Optional[str] = Field(default=None, alias="restaurantName")
    driver_id: Optional[str] = Field(default=None, alias="driverId")
    driver_name: Optional[str] = Field(default=None, alias="driverName")
    status: str
    payment_status: str = Field(..., alias="paymentStatus")
    items: list[OrderItemResponse]
    subtotal: float
    delivery_fee: float = Field(..., alias="deliveryFee")
    total: float
    penalty_amount: float = Field(..., alias="penaltyAmount")
    refund_amount: float = Field(..., alias="refundAmount")
    delivery_address: str = Field(..., alias="deliveryAddress")
    notes: Optional[str] = None
    safety_word: Optional[str] = Field(default=None, alias="safetyWord")
    cancelled_at: Optional[datetime] = Field(default=None, alias="cancelledAt")
    cancelled_by: Optional[str] = Field(default=None, alias="cancelledBy")
    cancelled_by_role: Optional[str] = Field(default=None, alias="cancelledByRole")
    cancellation_reason: Optional[str] = Field(default=None, alias="cancellationReason")
    driver_rating: Optional[RatingResponse] = Field(default=None, alias="driverRating")
    restaurant_rating: Optional[RatingResponse] = Field(default=None, alias="restaurantRating")
    status_history: list[StatusHistoryResponse] = Field(default_factory=list, alias="statusHistory")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    delivered_at: Optional[datetime] = Field(default=None, alias="deliveredAt")


class DriverSummary(ApiModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    driver_rating: float = Field(..., alias="driverRating")
    total_deliveries: int = Field(..., alias="totalDeliveries")
    is_available: bool = Field(True, alias="isAvailable")


def _rating(stars, comment, rated_at) -> Optional[RatingResponse]:
    if stars is None:
        return None
    return RatingResponse(stars=stars, comment=comment, rated_at=rated_at)


def serialize_order(order, actor: Optional[Actor] = None) -> dict:
    """
    Render an Order row as the camelCase API shape.

    The safety word is what the courier asks for at handoff, so it is never
    shown to couriers.
    """
    base = OrderResponse.model_validate(order)
    extra = {
        "restaurant_name": order.restaurant.name if order.restaurant else None,
        "driver_name": order.driver.display_name if order.driver else None,
        "driver_rating": _rating(
            order.driver_rating_stars, order.driver_rating_comment, order.driver_rated_at
        ),
        "restaurant_rating": _rating(
            order.restaurant_rating_stars, order.restaurant_rating_comment, order.restaurant_rated_at
        ),
    }
    if actor is not None and actor.role == ActorRole.DRIVER:
        extra["safety_word"] = None
    return base.model_copy(update=extra).model_dump(mode="json", by_alias=True)
