"""
Domain enums: order lifecycle, payment axis, actor roles.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    HEADING_TO_RESTAURANT = "heading_to_restaurant"
    READY_FOR_PICKUP = "ready_for_pickup"
    AT_RESTAURANT = "at_restaurant"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    COMPLETED = "completed"

    # Cancellation terminals
    CANCELLED = "cancelled"
    CANCELLED_BY_CLIENT = "cancelled_by_client"
    CANCELLED_BY_CLIENT_WITH_PENALTY = "cancelled_by_client_with_penalty"
    CANCELLED_BY_ADMIN = "cancelled_by_admin"
    CANCELLED_BY_ADMIN_WITH_PENALTY = "cancelled_by_admin_with_penalty"
    CANCELLED_BY_DRIVER = "cancelled_by_driver"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActorRole(str, Enum):
    CLIENT = "client"    # customer who owns the order
    ADMIN = "admin"      # dispatcher
    DRIVER = "driver"    # courier
    SYSTEM = "system"    # internal jobs (payment expiry, etc.)


# Audit-only marker written before the "assigned" entry of a reassignment.
# Never a value of Order.status.
REASSIGNED_MARKER = "reassigned"
