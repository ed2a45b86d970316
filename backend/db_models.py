"""
SQLAlchemy ORM models for the delivery order core.

Tables:
    users                : customers, couriers and dispatchers (identity lives elsewhere)
    restaurants          : read-only here; carries the running rating average
    orders               : the order record (status, payment axis, financials, ratings)
    order_items          : priced line items, in insertion order
    order_status_history : append-only audit trail, in insertion order
"""
import json
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey, Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.constants import DEFAULT_DRIVER_RATING, DEFAULT_RESTAURANT_RATING


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Actors known to the core; credentials are managed by the identity service."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    role = Column(String(20), nullable=False, default="client")  # "client" | "driver" | "admin"
    name = Column(String(100), nullable=True)
    email = Column(String(200), nullable=True, unique=True)

    # Courier-only fields
    driver_rating = Column(Float, nullable=False, default=DEFAULT_DRIVER_RATING)
    total_deliveries = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id


class Restaurant(Base):
    """Restaurant reference data. Menu CRUD is out of scope; menu_json is read-only here."""
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    address = Column(Text, nullable=True)
    menu_json = Column(Text, nullable=False, default="[]")  # [{"name": str, "price": float}]
    rating = Column(Float, nullable=False, default=DEFAULT_RESTAURANT_RATING)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def menu(self) -> dict[str, float]:
        """Menu as {item name: unit price}."""
        try:
            entries = json.loads(self.menu_json or "[]")
        except json.JSONDecodeError:
            entries = []
        return {e["name"]: float(e["price"]) for e in entries if "name" in e and "price" in e}


class Order(Base):
    """
    A delivery order.

    status is only written through services.state_machine; the other columns
    move with it inside the same conditional UPDATE.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    status = Column(String(40), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="pending")

    # Financials
    subtotal = Column(Float, nullable=False, default=0.0)
    delivery_fee = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    penalty_amount = Column(Float, nullable=False, default=0.0)
    refund_amount = Column(Float, nullable=False, default=0.0)

    delivery_address = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    safety_word = Column(String(40), nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancelled_by_role = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Ratings (each settable once, only while completed)
    driver_rating_stars = Column(Integer, nullable=True)
    driver_rating_comment = Column(Text, nullable=True)
    driver_rated_at = Column(DateTime, nullable=True)
    restaurant_rating_stars = Column(Integer, nullable=True)
    restaurant_rating_comment = Column(Text, nullable=True)
    restaurant_rated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow)
    delivered_at = Column(DateTime, nullable=True)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id], lazy="selectin")
    driver = relationship("User", foreign_keys=[driver_id], lazy="selectin")
    restaurant = relationship("Restaurant", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "StatusHistoryEntry",
        back_populates="order",
        order_by="StatusHistoryEntry.id",
        lazy="selectin",
    )

    __table_args__ = (
        # Driver dashboards: orders of a courier filtered by status
        Index("ix_orders_driver_status", "driver_id", "status"),
        # Rating scans
        Index("ix_orders_restaurant_rating", "restaurant_id", "restaurant_rating_stars"),
    )

    def recalculate_totals(self) -> None:
        """Keep total == subtotal + delivery_fee after items or fee change."""
        for item in self.items:
            item.subtotal = round(item.unit_price * item.quantity, 2)
        self.subtotal = round(sum(item.subtotal for item in self.items), 2)
        self.total = round(self.subtotal + (self.delivery_fee or 0.0), 2)


class OrderItem(Base):
    """Priced line item; unit_price is copied from the menu at order time."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(200), nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Float, nullable=False, default=0.0)

    order = relationship("Order", back_populates="items")


class StatusHistoryEntry(Base):
    """
    One audit row per status change.

    Rows are inserted and never updated or deleted; the autoincrement id
    fixes insertion order. status may also be the "reassigned" marker.
    """
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(40), nullable=False)
    actor_id = Column(String(36), nullable=False)
    actor_role = Column(String(20), nullable=False)  # "client" | "admin" | "driver" | "system"
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="status_history")
