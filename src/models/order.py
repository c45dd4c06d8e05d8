"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID


# Order status values matching database check constraints
OrderStatus = Literal["PENDING", "PAID", "CANCELLED"]
DeliveryStatus = Literal["PROCESSING", "DISPATCHED", "DELIVERED"]
CheckoutStatus = Literal["INITIATED", "SUCCESS", "FAILED"]

# Allowed forward moves for delivery status
DELIVERY_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "PROCESSING": ("DISPATCHED",),
    "DISPATCHED": ("DELIVERED",),
    "DELIVERED": (),
}


class OrderLineItem(TypedDict):
    """Structure for a single line item in an order.

    Stored as part of the line_items JSONB array. Name and price are
    captured when the order is created and never re-read from the catalog.
    """

    product_id: int
    product_name: str
    quantity: int
    unit_price: int


class Order(TypedDict):
    """Order table row representation.

    Represents an order stored in the orders table.
    Maps directly to the database schema.
    """

    id: int
    reference: str
    checkout_key: str
    user_id: UUID
    status: OrderStatus
    delivery_status: DeliveryStatus
    checkout_status: CheckoutStatus
    line_items: list[OrderLineItem]
    total_amount: int
    currency: str
    ship_full_name: str
    ship_phone: str
    ship_line1: str
    ship_line2: str | None
    ship_landmark: str | None
    ship_city: str
    ship_state: str
    paid_at: datetime | None
    delivered_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order.

    Used when inserting a new order during checkout initiation.
    """

    reference: str
    checkout_key: str
    user_id: str
    status: OrderStatus
    delivery_status: DeliveryStatus
    checkout_status: CheckoutStatus
    line_items: list[OrderLineItem]
    total_amount: int
    currency: str
    ship_full_name: str
    ship_phone: str
    ship_line1: str
    ship_line2: str | None
    ship_landmark: str | None
    ship_city: str
    ship_state: str
