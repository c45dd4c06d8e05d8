"""Payment model type definitions for database operations."""

from datetime import datetime
from typing import Any, Literal, TypedDict


PaymentStatus = Literal["INITIATED", "SUCCESS", "FAILED"]


class Payment(TypedDict):
    """Payment table row representation.

    One row per order. ``paystack_ref`` is the reference actually sent to
    the gateway; ``reference`` mirrors the order reference and is kept for
    lookups of rows created before gateway references were tracked.
    """

    id: int
    order_id: int
    provider: str
    reference: str
    paystack_ref: str | None
    authorization_url: str | None
    status: PaymentStatus
    paid_at: datetime | None
    paystack_payload: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class PaymentCreate(TypedDict, total=False):
    """Data required to create a payment record."""

    order_id: int
    provider: str
    reference: str
    paystack_ref: str
    status: PaymentStatus
