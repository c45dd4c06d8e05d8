"""Profile and address model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class Profile(TypedDict):
    """Profile table row representation.

    Represents a customer stored in the profiles table, keyed by the
    auth provider's user id.
    """

    id: int
    user_id: UUID
    email: str | None
    display_name: str | None
    created_at: datetime
    updated_at: datetime


class Address(TypedDict):
    """Saved shipping address. One per user, mutable."""

    id: int
    user_id: UUID
    full_name: str
    phone: str
    line1: str
    line2: str | None
    landmark: str | None
    city: str
    state: str
    updated_at: datetime


class AddressUpsert(TypedDict, total=False):
    """Data written when saving an address."""

    user_id: str
    full_name: str
    phone: str
    line1: str
    line2: str | None
    landmark: str | None
    city: str
    state: str
