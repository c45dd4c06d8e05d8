"""Catalog and cart model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class Product(TypedDict):
    """Product table row representation.

    Prices are integers in minor currency units (kobo).
    """

    id: int
    name: str
    slug: str
    price: int
    stock: int
    active: bool
    created_at: datetime
    updated_at: datetime


class Cart(TypedDict):
    """Cart table row representation. One cart per user."""

    id: int
    user_id: UUID
    created_at: datetime


class CartItem(TypedDict):
    """Cart item row joined with its product."""

    id: int
    cart_id: int
    product_id: int
    quantity: int
    products: Product
