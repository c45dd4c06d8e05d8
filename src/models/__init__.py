"""Database model type definitions."""

from src.models.order import Order, OrderCreate, OrderLineItem
from src.models.payment import Payment, PaymentCreate
from src.models.product import CartItem, Product
from src.models.profile import Address, Profile

__all__ = [
    "Address",
    "CartItem",
    "Order",
    "OrderCreate",
    "OrderLineItem",
    "Payment",
    "PaymentCreate",
    "Product",
    "Profile",
]
