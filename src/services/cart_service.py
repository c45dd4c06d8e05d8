"""Cart reads used by checkout."""

import logging
from uuid import UUID

from src.core.supabase import get_supabase_client
from src.models.product import CartItem, Product

logger = logging.getLogger(__name__)


class CartService:
    """Service for the carts and cart_items tables.

    Clearing the cart happens inside the order finalize transaction, not here.
    """

    def __init__(self) -> None:
        """Initialize cart service with Supabase client."""
        self.client = get_supabase_client()

    async def get_cart_lines(self, user_id: UUID) -> list[CartItem]:
        """Get the user's cart items joined with live product data.

        Args:
            user_id: The cart owner's ID.

        Returns:
            list[CartItem]: Items with product_id, quantity and a nested
            ``products`` row (id, name, price, stock, active). Empty if the
            user has no cart.
        """
        cart_response = (
            self.client.table("carts")
            .select("id")
            .eq("user_id", str(user_id))
            .maybe_single()
            .execute()
        )

        if not cart_response or not cart_response.data:
            return []

        response = (
            self.client.table("cart_items")
            .select("id, product_id, quantity, products(id, name, price, stock, active)")
            .eq("cart_id", cart_response.data["id"])
            .order("id")
            .execute()
        )

        return response.data or []

    async def get_products(self, product_ids: list[int]) -> dict[int, Product]:
        """Get live product rows keyed by ID; missing IDs are simply absent."""
        if not product_ids:
            return {}

        response = (
            self.client.table("products")
            .select("id, name, price, stock, active")
            .in_("id", product_ids)
            .execute()
        )

        return {product["id"]: product for product in response.data or []}
