"""Order store: creation, lookups and guarded state transitions."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError as PostgrestAPIError

from src.api.middleware.error_handler import ConflictError, NotFoundError
from src.core.supabase import get_supabase_client, is_unique_violation
from src.models.order import DELIVERY_TRANSITIONS, DeliveryStatus, OrderCreate

logger = logging.getLogger(__name__)

# Postgres function performing the PENDING -> PAID transition, stock
# decrement and cart clear in one transaction (supabase/migrations)
FINALIZE_FUNCTION = "finalize_order_payment"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderService:
    """Service for the orders table."""

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()

    async def get_order(self, order_id: int) -> dict[str, Any] | None:
        """Get an order by internal ID.

        Args:
            order_id: The order's numeric ID.

        Returns:
            dict | None: The order data or None if not found.
        """
        return self._maybe_one("id", order_id)

    async def get_order_by_reference(self, reference: str) -> dict[str, Any] | None:
        """Get an order by its customer-facing reference."""
        return self._maybe_one("reference", reference)

    async def get_order_by_checkout_key(self, checkout_key: str) -> dict[str, Any] | None:
        """Get the order created for a checkout idempotency key."""
        return self._maybe_one("checkout_key", checkout_key)

    async def list_orders_for_user(self, user_id: UUID) -> list[dict[str, Any]]:
        """Get all orders for a user, newest first.

        Args:
            user_id: The owning user's ID.

        Returns:
            list[dict]: List of order data.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )

        return response.data or []

    async def create_order(self, data: OrderCreate) -> tuple[dict[str, Any], bool]:
        """Insert an order unless one already exists for its checkout key.

        The unique constraint on checkout_key decides races between
        concurrent checkout calls; the loser re-reads the winner's row.

        Args:
            data: Order row including line item and shipping snapshots.

        Returns:
            tuple: (order, created) where created is False if the row
            already existed.
        """
        try:
            response = self.client.table("orders").insert(dict(data)).execute()
        except PostgrestAPIError as e:
            if not is_unique_violation(e):
                raise
            existing = await self.get_order_by_checkout_key(data["checkout_key"])
            if existing is None:
                raise
            logger.info(
                "Order for checkout key %s created concurrently; reusing order %s",
                data["checkout_key"],
                existing["id"],
            )
            return existing, False

        order = response.data[0]
        logger.info("Order %s created (reference %s)", order["id"], order["reference"])
        return order, True

    async def mark_checkout_failed(self, order_id: int) -> None:
        """Record a failed gateway session. Never touches a paid order."""
        (
            self.client.table("orders")
            .update({"checkout_status": "FAILED", "updated_at": _now()})
            .eq("id", order_id)
            .neq("status", "PAID")
            .execute()
        )

    async def mark_checkout_initiated(self, order_id: int) -> None:
        """Reset checkout progress after a new gateway session was opened."""
        (
            self.client.table("orders")
            .update({"checkout_status": "INITIATED", "updated_at": _now()})
            .eq("id", order_id)
            .eq("status", "PENDING")
            .execute()
        )

    async def finalize_paid_order(self, order_id: int) -> bool:
        """Transition an order to PAID and apply its side effects.

        Runs as a single database transaction that only proceeds while the
        order is still PENDING, so at most one caller ever gets True.

        Args:
            order_id: The order's numeric ID.

        Returns:
            bool: True if this call performed the transition.
        """
        response = self.client.rpc(FINALIZE_FUNCTION, {"p_order_id": order_id}).execute()
        return bool(response.data)

    async def advance_delivery_status(
        self, order_id: int, next_status: DeliveryStatus
    ) -> dict[str, Any]:
        """Move a paid order one step along PROCESSING -> DISPATCHED -> DELIVERED.

        Args:
            order_id: The order's numeric ID.
            next_status: Requested delivery status.

        Returns:
            dict: The updated order.

        Raises:
            NotFoundError: If the order does not exist.
            ConflictError: If the order is not paid or the move is not allowed.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        if order["status"] != "PAID":
            raise ConflictError("Only paid orders can change delivery status")

        current = order["delivery_status"]
        if next_status not in DELIVERY_TRANSITIONS.get(current, ()):
            raise ConflictError(f"Cannot move delivery status from {current} to {next_status}")

        update_data: dict[str, Any] = {"delivery_status": next_status, "updated_at": _now()}
        if next_status == "DELIVERED":
            update_data["delivered_at"] = _now()

        response = (
            self.client.table("orders")
            .update(update_data)
            .eq("id", order_id)
            .eq("status", "PAID")
            .eq("delivery_status", current)
            .execute()
        )

        if not response.data:
            raise ConflictError("Order delivery status changed concurrently")

        logger.info("Order %s delivery status %s -> %s", order_id, current, next_status)
        return response.data[0]

    async def cancel_order(self, order_id: int) -> dict[str, Any]:
        """Cancel a pending order. Cancelling twice is a no-op.

        Raises:
            NotFoundError: If the order does not exist.
            ConflictError: If the order has been paid.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        if order["status"] == "CANCELLED":
            return order
        if order["status"] == "PAID":
            raise ConflictError("Paid orders cannot be cancelled")

        response = (
            self.client.table("orders")
            .update({"status": "CANCELLED", "updated_at": _now()})
            .eq("id", order_id)
            .eq("status", "PENDING")
            .execute()
        )

        if not response.data:
            # Lost a race with finalize or another cancel
            latest = await self.get_order(order_id)
            if latest and latest["status"] == "CANCELLED":
                return latest
            raise ConflictError("Paid orders cannot be cancelled")

        logger.info("Order %s cancelled", order_id)
        return response.data[0]

    def _maybe_one(self, column: str, value: Any) -> dict[str, Any] | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq(column, value)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None
