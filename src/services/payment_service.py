"""Payment record store: one row per order tracking the gateway transaction."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from src.core.supabase import get_supabase_client, is_unique_violation
from src.models.payment import PaymentCreate

logger = logging.getLogger(__name__)

PROVIDER = "PAYSTACK"


def new_gateway_reference() -> str:
    """Generate a fresh random gateway-facing transaction reference."""
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PaymentService:
    """Service for the payments table.

    Status moves are filtered in the update itself: SUCCESS is never left,
    and ``paid_at`` is only written while still null.
    """

    def __init__(self) -> None:
        """Initialize payment service with Supabase client."""
        self.client = get_supabase_client()

    async def get_payment_for_order(self, order_id: int) -> dict[str, Any] | None:
        """Get the payment paired with an order."""
        return self._maybe_one("order_id", order_id)

    async def ensure_payment(self, order: dict[str, Any]) -> dict[str, Any]:
        """Get the order's payment, creating it on first use.

        Args:
            order: The order row.

        Returns:
            dict: The payment row.
        """
        existing = await self.get_payment_for_order(order["id"])
        if existing:
            return existing

        payment_data: PaymentCreate = {
            "order_id": order["id"],
            "provider": PROVIDER,
            "reference": order["reference"],
            "paystack_ref": new_gateway_reference(),
            "status": "INITIATED",
        }

        try:
            response = self.client.table("payments").insert(payment_data).execute()
        except PostgrestAPIError as e:
            if not is_unique_violation(e):
                raise
            existing = await self.get_payment_for_order(order["id"])
            if existing is None:
                raise
            return existing

        return response.data[0]

    async def find_by_gateway_reference(self, reference: str) -> dict[str, Any] | None:
        """Locate a payment by the reference the gateway knows.

        A payment's current reference is checked first, then every reference
        it was ever initialized with, then the internal reference for rows
        written before the gateway reference was stored separately.

        Args:
            reference: Gateway transaction reference.

        Returns:
            dict | None: The payment row or None.
        """
        payment = self._maybe_one("paystack_ref", reference)
        if payment:
            return payment

        attempt = (
            self.client.table("payment_attempts")
            .select("payment_id")
            .eq("paystack_ref", reference)
            .maybe_single()
            .execute()
        )
        if attempt and attempt.data:
            return self._maybe_one("id", attempt.data["payment_id"])

        return self._maybe_one("reference", reference)

    async def record_attempt(self, payment_id: int, paystack_ref: str) -> None:
        """Remember a reference before it is sent to the gateway.

        The gateway keeps an earlier session payable after a new one is
        opened, so a replaced reference must still lead back to its payment.
        """
        try:
            (
                self.client.table("payment_attempts")
                .insert({"payment_id": payment_id, "paystack_ref": paystack_ref})
                .execute()
            )
        except PostgrestAPIError as e:
            if not is_unique_violation(e):
                raise

    async def set_gateway_reference(self, payment_id: int, paystack_ref: str) -> None:
        """Persist the gateway reference before it is sent to the gateway."""
        (
            self.client.table("payments")
            .update({"paystack_ref": paystack_ref, "updated_at": _now()})
            .eq("id", payment_id)
            .execute()
        )

    async def record_initialization(
        self,
        payment_id: int,
        paystack_ref: str,
        authorization_url: str,
        payload: dict[str, Any],
    ) -> bool:
        """Store the reference and URL of a newly opened gateway session.

        Only the first session recorded for a payment sticks; a concurrent
        checkout that opened a second one gets False and must use the
        stored session instead.

        Returns:
            bool: True if this session was recorded.
        """
        response = (
            self.client.table("payments")
            .update(
                {
                    "paystack_ref": paystack_ref,
                    "authorization_url": authorization_url,
                    "paystack_payload": payload,
                    "updated_at": _now(),
                }
            )
            .eq("id", payment_id)
            .is_("authorization_url", "null")
            .execute()
        )

        return bool(response.data)

    async def mark_success(
        self,
        payment_id: int,
        paystack_ref: str,
        payload: dict[str, Any] | None,
    ) -> None:
        """Mark a payment successful. Safe to repeat.

        Args:
            payment_id: Payment row ID.
            paystack_ref: Reference the gateway verified.
            payload: Latest verify payload, stored for audit.
        """
        (
            self.client.table("payments")
            .update(
                {
                    "status": "SUCCESS",
                    "paystack_ref": paystack_ref,
                    "paystack_payload": payload,
                    "updated_at": _now(),
                }
            )
            .eq("id", payment_id)
            .execute()
        )
        (
            self.client.table("payments")
            .update({"paid_at": _now()})
            .eq("id", payment_id)
            .is_("paid_at", "null")
            .execute()
        )

    async def mark_failed(
        self,
        payment_id: int,
        paystack_ref: str,
        payload: dict[str, Any] | None,
    ) -> bool:
        """Mark a payment failed unless it already succeeded.

        The failed session can no longer be paid, so its URL is dropped and
        the next checkout call opens a new one.

        Returns:
            bool: True if the row was updated.
        """
        response = (
            self.client.table("payments")
            .update(
                {
                    "status": "FAILED",
                    "paystack_ref": paystack_ref,
                    "authorization_url": None,
                    "paystack_payload": payload,
                    "updated_at": _now(),
                }
            )
            .eq("id", payment_id)
            .neq("status", "SUCCESS")
            .execute()
        )

        return bool(response.data)

    async def record_payload(self, payment_id: int, payload: dict[str, Any]) -> None:
        """Store the latest gateway payload without touching status."""
        (
            self.client.table("payments")
            .update({"paystack_payload": payload, "updated_at": _now()})
            .eq("id", payment_id)
            .execute()
        )

    def _maybe_one(self, column: str, value: Any) -> dict[str, Any] | None:
        response = (
            self.client.table("payments")
            .select("*")
            .eq(column, value)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None
