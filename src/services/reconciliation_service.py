"""Payment reconciliation shared by the verify endpoint and the webhook.

Every call re-verifies the transaction with the gateway and applies the
outcome to the payment and order rows. Calls may arrive repeatedly, out of
order and concurrently for the same order; the finalize step (PAID
transition, stock decrement, cart clear) still runs at most once because it
is a single conditional database transaction.
"""

import logging
from dataclasses import dataclass
from typing import Any

from src.core.config import get_settings
from src.core.paystack import get_paystack_client, verify_signature
from src.schemas.paystack import PaymentOutcome, WebhookEvent, map_gateway_status
from src.services.email_service import EmailService
from src.services.order_service import OrderService
from src.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

# Webhook events that trigger reconciliation; everything else is acknowledged
RECONCILE_EVENTS = frozenset(
    {"charge.success", "transaction.success", "charge.failed", "transaction.failed"}
)


@dataclass
class ReconciliationResult:
    """Outcome of one reconcile call."""

    status: PaymentOutcome
    reference: str
    matched: bool = False
    finalized: bool = False
    verified: bool = True


class ReconciliationError(Exception):
    """Local persistence failed after the gateway outcome was known.

    Carries the gateway outcome so callers never report a charged
    customer's payment as failed because of a database problem.
    """

    def __init__(self, status: PaymentOutcome, reference: str) -> None:
        self.status = status
        self.reference = reference
        super().__init__(f"Could not persist {status} outcome for {reference}")


class ReconciliationService:
    """Applies verified gateway outcomes to local order and payment state."""

    def __init__(self) -> None:
        """Initialize reconciliation service with stores and gateway client."""
        self.settings = get_settings()
        self.paystack = get_paystack_client()
        self.order_service = OrderService()
        self.payment_service = PaymentService()
        self.email_service = EmailService()

    async def reconcile(self, reference: str) -> ReconciliationResult:
        """Verify a transaction with the gateway and apply the result.

        Args:
            reference: Gateway transaction reference.

        Returns:
            ReconciliationResult: Canonical outcome and what was done locally.

        Raises:
            ReconciliationError: If the store failed while applying the outcome.
        """
        reference = reference.strip()
        verification = await self.paystack.verify_transaction(reference)
        outcome = map_gateway_status(verification)
        payload = verification.raw
        result = ReconciliationResult(
            status=outcome,
            reference=reference,
            verified=verification.kind == "verified",
        )

        logger.info("Reconciling %s: gateway outcome %s", reference, outcome)

        finalized_order: dict[str, Any] | None = None
        try:
            payment = await self.payment_service.find_by_gateway_reference(reference)
            order = await self.order_service.get_order(payment["order_id"]) if payment else None
            if not payment or not order:
                logger.info("No local order for reference %s; nothing to reconcile", reference)
                return result

            result.matched = True

            # Only a success on an older session may touch a payment that has moved on
            replaced = reference not in (payment.get("paystack_ref"), payment.get("reference"))
            if replaced and outcome != "success":
                logger.info(
                    "Ignoring %s outcome for replaced reference %s (current %s)",
                    outcome,
                    reference,
                    payment.get("paystack_ref"),
                )
                return result

            if outcome == "success":
                result.finalized = await self._apply_success(payment, order, reference, payload)
                if result.finalized:
                    finalized_order = order
            elif outcome == "failed":
                await self._apply_failure(payment, order, reference, payload)
            elif payload is not None:
                await self.payment_service.record_payload(payment["id"], payload)

        except Exception as e:
            logger.exception("Failed to persist %s outcome for %s", outcome, reference)
            raise ReconciliationError(outcome, reference) from e

        if finalized_order is not None:
            await self.email_service.send_order_paid_email(finalized_order)

        return result

    async def _apply_success(
        self,
        payment: dict[str, Any],
        order: dict[str, Any],
        reference: str,
        payload: dict[str, Any] | None,
    ) -> bool:
        await self.payment_service.mark_success(payment["id"], reference, payload)

        if order["status"] == "PAID":
            logger.debug("Order %s already paid; skipping finalize", order["id"])
            return False

        if order["status"] == "CANCELLED":
            logger.warning(
                "Payment %s succeeded for cancelled order %s; needs manual refund",
                reference,
                order["id"],
            )
            return False

        finalized = await self.order_service.finalize_paid_order(order["id"])
        if finalized:
            logger.info("Order %s finalized as PAID via %s", order["id"], reference)
        else:
            logger.info("Order %s was finalized by a concurrent call", order["id"])
        return finalized

    async def _apply_failure(
        self,
        payment: dict[str, Any],
        order: dict[str, Any],
        reference: str,
        payload: dict[str, Any] | None,
    ) -> None:
        updated = await self.payment_service.mark_failed(payment["id"], reference, payload)
        if not updated:
            logger.warning("Ignoring failed verification for already successful payment %s", reference)

        if order["status"] != "PAID":
            await self.order_service.mark_checkout_failed(order["id"])

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> WebhookEvent:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body.
            signature: x-paystack-signature header value.

        Returns:
            WebhookEvent: Parsed event envelope.

        Raises:
            ValueError: If the gateway is not configured or the signature is invalid.
        """
        if not self.settings.paystack_secret_key:
            raise ValueError("Paystack secret key is not configured")

        if not verify_signature(self.settings.paystack_secret_key, payload, signature):
            raise ValueError("Invalid webhook signature")

        return WebhookEvent.model_validate_json(payload)

    async def handle_webhook_event(self, event: WebhookEvent) -> ReconciliationResult | None:
        """Reconcile the transaction a webhook event refers to.

        Only the event type and reference are read from the payload; the
        outcome always comes from a fresh verify call.

        Returns:
            ReconciliationResult | None: None if the event was ignored.
        """
        if event.event not in RECONCILE_EVENTS:
            logger.debug("Ignoring webhook event type: %s", event.event)
            return None

        if not event.reference:
            logger.warning("Webhook %s without a reference; ignoring", event.event)
            return None

        return await self.reconcile(event.reference)
