"""Unit tests for ReconciliationService."""

import asyncio
import threading
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

from src.core.paystack import compute_signature
from src.schemas.auth import UserContext
from src.schemas.paystack import WebhookEvent
from src.services.checkout_service import CheckoutService
from src.services.order_service import OrderService
from src.services.reconciliation_service import (
    ReconciliationError,
    ReconciliationService,
)
from tests.fakes import CUSTOMER_ID, FakePaystack, FakeSupabase


@pytest.fixture
def customer() -> UserContext:
    return UserContext(user_id=UUID(CUSTOMER_ID), email="ada@example.com", role="authenticated")


@pytest.fixture
def reference(
    shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, customer: UserContext
) -> str:
    """Start a checkout for the seeded cart and return its gateway reference."""
    result = asyncio.run(CheckoutService().initiate_checkout(customer, "k1"))
    return result["reference"]


def stock_of(fake_db: FakeSupabase, product: dict[str, Any]) -> int:
    return fake_db.row("products", id=product["id"])["stock"]


class TestReconcile:
    """Tests for ReconciliationService.reconcile."""

    @pytest.mark.asyncio
    async def test_success_finalizes_order(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        """Test a verified success pays the order, decrements stock and clears the cart."""
        fake_gateway.set_status(reference, "success")

        result = await ReconciliationService().reconcile(reference)

        assert result.status == "success"
        assert result.matched is True
        assert result.finalized is True

        order = fake_db.row("orders", checkout_key="k1")
        assert order["status"] == "PAID"
        assert order["checkout_status"] == "SUCCESS"
        assert order["paid_at"] is not None

        payment = fake_db.row("payments", order_id=order["id"])
        assert payment["status"] == "SUCCESS"
        assert payment["paid_at"] is not None
        assert payment["paystack_payload"]["data"]["status"] == "success"

        assert stock_of(fake_db, shop["product"]) == 1
        assert fake_db.rows("cart_items") == []

    @pytest.mark.asyncio
    async def test_pending_then_success_finalizes_once(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "pending", "pending", "pending", "success")
        service = ReconciliationService()

        outcomes = [(await service.reconcile(reference)).status for _ in range(3)]
        assert outcomes == ["pending", "pending", "pending"]
        assert fake_db.row("orders", checkout_key="k1")["status"] == "PENDING"
        assert stock_of(fake_db, shop["product"]) == 3

        result = await service.reconcile(reference)

        assert result.status == "success"
        assert fake_db.finalize_wins == 1
        assert stock_of(fake_db, shop["product"]) == 1

    @pytest.mark.asyncio
    async def test_pending_stores_payload_without_status_change(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "ongoing")

        await ReconciliationService().reconcile(reference)

        payment = fake_db.rows("payments")[0]
        assert payment["status"] == "INITIATED"
        assert payment["paystack_payload"]["data"]["status"] == "ongoing"

    @pytest.mark.asyncio
    async def test_repeated_success_finalizes_once(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "success")
        service = ReconciliationService()

        first = await service.reconcile(reference)
        second = await service.reconcile(reference)

        assert first.finalized is True
        assert second.finalized is False
        assert second.status == "success"
        assert fake_db.finalize_wins == 1
        assert fake_db.stock_log == [(shop["product"]["id"], 2)]
        assert fake_db.cart_clears == 1

    def test_concurrent_success_finalizes_once(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        """Test racing verify and webhook calls decrement stock exactly once."""
        fake_gateway.set_status(reference, "success")
        barrier = threading.Barrier(5)
        results = []
        errors: list[Exception] = []

        def run() -> None:
            service = ReconciliationService()
            barrier.wait()
            try:
                results.append(asyncio.run(service.reconcile(reference)))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert all(result.status == "success" for result in results)
        assert sum(result.finalized for result in results) == 1
        assert fake_db.finalize_wins == 1
        assert stock_of(fake_db, shop["product"]) == 1

    @pytest.mark.asyncio
    async def test_failed_after_paid_changes_nothing(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        """Test a late failed verification cannot undo a paid order."""
        fake_gateway.set_status(reference, "success", "failed")
        service = ReconciliationService()
        await service.reconcile(reference)

        result = await service.reconcile(reference)

        assert result.status == "failed"
        order = fake_db.row("orders", checkout_key="k1")
        assert order["status"] == "PAID"
        assert order["checkout_status"] == "SUCCESS"
        assert fake_db.rows("payments")[0]["status"] == "SUCCESS"
        assert stock_of(fake_db, shop["product"]) == 1

    @pytest.mark.asyncio
    async def test_failed_marks_payment_and_checkout(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "abandoned")

        result = await ReconciliationService().reconcile(reference)

        assert result.status == "failed"
        order = fake_db.row("orders", checkout_key="k1")
        assert order["status"] == "PENDING"
        assert order["checkout_status"] == "FAILED"
        payment = fake_db.rows("payments")[0]
        assert payment["status"] == "FAILED"
        assert payment["authorization_url"] is None
        assert stock_of(fake_db, shop["product"]) == 3

    @pytest.mark.asyncio
    async def test_failed_then_success_recovers(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        """Test a success reported after a failure still pays the order."""
        fake_gateway.set_status(reference, "failed", "success")
        service = ReconciliationService()
        await service.reconcile(reference)

        result = await service.reconcile(reference)

        assert result.finalized is True
        assert fake_db.row("orders", checkout_key="k1")["status"] == "PAID"
        assert fake_db.rows("payments")[0]["status"] == "SUCCESS"

    @pytest.mark.asyncio
    async def test_late_success_on_replaced_reference_pays_order(
        self,
        shop: dict[str, Any],
        fake_db: FakeSupabase,
        fake_gateway: FakePaystack,
        customer: UserContext,
        reference: str,
    ) -> None:
        """Test a customer who completes an abandoned session after a retry still gets the order."""
        fake_gateway.set_status(reference, "abandoned")
        service = ReconciliationService()
        await service.reconcile(reference)
        retry = await CheckoutService().initiate_checkout(customer, "k1")
        assert retry["reference"] != reference

        fake_gateway.set_status(reference, "success")
        result = await service.reconcile(reference)

        assert result.status == "success"
        assert result.matched is True
        assert result.finalized is True
        assert fake_db.row("orders", checkout_key="k1")["status"] == "PAID"
        assert fake_db.rows("payments")[0]["status"] == "SUCCESS"
        assert stock_of(fake_db, shop["product"]) == 1

    @pytest.mark.asyncio
    async def test_failure_on_replaced_reference_keeps_live_session(
        self,
        fake_db: FakeSupabase,
        fake_gateway: FakePaystack,
        customer: UserContext,
        reference: str,
    ) -> None:
        fake_gateway.set_status(reference, "failed")
        service = ReconciliationService()
        await service.reconcile(reference)
        retry = await CheckoutService().initiate_checkout(customer, "k1")

        result = await service.reconcile(reference)

        assert result.status == "failed"
        payment = fake_db.rows("payments")[0]
        assert payment["paystack_ref"] == retry["reference"]
        assert payment["authorization_url"] == retry["authorization_url"]
        assert fake_db.row("orders", checkout_key="k1")["checkout_status"] == "INITIATED"

    @pytest.mark.asyncio
    async def test_unknown_reference_mutates_nothing(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status("not-ours", "success")

        result = await ReconciliationService().reconcile("not-ours")

        assert result.status == "success"
        assert result.matched is False
        assert fake_db.finalize_calls == 0
        assert fake_db.row("orders", checkout_key="k1")["status"] == "PENDING"
        assert fake_db.rows("payments")[0]["status"] == "INITIATED"

    @pytest.mark.asyncio
    async def test_verification_unavailable_is_pending(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.verify_down = True

        result = await ReconciliationService().reconcile(reference)

        assert result.status == "pending"
        assert result.verified is False
        assert fake_db.rows("payments")[0]["status"] == "INITIATED"

    @pytest.mark.asyncio
    async def test_reference_is_trimmed(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "success")

        result = await ReconciliationService().reconcile(f"  {reference} ")

        assert result.reference == reference
        assert result.finalized is True

    @pytest.mark.asyncio
    async def test_store_failure_carries_gateway_outcome(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        """Test a database error after a verified success is not reported as failed."""
        fake_gateway.set_status(reference, "success")
        fake_db.fail("payments", "update")

        with pytest.raises(ReconciliationError) as exc_info:
            await ReconciliationService().reconcile(reference)

        assert exc_info.value.status == "success"
        assert exc_info.value.reference == reference
        assert fake_db.row("orders", checkout_key="k1")["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_finalize_failure_can_be_retried(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "success")
        service = ReconciliationService()
        fake_db.fail("orders", "rpc")

        with pytest.raises(ReconciliationError):
            await service.reconcile(reference)
        assert stock_of(fake_db, shop["product"]) == 3

        fake_db.heal()
        result = await service.reconcile(reference)

        assert result.finalized is True
        assert stock_of(fake_db, shop["product"]) == 1

    @pytest.mark.asyncio
    async def test_success_on_cancelled_order_leaves_it_cancelled(
        self, shop: dict[str, Any], fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        order = fake_db.row("orders", checkout_key="k1")
        await OrderService().cancel_order(order["id"])
        fake_gateway.set_status(reference, "success")

        result = await ReconciliationService().reconcile(reference)

        assert result.finalized is False
        assert fake_db.row("orders", id=order["id"])["status"] == "CANCELLED"
        assert fake_db.rows("payments")[0]["status"] == "SUCCESS"
        assert stock_of(fake_db, shop["product"]) == 3

    @pytest.mark.asyncio
    async def test_email_sent_only_on_finalize(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        fake_gateway.set_status(reference, "success")
        email_service = MagicMock()
        email_service.send_order_paid_email = AsyncMock(return_value={"success": True})

        with patch("src.services.reconciliation_service.EmailService", return_value=email_service):
            service = ReconciliationService()
            await service.reconcile(reference)
            await service.reconcile(reference)

        email_service.send_order_paid_email.assert_awaited_once()
        sent_order = email_service.send_order_paid_email.await_args.args[0]
        assert sent_order["checkout_key"] == "k1"


class TestWebhookHandling:
    """Tests for webhook signature checks and event routing."""

    def test_valid_signature_parses_event(self, fake_db: FakeSupabase, fake_gateway: FakePaystack) -> None:
        body = b'{"event":"charge.success","data":{"reference":"ref-1"}}'
        signature = compute_signature("sk_test_fake_secret", body)

        event = ReconciliationService().verify_webhook_signature(body, signature)

        assert event.event == "charge.success"
        assert event.reference == "ref-1"

    def test_invalid_signature_raises(self, fake_db: FakeSupabase, fake_gateway: FakePaystack) -> None:
        body = b'{"event":"charge.success","data":{"reference":"ref-1"}}'

        with pytest.raises(ValueError, match="Invalid webhook signature"):
            ReconciliationService().verify_webhook_signature(body, "deadbeef")

        with pytest.raises(ValueError):
            ReconciliationService().verify_webhook_signature(body, None)

    @pytest.mark.asyncio
    async def test_unhandled_event_is_ignored(self, fake_db: FakeSupabase, fake_gateway: FakePaystack) -> None:
        event = WebhookEvent.model_validate({"event": "transfer.success", "data": {"reference": "ref-1"}})

        assert await ReconciliationService().handle_webhook_event(event) is None
        assert fake_gateway.verify_calls == 0

    @pytest.mark.asyncio
    async def test_event_without_reference_is_ignored(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack
    ) -> None:
        event = WebhookEvent.model_validate({"event": "charge.success", "data": {}})

        assert await ReconciliationService().handle_webhook_event(event) is None
        assert fake_gateway.verify_calls == 0

    @pytest.mark.asyncio
    async def test_webhook_outcome_comes_from_verify(
        self, fake_db: FakeSupabase, fake_gateway: FakePaystack, reference: str
    ) -> None:
        """Test a charge.success event is not trusted while the gateway says pending."""
        fake_gateway.set_status(reference, "pending")
        event = WebhookEvent.model_validate({"event": "charge.success", "data": {"reference": reference}})

        result = await ReconciliationService().handle_webhook_event(event)

        assert result.status == "pending"
        assert fake_db.row("orders", checkout_key="k1")["status"] == "PENDING"
        assert fake_gateway.verify_calls == 1
