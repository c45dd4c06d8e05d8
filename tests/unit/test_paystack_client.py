"""Unit tests for the Paystack client, webhook signatures and status mapping."""

import json

import httpx
import pytest

from src.core.paystack import (
    DuplicateReferenceError,
    PaystackClient,
    PaystackError,
    compute_signature,
    verify_signature,
)
from src.schemas.paystack import (
    TransactionVerified,
    VerificationUnavailable,
    WebhookEvent,
    map_gateway_status,
)
from tests.fakes import FakePaystack


def make_client(handler, verify_attempts: int = 1) -> PaystackClient:
    return PaystackClient(
        secret_key="sk_test_abc",
        base_url="https://api.paystack.co",
        verify_attempts=verify_attempts,
        transport=httpx.MockTransport(handler),
    )


class TestInitializeTransaction:
    """Tests for PaystackClient.initialize_transaction."""

    @pytest.mark.asyncio
    async def test_returns_authorization_url_and_sends_payload(self) -> None:
        """Test the request body and bearer auth sent to Paystack."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {
                        "authorization_url": "https://checkout.paystack.com/abc",
                        "access_code": "abc",
                        "reference": "ref-1",
                    },
                },
            )

        result = await make_client(handler).initialize_transaction(
            email="ada@example.com",
            amount=1000000,
            reference="ref-1",
            callback_url="https://shop.example.com/checkout/verify?reference=ref-1",
            currency="NGN",
            metadata={"order_id": 1},
        )

        assert result.authorization_url == "https://checkout.paystack.com/abc"
        assert result.reference == "ref-1"
        assert seen["auth"] == "Bearer sk_test_abc"
        assert seen["body"]["amount"] == 1000000
        assert seen["body"]["currency"] == "NGN"
        assert seen["body"]["metadata"] == {"order_id": 1}

    @pytest.mark.asyncio
    async def test_duplicate_reference_raises_specific_error(self) -> None:
        """Test duplicate_reference code maps to DuplicateReferenceError."""
        gateway = FakePaystack()
        gateway.duplicate_references.add("taken")

        with pytest.raises(DuplicateReferenceError) as exc_info:
            await gateway.client().initialize_transaction(
                email="ada@example.com", amount=100, reference="taken", callback_url="https://x"
            )

        assert exc_info.value.code == "duplicate_reference"

    @pytest.mark.asyncio
    async def test_rejection_raises_paystack_error(self) -> None:
        """Test other rejections raise PaystackError, not the duplicate subclass."""
        gateway = FakePaystack()
        gateway.reject_initialize = True

        with pytest.raises(PaystackError) as exc_info:
            await gateway.client().initialize_transaction(
                email="ada@example.com", amount=100, reference="r", callback_url="https://x"
            )

        assert not isinstance(exc_info.value, DuplicateReferenceError)
        assert exc_info.value.message == "Invalid key"

    @pytest.mark.asyncio
    async def test_non_json_response_raises(self) -> None:
        """Test an HTML error page is reported as a gateway failure."""
        client = make_client(lambda request: httpx.Response(502, text="<html>Bad gateway</html>"))

        with pytest.raises(PaystackError, match="non-JSON"):
            await client.initialize_transaction(
                email="ada@example.com", amount=100, reference="r", callback_url="https://x"
            )

    @pytest.mark.asyncio
    async def test_transport_error_raises_and_is_not_retried(self) -> None:
        """Test connection failures surface after a single attempt."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaystackError):
            await make_client(handler, verify_attempts=3).initialize_transaction(
                email="ada@example.com", amount=100, reference="r", callback_url="https://x"
            )

        assert len(calls) == 1


class TestVerifyTransaction:
    """Tests for PaystackClient.verify_transaction."""

    @pytest.mark.asyncio
    async def test_returns_verified_status(self) -> None:
        """Test a successful verify call carries the gateway status and payload."""
        gateway = FakePaystack()
        gateway.set_status("ref-1", "success")

        result = await gateway.client().verify_transaction("ref-1")

        assert isinstance(result, TransactionVerified)
        assert result.gateway_status == "success"
        assert result.raw["data"]["reference"] == "ref-1"

    @pytest.mark.asyncio
    async def test_unknown_reference_is_unavailable(self) -> None:
        """Test a status:false answer becomes VerificationUnavailable."""
        result = await FakePaystack().client().verify_transaction("missing")

        assert isinstance(result, VerificationUnavailable)
        assert result.raw == {"status": False, "message": "Transaction reference not found"}

    @pytest.mark.asyncio
    async def test_server_errors_are_retried_then_unavailable(self) -> None:
        """Test 5xx answers are retried and never raise."""
        gateway = FakePaystack()
        gateway.verify_down = True

        result = await gateway.client(verify_attempts=2).verify_transaction("ref-1")

        assert isinstance(result, VerificationUnavailable)
        assert gateway.verify_calls == 2

    @pytest.mark.asyncio
    async def test_retry_recovers_after_transient_failure(self) -> None:
        """Test a transport error followed by an answer yields the answer."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"status": True, "data": {"status": "success", "reference": "r"}})

        result = await make_client(handler, verify_attempts=3).verify_transaction("r")

        assert isinstance(result, TransactionVerified)
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_reference_is_url_encoded(self) -> None:
        """Test references with reserved characters stay one path segment."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"status": True, "data": {"status": "pending"}})

        await make_client(handler).verify_transaction("a/b c")

        assert seen == ["/transaction/verify/a%2Fb%20c"]


class TestStatusMapping:
    """Tests for map_gateway_status."""

    @pytest.mark.parametrize(
        "gateway_status,expected",
        [
            ("success", "success"),
            ("SUCCESS", "success"),
            ("failed", "failed"),
            ("abandoned", "failed"),
            ("reversed", "failed"),
            ("ongoing", "pending"),
            ("pending", "pending"),
            ("processing", "pending"),
            ("queued", "pending"),
            ("", "pending"),
        ],
    )
    def test_maps_gateway_vocabulary(self, gateway_status: str, expected: str) -> None:
        """Test each gateway status collapses to the right outcome."""
        verification = TransactionVerified(gateway_status=gateway_status, reference="r")
        assert map_gateway_status(verification) == expected

    def test_unavailable_is_pending(self) -> None:
        """Test a failed verify request never reads as failed."""
        assert map_gateway_status(VerificationUnavailable(reason="timeout")) == "pending"


class TestWebhookSignature:
    """Tests for webhook signature helpers."""

    def test_valid_signature(self) -> None:
        body = b'{"event":"charge.success","data":{"reference":"r"}}'
        signature = compute_signature("sk_test_abc", body)

        assert len(signature) == 128
        assert verify_signature("sk_test_abc", body, signature)
        assert verify_signature("sk_test_abc", body, signature.upper())

    def test_tampered_body_fails(self) -> None:
        body = b'{"event":"charge.success","data":{"reference":"r"}}'
        signature = compute_signature("sk_test_abc", body)

        assert not verify_signature("sk_test_abc", body + b" ", signature)
        assert not verify_signature("sk_test_other", body, signature)

    def test_missing_signature_or_secret_fails(self) -> None:
        assert not verify_signature("sk_test_abc", b"{}", None)
        assert not verify_signature("", b"{}", compute_signature("", b"{}"))

    def test_event_reference(self) -> None:
        event = WebhookEvent.model_validate({"event": "charge.success", "data": {"reference": " r1 "}})
        assert event.reference == "r1"
        assert WebhookEvent.model_validate({"event": "subscription.create"}).reference == ""
