"""Paystack HTTP client, webhook signatures and singleton."""

import hashlib
import hmac
import logging
import time
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.schemas.paystack import (
    GatewayVerification,
    TransactionInitialized,
    TransactionVerified,
    VerificationUnavailable,
)

logger = logging.getLogger(__name__)

DUPLICATE_REFERENCE_CODE = "duplicate_reference"

# Latency threshold for logging (milliseconds)
SLOW_CALL_THRESHOLD_MS = 3000


class PaystackError(Exception):
    """Paystack rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.payload = payload
        super().__init__(message)


class DuplicateReferenceError(PaystackError):
    """The transaction reference has already been used on the gateway."""


class RetryableGatewayError(Exception):
    """Transient gateway failure (5xx) worth another attempt."""


def _json_or_none(response: httpx.Response) -> dict[str, Any] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def compute_signature(secret_key: str, payload: bytes) -> str:
    """Compute the hex HMAC-SHA512 signature Paystack sends with webhooks.

    Args:
        secret_key: Paystack secret key.
        payload: Raw request body.

    Returns:
        str: Lowercase hex digest.
    """
    return hmac.new(secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_signature(secret_key: str, payload: bytes, signature: str | None) -> bool:
    """Check a webhook signature against a locally recomputed HMAC.

    Args:
        secret_key: Paystack secret key.
        payload: Raw request body exactly as received.
        signature: Value of the x-paystack-signature header.

    Returns:
        bool: True if the signature matches.
    """
    if not secret_key or not signature:
        return False
    expected = compute_signature(secret_key, payload)
    return hmac.compare_digest(expected, signature.strip().lower())


class PaystackClient:
    """Thin async client over the Paystack transaction API."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        verify_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            secret_key: Paystack secret key used as bearer token.
            base_url: API base URL.
            timeout: Per-request timeout in seconds.
            verify_attempts: Attempts for verify calls on transient failures.
            transport: Optional httpx transport (used by tests).
        """
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_attempts = max(1, verify_attempts)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
            transport=self._transport,
        )

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount: int,
        reference: str,
        callback_url: str,
        currency: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TransactionInitialized:
        """Open a hosted payment session.

        Not retried automatically: a repeated POST with the same reference
        would come back as a duplicate.

        Args:
            email: Customer email shown on the payment page.
            amount: Amount in minor currency units.
            reference: Gateway-facing transaction reference.
            callback_url: Where the gateway redirects the customer.
            currency: Optional ISO currency code.
            metadata: Display-only metadata.

        Returns:
            TransactionInitialized: Authorization URL and registered reference.

        Raises:
            DuplicateReferenceError: If the reference was already used.
            PaystackError: For any other failure.
        """
        payload: dict[str, Any] = {
            "email": email,
            "amount": amount,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata or {},
        }
        if currency:
            payload["currency"] = currency

        start_time = time.perf_counter()
        try:
            async with self._client() as client:
                response = await client.post("/transaction/initialize", json=payload)
        except httpx.HTTPError as e:
            logger.error("Paystack initialize request failed for %s: %s", reference, str(e))
            raise PaystackError(f"Paystack initialize request failed: {e}") from e
        finally:
            self._log_latency("initialize", start_time)

        body = _json_or_none(response)
        if body is None:
            raise PaystackError(
                f"Paystack returned a non-JSON response (HTTP {response.status_code})"
            )

        if not body.get("status"):
            code = body.get("code")
            message = body.get("message") or "Paystack rejected the transaction"
            if code == DUPLICATE_REFERENCE_CODE:
                raise DuplicateReferenceError(message, code=code, payload=body)
            raise PaystackError(message, code=code, payload=body)

        data = body.get("data") or {}
        authorization_url = data.get("authorization_url")
        if not authorization_url:
            raise PaystackError("Paystack response is missing authorization_url", payload=body)

        return TransactionInitialized(
            authorization_url=authorization_url,
            access_code=data.get("access_code"),
            reference=data.get("reference") or reference,
            raw=body,
        )

    async def verify_transaction(self, reference: str) -> GatewayVerification:
        """Fetch the authoritative status of a transaction.

        Never raises: transport failures and malformed answers come back as
        VerificationUnavailable.

        Args:
            reference: Gateway transaction reference.

        Returns:
            GatewayVerification: Tagged verify result.
        """
        start_time = time.perf_counter()
        try:
            body = await self._fetch_verification(reference)
        except (httpx.HTTPError, RetryableGatewayError) as e:
            logger.warning("Paystack verify unavailable for %s: %s", reference, str(e))
            return VerificationUnavailable(reason=f"Verification request failed: {e}")
        finally:
            self._log_latency("verify", start_time)

        if body is None or not body.get("status"):
            return VerificationUnavailable(reason="Verification request failed", raw=body)

        data = body.get("data") or {}
        return TransactionVerified(
            gateway_status=str(data.get("status") or ""),
            reference=str(data.get("reference") or reference),
            raw=body,
        )

    async def _fetch_verification(self, reference: str) -> dict[str, Any] | None:
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.verify_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type((httpx.TransportError, RetryableGatewayError)),
        )
        async for attempt in retrying:
            with attempt:
                async with self._client() as client:
                    response = await client.get(
                        f"/transaction/verify/{quote(reference, safe='')}"
                    )
                if response.status_code >= 500:
                    raise RetryableGatewayError(f"HTTP {response.status_code}")
        return _json_or_none(response)

    @staticmethod
    def _log_latency(operation: str, start_time: float) -> None:
        latency_ms = (time.perf_counter() - start_time) * 1000
        if latency_ms > SLOW_CALL_THRESHOLD_MS:
            logger.warning("SLOW Paystack %s call: %.2fms", operation, latency_ms)
        else:
            logger.debug("Paystack %s call: %.2fms", operation, latency_ms)


@lru_cache
def get_paystack_client() -> PaystackClient:
    """Get cached Paystack client built from settings.

    Returns:
        PaystackClient: Shared client instance.
    """
    settings = get_settings()
    return PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.paystack_timeout_seconds,
        verify_attempts=settings.paystack_verify_attempts,
    )


def configure_paystack() -> None:
    """Log the Paystack configuration state at startup."""
    settings = get_settings()
    if not settings.paystack_secret_key:
        logger.warning("Paystack secret key not configured. Checkout and webhooks will not work.")
    elif settings.is_paystack_test_mode:
        logger.info("Paystack configured in test mode")


async def check_paystack_configuration() -> dict[str, Any]:
    """Readiness check for the payment gateway configuration.

    Returns:
        dict: Status with 'healthy' boolean and optional 'error' message.
    """
    settings = get_settings()
    if not settings.paystack_secret_key:
        return {"healthy": False, "error": "PAYSTACK_SECRET_KEY is not set"}
    return {"healthy": True}
