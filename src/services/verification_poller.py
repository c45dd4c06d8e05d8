"""Client-side payment verification poller.

Runs the bounded polling loop a verification page performs after the
customer returns from the gateway: ask the verify endpoint whether the
payment settled, back off between attempts, and stop on the first
definitive answer.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

import httpx

logger = logging.getLogger(__name__)

PollStatus = Literal["loading", "pending", "success", "failed"]

# Delay in seconds before each attempt; one attempt per entry
BACKOFF_SECONDS: tuple[float, ...] = (0, 1, 2, 3, 5, 8)
MAX_ATTEMPTS = len(BACKOFF_SECONDS)

MISSING_REFERENCE_MESSAGE = "Missing payment reference."
PENDING_MESSAGE = "Payment is still being confirmed."
GAVE_UP_MESSAGE = (
    "We could not confirm your payment yet. "
    "Refresh this page in a minute to check again."
)


@dataclass(frozen=True)
class PollSnapshot:
    """State reported to the caller after each change."""

    status: PollStatus
    message: str = ""
    attempts: int = 0


class VerificationPoller:
    """Cancellable polling loop for one payment reference.

    ``on_update`` receives a snapshot whenever the visible state changes. After
    ``cancel()`` no further snapshots are delivered and ``run()`` returns None;
    a request already in flight completes but its answer is discarded.
    """

    def __init__(
        self,
        reference: str | None,
        verify_url: str,
        on_update: Callable[[PollSnapshot], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
        delays: Sequence[float] = BACKOFF_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.reference = (reference or "").strip()
        self.verify_url = verify_url
        self.on_update = on_update
        self.http_client = http_client
        self.delays = tuple(delays) or (0,)
        self.max_attempts = max_attempts
        self._cancelled = asyncio.Event()
        self.snapshot = PollSnapshot(status="loading")

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop polling and silence further updates."""
        self._cancelled.set()

    async def run(self) -> PollSnapshot | None:
        """Poll until the payment settles or attempts run out.

        Returns:
            PollSnapshot | None: Final state, or None if cancelled.
        """
        if not self.reference:
            return self._emit(PollSnapshot(status="failed", message=MISSING_REFERENCE_MESSAGE))

        self._emit(PollSnapshot(status="loading"))

        owns_client = self.http_client is None
        client = self.http_client or httpx.AsyncClient(timeout=20.0)
        try:
            for attempt in range(1, self.max_attempts + 1):
                # The last delay repeats if there are more attempts than delays
                delay = self.delays[min(attempt - 1, len(self.delays) - 1)]
                if await self._sleep(delay):
                    return None

                status, message = await self._check(client)
                if self.cancelled:
                    return None

                if status in ("success", "failed"):
                    return self._emit(PollSnapshot(status=status, message=message, attempts=attempt))

                self._emit(
                    PollSnapshot(status="pending", message=message or PENDING_MESSAGE, attempts=attempt)
                )
        finally:
            if owns_client:
                await client.aclose()

        return self._emit(
            PollSnapshot(status="pending", message=GAVE_UP_MESSAGE, attempts=self.max_attempts)
        )

    async def _sleep(self, delay: float) -> bool:
        """Wait for the backoff delay. Returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        if delay <= 0:
            return False
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _check(self, client: httpx.AsyncClient) -> tuple[str, str]:
        """Call the verify endpoint once. Network errors count as pending."""
        try:
            response = await client.get(
                self.verify_url,
                params={"reference": self.reference},
                headers={"Cache-Control": "no-store"},
            )
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Verify call for %s failed: %s", self.reference, str(e))
            return "pending", ""

        if not isinstance(body, dict):
            return "pending", ""
        return str(body.get("status") or "pending"), str(body.get("message") or "")

    def _emit(self, snapshot: PollSnapshot) -> PollSnapshot | None:
        if self.cancelled:
            return None
        self.snapshot = snapshot
        if self.on_update is not None:
            self.on_update(snapshot)
        return snapshot
