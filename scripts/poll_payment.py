#!/usr/bin/env python
"""Poll the verify endpoint for a payment reference until it settles.

Runs the same bounded backoff loop as the storefront's verification page,
which makes it handy for checking a stuck payment by hand.

Usage:
    python scripts/poll_payment.py <reference> [--base-url http://localhost:8080]

Exit codes:
    0 - payment succeeded
    1 - payment failed
    2 - still pending after all attempts
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.verification_poller import PollSnapshot, VerificationPoller

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERIFY_PATH = "/api/v1/checkout/paystack/verify"
EXIT_CODES = {"success": 0, "failed": 1, "pending": 2}


def report(snapshot: PollSnapshot) -> None:
    """Log each state change of the poller."""
    logger.info(
        "Attempt %s: %s%s",
        snapshot.attempts,
        snapshot.status,
        f" ({snapshot.message})" if snapshot.message else "",
    )


async def main() -> None:
    """Main entry point for the poll script."""
    parser = argparse.ArgumentParser(description="Poll payment verification for a reference")
    parser.add_argument("reference", help="Gateway transaction reference")
    parser.add_argument("--base-url", default="http://localhost:8080", help="API base URL")
    args = parser.parse_args()

    poller = VerificationPoller(
        reference=args.reference,
        verify_url=f"{args.base_url.rstrip('/')}{VERIFY_PATH}",
        on_update=report,
    )

    try:
        final = await poller.run()
    except KeyboardInterrupt:
        poller.cancel()
        sys.exit(130)

    status = final.status if final else "pending"
    logger.info("=" * 60)
    logger.info("Final status for %s: %s", args.reference, status)
    logger.info("=" * 60)
    sys.exit(EXIT_CODES.get(status, 2))


if __name__ == "__main__":
    asyncio.run(main())
