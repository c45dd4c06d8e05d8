"""Webhook API routes for external service integrations."""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from src.api.middleware.error_handler import AuthenticationError, GatewayError
from src.core.config import get_settings
from src.schemas.checkout import WebhookAck
from src.services.reconciliation_service import ReconciliationError, ReconciliationService

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _ack(status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=WebhookAck(ok=status_code == status.HTTP_200_OK).model_dump(),
        headers=NO_STORE,
    )


@router.post(
    "/paystack",
    response_model=WebhookAck,
    summary="Handle Paystack webhooks",
    description="Receives Paystack events. Requires a valid x-paystack-signature.",
    responses={
        401: {"description": "Missing or invalid signature"},
        500: {"description": "Payment gateway is not configured"},
        503: {"description": "Verification unavailable; Paystack should retry"},
    },
)
async def paystack_webhook(request: Request) -> JSONResponse:
    """Handle Paystack webhook events.

    The signature is an HMAC-SHA512 of the raw body. Charge and transaction
    success/failure events trigger reconciliation with a fresh verify call;
    other events are acknowledged without action.

    Once the signature checks out the response is 200, except when the
    gateway could not be reached for verification: then 503 asks Paystack
    to deliver the event again.

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        JSONResponse: Acknowledgment.

    Raises:
        AuthenticationError: 401 if the signature is missing or wrong.
        GatewayError: 500 if no Paystack secret key is configured.
    """
    if not get_settings().paystack_secret_key:
        logger.error("Paystack webhook received but PAYSTACK_SECRET_KEY is not set")
        raise GatewayError("Payment gateway is not configured")

    payload = await request.body()
    signature = request.headers.get("x-paystack-signature")

    if not signature:
        logger.error("Missing x-paystack-signature header in webhook request")
        raise AuthenticationError("Invalid signature")

    service = ReconciliationService()

    try:
        event = service.verify_webhook_signature(payload, signature)
    except PydanticValidationError:
        logger.warning("Signed webhook body is not a valid event; ignoring")
        return _ack()
    except ValueError as e:
        logger.error("Invalid webhook signature: %s", str(e))
        raise AuthenticationError("Invalid signature") from e

    logger.info("Processing Paystack webhook event: %s (ref %s)", event.event, event.reference or "-")

    try:
        result = await service.handle_webhook_event(event)
    except ReconciliationError:
        # Logged by the service; redelivery would not fix a store problem
        return _ack()

    if result is not None and not result.verified:
        logger.warning("Verification unavailable for %s; asking Paystack to retry", result.reference)
        return _ack(status.HTTP_503_SERVICE_UNAVAILABLE)

    return _ack()
