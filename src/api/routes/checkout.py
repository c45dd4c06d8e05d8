"""Checkout API routes for the Paystack integration."""

import logging
from typing import Any

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from src.api.deps import CurrentUser
from src.api.middleware.error_handler import NotFoundError
from src.core.config import get_settings
from src.schemas.checkout import (
    CheckoutInitiateRequest,
    CheckoutInitiateResponse,
    OrderListResponse,
    OrderResponse,
    VerifyResponse,
)
from src.services.checkout_service import CheckoutService
from src.services.order_service import OrderService
from src.services.payment_service import PaymentService
from src.services.reconciliation_service import ReconciliationError, ReconciliationService

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}

router = APIRouter(prefix="/checkout", tags=["checkout"])


def _verify_response(body: VerifyResponse, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=NO_STORE,
    )


@router.post(
    "/paystack",
    response_model=CheckoutInitiateResponse,
    summary="Start Paystack checkout",
    description="Creates (or reuses) the order for a checkout key and returns the hosted payment URL.",
    responses={
        400: {"description": "Missing key, incomplete address, empty cart or inactive product"},
        403: {"description": "checkoutKey belongs to another user"},
        409: {"description": "Order already paid or product out of stock"},
        500: {"description": "Payment gateway failure"},
    },
)
async def initiate_checkout(
    data: CheckoutInitiateRequest,
    user: CurrentUser,
    response: Response,
) -> CheckoutInitiateResponse:
    """Start or resume checkout for the current cart.

    Calling this again with the same checkoutKey returns the same
    authorization URL once a gateway session exists.

    Args:
        data: Body carrying the checkoutKey.
        user: The authenticated customer.
        response: Used to disable caching.

    Returns:
        CheckoutInitiateResponse: Redirect URL and gateway reference.
    """
    response.headers.update(NO_STORE)
    service = CheckoutService()
    result = await service.initiate_checkout(user, data.checkout_key)
    return CheckoutInitiateResponse(**result)


@router.get(
    "/paystack/verify",
    response_model=VerifyResponse,
    response_model_exclude_none=True,
    summary="Verify a Paystack payment",
    description="Re-verifies the transaction with Paystack and reconciles the order. Safe to poll.",
)
async def verify_payment(
    reference: str | None = Query(default=None, description="Gateway transaction reference"),
    trxref: str | None = Query(default=None, description="Legacy alias for reference"),
) -> JSONResponse:
    """Report the payment outcome for a reference, applying it locally.

    A store failure never turns a confirmed payment into "failed"; the
    caller sees "pending" and polls again.
    """
    ref = (reference or trxref or "").strip()
    if not ref:
        return _verify_response(
            VerifyResponse(ok=False, status="failed", message="Missing reference"),
            status.HTTP_400_BAD_REQUEST,
        )

    if not get_settings().paystack_secret_key:
        return _verify_response(
            VerifyResponse(ok=False, status="failed", message="Payment gateway is not configured"),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    service = ReconciliationService()
    try:
        result = await service.reconcile(ref)
    except ReconciliationError as e:
        if e.status == "failed":
            return _verify_response(
                VerifyResponse(ok=False, status="failed", reference=ref, message="DB error during verification"),
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return _verify_response(
            VerifyResponse(ok=False, status="pending", reference=ref, message="Confirming payment..."),
        )

    if not result.verified:
        return _verify_response(
            VerifyResponse(ok=False, status="pending", reference=ref, message="Verification request failed"),
        )

    return _verify_response(VerifyResponse(ok=True, status=result.status, reference=ref))


# Orders router - mounted separately at /orders
orders_router = APIRouter(prefix="/orders", tags=["orders"])


async def _to_order_response(order: dict[str, Any], payment_service: PaymentService) -> OrderResponse:
    payment = await payment_service.get_payment_for_order(order["id"])
    return OrderResponse(
        **order,
        payment_status=payment["status"] if payment else None,
    )


@orders_router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Returns all orders for the authenticated user, newest first.",
)
async def list_orders(user: CurrentUser) -> OrderListResponse:
    """List all orders for the current user."""
    orders = await OrderService().list_orders_for_user(user.user_id)
    return OrderListResponse(items=[OrderResponse(**order) for order in orders])


@orders_router.get(
    "/{reference}",
    response_model=OrderResponse,
    summary="Get order by reference",
    description="Returns a single order by its reference. Only accessible by the order owner.",
)
async def get_order(reference: str, user: CurrentUser) -> OrderResponse:
    """Get one of the current user's orders.

    Raises:
        NotFoundError: 404 if the order does not exist or belongs to someone else.
    """
    order = await OrderService().get_order_by_reference(reference)
    if not order or str(order["user_id"]) != str(user.user_id):
        raise NotFoundError("Order not found")

    return await _to_order_response(order, PaymentService())
