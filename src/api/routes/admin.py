"""Admin order management routes."""

from fastapi import APIRouter

from src.api.deps import AdminUser
from src.schemas.checkout import DeliveryStatusUpdate, OrderResponse
from src.services.order_service import OrderService

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.patch(
    "/{order_id}/delivery-status",
    response_model=OrderResponse,
    summary="Advance delivery status",
    description="Moves a paid order one step along PROCESSING, DISPATCHED, DELIVERED.",
    responses={
        403: {"description": "Admin access required"},
        404: {"description": "Order not found"},
        409: {"description": "Order not paid or transition not allowed"},
    },
)
async def update_delivery_status(
    order_id: int,
    data: DeliveryStatusUpdate,
    admin: AdminUser,
) -> OrderResponse:
    """Advance the delivery status of a paid order."""
    order = await OrderService().advance_delivery_status(order_id, data.delivery_status)
    return OrderResponse(**order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel a pending order",
    responses={
        403: {"description": "Admin access required"},
        404: {"description": "Order not found"},
        409: {"description": "Order already paid"},
    },
)
async def cancel_order(order_id: int, admin: AdminUser) -> OrderResponse:
    """Cancel an unpaid order. Cancelling twice returns the cancelled order."""
    order = await OrderService().cancel_order(order_id)
    return OrderResponse(**order)
