"""Checkout and order Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from src.models.order import CheckoutStatus, DeliveryStatus, OrderStatus
from src.models.payment import PaymentStatus
from src.schemas.paystack import PaymentOutcome


class OrderLineItemSchema(BaseModel):
    """Schema for a single line item in an order."""

    model_config = ConfigDict(from_attributes=True)

    product_id: int = Field(description="Product ID")
    product_name: str = Field(description="Product name at order time")
    quantity: int = Field(ge=1, description="Quantity ordered")
    unit_price: int = Field(ge=0, description="Unit price in minor units at order time")


class CheckoutInitiateRequest(BaseModel):
    """Body of POST /checkout/paystack.

    Blank keys are rejected by the service with a 400.
    """

    model_config = ConfigDict(populate_by_name=True)

    checkout_key: str = Field(
        default="",
        validation_alias=AliasChoices("checkoutKey", "checkout_key"),
        description="Client-generated idempotency token; one order per key",
    )


class CheckoutInitiateResponse(BaseModel):
    """Hosted payment page to redirect the customer to."""

    model_config = ConfigDict(populate_by_name=True)

    authorization_url: str = Field(
        serialization_alias="authorizationUrl",
        description="Gateway payment page URL",
    )
    reference: str = Field(description="Gateway-facing transaction reference")


class VerifyResponse(BaseModel):
    """Result of GET /checkout/paystack/verify."""

    ok: bool = Field(description="Whether the outcome was determined and persisted")
    status: PaymentOutcome = Field(description="Canonical payment outcome")
    reference: str | None = Field(default=None, description="Transaction reference")
    message: str | None = Field(default=None, description="Human-readable status detail")


class WebhookAck(BaseModel):
    """Acknowledgment returned to the gateway."""

    ok: bool = True


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Internal order ID")
    reference: str = Field(description="Customer-facing order reference")
    user_id: UUID = Field(description="Owning user")
    status: OrderStatus = Field(description="Order status")
    delivery_status: DeliveryStatus = Field(description="Delivery status")
    checkout_status: CheckoutStatus = Field(description="Gateway session progress")
    line_items: list[OrderLineItemSchema] = Field(description="Order line items")
    total_amount: int = Field(description="Total amount in minor units")
    currency: str = Field(default="NGN", description="Currency code")
    ship_full_name: str | None = Field(default=None, description="Recipient name")
    ship_phone: str | None = Field(default=None, description="Recipient phone")
    ship_line1: str | None = Field(default=None, description="Address line 1")
    ship_line2: str | None = Field(default=None, description="Address line 2")
    ship_landmark: str | None = Field(default=None, description="Nearby landmark")
    ship_city: str | None = Field(default=None, description="City")
    ship_state: str | None = Field(default=None, description="State")
    payment_status: PaymentStatus | None = Field(default=None, description="Payment record status")
    paid_at: datetime | None = Field(default=None, description="When the order was finalized as paid")
    delivered_at: datetime | None = Field(default=None, description="Delivery timestamp")
    created_at: datetime = Field(description="Creation timestamp")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")


class DeliveryStatusUpdate(BaseModel):
    """Body of the admin delivery-status action."""

    delivery_status: DeliveryStatus = Field(
        validation_alias=AliasChoices("deliveryStatus", "delivery_status"),
        description="Next delivery status",
    )
