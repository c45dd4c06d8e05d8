"""Checkout initiation: order creation and hosted payment session."""

import logging
import uuid
from typing import Any
from urllib.parse import quote

from src.api.middleware.error_handler import (
    AlreadyPaidError,
    AuthorizationError,
    ConflictError,
    GatewayError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.paystack import DuplicateReferenceError, PaystackError, get_paystack_client
from src.models.order import OrderCreate, OrderLineItem
from src.models.product import CartItem
from src.schemas.auth import UserContext
from src.schemas.paystack import TransactionInitialized
from src.services.cart_service import CartService
from src.services.order_service import OrderService
from src.services.payment_service import PaymentService, new_gateway_reference
from src.services.profile_service import ProfileService, missing_address_fields

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service that turns a cart into a pending order and a gateway session.

    Calling initiate_checkout again with the same checkout key is safe: it
    reuses the order, the payment record and a live gateway session.
    """

    def __init__(self) -> None:
        """Initialize checkout service with stores and gateway client."""
        self.settings = get_settings()
        self.paystack = get_paystack_client()
        self.order_service = OrderService()
        self.payment_service = PaymentService()
        self.cart_service = CartService()
        self.profile_service = ProfileService()

    async def initiate_checkout(self, user: UserContext, checkout_key: str) -> dict[str, Any]:
        """Create (or reuse) the order for a checkout key and open a payment session.

        Args:
            user: The authenticated customer.
            checkout_key: Client-supplied idempotency token.

        Returns:
            dict: Contains authorization_url and reference (gateway reference).

        Raises:
            ValidationError: Missing key, incomplete address, empty cart, inactive product.
            AuthorizationError: If the key belongs to another user's order.
            AlreadyPaidError: If the order for this key is already paid.
            ConflictError: Out of stock, insufficient stock or cancelled order.
            GatewayError: If the gateway could not open a session.
        """
        key = (checkout_key or "").strip()
        if not key:
            raise ValidationError("Missing checkoutKey")

        if not self.settings.paystack_secret_key:
            raise GatewayError("Payment gateway is not configured")

        order = await self.order_service.get_order_by_checkout_key(key)
        created = False
        if order:
            self._check_existing_order(order, user)

        profile = await self.profile_service.get_or_create_profile(user.user_id, user.email)
        email = profile.get("email") or user.email
        if not email:
            raise ValidationError("An email address is required to pay")

        if order is None:
            address = await self.profile_service.get_address(user.user_id)
            missing = missing_address_fields(address)
            if missing:
                raise ValidationError(
                    f"Missing delivery address fields: {', '.join(missing)}",
                    details=[{"loc": ["address", field], "msg": "required", "type": "missing"} for field in missing],
                )

            cart_lines = await self.cart_service.get_cart_lines(user.user_id)
            line_items, total_amount = self._validate_cart(cart_lines)

            order, created = await self.order_service.create_order(
                self._build_order(user, key, line_items, total_amount, address)
            )
            if not created:
                self._check_existing_order(order, user)

        payment = await self.payment_service.ensure_payment(order)

        existing_url = payment.get("authorization_url")
        if existing_url:
            logger.info("Reusing gateway session for order %s", order["id"])
            return {"authorization_url": existing_url, "reference": payment["paystack_ref"]}

        if not created:
            # Stock may have moved since the order was placed
            await self._check_order_stock(order)

        # A failed session cannot be paid again; retry on a fresh reference
        paystack_ref = payment.get("paystack_ref")
        if not paystack_ref or payment.get("status") == "FAILED":
            paystack_ref = new_gateway_reference()
            await self.payment_service.set_gateway_reference(payment["id"], paystack_ref)

        try:
            try:
                session = await self._initialize(order, payment["id"], email, key, paystack_ref)
            except DuplicateReferenceError:
                logger.warning(
                    "Gateway reference %s already used for order %s; retrying with a new one",
                    paystack_ref,
                    order["id"],
                )
                paystack_ref = new_gateway_reference()
                session = await self._initialize(order, payment["id"], email, key, paystack_ref)
        except PaystackError as e:
            logger.error("Gateway initialize failed for order %s: %s", order["id"], e.message)
            await self.order_service.mark_checkout_failed(order["id"])
            raise GatewayError(f"Payment gateway initialization failed: {e.message}") from e

        recorded = await self.payment_service.record_initialization(
            payment["id"], paystack_ref, session.authorization_url, session.raw
        )
        if not recorded:
            # A concurrent call recorded its session first; hand out that one
            latest = await self.payment_service.get_payment_for_order(order["id"])
            if latest and latest.get("authorization_url"):
                logger.info("Concurrent checkout already opened a session for order %s", order["id"])
                return {"authorization_url": latest["authorization_url"], "reference": latest["paystack_ref"]}
            raise GatewayError("Payment session changed during checkout; please retry")
        if order.get("checkout_status") == "FAILED":
            await self.order_service.mark_checkout_initiated(order["id"])

        logger.info("Gateway session opened for order %s (ref %s)", order["id"], paystack_ref)
        return {"authorization_url": session.authorization_url, "reference": paystack_ref}

    @staticmethod
    def _check_existing_order(order: dict[str, Any], user: UserContext) -> None:
        if str(order["user_id"]) != str(user.user_id):
            raise AuthorizationError("checkoutKey belongs to another user")
        if order["status"] == "PAID":
            raise AlreadyPaidError(order["reference"])
        if order["status"] == "CANCELLED":
            raise ConflictError("Order for this checkoutKey was cancelled", error_type="order_cancelled")

    @staticmethod
    def _validate_cart(cart_lines: list[CartItem]) -> tuple[list[OrderLineItem], int]:
        """Check every cart line against live product data and price it.

        Returns:
            tuple: (line item snapshot, total in minor units)
        """
        if not cart_lines:
            raise ValidationError("Cart is empty")

        line_items: list[OrderLineItem] = []
        total_amount = 0
        for line in cart_lines:
            product = line.get("products")
            quantity = int(line.get("quantity") or 0)
            product_id = line.get("product_id")

            if not product:
                raise ValidationError(
                    f"Product {product_id} no longer exists",
                    details=[{"loc": ["cart", product_id], "msg": "not found", "type": "missing_product"}],
                )
            if not product.get("active", False):
                raise ValidationError(
                    f"Inactive product in cart: {product['name']}",
                    details=[{"loc": ["cart", product_id], "msg": product["name"], "type": "inactive_product"}],
                )
            if quantity < 1:
                raise ValidationError(
                    f"Invalid quantity for {product['name']}",
                    details=[{"loc": ["cart", product_id], "msg": product["name"], "type": "invalid_quantity"}],
                )
            if product["stock"] <= 0:
                raise ConflictError(f"Out of stock: {product['name']}", error_type="out_of_stock")
            if quantity > product["stock"]:
                raise ConflictError(f"Insufficient stock: {product['name']}", error_type="insufficient_stock")

            line_items.append(
                {
                    "product_id": product["id"],
                    "product_name": product["name"],
                    "quantity": quantity,
                    "unit_price": int(product["price"]),
                }
            )
            total_amount += int(product["price"]) * quantity

        return line_items, total_amount

    async def _check_order_stock(self, order: dict[str, Any]) -> None:
        """Re-check an existing order's line items against live product data.

        Raises:
            ValidationError: If a product is gone or inactive.
            ConflictError: If a product no longer has enough stock.
        """
        line_items = order.get("line_items") or []
        products = await self.cart_service.get_products([item["product_id"] for item in line_items])
        self._validate_cart(
            [
                {
                    "product_id": item["product_id"],
                    "quantity": item["quantity"],
                    "products": products.get(item["product_id"]),
                }
                for item in line_items
            ]
        )

    def _build_order(
        self,
        user: UserContext,
        checkout_key: str,
        line_items: list[OrderLineItem],
        total_amount: int,
        address: dict[str, Any],
    ) -> OrderCreate:
        return {
            "reference": str(uuid.uuid4()),
            "checkout_key": checkout_key,
            "user_id": str(user.user_id),
            "status": "PENDING",
            "delivery_status": "PROCESSING",
            "checkout_status": "INITIATED",
            "line_items": line_items,
            "total_amount": total_amount,
            "currency": self.settings.currency,
            "ship_full_name": address["full_name"],
            "ship_phone": address["phone"],
            "ship_line1": address["line1"],
            "ship_line2": address.get("line2"),
            "ship_landmark": address.get("landmark"),
            "ship_city": address["city"],
            "ship_state": address["state"],
        }

    async def _initialize(
        self,
        order: dict[str, Any],
        payment_id: int,
        email: str,
        checkout_key: str,
        paystack_ref: str,
    ) -> TransactionInitialized:
        callback_url = f"{self.settings.app_url.rstrip('/')}/checkout/verify?reference={quote(paystack_ref, safe='')}"
        delivery_address = ", ".join(
            part for part in (order.get("ship_line1"), order.get("ship_city"), order.get("ship_state")) if part
        )

        # Display-only; reconciliation never reads these back
        metadata = {
            "order_id": order["id"],
            "order_reference": order["reference"],
            "checkout_key": checkout_key,
            "paystack_ref": paystack_ref,
            "items": [
                {"name": item["product_name"], "quantity": item["quantity"]}
                for item in order.get("line_items") or []
            ],
            "custom_fields": [
                {"display_name": "Order ID", "variable_name": "order_id", "value": str(order["id"])},
                {"display_name": "Order Ref", "variable_name": "order_ref", "value": order["reference"]},
                {"display_name": "Customer Email", "variable_name": "customer_email", "value": email},
                {"display_name": "Delivery Address", "variable_name": "delivery_address", "value": delivery_address},
            ],
        }

        await self.payment_service.record_attempt(payment_id, paystack_ref)

        return await self.paystack.initialize_transaction(
            email=email,
            amount=order["total_amount"],
            reference=paystack_ref,
            callback_url=callback_url,
            currency=order.get("currency") or self.settings.currency,
            metadata=metadata,
        )
