"""Email service using Resend for order notifications."""

import logging
from typing import Any

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def format_amount(amount: int, currency: str = "NGN") -> str:
    """Format a minor-unit amount for display, e.g. 1000000 -> 'NGN 10,000.00'."""
    return f"{currency} {amount / 100:,.2f}"


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key and settings.admin_order_email)
        self.from_email = settings.email_from_address
        self.admin_email = settings.admin_order_email
        self.app_url = settings.app_url.rstrip("/")

    async def send_order_paid_email(self, order: dict[str, Any]) -> dict[str, Any]:
        """Notify the shop admin that an order has been paid.

        Failures are logged and reported in the result, never raised.

        Args:
            order: The finalized order row.

        Returns:
            dict: {"success": bool, ...} with the email ID or error.
        """
        if not self.enabled:
            logger.debug("Order email disabled; skipping order %s", order.get("id"))
            return {"success": False, "error": "disabled"}

        currency = order.get("currency") or "NGN"
        total = format_amount(order["total_amount"], currency)
        items = order.get("line_items") or []
        item_lines = "\n".join(
            f"- {item['product_name']} x {item['quantity']} @ {format_amount(item['unit_price'], currency)}"
            for item in items
        )
        item_rows = "".join(
            f"<tr><td>{item['product_name']}</td><td>{item['quantity']}</td>"
            f"<td>{format_amount(item['unit_price'] * item['quantity'], currency)}</td></tr>"
            for item in items
        )
        address = ", ".join(
            part
            for part in (
                order.get("ship_line1"),
                order.get("ship_line2"),
                order.get("ship_landmark"),
                order.get("ship_city"),
                order.get("ship_state"),
            )
            if part
        )
        order_url = f"{self.app_url}/admin/orders/{order['id']}"

        html_content = f"""
<!DOCTYPE html>
<html>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="margin: 0 0 16px;">New paid order #{order['reference']}</h2>
    <p><strong>Total:</strong> {total}</p>
    <table style="width: 100%; border-collapse: collapse;" cellpadding="6">
        <tr><th align="left">Item</th><th align="left">Qty</th><th align="left">Amount</th></tr>
        {item_rows}
    </table>
    <p><strong>Ship to:</strong> {order.get('ship_full_name') or ''} ({order.get('ship_phone') or ''})<br>{address}</p>
    <p><a href="{order_url}">Open in admin</a></p>
</body>
</html>
"""

        text_content = f"""
New paid order #{order['reference']}

Total: {total}

{item_lines}

Ship to: {order.get('ship_full_name') or ''} ({order.get('ship_phone') or ''})
{address}

{order_url}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [self.admin_email],
                "subject": f"Order paid: #{order['reference']} ({total})",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Order paid email sent for order %s, id: %s", order["id"], response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send order paid email for order %s: %s", order.get("id"), str(e))
            return {"success": False, "error": str(e)}
