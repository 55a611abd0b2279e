# app/services/notification_service.py
import logging
import smtplib

from app.core.email_client import is_email_configured, send_email
from app.schemas.order import OrderRead

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Customer notifications for order events.

    Email delivery is best effort: the order is already committed when
    this runs, so a mail failure is logged and does not fail the request.
    """

    def order_confirmed(self, order: OrderRead) -> bool:
        """
        Send the order confirmation email.

        Returns:
            True if an email was handed to the SMTP server.
        """
        if not is_email_configured():
            logger.info(
                "SMTP not configured; skipping confirmation for %s",
                order.order_number,
            )
            return False

        shipping = order.shipping_details
        lines = [
            f"Hi {shipping.full_name},",
            "",
            f"Your order {order.order_number} is confirmed.",
            f"Total: {order.total_amount:.2f} {order.currency}",
        ]
        if shipping.delivery_date:
            slot = f" ({shipping.time_slot})" if shipping.time_slot else ""
            lines.append(f"Delivery: {shipping.delivery_date.isoformat()}{slot}")
        lines.append("")
        for item in order.items:
            lines.append(f"  {item.quantity} x {item.title or item.product}")

        try:
            send_email(
                to_email=shipping.email,
                subject=f"Order {order.order_number} confirmed",
                text_body="\n".join(lines),
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Confirmation email for %s failed: %s", order.order_number, e
            )
            return False
        return True
