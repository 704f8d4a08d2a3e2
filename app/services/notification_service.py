# app/services/notification_service.py
"""
Order emails: confirmation to the customer, new-order notice to the
bakers' inbox.

Both are best-effort. A failed send is logged and never interrupts
checkout.
"""
import html
import logging
from collections.abc import Callable

from app.core import email_client
from app.core.config import get_settings
from app.models.order import Order, OrderItem

logger = logging.getLogger(__name__)

settings = get_settings()

SendEmail = Callable[..., None]


def _money(value: float) -> str:
    return f"${value:,.2f}"


def _short_id(order: Order) -> str:
    return str(order.id).split("-")[0].upper()


def _fulfillment_lines(order: Order) -> list[str]:
    if order.delivery_method == "delivery":
        address = ", ".join(
            part
            for part in (
                order.delivery_address,
                order.delivery_city,
                order.delivery_state,
                order.delivery_zip_code,
            )
            if part
        )
        lines = [f"Delivery address: {address or 'N/A'}"]
        when = " ".join(
            str(part) for part in (order.delivery_date, order.delivery_time) if part
        )
        lines.append(f"Requested delivery: {when or 'N/A'}")
        return lines

    lines = [
        f"Pickup date: {order.pickup_date or 'N/A'}",
        f"Pickup time: {order.pickup_time or 'N/A'}",
    ]
    if order.store_location:
        lines.append(f"Store: {order.store_location}")
    return lines


def _item_lines(items: list[OrderItem]) -> list[str]:
    lines = []
    for item in items:
        size = f" ({item.size_label})" if item.size_label else ""
        lines.append(
            f"- {item.name}{size} x{item.quantity}: {_money(item.price * item.quantity)}"
        )
    return lines


def _as_html(title: str, lines: list[str]) -> str:
    body = "".join(f"<p>{html.escape(line)}</p>" for line in lines)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px;">'
        f"<h2>{html.escape(title)}</h2>{body}</div>"
    )


def order_confirmation(order: Order, items: list[OrderItem]) -> tuple[str, str, str]:
    """
    Subject, text and HTML of the customer's confirmation email.
    """
    subject = f"Order Confirmation #{_short_id(order)} - {settings.SMTP_FROM_NAME}"
    lines = [
        f"Hi {order.customer_name}, thank you for your order!",
        f"Order #{_short_id(order)}",
        *_item_lines(items),
        f"Subtotal: {_money(order.subtotal)}",
        f"Tax: {_money(order.tax)}",
    ]
    if order.delivery_fee:
        lines.append(f"Delivery fee: {_money(order.delivery_fee)}")
    lines.append(f"Total: {_money(order.total)}")
    lines.extend(_fulfillment_lines(order))
    return subject, "\n".join(lines), _as_html("Order Confirmation", lines)


def baker_notification(order: Order, items: list[OrderItem]) -> tuple[str, str, str]:
    subject = f"New Order Received: #{_short_id(order)} from {order.customer_name}"
    lines = [
        f"Customer: {order.customer_name} ({order.customer_email}, {order.customer_phone})",
        f"Total: {_money(order.total)}",
        f"Method: {order.delivery_method.capitalize()}",
        *_fulfillment_lines(order),
    ]
    if order.special_instructions:
        lines.append(f"Special instructions: {order.special_instructions}")
    lines.append("Items:")
    lines.extend(_item_lines(items))
    lines.append("Log in to the baker portal to claim this order.")
    return subject, "\n".join(lines), _as_html("New Order", lines)


class OrderNotifier:
    """
    Sends order emails through `send_email` (the SMTP client by default).
    """

    def __init__(
        self,
        send_email: SendEmail | None = None,
        baker_inbox: str | None = None,
    ):
        self.send_email = send_email or email_client.send_email
        self._uses_smtp = send_email is None
        self.baker_inbox = baker_inbox or settings.BAKER_NOTIFICATION_EMAIL

    def _deliver(self, to_email: str, message: tuple[str, str, str], order: Order) -> bool:
        subject, text_body, html_body = message
        try:
            self.send_email(
                to_email=to_email,
                subject=subject,
                text_body=text_body,
                html_body=html_body,
            )
        except email_client.EMAIL_ERRORS:
            logger.exception("Failed to send %r for order %s", subject, order.id)
            return False
        return True

    def order_placed(self, order: Order, items: list[OrderItem]) -> None:
        if self._uses_smtp and not email_client.is_configured():
            logger.info("SMTP not configured; skipping emails for order %s", order.id)
            return

        self._deliver(order.customer_email, order_confirmation(order, items), order)

        if self.baker_inbox:
            self._deliver(
                self.baker_inbox,
                baker_notification(order, items),
                order,
            )
