"""Transactional email: relay interface, Resend implementation, and templates."""

import html
import logging
from dataclasses import dataclass
from typing import Protocol

import resend

from .errors import UpstreamServiceError
from .models import Order
from .utils import format_money

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    reply_to: str | None = None


class EmailRelay(Protocol):
    """Fire-and-forget email delivery."""

    def send(self, message: EmailMessage) -> str:
        """Send a message and return the provider's message ID."""
        ...


class ResendRelay:
    """Sends email through the Resend API."""

    def __init__(self, api_key: str, sender: str):
        self.api_key = api_key
        self.sender = sender

    def send(self, message: EmailMessage) -> str:
        if not self.api_key:
            raise UpstreamServiceError("Resend", "API key is not configured")

        payload: dict[str, object] = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to

        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as e:
            logger.error("Resend send to %s failed: %s", message.to, e)
            raise UpstreamServiceError("Resend", "send failed", details=str(e)) from e

        if not isinstance(response, dict) or not response.get("id"):
            raise UpstreamServiceError("Resend", "unexpected response", details=str(response))
        return response["id"]


def _wrap(body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <body style="margin:0;padding:24px;background:#faf7f5;font-family:Georgia,serif;color:#3d2c2e;">
    <div style="max-width:560px;margin:0 auto;background:#ffffff;border-radius:12px;padding:32px;">
      {body}
      <p style="margin-top:32px;font-size:13px;color:#8a7a7c;">With love,<br />Butterflies Beading</p>
    </div>
  </body>
</html>"""


def _items_table(order: Order) -> str:
    rows = "".join(
        f"<tr><td>{html.escape(item.name)} &times; {item.quantity}</td>"
        f"<td style=\"text-align:right\">{format_money(item.price * item.quantity)}</td></tr>"
        for item in order.items
    )
    return (
        f"<table style=\"width:100%;border-collapse:collapse\">{rows}"
        f"<tr><td>Shipping</td><td style=\"text-align:right\">{format_money(order.shipping_cost)}</td></tr>"
        f"<tr><td>Tax</td><td style=\"text-align:right\">{format_money(order.tax)}</td></tr>"
        f"<tr><td><strong>Total</strong></td>"
        f"<td style=\"text-align:right\"><strong>{format_money(order.total)}</strong></td></tr></table>"
    )


def payment_link_email(order: Order, payment_link: str, expires_at: str) -> EmailMessage:
    subject = f"Complete your payment for order {order.order_number}"
    body = (
        f"<h2>Your order is ready for payment</h2>"
        f"<p>Order <strong>{html.escape(order.order_number or '')}</strong> has been reviewed "
        f"and is ready for payment.</p>"
        f"{_items_table(order)}"
        f"<p style=\"margin:24px 0\"><a href=\"{html.escape(payment_link)}\" "
        f"style=\"background:#b5838d;color:#fff;padding:12px 24px;border-radius:6px;"
        f"text-decoration:none\">Pay {format_money(order.total)}</a></p>"
        f"<p style=\"font-size:13px\">This link expires {html.escape(expires_at)}.</p>"
    )
    text = (
        f"Order {order.order_number} is ready for payment.\n"
        f"Total: {format_money(order.total)}\n"
        f"Pay here: {payment_link}\n"
        f"This link expires {expires_at}."
    )
    return EmailMessage(to=order.customer_email, subject=subject, html=_wrap(body), text=text)


def custom_email(order: Order, subject: str, content: str) -> EmailMessage:
    paragraphs = "".join(
        f"<p>{html.escape(line)}</p>" for line in content.splitlines() if line.strip()
    )
    body = f"<h2>{html.escape(subject)}</h2>{paragraphs}"
    return EmailMessage(to=order.customer_email, subject=subject, html=_wrap(body), text=content)


def contact_business_email(
    business_email: str, name: str, email: str, subject: str, message: str
) -> EmailMessage:
    body = (
        f"<h2>New contact form message</h2>"
        f"<p><strong>From:</strong> {html.escape(name)} &lt;{html.escape(email)}&gt;</p>"
        f"<p><strong>Subject:</strong> {html.escape(subject)}</p>"
        f"<p>{html.escape(message)}</p>"
    )
    return EmailMessage(
        to=business_email,
        subject=f"Contact Form: {subject}",
        html=_wrap(body),
        text=f"From: {name} <{email}>\nSubject: {subject}\n\n{message}",
        reply_to=email,
    )


def contact_auto_reply(name: str, email: str) -> EmailMessage:
    body = (
        f"<h2>Thanks for reaching out, {html.escape(name)}!</h2>"
        f"<p>We received your message and will get back to you within 1-2 business days.</p>"
    )
    return EmailMessage(
        to=email,
        subject="We received your message",
        html=_wrap(body),
        text=f"Hi {name}, we received your message and will reply within 1-2 business days.",
    )
