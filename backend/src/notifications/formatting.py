"""Duplicate alert message formatting."""

from typing import Optional

from domain.duplicate_detection.models import OrderSnapshot
from domain.duplicate_detection.ports import DuplicateNotice


def order_admin_url(shop_domain: str, order_id: str) -> str:
    return f"https://{shop_domain}/admin/orders/{order_id}"


def risk_label(confidence: int) -> str:
    """High >= 85, Medium >= 70, Low otherwise."""
    if confidence >= 85:
        return "High Risk"
    if confidence >= 70:
        return "Medium Risk"
    return "Low Risk"


def _order_number(order: Optional[OrderSnapshot], fallback: str) -> str:
    if order is None:
        return fallback
    return order.order_number or order.order_id


def _customer_line(order: OrderSnapshot) -> str:
    name = order.customer_name or "Unknown"
    if order.customer_email:
        return f"{name} ({order.customer_email})"
    return name


def _total_line(order: OrderSnapshot) -> str:
    if order.total_price is None:
        return "n/a"
    return f"{order.currency or ''} {order.total_price}".strip()


def email_subject(notice: DuplicateNotice) -> str:
    return f"Duplicate Order Detected: {_order_number(notice.order, notice.order.order_id)}"


def email_body(shop_domain: str, notice: DuplicateNotice) -> str:
    """Plain text e-mail body."""
    order = notice.order
    match = notice.match
    matched_number = _order_number(notice.matched_order, match.matched_order_id)

    return "\n".join([
        "Duplicate Order Detected",
        "",
        "Order Details:",
        f"- Order Number: {_order_number(order, order.order_id)}",
        f"- Customer: {_customer_line(order)}",
        f"- Total: {_total_line(order)}",
        f"- Created: {order.created_at.isoformat()}",
        f"- View order: {order_admin_url(shop_domain, order.order_id)}",
        "",
        "Duplicate Match:",
        f"- Matched Order: {matched_number}",
        f"- Confidence: {match.confidence}% ({risk_label(match.confidence)})",
        f"- Reason: {match.reason}",
        f"- View matched order: {order_admin_url(shop_domain, match.matched_order_id)}",
        "",
        "Please review these orders in your store admin.",
    ])


def slack_message(shop_domain: str, notice: DuplicateNotice) -> dict:
    """Slack incoming-webhook payload with a header and two field sections."""
    order = notice.order
    match = notice.match
    order_number = _order_number(order, order.order_id)
    matched_number = _order_number(notice.matched_order, match.matched_order_id)

    return {
        "text": f"Duplicate order detected: {order_number} ({match.confidence}% confidence)",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "Duplicate Order Detected"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Order:*\n<{order_admin_url(shop_domain, order.order_id)}|{order_number}>"},
                    {"type": "mrkdwn", "text": f"*Matched Order:*\n<{order_admin_url(shop_domain, match.matched_order_id)}|{matched_number}>"},
                    {"type": "mrkdwn", "text": f"*Customer:*\n{_customer_line(order)}"},
                    {"type": "mrkdwn", "text": f"*Total:*\n{_total_line(order)}"},
                ],
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Confidence:*\n{match.confidence}% ({risk_label(match.confidence)})"},
                    {"type": "mrkdwn", "text": f"*Reason:*\n{match.reason}"},
                ],
            },
        ],
    }
