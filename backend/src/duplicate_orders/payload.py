"""Upstream order payload mapping.

Converts the storefront's order webhook JSON into an OrderSnapshot. Customer
contact data is spread over several places in the payload; the first value
present wins.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from domain.duplicate_detection.models import Address, LineItem, OrderSnapshot
from domain.duplicate_detection.ports import InvalidOrderPayloadError

_ADDRESS_FIELDS = ("address1", "address2", "city", "province", "zip", "country")


def _first_present(*values: Any) -> Optional[str]:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _customer_name(payload: dict) -> Optional[str]:
    customer = payload.get("customer") or {}
    name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    if name:
        return name
    shipping = payload.get("shipping_address") or {}
    return _first_present(shipping.get("name"))


def _customer_phone(payload: dict) -> Optional[str]:
    customer = payload.get("customer") or {}
    billing = payload.get("billing_address") or {}
    shipping = payload.get("shipping_address") or {}
    return _first_present(
        payload.get("phone"),
        customer.get("phone"),
        billing.get("phone"),
        shipping.get("phone"),
    )


def _shipping_address(payload: dict) -> Optional[Address]:
    raw = payload.get("shipping_address")
    if not raw:
        return None
    values = {name: _first_present(raw.get(name)) for name in _ADDRESS_FIELDS}
    if not any(values.values()):
        return None
    return Address(**values)


def _line_items(payload: dict) -> tuple[LineItem, ...]:
    items = []
    for raw in payload.get("line_items") or []:
        try:
            quantity = int(raw.get("quantity") or 1)
        except (TypeError, ValueError):
            quantity = 1
        items.append(LineItem(sku=_first_present(raw.get("sku")), quantity=quantity))
    return tuple(items)


def parse_created_at(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    A missing timestamp means "now".
    """
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidOrderPayloadError(f"Invalid created_at '{value}': {e}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _total_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def snapshot_from_payload(shop_domain: str, payload: dict) -> OrderSnapshot:
    """Map an order webhook payload to an OrderSnapshot.

    Args:
        shop_domain: Shop the webhook was delivered for
        payload: Decoded order JSON

    Returns:
        OrderSnapshot ready for evaluation

    Raises:
        InvalidOrderPayloadError: If the payload has no order id
    """
    if not payload or payload.get("id") is None:
        raise InvalidOrderPayloadError(f"Order payload for {shop_domain} has no id")

    order_id = str(payload["id"])

    return OrderSnapshot(
        order_id=order_id,
        shop_domain=shop_domain,
        created_at=parse_created_at(payload.get("created_at")),
        customer_email=_first_present(payload.get("email"), payload.get("contact_email")),
        customer_phone=_customer_phone(payload),
        customer_name=_customer_name(payload),
        shipping_address=_shipping_address(payload),
        line_items=_line_items(payload),
        order_number=_first_present(payload.get("order_number"), payload.get("name"), order_id),
        total_price=_total_price(payload.get("total_price")),
        currency=_first_present(payload.get("currency")),
    )


def payload_tags(payload: dict) -> list[str]:
    """Tags of an order payload (comma separated string upstream)."""
    tags = payload.get("tags") or ""
    if isinstance(tags, list):
        return [str(t).strip() for t in tags if str(t).strip()]
    return [t.strip() for t in str(tags).split(",") if t.strip()]
