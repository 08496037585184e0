"""Criterion matchers.

Each matcher awards its fixed number of points when its condition holds and
zero otherwise. Absent fields never match.

Points per criterion:
- Email: 50 (when enabled)
- Phone: 50 (when enabled)
- Address: 50 (when enabled, per sensitivity tier)
- SKU: 50 (when enabled, SKU sets intersect)
- Name: 20 (always evaluated, corroborating evidence only)
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .models import Address, AddressSensitivity, OrderSnapshot
from .normalizers import (
    normalize_address,
    normalize_email,
    normalize_name,
    normalize_phone,
    sku_set,
)
from .settings import DetectionSettings

EMAIL_POINTS = 50
PHONE_POINTS = 50
ADDRESS_POINTS = 50
SKU_POINTS = 50
NAME_POINTS = 20


@dataclass(frozen=True)
class NormalizedOrder:
    """Comparison view of an order, normalized once and reused per candidate."""
    order: OrderSnapshot
    email: Optional[str]
    phone: Optional[str]
    name: Optional[str]
    address: Optional[Address]
    skus: frozenset[str]

    @classmethod
    def from_snapshot(cls, order: OrderSnapshot) -> "NormalizedOrder":
        return cls(
            order=order,
            email=normalize_email(order.customer_email),
            phone=normalize_phone(order.customer_phone),
            name=normalize_name(order.customer_name),
            address=normalize_address(order.shipping_address),
            skus=sku_set(order.line_items),
        )


def _present_and_equal(left: Optional[str], right: Optional[str]) -> bool:
    return left is not None and right is not None and left == right


def address_matches(
    left: Optional[Address],
    right: Optional[Address],
    sensitivity: AddressSensitivity
) -> bool:
    """Apply the address sensitivity tier to two normalized addresses.

    - low: address1, or city and zip
    - medium: address1 and city, or address1 and zip
    - high: address1, city and zip
    """
    if left is None or right is None:
        return False

    street = _present_and_equal(left.address1, right.address1)
    city = _present_and_equal(left.city, right.city)
    zip_code = _present_and_equal(left.zip, right.zip)

    if sensitivity == AddressSensitivity.LOW:
        return street or (city and zip_code)
    if sensitivity == AddressSensitivity.MEDIUM:
        return (street and city) or (street and zip_code)
    if sensitivity == AddressSensitivity.HIGH:
        return street and city and zip_code
    raise ValueError(f"Unknown address sensitivity: {sensitivity!r}")


def match_email(new: NormalizedOrder, prior: NormalizedOrder, settings: DetectionSettings) -> int:
    if settings.match_email and _present_and_equal(new.email, prior.email):
        return EMAIL_POINTS
    return 0


def match_phone(new: NormalizedOrder, prior: NormalizedOrder, settings: DetectionSettings) -> int:
    if settings.match_phone and _present_and_equal(new.phone, prior.phone):
        return PHONE_POINTS
    return 0


def match_address(new: NormalizedOrder, prior: NormalizedOrder, settings: DetectionSettings) -> int:
    if settings.match_address and address_matches(
        new.address, prior.address, settings.address_sensitivity
    ):
        return ADDRESS_POINTS
    return 0


def match_sku(new: NormalizedOrder, prior: NormalizedOrder, settings: DetectionSettings) -> int:
    if settings.match_sku and new.skus & prior.skus:
        return SKU_POINTS
    return 0


def match_name(new: NormalizedOrder, prior: NormalizedOrder, settings: DetectionSettings) -> int:
    # Not gated by a settings switch: name corroborates whatever else matched.
    if _present_and_equal(new.name, prior.name):
        return NAME_POINTS
    return 0


Matcher = Callable[[NormalizedOrder, NormalizedOrder, DetectionSettings], int]


@dataclass(frozen=True)
class Criterion:
    name: str
    label: str
    matcher: Matcher


# Evaluation order is also the order of labels in the reason string.
CRITERIA: tuple[Criterion, ...] = (
    Criterion("email", "Same email", match_email),
    Criterion("phone", "Same phone", match_phone),
    Criterion("address", "Similar address", match_address),
    Criterion("sku", "Same SKU", match_sku),
    Criterion("name", "Same name", match_name),
)
