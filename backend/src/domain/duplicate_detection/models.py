"""Duplicate Detection Domain Models

Immutable value types flowing through the detection engine: order snapshots,
match results and the final duplicate decision.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class AddressSensitivity(str, Enum):
    """How strictly shipping address fields must agree to count as a match."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Address:
    """Shipping address as received from the storefront."""
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    sku: Optional[str]
    quantity: int = 1


@dataclass(frozen=True)
class OrderSnapshot:
    """Order as seen at evaluation time.

    All comparisons are scoped to ``shop_domain``; an order is never compared
    with an order of another shop.
    """
    order_id: str
    shop_domain: str
    created_at: datetime
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    shipping_address: Optional[Address] = None
    line_items: tuple[LineItem, ...] = ()
    order_number: Optional[str] = None
    total_price: Optional[Decimal] = None
    currency: Optional[str] = None
    dismissed: bool = False


@dataclass(frozen=True)
class MatchResult:
    """Scored match between a new order and one prior order.

    Attributes:
        confidence: Score clamped to 0..100
        reasons: Labels of contributing criteria in evaluation order
        matched_order_id: Prior order the new order duplicates
        matched_created_at: Creation time of the prior order
    """
    confidence: int
    reasons: tuple[str, ...]
    matched_order_id: str
    matched_created_at: datetime

    @property
    def reason(self) -> str:
        """Reasons joined for display, e.g. "Same email, Same SKU"."""
        return ", ".join(self.reasons)


@dataclass(frozen=True)
class DuplicateDecision:
    """Outcome of the decision policy for one new order."""
    match: Optional[MatchResult] = None
    flagged: bool = False
    notify: bool = False
    candidates_considered: int = 0
    scored_matches: tuple[MatchResult, ...] = field(default=(), compare=False)

    @classmethod
    def no_match(cls, candidates_considered: int = 0) -> "DuplicateDecision":
        return cls(candidates_considered=candidates_considered)
