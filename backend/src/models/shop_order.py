"""ShopOrder SQLAlchemy model

Stores every order observed for a shop, together with the projection of its
latest duplicate evaluation (flag, matched order, confidence, reason) and the
operator's review outcome.
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean, Column, DateTime, Index, Integer, Numeric, String, Text,
    UniqueConstraint, Uuid
)

from .base import Base, PortableJSONB, utcnow


class ResolvedBy:
    """Values of ShopOrder.resolved_by"""
    MANUAL_DASHBOARD = "manual_dashboard"
    REVIEW_TAG_REMOVED = "review_tag_removed"
    AUTO_MERGED = "auto_merged"

    ALL = (MANUAL_DASHBOARD, REVIEW_TAG_REMOVED, AUTO_MERGED)


class ShopOrder(Base):
    """Order of one shop with its duplicate flag state.

    Multi-tenant isolation: All queries MUST filter by shop_domain.
    """

    __tablename__ = "shop_order"
    __table_args__ = (
        UniqueConstraint("shop_domain", "order_id", name="uq_shop_order_shop_order_id"),
        Index("ix_shop_order_shop_created_at", "shop_domain", "created_at"),
        Index("ix_shop_order_shop_flagged", "shop_domain", "is_flagged"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    shop_domain = Column(String(255), nullable=False)
    order_id = Column(String(64), nullable=False, comment="Upstream order id")
    order_number = Column(String(64), nullable=True)

    # Customer and shipping data used for matching
    customer_email = Column(Text, nullable=True)
    customer_name = Column(Text, nullable=True)
    customer_phone = Column(Text, nullable=True)
    shipping_address_json = Column(
        PortableJSONB,
        nullable=True,
        comment="{address1, address2, city, province, zip, country}"
    )
    line_items_json = Column(
        PortableJSONB,
        nullable=False,
        default=list,
        comment="[{sku, quantity}]"
    )

    total_price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    # Duplicate flag projection
    is_flagged = Column(Boolean, nullable=False, default=False)
    flagged_at = Column(DateTime(timezone=True), nullable=True)
    duplicate_of_order_id = Column(String(64), nullable=True)
    match_reason = Column(Text, nullable=True)
    match_confidence = Column(Integer, nullable=True, comment="0-100")

    # Review outcome
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(50), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_duplicate_of_order_id = Column(
        String(64),
        nullable=True,
        comment="Matched order of the dismissed flag, never flagged again"
    )

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        """Convert order to dictionary representation"""
        return {
            "id": str(self.id),
            "shop_domain": self.shop_domain,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address_json,
            "line_items": self.line_items_json,
            "total_price": str(self.total_price) if self.total_price is not None else None,
            "currency": self.currency,
            "created_at": self.created_at.isoformat(),
            "is_flagged": self.is_flagged,
            "flagged_at": self.flagged_at.isoformat() if self.flagged_at else None,
            "duplicate_of_order_id": self.duplicate_of_order_id,
            "match_reason": self.match_reason,
            "match_confidence": self.match_confidence,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "dismissed_at": self.dismissed_at.isoformat() if self.dismissed_at else None,
            "dismissed_duplicate_of_order_id": self.dismissed_duplicate_of_order_id,
        }
