"""DuplicateAuditLog SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, String, Uuid

from .base import Base, PortableJSONB, utcnow


class DuplicateAuditLog(Base):
    """Append-only record of duplicate detection events.

    Actions: flagged, flag_moved, flag_updated, cleared, dismissed, resolved,
    notified
    """
    __tablename__ = "duplicate_audit_log"
    __table_args__ = (
        Index("ix_duplicate_audit_log_shop_order", "shop_domain", "order_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    shop_domain = Column(String(255), nullable=False)
    order_id = Column(String(64), nullable=False)
    action = Column(String(50), nullable=False)
    details_json = Column(PortableJSONB, nullable=True)
    performed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        """Convert audit entry to dictionary representation"""
        return {
            "id": str(self.id),
            "shop_domain": self.shop_domain,
            "order_id": self.order_id,
            "action": self.action,
            "details": self.details_json,
            "performed_at": self.performed_at.isoformat()
        }
