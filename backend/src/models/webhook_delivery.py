"""WebhookDelivery SQLAlchemy model

Upstream platforms redeliver webhooks; the unique (shop_domain, delivery_id)
constraint makes recording a delivery an atomic first-seen check.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint, Uuid

from .base import Base, utcnow


class WebhookDelivery(Base):
    __tablename__ = "webhook_delivery"
    __table_args__ = (
        UniqueConstraint("shop_domain", "delivery_id", name="uq_webhook_delivery_shop_delivery"),
        Index("ix_webhook_delivery_processed_at", "processed_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    shop_domain = Column(String(255), nullable=False)
    delivery_id = Column(String(255), nullable=False)
    topic = Column(String(100), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
