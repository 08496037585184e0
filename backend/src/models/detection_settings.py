"""DetectionSettingsRecord SQLAlchemy model (one row per shop)"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, Uuid

from .base import Base, utcnow


class DetectionSettingsRecord(Base):
    """Stored duplicate detection settings of a shop.

    Values are validated into DetectionSettings when loaded; an invalid row is
    reported as unavailable settings rather than silently defaulted.
    """

    __tablename__ = "detection_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    shop_domain = Column(String(255), nullable=False, unique=True)

    time_window_hours = Column(Integer, nullable=False, default=24)
    match_email = Column(Boolean, nullable=False, default=True)
    match_phone = Column(Boolean, nullable=False, default=False)
    match_address = Column(Boolean, nullable=False, default=True)
    match_sku = Column(Boolean, nullable=False, default=False)
    address_sensitivity = Column(String(20), nullable=False, default="medium")

    enable_notifications = Column(Boolean, nullable=False, default=False)
    notification_email = Column(Text, nullable=True)
    slack_webhook_url = Column(Text, nullable=True)
    notification_threshold = Column(Integer, nullable=False, default=80)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
