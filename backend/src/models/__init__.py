"""SQLAlchemy Models for duplicate order detection"""

from .base import Base
from .shop_order import ShopOrder, ResolvedBy
from .detection_settings import DetectionSettingsRecord
from .duplicate_audit_log import DuplicateAuditLog
from .webhook_delivery import WebhookDelivery

__all__ = [
    "Base",
    "ShopOrder",
    "ResolvedBy",
    "DetectionSettingsRecord",
    "DuplicateAuditLog",
    "WebhookDelivery",
]
