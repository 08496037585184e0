"""Per-shop detection settings.

Settings are validated when they are loaded. The engine assumes a valid
instance and never falls back to defaults mid-computation.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .models import AddressSensitivity

MIN_NOTIFICATION_THRESHOLD = 50
MAX_NOTIFICATION_THRESHOLD = 100
MIN_TIME_WINDOW_HOURS = 1
MAX_TIME_WINDOW_HOURS = 72

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_WEBHOOK_URL_RE = re.compile(r"^https?://[^\s/]+\S*$", re.IGNORECASE)


class DetectionSettings(BaseModel):
    """Duplicate detection configuration for one shop.

    Only ``time_window_hours``, the ``match_*`` switches, ``address_sensitivity``
    and ``notification_threshold`` influence scoring. The notification channel
    fields are read by the notification dispatcher.
    """

    time_window_hours: int = Field(
        default=24,
        ge=MIN_TIME_WINDOW_HOURS,
        le=MAX_TIME_WINDOW_HOURS,
        description="Candidate lookback window in hours (1-72)"
    )

    match_email: bool = Field(default=True, description="Compare customer email")
    match_phone: bool = Field(default=False, description="Compare customer phone")
    match_address: bool = Field(default=True, description="Compare shipping address")
    match_sku: bool = Field(default=False, description="Compare purchased SKUs")

    address_sensitivity: AddressSensitivity = Field(
        default=AddressSensitivity.MEDIUM,
        description="Address agreement tier (low, medium, high)"
    )

    notification_threshold: int = Field(
        default=80,
        ge=MIN_NOTIFICATION_THRESHOLD,
        le=MAX_NOTIFICATION_THRESHOLD,
        description="Minimum confidence for outbound alerts (50-100)"
    )

    # Notification channels
    enable_notifications: bool = False
    notification_email: Optional[str] = None
    slack_webhook_url: Optional[str] = None

    @field_validator('notification_email')
    @classmethod
    def validate_notification_email(cls, v: Optional[str]) -> Optional[str]:
        """Blank means no e-mail channel"""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not _EMAIL_RE.match(v):
            raise ValueError(f"Invalid notification_email: {v}")
        return v

    @field_validator('slack_webhook_url')
    @classmethod
    def validate_slack_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """Blank means no Slack channel"""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not _WEBHOOK_URL_RE.match(v):
            raise ValueError("slack_webhook_url must be an http(s) URL")
        return v

    class Config:
        frozen = True
        extra = "forbid"
