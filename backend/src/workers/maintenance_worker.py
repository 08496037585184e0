"""Maintenance worker - periodic cleanup of webhook delivery records."""

import logging
from typing import Any, Dict, Optional

from celery import shared_task
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db_session
from duplicate_orders.repository import SqlDeliveryLog

logger = logging.getLogger(__name__)


def cleanup_old_webhook_deliveries(session: Session, days_to_keep: int = 7) -> int:
    """Delete delivery records older than ``days_to_keep`` days.

    Delivery ids only need to be remembered for as long as the upstream
    platform may redeliver them.

    Returns:
        Number of deleted records
    """
    return SqlDeliveryLog(session).cleanup_old_deliveries(days_to_keep)


@shared_task(name="duplicates.cleanup_webhook_deliveries")
def cleanup_webhook_deliveries_task(days_to_keep: Optional[int] = None) -> Dict[str, Any]:
    """Scheduled via celery beat (daily)."""
    days = days_to_keep
    if days is None:
        days = get_settings().WEBHOOK_DELIVERY_RETENTION_DAYS

    with get_db_session() as session:
        deleted = cleanup_old_webhook_deliveries(session, days)

    logger.info(f"Webhook delivery cleanup complete: {deleted} deleted (kept {days} days)")
    return {"status": "success", "deleted": deleted, "days_to_keep": days}
