"""Base utilities for shop-scoped background tasks.

Every duplicate detection task carries the shop domain explicitly:

@shared_task(name="duplicates.some_task", bind=True)
def some_task(self, shop_domain: str, ...) -> Dict[str, Any]:
    shop = validate_shop_domain(shop_domain)
    with get_db_session() as session:
        service = build_service(session)
        ...

Rules:
1. ALWAYS pass shop_domain explicitly to task.delay()
2. NEVER derive the shop from global state in workers
3. ALWAYS filter queries by shop_domain
"""

import logging
import re
from functools import partial
from typing import Optional

from sqlalchemy.orm import Session

from audit.service import log_duplicate_event
from config import Settings, get_settings
from domain.duplicate_detection.ports import NotifierPort
from duplicate_orders.locks import InProcessKeyedLock, KeyedLock, RedisKeyedLock
from duplicate_orders.repository import SqlDeliveryLog, SqlOrderRepository, SqlSettingsLoader
from duplicate_orders.service import DuplicateOrderService
from notifications.service import NotificationDispatcher

logger = logging.getLogger(__name__)

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$")

# Shared by all tasks of one worker process when LOCK_BACKEND=memory
_process_lock: Optional[InProcessKeyedLock] = None


def validate_shop_domain(shop_domain: str) -> str:
    """Validate and normalize a shop domain passed to a task.

    Returns:
        str: Lowercased shop domain

    Raises:
        ValueError: If shop_domain is missing or not a host name
    """
    if not shop_domain or not isinstance(shop_domain, str):
        raise ValueError(
            "shop_domain parameter is required for all shop-scoped tasks. "
            "Ensure you pass shop_domain=... when enqueuing the task."
        )

    normalized = shop_domain.strip().lower()
    if len(normalized) > 255 or not _SHOP_DOMAIN_RE.match(normalized):
        raise ValueError(f"Invalid shop_domain format '{shop_domain}'")
    return normalized


def build_lock(app_settings: Optional[Settings] = None) -> KeyedLock:
    """Per-order evaluation lock for the configured LOCK_BACKEND."""
    global _process_lock
    cfg = app_settings or get_settings()

    if cfg.LOCK_BACKEND == "redis":
        return RedisKeyedLock.from_url(
            cfg.REDIS_URL,
            timeout=cfg.LOCK_TIMEOUT_SECONDS,
            blocking_timeout=cfg.LOCK_BLOCKING_TIMEOUT_SECONDS,
        )

    if cfg.LOCK_BACKEND == "memory":
        if _process_lock is None:
            _process_lock = InProcessKeyedLock(blocking_timeout=cfg.LOCK_BLOCKING_TIMEOUT_SECONDS)
        return _process_lock

    raise ValueError(f"Unknown LOCK_BACKEND '{cfg.LOCK_BACKEND}'")


def build_service(
    session: Session,
    lock: Optional[KeyedLock] = None,
    notifier: Optional[NotifierPort] = None,
    app_settings: Optional[Settings] = None,
) -> DuplicateOrderService:
    """Wire a DuplicateOrderService onto one database session.

    The service commits the session before releasing the per-order lock.
    """
    cfg = app_settings or get_settings()
    orders = SqlOrderRepository(session)

    return DuplicateOrderService(
        settings_loader=SqlSettingsLoader(session),
        order_source=orders,
        order_store=orders,
        flag_writer=orders,
        delivery_log=SqlDeliveryLog(session),
        notifier=notifier or NotificationDispatcher(cfg),
        lock=lock or build_lock(cfg),
        audit=partial(log_duplicate_event, session),
        review_tag=cfg.REVIEW_TAG,
        commit=session.commit,
    )
