"""Duplicate detection worker - Celery tasks for order webhook events.

Webhook receivers enqueue the raw order payload; the tasks map it, evaluate
it and commit the outcome in one unit of work while holding the per-order
lock. Alerts are sent after that commit. Retryable failures (lock busy,
settings or orders unavailable, concurrent insert) roll the unit of work
back, including the delivery record, and are retried with exponential
backoff.
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db_session
from domain.duplicate_detection.ports import (
    InvalidOrderPayloadError,
    NotifierPort,
    RetryableEvaluationError,
)
from duplicate_orders.locks import KeyedLock
from duplicate_orders.payload import payload_tags, snapshot_from_payload
from duplicate_orders.service import DEFAULT_TOPIC

from .base import build_service, validate_shop_domain

logger = logging.getLogger(__name__)


def process_order_event(
    session: Session,
    shop_domain: str,
    payload: Dict[str, Any],
    delivery_id: Optional[str] = None,
    topic: str = DEFAULT_TOPIC,
    lock: Optional[KeyedLock] = None,
    notifier: Optional[NotifierPort] = None,
) -> Dict[str, Any]:
    """Map and evaluate one order webhook payload.

    Returns:
        Dict with the evaluation outcome (see EvaluationOutcome.to_dict)

    Raises:
        InvalidOrderPayloadError: If the payload cannot be mapped
        RetryableEvaluationError: If the evaluation must be retried
    """
    order = snapshot_from_payload(shop_domain, payload)
    service = build_service(session, lock=lock, notifier=notifier)
    return service.evaluate_order(order, delivery_id=delivery_id, topic=topic).to_dict()


def process_order_update(
    session: Session,
    shop_domain: str,
    payload: Dict[str, Any],
    lock: Optional[KeyedLock] = None,
) -> Dict[str, Any]:
    """Resolve a flagged order whose review tag was removed upstream."""
    if not payload or payload.get("id") is None:
        raise InvalidOrderPayloadError(f"Order update for {shop_domain} has no id")

    service = build_service(session, lock=lock)
    outcome = service.handle_order_updated(
        shop_domain, str(payload["id"]), payload_tags(payload)
    )
    return outcome.to_dict()


def _retry_countdown(retries: int) -> int:
    return get_settings().EVALUATION_RETRY_BACKOFF_SECONDS * 2 ** retries  # 30s, 60s, 120s


@shared_task(name="duplicates.evaluate_order", bind=True, max_retries=3)
def evaluate_order_task(
    self,
    shop_domain: str,
    payload: Dict[str, Any],
    delivery_id: Optional[str] = None,
    topic: str = DEFAULT_TOPIC,
) -> Dict[str, Any]:
    """Evaluate a created order for duplicates (background task).

    Args:
        shop_domain: Shop the webhook was delivered for (REQUIRED)
        payload: Decoded order JSON
        delivery_id: Upstream webhook delivery id, used for de-duplication
        topic: Upstream webhook topic

    Returns:
        Dict with the evaluation outcome, or status 'failed' for payloads
        that can never be evaluated

    Example:
        evaluate_order_task.delay(
            shop_domain=shop,
            payload=order_json,
            delivery_id=request.headers["X-Webhook-Id"],
        )
    """
    shop = validate_shop_domain(shop_domain)

    try:
        with get_db_session() as session:
            return process_order_event(session, shop, payload, delivery_id, topic)

    except InvalidOrderPayloadError as e:
        # Retrying cannot fix a malformed payload
        logger.error(f"Rejected order payload for {shop}: {e}")
        return {"status": "failed", "shop_domain": shop, "error": str(e)}

    except RetryableEvaluationError as e:
        logger.warning(
            f"Order evaluation for {shop} will be retried "
            f"(attempt {self.request.retries + 1}): {e}"
        )
        raise self.retry(
            exc=e,
            countdown=_retry_countdown(self.request.retries),
            max_retries=get_settings().EVALUATION_MAX_RETRIES,
        )


@shared_task(name="duplicates.handle_order_updated", bind=True, max_retries=3)
def handle_order_updated_task(self, shop_domain: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve flagged orders whose review tag was removed (background task)."""
    shop = validate_shop_domain(shop_domain)

    try:
        with get_db_session() as session:
            return process_order_update(session, shop, payload)

    except InvalidOrderPayloadError as e:
        logger.error(f"Rejected order update for {shop}: {e}")
        return {"status": "failed", "shop_domain": shop, "error": str(e)}

    except RetryableEvaluationError as e:
        raise self.retry(
            exc=e,
            countdown=_retry_countdown(self.request.retries),
            max_retries=get_settings().EVALUATION_MAX_RETRIES,
        )
