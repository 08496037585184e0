"""Operator review actions on flagged orders.

Dismissing a flag marks the pair as "not a duplicate": the order leaves the
review queue and never becomes a candidate again. Resolving a flag only
closes it (handled in the dashboard, review tag removed upstream, merged).
"""

import logging
from functools import partial
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from audit.service import AuditAction, log_duplicate_event
from domain.duplicate_detection.ports import (
    FlagState,
    FlagWriterPort,
    OrderNotFlaggedError,
    OrderNotFoundError,
    OrderStorePort,
)
from models.shop_order import ResolvedBy
from observability.metrics import review_actions_total

from .repository import SqlOrderRepository

logger = logging.getLogger(__name__)

AuditRecorder = Callable[[str, str, str, Optional[Dict[str, Any]]], Any]


def close_flag(
    order_store: OrderStorePort,
    flag_writer: FlagWriterPort,
    audit: AuditRecorder,
    shop_domain: str,
    order_id: str,
    resolved_by: str,
    dismiss: bool = False,
) -> FlagState:
    """Close the flag of a currently flagged order.

    Args:
        order_store: Flag state lookup
        flag_writer: Flag persistence
        audit: Audit recorder, called as audit(shop, order_id, action, details)
        shop_domain: Shop the order belongs to
        order_id: Upstream order id
        resolved_by: One of ResolvedBy
        dismiss: Dismiss instead of resolve

    Returns:
        FlagState before the flag was closed

    Raises:
        OrderNotFoundError: If the order is not tracked
        OrderNotFlaggedError: If the order is not flagged
    """
    state = order_store.get_flag_state(shop_domain, order_id)
    if state is None:
        raise OrderNotFoundError(f"Order not found: {order_id} ({shop_domain})")
    if not state.is_flagged:
        raise OrderNotFlaggedError(f"Order {order_id} is not flagged")

    flag_writer.resolve_flag(shop_domain, order_id, resolved_by, dismiss=dismiss)

    action = AuditAction.DISMISSED if dismiss else AuditAction.RESOLVED
    audit(shop_domain, order_id, action, {
        "resolved_by": resolved_by,
        "duplicate_of_order_id": state.duplicate_of_order_id,
        "confidence": state.match_confidence,
    })
    review_actions_total.labels(action=action).inc()

    logger.info(
        f"Order {order_id} {action} by {resolved_by} "
        f"(was duplicate of {state.duplicate_of_order_id})"
    )
    return state


def dismiss_order(db: Session, shop_domain: str, order_id: str) -> FlagState:
    """Dismiss a flagged order from the dashboard."""
    orders = SqlOrderRepository(db)
    return close_flag(
        orders,
        orders,
        partial(log_duplicate_event, db),
        shop_domain,
        order_id,
        ResolvedBy.MANUAL_DASHBOARD,
        dismiss=True,
    )


def resolve_order(
    db: Session,
    shop_domain: str,
    order_id: str,
    resolved_by: str = ResolvedBy.MANUAL_DASHBOARD,
) -> FlagState:
    if resolved_by not in ResolvedBy.ALL:
        raise ValueError(f"Unknown resolved_by '{resolved_by}'")

    orders = SqlOrderRepository(db)
    return close_flag(
        orders,
        orders,
        partial(log_duplicate_event, db),
        shop_domain,
        order_id,
        resolved_by,
    )
