"""Candidate window selection.

A candidate is a prior order of the same shop created within the lookback
window that ends at the new order's creation time.
"""

from datetime import datetime, timedelta
from typing import Iterable

from .models import OrderSnapshot


def window_start(new_order: OrderSnapshot, time_window_hours: int) -> datetime:
    """Inclusive lower bound of the candidate window."""
    return new_order.created_at - timedelta(hours=time_window_hours)


def select_candidates(
    new_order: OrderSnapshot,
    stored_orders: Iterable[OrderSnapshot],
    time_window_hours: int
) -> list[OrderSnapshot]:
    """Return the stored orders eligible for comparison with ``new_order``.

    Eligible orders belong to the same shop, were created in
    ``[new.created_at - window, new.created_at)``, are not the new order
    itself and have not been dismissed by an operator.

    Args:
        new_order: Order being evaluated
        stored_orders: Recent orders supplied by the caller
        time_window_hours: Lookback window from detection settings

    Returns:
        Candidates sorted oldest first (ties by order_id)
    """
    lower = window_start(new_order, time_window_hours)
    upper = new_order.created_at

    candidates = [
        order for order in stored_orders
        if order.shop_domain == new_order.shop_domain
        and order.order_id != new_order.order_id
        and not order.dismissed
        and lower <= order.created_at < upper
    ]
    candidates.sort(key=lambda o: (o.created_at, o.order_id))
    return candidates
