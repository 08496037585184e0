"""Evaluation context for log correlation.

Each processed event (webhook delivery, background job, operator action) gets
an event id; the shop and order being processed ride along so that every log
line of one evaluation can be correlated.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

event_id_var: ContextVar[Optional[str]] = ContextVar("event_id", default=None)
shop_domain_var: ContextVar[Optional[str]] = ContextVar("shop_domain", default=None)
order_id_var: ContextVar[Optional[str]] = ContextVar("order_id", default=None)


def generate_event_id() -> str:
    """Generate a new unique event ID.

    Returns:
        str: UUID v4 event ID
    """
    return str(uuid.uuid4())


def get_event_id() -> str:
    """Get current event ID from context.

    Returns:
        str: Current event ID or "no-event-id" if not set
    """
    return event_id_var.get() or "no-event-id"


@contextmanager
def evaluation_context(
    shop_domain: str,
    order_id: Optional[str] = None,
    event_id: Optional[str] = None
) -> Iterator[str]:
    """Bind shop, order and event id to the current context.

    Usage:
        with evaluation_context(shop, order_id, delivery_id):
            service.evaluate_order(order)

    Yields:
        str: The bound event id
    """
    bound_event_id = event_id or generate_event_id()
    tokens = (
        event_id_var.set(bound_event_id),
        shop_domain_var.set(shop_domain),
        order_id_var.set(order_id),
    )
    try:
        yield bound_event_id
    finally:
        order_id_var.reset(tokens[2])
        shop_domain_var.reset(tokens[1])
        event_id_var.reset(tokens[0])
