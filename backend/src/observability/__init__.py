"""Observability module for duplicate order detection.

Provides structured logging, evaluation context and metrics.
"""

from .logging_config import configure_logging
from .context import (
    evaluation_context,
    event_id_var,
    generate_event_id,
    get_event_id,
)
from .metrics import (
    orders_evaluated_total,
    evaluation_errors_total,
    evaluation_duration_seconds,
    duplicate_confidence,
    notifications_sent_total,
    review_actions_total,
)

__all__ = [
    # Logging
    "configure_logging",
    # Context
    "evaluation_context",
    "event_id_var",
    "generate_event_id",
    "get_event_id",
    # Metrics
    "orders_evaluated_total",
    "evaluation_errors_total",
    "evaluation_duration_seconds",
    "duplicate_confidence",
    "notifications_sent_total",
    "review_actions_total",
]
