"""Duplicate order processing: payload mapping, persistence adapters,
per-order locks, the evaluation orchestrator and operator review actions.
"""

from .payload import payload_tags, snapshot_from_payload
from .repository import SqlDeliveryLog, SqlOrderRepository, SqlSettingsLoader
from .review import dismiss_order, resolve_order
from .service import DuplicateOrderService, EvaluationOutcome, EvaluationStatus

__all__ = [
    "payload_tags",
    "snapshot_from_payload",
    "SqlDeliveryLog",
    "SqlOrderRepository",
    "SqlSettingsLoader",
    "dismiss_order",
    "resolve_order",
    "DuplicateOrderService",
    "EvaluationOutcome",
    "EvaluationStatus",
]
