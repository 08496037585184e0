"""Duplicate Order Detection Domain Module

Scores a newly observed order against the recent orders of the same shop and
decides whether to flag it as a probable duplicate and whether to alert.
"""

from .engine import DuplicateDetectionEngine
from .models import (
    Address,
    AddressSensitivity,
    DuplicateDecision,
    LineItem,
    MatchResult,
    OrderSnapshot,
)
from .policy import FLAG_THRESHOLD
from .settings import DetectionSettings

__all__ = [
    "DuplicateDetectionEngine",
    "Address",
    "AddressSensitivity",
    "DuplicateDecision",
    "LineItem",
    "MatchResult",
    "OrderSnapshot",
    "FLAG_THRESHOLD",
    "DetectionSettings",
]
