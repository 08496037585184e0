"""Weighted duplicate scoring.

Sums the points of every satisfied criterion for one (new order, candidate)
pair. The raw sum can reach 220 (4 x 50 + 20), so it is clamped to 0..100.
"""

import logging
from typing import Optional

from .matchers import CRITERIA, NormalizedOrder
from .models import MatchResult, OrderSnapshot
from .settings import DetectionSettings

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 100


def clamp_confidence(raw_score: int) -> int:
    return max(0, min(MAX_CONFIDENCE, raw_score))


def score_normalized(
    new: NormalizedOrder,
    prior: NormalizedOrder,
    settings: DetectionSettings
) -> Optional[MatchResult]:
    """Score a pre-normalized pair.

    Returns:
        MatchResult, or None when no criterion contributed
    """
    raw_score = 0
    reasons = []

    for criterion in CRITERIA:
        points = criterion.matcher(new, prior, settings)
        if points:
            raw_score += points
            reasons.append(criterion.label)

    if not reasons:
        return None

    result = MatchResult(
        confidence=clamp_confidence(raw_score),
        reasons=tuple(reasons),
        matched_order_id=prior.order.order_id,
        matched_created_at=prior.order.created_at,
    )
    logger.debug(
        f"Scored order {new.order.order_id} against {prior.order.order_id}: "
        f"raw={raw_score} confidence={result.confidence} reason='{result.reason}'"
    )
    return result


def score_pair(
    new_order: OrderSnapshot,
    candidate: OrderSnapshot,
    settings: DetectionSettings
) -> Optional[MatchResult]:
    """Score a new order against one candidate.

    Args:
        new_order: Order being evaluated
        candidate: Prior order from the candidate window
        settings: Validated detection settings

    Returns:
        MatchResult with clamped confidence and ordered reasons, or None if
        the pair shares nothing
    """
    return score_normalized(
        NormalizedOrder.from_snapshot(new_order),
        NormalizedOrder.from_snapshot(candidate),
        settings,
    )
