"""DuplicateDetectionEngine - wires window selection, scoring and policy"""

import logging
from typing import Iterable

from .candidate_window import select_candidates
from .matchers import NormalizedOrder
from .models import DuplicateDecision, OrderSnapshot
from .policy import decide
from .scorer import score_normalized
from .settings import DetectionSettings

logger = logging.getLogger(__name__)


class DuplicateDetectionEngine:
    """Decides whether a new order duplicates a recent order of the same shop.

    The engine performs no I/O and holds no state between calls: candidate
    orders and settings are supplied by the caller, and the returned decision
    is applied by the caller.
    """

    def evaluate(
        self,
        new_order: OrderSnapshot,
        stored_orders: Iterable[OrderSnapshot],
        settings: DetectionSettings
    ) -> DuplicateDecision:
        """Evaluate a new order against recently stored orders.

        Args:
            new_order: Order being evaluated
            stored_orders: Recent orders of the shop (may include the order itself)
            settings: Validated detection settings of the shop

        Returns:
            DuplicateDecision with the winning match, flag and notify verdicts
        """
        candidates = select_candidates(new_order, stored_orders, settings.time_window_hours)

        if not candidates:
            logger.debug(
                f"No candidates for order {new_order.order_id} "
                f"in {settings.time_window_hours}h window"
            )
            return DuplicateDecision.no_match()

        normalized_new = NormalizedOrder.from_snapshot(new_order)
        matches = []
        for candidate in candidates:
            match = score_normalized(
                normalized_new, NormalizedOrder.from_snapshot(candidate), settings
            )
            if match is not None:
                matches.append(match)

        decision = decide(matches, settings, candidates_considered=len(candidates))

        if decision.flagged:
            logger.info(
                f"Order {new_order.order_id} flagged as duplicate of "
                f"{decision.match.matched_order_id} (confidence={decision.match.confidence}, "
                f"reason='{decision.match.reason}', notify={decision.notify})"
            )
        else:
            logger.info(
                f"Order {new_order.order_id} not a duplicate "
                f"({len(candidates)} candidates, {len(matches)} partial matches)"
            )

        return decision
