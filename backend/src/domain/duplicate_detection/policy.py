"""Decision policy: flagging, best-match selection and notification gating."""

from typing import Iterable, Optional

from .models import DuplicateDecision, MatchResult
from .settings import DetectionSettings

# Fixed design constant; not merchant-configurable.
FLAG_THRESHOLD = 70


def select_best_match(matches: Iterable[MatchResult]) -> Optional[MatchResult]:
    """Pick the winning match among those clearing the flag threshold.

    Highest confidence wins; ties go to the oldest matched order, then to the
    lowest order id, so re-evaluation is stable.
    """
    eligible = [m for m in matches if m.confidence >= FLAG_THRESHOLD]
    if not eligible:
        return None
    return min(
        eligible,
        key=lambda m: (-m.confidence, m.matched_created_at, m.matched_order_id)
    )


def decide(
    matches: Iterable[MatchResult],
    settings: DetectionSettings,
    candidates_considered: int = 0
) -> DuplicateDecision:
    """Turn scored matches into a flag/notify decision.

    A flagged order below the notification threshold stays flagged but
    generates no outbound alert.
    """
    matches = tuple(matches)
    best = select_best_match(matches)

    if best is None:
        return DuplicateDecision(
            candidates_considered=candidates_considered,
            scored_matches=matches,
        )

    return DuplicateDecision(
        match=best,
        flagged=True,
        notify=best.confidence >= settings.notification_threshold,
        candidates_considered=candidates_considered,
        scored_matches=matches,
    )
