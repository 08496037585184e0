"""Evaluation orchestrator for incoming orders.

Drives one evaluation end to end: per-order lock, delivery de-duplication,
settings and candidate loading, the detection engine, flag reconciliation,
audit and alerting. The engine decides; this service applies the decision.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Tuple

from domain.duplicate_detection.candidate_window import window_start
from domain.duplicate_detection.engine import DuplicateDetectionEngine
from domain.duplicate_detection.models import DuplicateDecision, MatchResult, OrderSnapshot
from domain.duplicate_detection.ports import (
    DeliveryLogPort,
    DuplicateNotice,
    FlagState,
    FlagWriterPort,
    NotifierPort,
    OrderSourcePort,
    OrderStorePort,
    RetryableEvaluationError,
    SettingsLoaderPort,
)
from domain.duplicate_detection.settings import DetectionSettings
from audit.service import AuditAction
from models.shop_order import ResolvedBy
from observability.context import evaluation_context
from observability.metrics import (
    duplicate_confidence,
    evaluation_duration_seconds,
    evaluation_errors_total,
    orders_evaluated_total,
)

from .locks import KeyedLock
from .review import AuditRecorder, close_flag

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "orders/create"
DEFAULT_REVIEW_TAG = "Merge_Review_Candidate"


class EvaluationStatus(str, Enum):
    FLAGGED = "flagged"
    ALREADY_FLAGGED = "already_flagged"
    CLEARED = "cleared"
    NOT_DUPLICATE = "not_duplicate"
    DISMISSED = "dismissed"
    DUPLICATE_DELIVERY = "duplicate_delivery"
    # order updates
    RESOLVED = "resolved"
    IGNORED = "ignored"


@dataclass(frozen=True)
class EvaluationOutcome:
    """Result of processing one order event."""
    status: EvaluationStatus
    shop_domain: str
    order_id: str
    decision: Optional[DuplicateDecision] = None
    notified_channels: tuple[str, ...] = ()

    @property
    def notified(self) -> bool:
        return bool(self.notified_channels)

    def to_dict(self) -> dict:
        match = self.decision.match if self.decision else None
        return {
            "status": self.status.value,
            "shop_domain": self.shop_domain,
            "order_id": self.order_id,
            "duplicate_of_order_id": match.matched_order_id if match else None,
            "confidence": match.confidence if match else None,
            "reason": match.reason if match else None,
            "notified_channels": list(self.notified_channels),
        }


class DuplicateOrderService:
    """Applies duplicate detection to incoming order events.

    Evaluations of the same (shop_domain, order_id) are serialized by the
    keyed lock, so redelivered webhooks cannot flag or notify twice.
    Collaborator failures surface as RetryableEvaluationError and leave the
    stored flag untouched.

    ``commit`` ends the caller's unit of work. It runs while the lock is
    still held, so the next evaluation of the order reads the committed flag.
    """

    def __init__(
        self,
        settings_loader: SettingsLoaderPort,
        order_source: OrderSourcePort,
        order_store: OrderStorePort,
        flag_writer: FlagWriterPort,
        delivery_log: DeliveryLogPort,
        notifier: NotifierPort,
        lock: KeyedLock,
        audit: AuditRecorder,
        engine: Optional[DuplicateDetectionEngine] = None,
        review_tag: str = DEFAULT_REVIEW_TAG,
        commit: Optional[Callable[[], None]] = None,
    ):
        self.settings_loader = settings_loader
        self.order_source = order_source
        self.order_store = order_store
        self.flag_writer = flag_writer
        self.delivery_log = delivery_log
        self.notifier = notifier
        self.lock = lock
        self.audit = audit
        self.engine = engine or DuplicateDetectionEngine()
        self.review_tag = review_tag
        self.commit = commit or (lambda: None)

    def evaluate_order(
        self,
        order: OrderSnapshot,
        delivery_id: Optional[str] = None,
        topic: str = DEFAULT_TOPIC,
    ) -> EvaluationOutcome:
        """Evaluate a new or redelivered order and apply the decision.

        The unit of work is committed before the per-order lock is released,
        and notifications go out only after that commit.

        Args:
            order: Order snapshot mapped from the upstream payload
            delivery_id: Upstream webhook delivery id, if any
            topic: Upstream webhook topic

        Returns:
            EvaluationOutcome describing what was applied

        Raises:
            RetryableEvaluationError: Lock, settings or order loading failed;
                no flag change was made
        """
        with evaluation_context(order.shop_domain, order.order_id, delivery_id):
            with evaluation_duration_seconds.time():
                try:
                    with self.lock.hold(order.shop_domain, order.order_id):
                        outcome, notice = self._evaluate_locked(order, delivery_id, topic)
                        self.commit()
                except RetryableEvaluationError as e:
                    evaluation_errors_total.labels(error_type=type(e).__name__).inc()
                    logger.warning(f"Evaluation of order {order.order_id} deferred: {e}")
                    raise

                if notice is not None:
                    outcome = replace(outcome, notified_channels=self._notify(notice))

            orders_evaluated_total.labels(outcome=outcome.status.value).inc()
            logger.info(f"Evaluated order {order.order_id}: {outcome.to_dict()}")
            return outcome

    def _evaluate_locked(
        self,
        order: OrderSnapshot,
        delivery_id: Optional[str],
        topic: str,
    ) -> Tuple[EvaluationOutcome, Optional[DuplicateNotice]]:
        shop_domain = order.shop_domain

        if delivery_id is not None:
            if not self.delivery_log.try_record_delivery(shop_domain, delivery_id, topic):
                return EvaluationOutcome(
                    EvaluationStatus.DUPLICATE_DELIVERY, shop_domain, order.order_id
                ), None

        settings = self.settings_loader.load_settings(shop_domain)
        previous = self.order_store.get_flag_state(shop_domain, order.order_id)
        recent_orders = self.order_source.load_recent_orders(
            shop_domain, window_start(order, settings.time_window_hours)
        )

        # The dismissed pair never comes back; other candidates still count
        dismissed_link = previous.dismissed_match_order_id if previous else None
        candidates = [o for o in recent_orders if o.order_id != dismissed_link]

        decision = self.engine.evaluate(order, candidates, settings)

        self.order_store.save_order(order)

        if decision.flagged:
            return self._apply_flag(order, decision, previous, candidates, settings)

        if previous is not None and previous.is_flagged:
            self.flag_writer.clear_flag(shop_domain, order.order_id)
            self.audit(shop_domain, order.order_id, AuditAction.CLEARED, {
                "previous_duplicate_of_order_id": previous.duplicate_of_order_id,
                "previous_confidence": previous.match_confidence,
            })
            logger.info(f"Cleared stale duplicate flag on order {order.order_id}")
            return EvaluationOutcome(
                EvaluationStatus.CLEARED, shop_domain, order.order_id, decision
            ), None

        if len(candidates) < len(recent_orders):
            suppressed = self.engine.evaluate(
                order, [o for o in recent_orders if o.order_id == dismissed_link], settings
            )
            if suppressed.flagged:
                logger.info(
                    f"Order {order.order_id} matches dismissed pair "
                    f"{dismissed_link}, not re-flagging"
                )
                return EvaluationOutcome(
                    EvaluationStatus.DISMISSED, shop_domain, order.order_id, suppressed
                ), None

        return EvaluationOutcome(
            EvaluationStatus.NOT_DUPLICATE, shop_domain, order.order_id, decision
        ), None

    def _apply_flag(
        self,
        order: OrderSnapshot,
        decision: DuplicateDecision,
        previous: Optional[FlagState],
        candidates: Sequence[OrderSnapshot],
        settings: DetectionSettings,
    ) -> Tuple[EvaluationOutcome, Optional[DuplicateNotice]]:
        shop_domain = order.shop_domain
        match = decision.match
        was_flagged = previous is not None and previous.is_flagged

        if was_flagged and previous.duplicate_of_order_id == match.matched_order_id:
            return self._refresh_flag(order, decision, previous, candidates, settings)

        self.flag_writer.apply_flag(shop_domain, order.order_id, match)
        self.audit(
            shop_domain,
            order.order_id,
            AuditAction.FLAG_MOVED if was_flagged else AuditAction.FLAGGED,
            {
                "duplicate_of_order_id": match.matched_order_id,
                "previous_duplicate_of_order_id": previous.duplicate_of_order_id if was_flagged else None,
                "confidence": match.confidence,
                "reason": match.reason,
            },
        )
        duplicate_confidence.observe(match.confidence)

        notice = self._notice(order, match, candidates, settings) if decision.notify else None
        return EvaluationOutcome(
            EvaluationStatus.FLAGGED, shop_domain, order.order_id, decision
        ), notice

    def _refresh_flag(
        self,
        order: OrderSnapshot,
        decision: DuplicateDecision,
        previous: FlagState,
        candidates: Sequence[OrderSnapshot],
        settings: DetectionSettings,
    ) -> Tuple[EvaluationOutcome, Optional[DuplicateNotice]]:
        """Keep the existing link, storing the new confidence and reason.

        A link notifies at most once: again only when its stored confidence
        was below the notification threshold and now reaches it.
        """
        shop_domain = order.shop_domain
        match = decision.match
        outcome = EvaluationOutcome(
            EvaluationStatus.ALREADY_FLAGGED, shop_domain, order.order_id, decision
        )

        if (previous.match_confidence, previous.match_reason) == (match.confidence, match.reason):
            return outcome, None

        self.flag_writer.apply_flag(shop_domain, order.order_id, match)
        self.audit(shop_domain, order.order_id, AuditAction.FLAG_UPDATED, {
            "duplicate_of_order_id": match.matched_order_id,
            "previous_confidence": previous.match_confidence,
            "confidence": match.confidence,
            "reason": match.reason,
        })
        logger.info(
            f"Updated duplicate flag on order {order.order_id}: "
            f"confidence {previous.match_confidence} -> {match.confidence}"
        )

        newly_notifiable = (
            decision.notify
            and (previous.match_confidence or 0) < settings.notification_threshold
        )
        notice = self._notice(order, match, candidates, settings) if newly_notifiable else None
        return outcome, notice

    @staticmethod
    def _notice(
        order: OrderSnapshot,
        match: MatchResult,
        candidates: Iterable[OrderSnapshot],
        settings: DetectionSettings,
    ) -> DuplicateNotice:
        matched_order = next(
            (o for o in candidates if o.order_id == match.matched_order_id), None
        )
        return DuplicateNotice(
            order=order, match=match, settings=settings, matched_order=matched_order
        )

    def _notify(self, notice: DuplicateNotice) -> tuple[str, ...]:
        order = notice.order
        try:
            channels = tuple(self.notifier.dispatch_notification(order.shop_domain, notice))
        except Exception as e:
            # Alerting is best effort; the flag stays.
            logger.error(
                f"Notification for order {order.order_id} failed: {e}", exc_info=True
            )
            return ()

        if channels:
            self.audit(order.shop_domain, order.order_id, AuditAction.NOTIFIED, {
                "channels": list(channels),
                "confidence": notice.match.confidence,
            })
        return channels

    def handle_order_updated(
        self,
        shop_domain: str,
        order_id: str,
        tags: Iterable[str],
    ) -> EvaluationOutcome:
        """Resolve a flagged order once its review tag is removed upstream.

        Args:
            shop_domain: Shop the order belongs to
            order_id: Upstream order id
            tags: Current upstream order tags

        Returns:
            EvaluationOutcome with status RESOLVED or IGNORED
        """
        with evaluation_context(shop_domain, order_id):
            with self.lock.hold(shop_domain, order_id):
                state = self.order_store.get_flag_state(shop_domain, order_id)

                if state is None or not state.is_flagged:
                    logger.debug(f"Order {order_id} not tracked or not flagged, skipping")
                    return EvaluationOutcome(EvaluationStatus.IGNORED, shop_domain, order_id)

                if self.review_tag in set(tags):
                    logger.debug(f"Review tag still present on order {order_id}")
                    return EvaluationOutcome(EvaluationStatus.IGNORED, shop_domain, order_id)

                close_flag(
                    self.order_store,
                    self.flag_writer,
                    self.audit,
                    shop_domain,
                    order_id,
                    ResolvedBy.REVIEW_TAG_REMOVED,
                )
                self.commit()

            orders_evaluated_total.labels(outcome=EvaluationStatus.RESOLVED.value).inc()
            return EvaluationOutcome(EvaluationStatus.RESOLVED, shop_domain, order_id)
