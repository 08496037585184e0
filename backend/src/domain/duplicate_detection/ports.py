"""Duplicate detection ports and errors (hexagonal architecture).

The engine itself is pure. Everything with side effects sits behind one of
these ports and is driven by the evaluation orchestrator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from .models import MatchResult, OrderSnapshot
from .settings import DetectionSettings


class DuplicateDetectionError(Exception):
    """Base exception for duplicate detection."""
    pass


class RetryableEvaluationError(DuplicateDetectionError):
    """Evaluation could not run; the event should be retried later."""
    pass


class SettingsUnavailableError(RetryableEvaluationError):
    """Detection settings missing, invalid or failed to load."""
    pass


class OrderSourceError(RetryableEvaluationError):
    """Recent orders could not be loaded."""
    pass


class LockUnavailableError(RetryableEvaluationError):
    """Another evaluation of the same order holds the lock."""
    pass


class ConcurrentEvaluationError(RetryableEvaluationError):
    """Another worker stored the same order first."""
    pass


class InvalidOrderPayloadError(DuplicateDetectionError):
    """Upstream order payload cannot be mapped to an order snapshot."""
    pass


class OrderNotFoundError(DuplicateDetectionError):
    pass


class OrderNotFlaggedError(DuplicateDetectionError):
    pass


@dataclass(frozen=True)
class FlagState:
    """Persisted duplicate flag of an order.

    Attributes:
        is_flagged: Order currently flagged for review
        duplicate_of_order_id: Matched order of the current or dismissed flag
        match_confidence: Confidence of the current flag
        dismissed: Operator dismissed a flag of this order
        match_reason: Reason of the current flag
        dismissed_match_order_id: Matched order of the dismissed flag; this
            pair is never flagged again
    """
    is_flagged: bool
    duplicate_of_order_id: Optional[str] = None
    match_confidence: Optional[int] = None
    dismissed: bool = False
    match_reason: Optional[str] = None
    dismissed_match_order_id: Optional[str] = None


@dataclass(frozen=True)
class DuplicateNotice:
    """Everything a notification channel needs to describe a duplicate."""
    order: OrderSnapshot
    match: MatchResult
    settings: DetectionSettings
    matched_order: Optional[OrderSnapshot] = None


class SettingsLoaderPort(ABC):

    @abstractmethod
    def load_settings(self, shop_domain: str) -> DetectionSettings:
        """Load validated detection settings for a shop.

        Raises:
            SettingsUnavailableError: If settings are missing or invalid
        """
        pass


class OrderSourcePort(ABC):

    @abstractmethod
    def load_recent_orders(self, shop_domain: str, since: datetime) -> Sequence[OrderSnapshot]:
        """Load orders of a shop created at or after ``since``.

        Dismissed orders are excluded. Ordering is not significant.

        Raises:
            OrderSourceError: If orders cannot be loaded
        """
        pass


class OrderStorePort(ABC):

    @abstractmethod
    def get_order(self, shop_domain: str, order_id: str) -> Optional[OrderSnapshot]:
        pass

    @abstractmethod
    def get_flag_state(self, shop_domain: str, order_id: str) -> Optional[FlagState]:
        """Read the flag state, locking the order row until the unit of work ends
        where the store supports row locks.
        """
        pass

    @abstractmethod
    def save_order(self, order: OrderSnapshot) -> None:
        """Insert or update an order keyed by (shop_domain, order_id).

        Must not touch the order's flag columns.

        Raises:
            ConcurrentEvaluationError: If another worker inserted the order
                first
        """
        pass


class FlagWriterPort(ABC):

    @abstractmethod
    def apply_flag(self, shop_domain: str, order_id: str, match: MatchResult) -> None:
        """Flag an order, or refresh confidence and reason of its current link.

        Re-applying the current link keeps the original flagged_at.
        """
        pass

    @abstractmethod
    def clear_flag(self, shop_domain: str, order_id: str) -> None:
        pass

    @abstractmethod
    def resolve_flag(self, shop_domain: str, order_id: str, resolved_by: str, dismiss: bool = False) -> None:
        """Close a flag after review.

        A dismissed flag records ``duplicate_of_order_id`` as the dismissed
        link and removes the order from future candidate windows.
        """
        pass


class DeliveryLogPort(ABC):

    @abstractmethod
    def try_record_delivery(self, shop_domain: str, delivery_id: str, topic: str) -> bool:
        """Atomically record a webhook delivery.

        Returns:
            True if this is the first time the delivery is seen
        """
        pass


class NotifierPort(ABC):

    @abstractmethod
    def dispatch_notification(self, shop_domain: str, notice: DuplicateNotice) -> list[str]:
        """Send duplicate alerts; never raises for channel failures.

        Returns:
            Names of the channels that delivered successfully
        """
        pass
