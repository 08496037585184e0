"""SQLAlchemy adapters for the duplicate detection ports.

All queries filter by shop_domain. The adapters flush but never commit; the
unit of work belongs to the caller (worker task or operator action).
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from domain.duplicate_detection.models import Address, LineItem, MatchResult, OrderSnapshot
from domain.duplicate_detection.ports import (
    ConcurrentEvaluationError,
    DeliveryLogPort,
    FlagState,
    FlagWriterPort,
    OrderNotFoundError,
    OrderSourceError,
    OrderSourcePort,
    OrderStorePort,
    SettingsLoaderPort,
    SettingsUnavailableError,
)
from domain.duplicate_detection.settings import DetectionSettings
from models.base import as_utc, utcnow
from models.detection_settings import DetectionSettingsRecord
from models.shop_order import ShopOrder
from models.webhook_delivery import WebhookDelivery

logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = tuple(DetectionSettings.model_fields.keys())


def _address_to_json(address: Optional[Address]) -> Optional[dict]:
    if address is None:
        return None
    return {
        "address1": address.address1,
        "address2": address.address2,
        "city": address.city,
        "province": address.province,
        "zip": address.zip,
        "country": address.country,
    }


def _address_from_json(data: Optional[dict]) -> Optional[Address]:
    if not data:
        return None
    return Address(
        address1=data.get("address1"),
        address2=data.get("address2"),
        city=data.get("city"),
        province=data.get("province"),
        zip=data.get("zip"),
        country=data.get("country"),
    )


def to_snapshot(record: ShopOrder) -> OrderSnapshot:
    """Convert a stored order row to an OrderSnapshot."""
    return OrderSnapshot(
        order_id=record.order_id,
        shop_domain=record.shop_domain,
        created_at=as_utc(record.created_at),
        customer_email=record.customer_email,
        customer_phone=record.customer_phone,
        customer_name=record.customer_name,
        shipping_address=_address_from_json(record.shipping_address_json),
        line_items=tuple(
            LineItem(sku=item.get("sku"), quantity=int(item.get("quantity") or 1))
            for item in (record.line_items_json or [])
        ),
        order_number=record.order_number,
        total_price=Decimal(record.total_price) if record.total_price is not None else None,
        currency=record.currency,
        dismissed=record.dismissed_at is not None,
    )


class SqlSettingsLoader(SettingsLoaderPort):
    """Loads, initializes and updates per-shop detection settings."""

    def __init__(self, db: Session):
        self.db = db

    def _get_record(self, shop_domain: str) -> Optional[DetectionSettingsRecord]:
        return (
            self.db.query(DetectionSettingsRecord)
            .filter(DetectionSettingsRecord.shop_domain == shop_domain)
            .first()
        )

    @staticmethod
    def _validate(record: DetectionSettingsRecord) -> DetectionSettings:
        return DetectionSettings(**{name: getattr(record, name) for name in _SETTINGS_FIELDS})

    def load_settings(self, shop_domain: str) -> DetectionSettings:
        try:
            record = self._get_record(shop_domain)
        except SQLAlchemyError as e:
            raise SettingsUnavailableError(f"Failed to load settings for {shop_domain}: {e}") from e

        if record is None:
            raise SettingsUnavailableError(f"No detection settings stored for {shop_domain}")

        try:
            return self._validate(record)
        except ValidationError as e:
            raise SettingsUnavailableError(
                f"Invalid detection settings for {shop_domain}: {e.error_count()} errors"
            ) from e

    def initialize_settings(self, shop_domain: str) -> DetectionSettings:
        """Create the default settings row for a shop if it has none."""
        record = self._get_record(shop_domain)
        if record is None:
            defaults = DetectionSettings()
            record = DetectionSettingsRecord(
                shop_domain=shop_domain,
                **{
                    name: getattr(defaults, name)
                    for name in _SETTINGS_FIELDS
                },
            )
            record.address_sensitivity = defaults.address_sensitivity.value
            self.db.add(record)
            self.db.flush()
            logger.info(f"Initialized default detection settings for {shop_domain}")
        return self._validate(record)

    def update_settings(self, shop_domain: str, **updates: Any) -> DetectionSettings:
        """Validate and store a partial settings update.

        Raises:
            pydantic.ValidationError: If the merged settings are invalid;
                nothing is written in that case
        """
        current = self.initialize_settings(shop_domain)
        merged = DetectionSettings(**{**current.model_dump(), **updates})

        record = self._get_record(shop_domain)
        for name in _SETTINGS_FIELDS:
            setattr(record, name, getattr(merged, name))
        record.address_sensitivity = merged.address_sensitivity.value
        self.db.flush()
        return merged


class SqlOrderRepository(OrderSourcePort, OrderStorePort, FlagWriterPort):
    """Order storage and flag projection on the shop_order table."""

    def __init__(self, db: Session):
        self.db = db

    def get_record(self, shop_domain: str, order_id: str, for_update: bool = False) -> Optional[ShopOrder]:
        query = self.db.query(ShopOrder).filter(
            ShopOrder.shop_domain == shop_domain, ShopOrder.order_id == order_id
        )
        if for_update:
            # SELECT ... FOR UPDATE on PostgreSQL; SQLite renders no clause
            query = query.with_for_update()
        return query.first()

    def _require_record(self, shop_domain: str, order_id: str) -> ShopOrder:
        record = self.get_record(shop_domain, order_id)
        if record is None:
            raise OrderNotFoundError(f"Order not found: {order_id} ({shop_domain})")
        return record

    def load_recent_orders(self, shop_domain: str, since: datetime) -> Sequence[OrderSnapshot]:
        try:
            records = (
                self.db.query(ShopOrder)
                .filter(
                    ShopOrder.shop_domain == shop_domain,
                    ShopOrder.created_at >= as_utc(since),
                    ShopOrder.dismissed_at.is_(None),
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise OrderSourceError(f"Failed to load recent orders for {shop_domain}: {e}") from e

        return [to_snapshot(record) for record in records]

    def get_order(self, shop_domain: str, order_id: str) -> Optional[OrderSnapshot]:
        record = self.get_record(shop_domain, order_id)
        return to_snapshot(record) if record else None

    def get_flag_state(self, shop_domain: str, order_id: str) -> Optional[FlagState]:
        record = self.get_record(shop_domain, order_id, for_update=True)
        if record is None:
            return None
        return FlagState(
            is_flagged=record.is_flagged,
            duplicate_of_order_id=record.duplicate_of_order_id,
            match_confidence=record.match_confidence,
            dismissed=record.dismissed_at is not None,
            match_reason=record.match_reason,
            dismissed_match_order_id=record.dismissed_duplicate_of_order_id,
        )

    def save_order(self, order: OrderSnapshot) -> None:
        record = self.get_record(order.shop_domain, order.order_id)
        if record is None:
            record = ShopOrder(
                shop_domain=order.shop_domain,
                order_id=order.order_id,
                is_flagged=False,
            )
            self.db.add(record)

        record.order_number = order.order_number
        record.customer_email = order.customer_email
        record.customer_name = order.customer_name
        record.customer_phone = order.customer_phone
        record.shipping_address_json = _address_to_json(order.shipping_address)
        record.line_items_json = [
            {"sku": item.sku, "quantity": item.quantity} for item in order.line_items
        ]
        record.total_price = order.total_price
        record.currency = order.currency
        record.created_at = as_utc(order.created_at)

        try:
            self.db.flush()
        except IntegrityError as e:
            # uq_shop_order_shop_order_id: a concurrent evaluation inserted it
            raise ConcurrentEvaluationError(
                f"Order {order.order_id} ({order.shop_domain}) stored concurrently"
            ) from e

    def apply_flag(self, shop_domain: str, order_id: str, match: MatchResult) -> None:
        record = self._require_record(shop_domain, order_id)
        if not (record.is_flagged and record.duplicate_of_order_id == match.matched_order_id):
            record.flagged_at = utcnow()
        record.is_flagged = True
        record.duplicate_of_order_id = match.matched_order_id
        record.match_reason = match.reason
        record.match_confidence = match.confidence
        record.resolved_at = None
        record.resolved_by = None
        self.db.flush()

    def clear_flag(self, shop_domain: str, order_id: str) -> None:
        record = self._require_record(shop_domain, order_id)
        record.is_flagged = False
        record.flagged_at = None
        record.duplicate_of_order_id = None
        record.match_reason = None
        record.match_confidence = None
        self.db.flush()

    def resolve_flag(self, shop_domain: str, order_id: str, resolved_by: str, dismiss: bool = False) -> None:
        record = self._require_record(shop_domain, order_id)
        now = utcnow()
        record.is_flagged = False
        record.resolved_at = now
        record.resolved_by = resolved_by
        if dismiss:
            record.dismissed_at = now
            record.dismissed_duplicate_of_order_id = record.duplicate_of_order_id
        self.db.flush()

    def list_flagged_orders(self, shop_domain: str) -> list[ShopOrder]:
        return (
            self.db.query(ShopOrder)
            .filter(ShopOrder.shop_domain == shop_domain, ShopOrder.is_flagged.is_(True))
            .order_by(ShopOrder.flagged_at.desc())
            .all()
        )


class SqlDeliveryLog(DeliveryLogPort):
    """Webhook delivery de-duplication backed by a unique constraint."""

    def __init__(self, db: Session):
        self.db = db

    def try_record_delivery(self, shop_domain: str, delivery_id: str, topic: str) -> bool:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = pg_insert
        elif dialect == "sqlite":
            insert = sqlite_insert
        else:
            raise NotImplementedError(f"Delivery log not supported on {dialect}")

        stmt = (
            insert(WebhookDelivery)
            .values(shop_domain=shop_domain, delivery_id=delivery_id, topic=topic)
            .on_conflict_do_nothing(index_elements=["shop_domain", "delivery_id"])
        )
        result = self.db.execute(stmt)

        if result.rowcount == 0:
            logger.info(f"Webhook delivery {delivery_id} for {shop_domain} already recorded")
            return False
        return True

    def cleanup_old_deliveries(self, days_to_keep: int = 7) -> int:
        """Delete deliveries processed before the retention cutoff.

        Returns:
            Number of deleted records
        """
        cutoff = utcnow() - timedelta(days=days_to_keep)
        logger.info(f"Removing webhook deliveries older than {cutoff.isoformat()}")
        deleted = (
            self.db.query(WebhookDelivery)
            .filter(WebhookDelivery.processed_at < cutoff)
            .delete(synchronize_session=False)
        )
        logger.info(f"Deleted {deleted} old webhook delivery records")
        return deleted
