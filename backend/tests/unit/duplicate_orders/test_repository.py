"""Tests for the SQLAlchemy duplicate detection adapters (SQLite)."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from domain.duplicate_detection.models import MatchResult
from domain.duplicate_detection.ports import (
    ConcurrentEvaluationError,
    OrderNotFoundError,
    SettingsUnavailableError,
)
from duplicate_orders.repository import SqlDeliveryLog, SqlOrderRepository, SqlSettingsLoader
from models.base import utcnow
from models.detection_settings import DetectionSettingsRecord
from models.shop_order import ResolvedBy, ShopOrder
from models.webhook_delivery import WebhookDelivery


MATCHED_AT = datetime(2024, 3, 1, 11, 0, tzinfo=timezone.utc)


def _match(order_id="1", confidence=90):
    return MatchResult(
        confidence=confidence,
        reasons=("Same email", "Same name"),
        matched_order_id=order_id,
        matched_created_at=MATCHED_AT,
    )


class TestSqlSettingsLoader:

    def test_missing_settings_unavailable(self, db_session, shop_domain):
        with pytest.raises(SettingsUnavailableError):
            SqlSettingsLoader(db_session).load_settings(shop_domain)

    def test_initialize_creates_defaults_once(self, db_session, shop_domain):
        loader = SqlSettingsLoader(db_session)

        loader.initialize_settings(shop_domain)
        loader.initialize_settings(shop_domain)

        assert db_session.query(DetectionSettingsRecord).count() == 1
        assert loader.load_settings(shop_domain).time_window_hours == 24

    def test_update_validates_before_writing(self, db_session, shop_domain):
        loader = SqlSettingsLoader(db_session)
        loader.update_settings(shop_domain, match_sku=True, address_sensitivity="low")

        with pytest.raises(ValidationError):
            loader.update_settings(shop_domain, notification_threshold=10)

        settings = loader.load_settings(shop_domain)
        assert settings.match_sku is True
        assert settings.address_sensitivity.value == "low"
        assert settings.notification_threshold == 80

    def test_invalid_stored_row_unavailable(self, db_session, shop_domain):
        SqlSettingsLoader(db_session).initialize_settings(shop_domain)
        record = db_session.query(DetectionSettingsRecord).one()
        record.time_window_hours = 500
        db_session.flush()

        with pytest.raises(SettingsUnavailableError):
            SqlSettingsLoader(db_session).load_settings(shop_domain)


class TestSqlOrderRepository:

    def test_save_order_upserts(self, db_session, make_order):
        repo = SqlOrderRepository(db_session)

        repo.save_order(make_order("1", customer_email="a@x.com"))
        repo.save_order(make_order("1", customer_email="b@x.com"))

        assert db_session.query(ShopOrder).count() == 1
        assert repo.get_order(make_order("1").shop_domain, "1").customer_email == "b@x.com"

    def test_round_trip_preserves_snapshot(self, db_session, make_order, home_address):
        repo = SqlOrderRepository(db_session)
        order = make_order("1", customer_email="a@x.com", address=home_address, skus=("A", "B"))

        repo.save_order(order)

        assert repo.get_order(order.shop_domain, "1") == order

    def test_save_order_keeps_flag(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("2"))
        repo.apply_flag(shop_domain, "2", _match())

        repo.save_order(make_order("2", customer_name="Edited"))

        state = repo.get_flag_state(shop_domain, "2")
        assert state.is_flagged is True
        assert state.duplicate_of_order_id == "1"

    def test_load_recent_orders_scoped(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("recent", minutes_ago=30))
        repo.save_order(make_order("old", minutes_ago=5 * 60))
        repo.save_order(make_order("foreign", minutes_ago=30, shop_domain="other.myshopify.com"))

        since = make_order("x").created_at - timedelta(hours=1)
        ids = {o.order_id for o in repo.load_recent_orders(shop_domain, since)}

        assert ids == {"recent"}

    def test_load_recent_orders_excludes_dismissed(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("1", minutes_ago=30))
        repo.apply_flag(shop_domain, "1", _match("0"))
        repo.resolve_flag(shop_domain, "1", ResolvedBy.MANUAL_DASHBOARD, dismiss=True)

        since = make_order("x").created_at - timedelta(hours=1)

        assert repo.load_recent_orders(shop_domain, since) == []

    def test_apply_and_clear_flag(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("2"))

        repo.apply_flag(shop_domain, "2", _match(confidence=85))
        record = repo.get_record(shop_domain, "2")
        assert record.match_reason == "Same email, Same name"
        assert record.match_confidence == 85
        assert record.flagged_at is not None

        repo.clear_flag(shop_domain, "2")
        state = repo.get_flag_state(shop_domain, "2")
        assert state.is_flagged is False
        assert state.duplicate_of_order_id is None

    def test_reapplying_same_link_refreshes_match(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("2"))
        repo.apply_flag(shop_domain, "2", _match(confidence=70))
        flagged_at = repo.get_record(shop_domain, "2").flagged_at

        repo.apply_flag(shop_domain, "2", _match(confidence=100))

        state = repo.get_flag_state(shop_domain, "2")
        assert state.match_confidence == 100
        assert state.match_reason == "Same email, Same name"
        assert repo.get_record(shop_domain, "2").flagged_at == flagged_at

    def test_dismissal_records_dismissed_link(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("2"))
        repo.apply_flag(shop_domain, "2", _match("1"))
        repo.resolve_flag(shop_domain, "2", ResolvedBy.MANUAL_DASHBOARD, dismiss=True)

        repo.apply_flag(shop_domain, "2", _match("3"))

        state = repo.get_flag_state(shop_domain, "2")
        assert state.is_flagged is True
        assert state.duplicate_of_order_id == "3"
        assert state.dismissed_match_order_id == "1"

    def test_concurrent_insert_is_retryable(self, db_session, make_order, monkeypatch):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("2"))
        # another worker inserted the row after this one looked it up
        monkeypatch.setattr(repo, "get_record", lambda *args, **kwargs: None)

        with pytest.raises(ConcurrentEvaluationError):
            repo.save_order(make_order("2"))

    def test_flag_unknown_order(self, db_session, shop_domain):
        with pytest.raises(OrderNotFoundError):
            SqlOrderRepository(db_session).apply_flag(shop_domain, "missing", _match())

    def test_list_flagged_orders(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("1"))
        repo.save_order(make_order("2"))
        repo.apply_flag(shop_domain, "2", _match())

        assert [r.order_id for r in repo.list_flagged_orders(shop_domain)] == ["2"]

    def test_to_dict(self, db_session, make_order, shop_domain):
        repo = SqlOrderRepository(db_session)
        repo.save_order(make_order("2", customer_email="a@x.com"))
        repo.apply_flag(shop_domain, "2", _match(confidence=85))

        data = repo.get_record(shop_domain, "2").to_dict()

        assert data["is_flagged"] is True
        assert data["duplicate_of_order_id"] == "1"
        assert data["match_confidence"] == 85
        assert data["dismissed_at"] is None


class TestSqlDeliveryLog:

    def test_first_delivery_recorded(self, db_session, shop_domain):
        log = SqlDeliveryLog(db_session)

        assert log.try_record_delivery(shop_domain, "d-1", "orders/create") is True
        assert log.try_record_delivery(shop_domain, "d-1", "orders/create") is False
        assert db_session.query(WebhookDelivery).count() == 1

    def test_delivery_ids_scoped_by_shop(self, db_session, shop_domain):
        log = SqlDeliveryLog(db_session)

        assert log.try_record_delivery(shop_domain, "d-1", "orders/create") is True
        assert log.try_record_delivery("other.myshopify.com", "d-1", "orders/create") is True

    def test_cleanup_deletes_only_old_deliveries(self, db_session, shop_domain):
        db_session.add(WebhookDelivery(
            shop_domain=shop_domain, delivery_id="old", topic="orders/create",
            processed_at=utcnow() - timedelta(days=8),
        ))
        db_session.add(WebhookDelivery(
            shop_domain=shop_domain, delivery_id="fresh", topic="orders/create",
            processed_at=utcnow() - timedelta(days=1),
        ))
        db_session.flush()

        deleted = SqlDeliveryLog(db_session).cleanup_old_deliveries(days_to_keep=7)

        assert deleted == 1
        assert [d.delivery_id for d in db_session.query(WebhookDelivery).all()] == ["fresh"]
