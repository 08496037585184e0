"""Tests for the duplicate detection worker tasks on SQLite."""

from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import patch

import pytest

from audit.service import AuditAction, list_order_events
from domain.duplicate_detection.ports import InvalidOrderPayloadError, NotifierPort, SettingsUnavailableError
from duplicate_orders.locks import InProcessKeyedLock
from duplicate_orders.repository import SqlOrderRepository, SqlSettingsLoader
from models.webhook_delivery import WebhookDelivery
from models.base import utcnow
from workers.base import build_lock, validate_shop_domain
from workers.duplicate_worker import (
    _retry_countdown,
    evaluate_order_task,
    process_order_event,
    process_order_update,
)
from workers.maintenance_worker import cleanup_old_webhook_deliveries, cleanup_webhook_deliveries_task

SHOP = "demo-store.myshopify.com"


class SlackOnlyNotifier(NotifierPort):

    def __init__(self):
        self.sent = []

    def dispatch_notification(self, shop_domain, notice):
        self.sent.append(notice.order.order_id)
        return ["slack"]


def _payload(order_id, created_at, **fields):
    payload = {
        "id": order_id,
        "created_at": created_at,
        "email": "jane@example.com",
        "customer": {"first_name": "Jane", "last_name": "Doe"},
        "line_items": [{"sku": "MUG-1", "quantity": 1}],
    }
    payload.update(fields)
    return payload


@pytest.fixture
def shop_settings(db_session):
    return SqlSettingsLoader(db_session).update_settings(
        SHOP, enable_notifications=True, notification_threshold=70
    )


@pytest.fixture
def run_event(db_session):
    lock = InProcessKeyedLock()
    notifier = SlackOnlyNotifier()

    def _run(payload, delivery_id=None):
        return process_order_event(
            db_session, SHOP, payload, delivery_id=delivery_id, lock=lock, notifier=notifier
        )

    _run.notifier = notifier
    return _run


class TestProcessOrderEvent:

    def test_duplicate_flagged_and_audited(self, db_session, shop_settings, run_event):
        run_event(_payload(1001, "2024-03-01T10:00:00Z"), delivery_id="d-1")
        result = run_event(_payload(1002, "2024-03-01T11:00:00Z"), delivery_id="d-2")

        assert result["status"] == "flagged"
        assert result["duplicate_of_order_id"] == "1001"
        assert result["confidence"] == 70
        assert result["reason"] == "Same email, Same name"
        assert result["notified_channels"] == ["slack"]

        record = SqlOrderRepository(db_session).get_record(SHOP, "1002")
        assert record.is_flagged is True
        actions = [e.action for e in list_order_events(db_session, SHOP, "1002")]
        assert actions == [AuditAction.FLAGGED, AuditAction.NOTIFIED]

    def test_redelivery_does_not_notify_twice(self, db_session, shop_settings, run_event):
        run_event(_payload(1001, "2024-03-01T10:00:00Z"), delivery_id="d-1")
        run_event(_payload(1002, "2024-03-01T11:00:00Z"), delivery_id="d-2")

        same_delivery = run_event(_payload(1002, "2024-03-01T11:00:00Z"), delivery_id="d-2")
        new_delivery = run_event(_payload(1002, "2024-03-01T11:00:00Z"), delivery_id="d-3")

        assert same_delivery["status"] == "duplicate_delivery"
        assert new_delivery["status"] == "already_flagged"
        assert run_event.notifier.sent == ["1002"]

    def test_stronger_match_updates_stored_flag(self, db_session, shop_settings, run_event):
        address = {"address1": "12 Main St.", "city": "Springfield", "zip": "62701", "country": "US"}
        run_event(_payload(1001, "2024-03-01T10:00:00Z", shipping_address=address))
        run_event(_payload(1002, "2024-03-01T11:00:00Z"))

        result = run_event(_payload(1002, "2024-03-01T11:00:00Z", shipping_address=address))

        record = SqlOrderRepository(db_session).get_record(SHOP, "1002")
        assert result["status"] == "already_flagged"
        assert record.match_confidence == 100
        assert record.match_reason == result["reason"]
        assert run_event.notifier.sent == ["1002"]
        actions = [e.action for e in list_order_events(db_session, SHOP, "1002")]
        assert actions == [AuditAction.FLAGGED, AuditAction.NOTIFIED, AuditAction.FLAG_UPDATED]

    def test_first_order_not_duplicate(self, db_session, shop_settings, run_event):
        result = run_event(_payload(1001, "2024-03-01T10:00:00Z"))

        assert result["status"] == "not_duplicate"
        assert result["duplicate_of_order_id"] is None

    def test_order_outside_window(self, db_session, shop_settings, run_event):
        run_event(_payload(1001, "2024-02-27T10:00:00Z"))
        result = run_event(_payload(1002, "2024-03-01T11:00:00Z"))

        assert result["status"] == "not_duplicate"

    def test_missing_settings_is_retryable(self, db_session, run_event):
        with pytest.raises(SettingsUnavailableError):
            run_event(_payload(1001, "2024-03-01T10:00:00Z"))

    def test_invalid_payload(self, db_session, shop_settings, run_event):
        with pytest.raises(InvalidOrderPayloadError):
            run_event({"email": "x@y.z"})


class TestProcessOrderUpdate:

    def test_tag_removed_resolves(self, db_session, shop_settings, run_event):
        lock = InProcessKeyedLock()
        run_event(_payload(1001, "2024-03-01T10:00:00Z"))
        run_event(_payload(1002, "2024-03-01T11:00:00Z"))

        result = process_order_update(db_session, SHOP, {"id": 1002, "tags": "vip"}, lock=lock)

        record = SqlOrderRepository(db_session).get_record(SHOP, "1002")
        assert result["status"] == "resolved"
        assert record.is_flagged is False
        assert record.resolved_by == "review_tag_removed"

    def test_tag_still_present(self, db_session, shop_settings, run_event):
        run_event(_payload(1001, "2024-03-01T10:00:00Z"))
        run_event(_payload(1002, "2024-03-01T11:00:00Z"))

        result = process_order_update(
            db_session, SHOP, {"id": 1002, "tags": "vip, Merge_Review_Candidate"}, lock=InProcessKeyedLock()
        )

        assert result["status"] == "ignored"


class TestEvaluateOrderTask:

    def test_task_commits_outcome(self, db_session, shop_settings):
        @contextmanager
        def session_scope():
            yield db_session

        with patch("workers.duplicate_worker.get_db_session", session_scope):
            result = evaluate_order_task.run(
                shop_domain="Demo-Store.myshopify.com",
                payload=_payload(1001, "2024-03-01T10:00:00Z"),
                delivery_id="d-1",
            )

        assert result["status"] == "not_duplicate"
        assert result["shop_domain"] == SHOP

    def test_task_rejects_invalid_payload(self, db_session):
        @contextmanager
        def session_scope():
            yield db_session

        with patch("workers.duplicate_worker.get_db_session", session_scope):
            result = evaluate_order_task.run(shop_domain=SHOP, payload={})

        assert result["status"] == "failed"

    def test_retry_backoff(self):
        assert [_retry_countdown(n) for n in range(3)] == [30, 60, 120]


class TestWorkerBase:

    @pytest.mark.parametrize("value", ["", "not a domain", "-bad.example.com", "shop"])
    def test_invalid_shop_domain(self, value):
        with pytest.raises(ValueError):
            validate_shop_domain(value)

    def test_shop_domain_normalized(self):
        assert validate_shop_domain(" Demo-Store.MyShopify.com ") == SHOP

    def test_memory_lock_shared(self):
        assert isinstance(build_lock(), InProcessKeyedLock)
        assert build_lock() is build_lock()


class TestCleanup:

    def test_cleanup_old_webhook_deliveries(self, db_session):
        db_session.add(WebhookDelivery(
            shop_domain=SHOP, delivery_id="old", topic="orders/create",
            processed_at=utcnow() - timedelta(days=30),
        ))
        db_session.add(WebhookDelivery(shop_domain=SHOP, delivery_id="new", topic="orders/create"))
        db_session.flush()

        assert cleanup_old_webhook_deliveries(db_session, days_to_keep=7) == 1
        assert db_session.query(WebhookDelivery).count() == 1

    def test_cleanup_task_honours_zero_days(self, db_session):
        db_session.add(WebhookDelivery(
            shop_domain=SHOP, delivery_id="d-1", topic="orders/create",
            processed_at=utcnow() - timedelta(minutes=5),
        ))
        db_session.flush()

        @contextmanager
        def session_scope():
            yield db_session

        with patch("workers.maintenance_worker.get_db_session", session_scope):
            result = cleanup_webhook_deliveries_task.run(days_to_keep=0)

        assert result["days_to_keep"] == 0
        assert result["deleted"] == 1
