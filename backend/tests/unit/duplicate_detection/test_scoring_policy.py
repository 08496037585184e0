"""Unit tests for weighted scoring and the decision policy."""

from datetime import datetime, timedelta, timezone

from domain.duplicate_detection.models import AddressSensitivity, LineItem, MatchResult
from domain.duplicate_detection.policy import FLAG_THRESHOLD, decide, select_best_match
from domain.duplicate_detection.scorer import clamp_confidence, score_pair
from domain.duplicate_detection.settings import DetectionSettings

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _match(order_id, confidence, minutes=0):
    return MatchResult(
        confidence=confidence,
        reasons=("Same email",),
        matched_order_id=order_id,
        matched_created_at=T0 + timedelta(minutes=minutes),
    )


class TestScorePair:

    def test_no_shared_field_is_no_match(self, make_order):
        new = make_order("2", customer_email="a@x.com", customer_name="A")
        prior = make_order("1", minutes_ago=5, customer_email="b@x.com", customer_name="B")
        assert score_pair(new, prior, DetectionSettings()) is None

    def test_reasons_follow_evaluation_order(self, make_order):
        settings = DetectionSettings(match_sku=True)
        new = make_order("2", skus=("S",), customer_email="a@x.com", customer_name="Ann")
        prior = make_order("1", minutes_ago=5, skus=("S",), customer_email="A@x.com", customer_name="ann")

        result = score_pair(new, prior, settings)

        assert result.reasons == ("Same email", "Same SKU", "Same name")
        assert result.reason == "Same email, Same SKU, Same name"
        assert result.matched_order_id == "1"

    def test_confidence_clamped_to_100(self, make_order, home_address):
        settings = DetectionSettings(
            match_email=True, match_phone=True, match_address=True, match_sku=True,
            address_sensitivity=AddressSensitivity.HIGH,
        )
        fields = dict(
            customer_email="a@x.com", customer_phone="2125551234",
            customer_name="Ann", skus=("S",), address=home_address,
        )
        result = score_pair(make_order("2", **fields), make_order("1", minutes_ago=1, **fields), settings)

        assert result.confidence == 100
        assert len(result.reasons) == 5

    def test_disabling_a_criterion_never_increases_confidence(self, make_order):
        fields = dict(customer_email="a@x.com", customer_name="Ann", skus=("S",))
        new, prior = make_order("2", **fields), make_order("1", minutes_ago=1, **fields)

        enabled = score_pair(new, prior, DetectionSettings(match_sku=True))
        disabled = score_pair(new, prior, DetectionSettings(match_sku=False))

        assert disabled.confidence <= enabled.confidence

    def test_line_item_order_irrelevant(self, make_order):
        settings = DetectionSettings(match_email=False, match_address=False, match_sku=True)
        prior = make_order("1", minutes_ago=1, skus=("A", "B"), customer_name="Ann")
        forward = make_order("2", skus=("A", "Z"), customer_name="Ann")
        backward = make_order("2", skus=("Z", "A"), customer_name="Ann")

        assert score_pair(forward, prior, settings) == score_pair(backward, prior, settings)

    def test_clamp_confidence(self):
        assert clamp_confidence(220) == 100
        assert clamp_confidence(70) == 70
        assert clamp_confidence(-5) == 0


class TestSelectBestMatch:

    def test_highest_confidence_wins(self):
        best = select_best_match([_match("1", 70), _match("2", 90), _match("3", 80)])
        assert best.matched_order_id == "2"

    def test_tie_goes_to_earliest_created(self):
        later = _match("1", 90, minutes=10)
        earlier = _match("2", 90, minutes=0)
        assert select_best_match([later, earlier]).matched_order_id == "2"

    def test_full_tie_goes_to_lowest_order_id(self):
        assert select_best_match([_match("b", 90), _match("a", 90)]).matched_order_id == "a"

    def test_below_threshold_is_ignored(self):
        assert select_best_match([_match("1", FLAG_THRESHOLD - 1)]) is None


class TestDecide:

    def test_flag_threshold_is_inclusive(self):
        decision = decide([_match("1", 70)], DetectionSettings())
        assert decision.flagged is True
        assert decision.match.confidence == 70

    def test_flagged_below_notification_threshold_does_not_notify(self):
        decision = decide([_match("1", 75)], DetectionSettings(notification_threshold=80))
        assert decision.flagged is True
        assert decision.notify is False

    def test_notify_at_threshold(self):
        decision = decide([_match("1", 80)], DetectionSettings(notification_threshold=80))
        assert decision.notify is True

    def test_no_eligible_match(self):
        decision = decide([_match("1", 50)], DetectionSettings(), candidates_considered=3)
        assert decision.flagged is False
        assert decision.match is None
        assert decision.notify is False
        assert decision.candidates_considered == 3
