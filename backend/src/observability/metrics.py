"""Prometheus metrics for duplicate order detection.

Defines operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram

orders_evaluated_total = Counter(
    "dupeguard_orders_evaluated_total",
    "Total order evaluations by outcome",
    ["outcome"]  # flagged|already_flagged|cleared|not_duplicate|dismissed|duplicate_delivery
)

evaluation_errors_total = Counter(
    "dupeguard_evaluation_errors_total",
    "Evaluations aborted for retry",
    ["error_type"]
)

evaluation_duration_seconds = Histogram(
    "dupeguard_evaluation_duration_seconds",
    "Time spent evaluating one order event in seconds",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

duplicate_confidence = Histogram(
    "dupeguard_duplicate_confidence",
    "Confidence of flagged duplicates",
    buckets=[70, 75, 80, 85, 90, 95, 100]
)

notifications_sent_total = Counter(
    "dupeguard_notifications_sent_total",
    "Duplicate alerts by channel and status",
    ["channel", "status"]  # channel: email|slack, status: success|error|skipped
)

review_actions_total = Counter(
    "dupeguard_review_actions_total",
    "Operator review actions on flagged orders",
    ["action"]  # dismissed|resolved
)
