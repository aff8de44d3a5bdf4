"""Prometheus metrics for monitoring suggestion volume, decisions, and upstream health"""

from typing import Iterable
from prometheus_client import Counter, Histogram

# Suggestion metrics
suggestions_generated_counter = Counter(
    "cashflow_agent_suggestions_generated_total",
    "Suggestions generated and persisted",
    ["kind"],  # bill_partpay | bill_defer | goal_pause
)

suggestion_decision_counter = Counter(
    "cashflow_agent_suggestion_decisions_total",
    "Decisions applied to suggestions",
    ["kind", "decision"],  # accept | reject
)

confidence_histogram = Histogram(
    "cashflow_agent_suggestion_confidence",
    "Confidence of generated suggestions",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

generation_duration_histogram = Histogram(
    "cashflow_agent_generation_seconds",
    "End-to-end suggestion generation time (sensing through persistence)",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

generation_rejected_counter = Counter(
    "generation_rejected_total",
    "Generation requests rejected because one was already in flight for the user",
)

# Forecast API metrics
forecast_fetch_failures_counter = Counter(
    "forecast_fetch_failures_total",
    "Failed forecast provider calls",
    ["operation"],  # sensing | simulation
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_generation(kinds: Iterable[str], confidences: Iterable[float], duration_seconds: float) -> None:
    """Record generated suggestion mix and confidence distribution"""
    for kind in kinds:
        suggestions_generated_counter.labels(kind=kind).inc()
    for confidence in confidences:
        confidence_histogram.observe(confidence)
    generation_duration_histogram.observe(duration_seconds)


def record_decision(kind: str, decision: str) -> None:
    """Record accept/reject outcomes for acceptance-rate dashboards"""
    suggestion_decision_counter.labels(kind=kind, decision=decision).inc()
