"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"swipematch_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"swipematch_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SWIPES_RECORDED = Counter(
	"swipematch_swipes_recorded_total",
	"Swipes appended to the ledger",
	["action"],
)

SWIPES_REJECTED = Counter(
	"swipematch_swipes_rejected_total",
	"Swipe attempts rejected before or during recording",
	["reason"],
)

MATCHES_TOTAL = Counter(
	"swipematch_matches_total",
	"Mutual likes detected, split by whether a connection row was created",
	["result"],
)

CONNECTION_TRANSITIONS = Counter(
	"swipematch_connection_transitions_total",
	"Connection status transitions requested by participants",
	["action", "result"],
)

AUDIT_FAILURES = Counter(
	"swipematch_audit_failures_total",
	"Audit stream writes that failed",
	["event"],
)

POSTGRES_UP = Gauge(
	"swipematch_postgres_up",
	"Whether the last Postgres readiness probe succeeded",
)

REDIS_UP = Gauge(
	"swipematch_redis_up",
	"Whether the last Redis readiness probe succeeded",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_swipe_recorded(action: str) -> None:
	SWIPES_RECORDED.labels(action=action).inc()


def inc_swipe_rejected(reason: str) -> None:
	SWIPES_REJECTED.labels(reason=reason).inc()


def inc_match(result: str) -> None:
	MATCHES_TOTAL.labels(result=result).inc()


def inc_connection_transition(action: str, result: str) -> None:
	CONNECTION_TRANSITIONS.labels(action=action, result=result).inc()


def inc_audit_failure(event: str) -> None:
	AUDIT_FAILURES.labels(event=event).inc()


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1 if ok else 0)
