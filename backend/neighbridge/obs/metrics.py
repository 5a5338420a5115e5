"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"neighbridge_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"neighbridge_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

COMMUNITIES_CREATED = Counter(
	"neighbridge_communities_created_total",
	"Communities created",
)

MEMBERSHIP_TRANSITIONS = Counter(
	"neighbridge_membership_transitions_total",
	"Membership state transitions",
	["transition"],
)

MEMBER_COUNT_CLAMPS = Counter(
	"neighbridge_member_count_clamps_total",
	"member_count decrements that would have gone negative",
)

NEARBY_QUERIES = Counter(
	"neighbridge_nearby_queries_total",
	"Proximity discovery queries",
	["kind", "mode"],
)

GEOCODING_LOOKUPS = Counter(
	"neighbridge_geocoding_lookups_total",
	"Reverse geocoding lookups",
	["result"],
)

BACKGROUND_RUNS = Counter(
	"neighbridge_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"neighbridge_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def membership_transition(transition: str) -> None:
	MEMBERSHIP_TRANSITIONS.labels(transition=transition).inc()


def nearby_query(kind: str, *, fallback: bool = False) -> None:
	NEARBY_QUERIES.labels(kind=kind, mode="fallback" if fallback else "proximity").inc()
