"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"saleradar_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"saleradar_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"saleradar_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"saleradar_socketio_events_total",
	"Socket.IO events received per namespace",
	["namespace", "event"],
)

LISTINGS_CREATED = Counter(
	"saleradar_listings_created_total",
	"Listings published",
)

LISTINGS_ENDED = Counter(
	"saleradar_listings_ended_total",
	"Listings ended",
	["actor"],
)

FANOUT_EVENTS = Counter(
	"saleradar_fanout_events_total",
	"Listing creation events fanned out",
)

FANOUT_OUTCOMES = Counter(
	"saleradar_fanout_outcomes_total",
	"Per-registration fan-out outcomes",
	["outcome"],
)

FANOUT_DURATION = Histogram(
	"saleradar_fanout_duration_seconds",
	"Wall time spent fanning out a single listing",
	buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

DELIVERY_FAILURES = Counter(
	"saleradar_push_delivery_failures_total",
	"Push deliveries that failed",
	["kind"],
)

REGISTRATIONS_PRUNED = Counter(
	"saleradar_registrations_pruned_total",
	"Registration records removed after an endpoint was reported invalid",
)

REGISTRATION_UPSERTS = Counter(
	"saleradar_registration_upserts_total",
	"Registration opt-ins and refreshes",
)

FEED_RECOMPUTES = Counter(
	"saleradar_feed_recomputes_total",
	"Live feed recomputations",
	["trigger"],
)

FEED_SESSIONS = Gauge(
	"saleradar_feed_sessions_active",
	"Viewer feed sessions currently attached",
)

GEOCODE_LOOKUPS = Counter(
	"saleradar_geocode_lookups_total",
	"Geocoder lookups by direction (reverse|forward) and result",
	["direction", "result"],
)

ADDRESS_REJECTIONS = Counter(
	"saleradar_listing_address_rejections_total",
	"Listing addresses refused at creation",
	["reason"],
)

STREAM_LAG = Gauge(
	"saleradar_stream_lag_seconds",
	"Age gap between the listing stream head and a consumer cursor",
	["consumer"],
)

LOCATION_FAILURES = Counter(
	"saleradar_location_failures_total",
	"Location acquisition failures",
	["kind", "terminal"],
)

REDIS_UP = Gauge("saleradar_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("saleradar_redis_latency_seconds", "Redis ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_listing_created() -> None:
	LISTINGS_CREATED.inc()


def inc_listing_ended(actor: str) -> None:
	LISTINGS_ENDED.labels(actor=actor).inc()


def record_fanout(outcomes: dict[str, int], duration_seconds: float) -> None:
	FANOUT_EVENTS.inc()
	FANOUT_DURATION.observe(duration_seconds)
	for outcome, count in outcomes.items():
		if count:
			FANOUT_OUTCOMES.labels(outcome=outcome).inc(count)


def inc_delivery_failure(kind: str) -> None:
	DELIVERY_FAILURES.labels(kind=kind).inc()


def inc_registrations_pruned(count: int = 1) -> None:
	REGISTRATIONS_PRUNED.inc(count)


def inc_registration_upsert() -> None:
	REGISTRATION_UPSERTS.inc()


def inc_feed_recompute(trigger: str) -> None:
	FEED_RECOMPUTES.labels(trigger=trigger).inc()


def feed_session_opened() -> None:
	FEED_SESSIONS.inc()


def feed_session_closed() -> None:
	FEED_SESSIONS.dec()


def inc_geocode_lookup(result: str, *, direction: str = "reverse") -> None:
	GEOCODE_LOOKUPS.labels(direction=direction, result=result).inc()


def inc_address_rejected(reason: str) -> None:
	ADDRESS_REJECTIONS.labels(reason=reason).inc()


def set_stream_lag(consumer: str, seconds: float) -> None:
	STREAM_LAG.labels(consumer=consumer).set(seconds)


def inc_location_failure(kind: str, *, terminal: bool) -> None:
	LOCATION_FAILURES.labels(kind=kind, terminal="true" if terminal else "false").inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
