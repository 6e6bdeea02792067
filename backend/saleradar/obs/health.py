"""Liveness and readiness for the API and the listing-stream consumers.

Readiness fails when Redis is unreachable or when an enabled stream consumer
(change feed or fan-out worker) has stopped. Each consumer also reports how
far its cursor trails the head of ``listings:changes``.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from redis.exceptions import RedisError

from saleradar.domain.listings.streams import STREAM_LISTING
from saleradar.infra.redis import redis_client
from saleradar.obs import metrics

if TYPE_CHECKING:  # pragma: no cover
	from saleradar.services import Services

LOGGER = logging.getLogger(__name__)


def _entry_ms(entry_id: str) -> int:
	return int(entry_id.split("-", 1)[0])


def stream_lag_seconds(head: str, cursor: Optional[str]) -> Optional[float]:
	"""Seconds between the newest entry and ``cursor``; ``None`` before the consumer has a cursor."""
	if cursor is None:
		return None
	return max(0.0, (_entry_ms(head) - _entry_ms(cursor)) / 1000.0)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except (RedisError, OSError, asyncio.TimeoutError) as exc:
		metrics.mark_redis(False)
		LOGGER.warning("health.redis_unavailable", exc_info=True)
		return {"ok": False, "error": type(exc).__name__}
	latency = perf_counter() - start
	metrics.mark_redis(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def _consumer_status(services: "Services", *, redis_ok: bool) -> Dict[str, Dict[str, Any]]:
	states = services.worker_states()
	if not redis_ok:
		return {name: {"state": state, "lag_seconds": None} for name, state in states.items()}
	head = await redis_client.last_stream_id(STREAM_LISTING)
	cursors = {
		"change_feed": services.change_feed.cursor,
		"fanout": await services.fanout_worker.stored_cursor(),
	}
	consumers: Dict[str, Dict[str, Any]] = {}
	for name, state in states.items():
		lag = stream_lag_seconds(head, cursors.get(name))
		if lag is not None:
			metrics.set_stream_lag(name, lag)
		consumers[name] = {"state": state, "lag_seconds": lag}
	return consumers


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(services: "Services") -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status()
	consumers = await _consumer_status(services, redis_ok=bool(redis_state.get("ok")))
	stopped = sorted(name for name, item in consumers.items() if item["state"] == "stopped")
	ok = bool(redis_state.get("ok")) and not stopped
	payload: Dict[str, Any] = {
		"status": "ok" if ok else "degraded",
		"checks": {"redis": redis_state, "consumers": consumers},
	}
	if stopped:
		LOGGER.warning("health.consumers_stopped", extra={"consumers": stopped})
	return (200 if ok else 503), payload
