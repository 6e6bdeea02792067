"""Fixed-window rate limiting backed by Redis counters."""

from __future__ import annotations

import math
import time
from typing import Optional

from saleradar.domain.errors import RateLimitedError
from saleradar.infra.redis import redis_client

# (limit, window_seconds) per action.
LIMITS = {
	"listing_create": (5, 60),
	"registration_upsert": (30, 60),
	"feed_location": (30, 10),
	"feed_radius": (10, 10),
}


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""

	if limit <= 0:
		return False
	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	key = f"rl:{kind}:{actor_id}:{slot}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return int(count) <= limit


async def allow_action(kind: str, actor_id: str) -> bool:
	limit, window = LIMITS[kind]
	return await allow(kind, actor_id, limit=limit, window_seconds=window)


async def enforce(kind: str, actor_id: str) -> None:
	if not await allow_action(kind, actor_id):
		raise RateLimitedError()
