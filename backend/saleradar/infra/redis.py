"""Redis connection management.

Provides a stable proxy object so imports like `from saleradar.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import redis.asyncio as redis

from saleradar.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	async def scan_keys(self, pattern: str, *, count: int = 200) -> AsyncIterator[str]:
		"""Iterate keys matching ``pattern`` with SCAN so writers are never blocked.

		SCAN guarantees that keys present for the whole iteration are returned;
		keys created or removed mid-scan may or may not appear.
		"""
		async for key in self._client.scan_iter(match=pattern, count=count):
			yield str(key)

	async def last_stream_id(self, name: str) -> str:
		"""Return the id of the newest entry in ``name`` or ``0-0`` when empty."""
		entries = await self._client.xrevrange(name, count=1)
		if not entries:
			return "0-0"
		entry_id, _ = entries[0]
		return str(entry_id)

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item: str) -> Any:
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


def glob_escape(value: str) -> str:
	"""Escape Redis glob metacharacters so ``value`` matches literally in SCAN MATCH."""
	escaped = []
	for char in value:
		if char in "*?[]\\":
			escaped.append("\\")
		escaped.append(char)
	return "".join(escaped)
