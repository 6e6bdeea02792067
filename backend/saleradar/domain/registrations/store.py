"""Durable mapping of push endpoint token -> owner, location and radius.

Records live in per-owner keys (``registrations:{owner}:{token}``), so a token
can end up under more than one owner, e.g. when a shared device switches
accounts. Deletion by token therefore scans every owner rather than trusting
``registration_index``, which only tracks the latest owner for upserts.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional, Protocol

from saleradar.domain.geo import Coordinates
from saleradar.domain.listings.models import utcnow
from saleradar.domain.registrations.models import DEFAULT_PLATFORM, Registration
from saleradar.infra.redis import glob_escape, redis_client
from saleradar.obs import metrics as obs_metrics
from saleradar.settings import settings

logger = logging.getLogger(__name__)

_PREFIX = "registrations"
TOKEN_INDEX = "registration_index"


def _record_key(owner_id: str, token: str) -> str:
	return f"{_PREFIX}:{owner_id}:{token}"


class RegistrationStore(Protocol):
	async def upsert(
		self,
		token: str,
		owner_id: str,
		location: Optional[Coordinates],
		radius: Optional[float] = None,
		*,
		platform: str = DEFAULT_PLATFORM,
	) -> Registration:
		...

	def list_all(self) -> AsyncIterator[Registration]:
		...

	async def delete_by_token(self, token: str) -> int:
		...


class RedisRegistrationStore:
	"""Redis implementation of :class:`RegistrationStore`."""

	def __init__(self, *, scan_count: int = 200) -> None:
		self.scan_count = scan_count

	async def upsert(
		self,
		token: str,
		owner_id: str,
		location: Optional[Coordinates],
		radius: Optional[float] = None,
		*,
		platform: str = DEFAULT_PLATFORM,
	) -> Registration:
		"""Create or refresh the record for ``token``; repeated calls converge."""
		if not token:
			raise ValueError("token_required")
		key = _record_key(owner_id, token)
		previous_owner = await redis_client.hget(TOKEN_INDEX, token)
		existing = await redis_client.hgetall(key)
		now = utcnow()
		registration = Registration(
			token=token,
			owner_id=owner_id,
			location=location,
			radius=float(radius) if radius is not None else float(settings.default_radius_miles),
			platform=platform or DEFAULT_PLATFORM,
			created_at=Registration.from_mapping(existing).created_at if existing else now,
			updated_at=now,
		)
		async with redis_client.pipeline(transaction=True) as pipe:
			if previous_owner and previous_owner != owner_id:
				pipe.delete(_record_key(previous_owner, token))
			# Replace the whole hash so a cleared location does not linger.
			pipe.delete(key)
			pipe.hset(key, mapping=registration.to_mapping())
			pipe.hset(TOKEN_INDEX, token, owner_id)
			await pipe.execute()
		obs_metrics.inc_registration_upsert()
		logger.debug("registration.upserted", extra={"owner_id": owner_id, "platform": registration.platform})
		return registration

	async def get(self, owner_id: str, token: str) -> Optional[Registration]:
		raw = await redis_client.hgetall(_record_key(owner_id, token))
		if not raw or "token" not in raw:
			return None
		return Registration.from_mapping(raw)

	async def list_all(self) -> AsyncIterator[Registration]:
		"""Yield every registration; records deleted mid-scan are skipped."""
		async for key in redis_client.scan_keys(f"{_PREFIX}:*:*", count=self.scan_count):
			raw = await redis_client.hgetall(key)
			if not raw or "token" not in raw:
				continue
			try:
				yield Registration.from_mapping(raw)
			except (KeyError, ValueError):
				logger.warning("registration.malformed", extra={"key_prefix": key.split(":", 2)[:2]})

	async def list_for_owner(self, owner_id: str) -> List[Registration]:
		found: List[Registration] = []
		pattern = f"{_PREFIX}:{glob_escape(owner_id)}:*"
		async for key in redis_client.scan_keys(pattern, count=self.scan_count):
			raw = await redis_client.hgetall(key)
			if raw and raw.get("owner_id") == owner_id and "token" in raw:
				found.append(Registration.from_mapping(raw))
		return found

	async def delete_by_token(self, token: str) -> int:
		"""Remove every record holding ``token`` under any owner; returns the count."""
		pattern = f"{_PREFIX}:*:{glob_escape(token)}"
		doomed: List[str] = []
		async for key in redis_client.scan_keys(pattern, count=self.scan_count):
			stored = await redis_client.hget(key, "token")
			if stored == token:
				doomed.append(key)
		removed = 0
		if doomed:
			removed = int(await redis_client.delete(*doomed))
		await redis_client.hdel(TOKEN_INDEX, token)
		if removed:
			obs_metrics.inc_registrations_pruned(removed)
		logger.info("registration.deleted_by_token", extra={"removed": removed})
		return removed

	async def remove(self, owner_id: str, token: str) -> bool:
		"""Owner opt-out for a single device."""
		removed = int(await redis_client.delete(_record_key(owner_id, token)))
		if await redis_client.hget(TOKEN_INDEX, token) == owner_id:
			await redis_client.hdel(TOKEN_INDEX, token)
		return bool(removed)


__all__ = ["RegistrationStore", "RedisRegistrationStore", "TOKEN_INDEX"]
