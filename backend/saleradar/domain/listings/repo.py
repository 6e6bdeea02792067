"""Redis-backed adapter for the listing store.

The core only needs id, coordinates and status from listings; this adapter also
publishes the change events that the fan-out worker and the live feed consume.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import uuid4

from redis.exceptions import WatchError

from saleradar.domain.errors import ConflictError, ForbiddenError, NotFoundError
from saleradar.domain.geo import Coordinates
from saleradar.domain.listings import streams
from saleradar.domain.listings.models import Listing, ListingStatus, utcnow
from saleradar.infra.redis import redis_client
from saleradar.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

LIVE_SET = "listings:live"
_CLAIM_ATTEMPTS = 5


def _listing_key(listing_id: str) -> str:
	return f"listings:{listing_id}"


def _owner_live_key(owner_id: str) -> str:
	return f"listings:owner_live:{owner_id}"


def _owner_history_key(owner_id: str) -> str:
	return f"listings:owner:{owner_id}"


class RedisListingRepository:
	"""Creates, ends and reads listings; status only ever moves live -> ended."""

	async def get(self, listing_id: str) -> Optional[Listing]:
		raw = await redis_client.hgetall(_listing_key(listing_id))
		if not raw:
			return None
		return Listing.from_mapping(raw)

	async def list_live(self) -> List[Listing]:
		"""Equality filter on status only; distance filtering happens per viewer."""
		ids = sorted(await redis_client.smembers(LIVE_SET))
		if not ids:
			return []
		async with redis_client.pipeline(transaction=False) as pipe:
			for listing_id in ids:
				pipe.hgetall(_listing_key(listing_id))
			rows = await pipe.execute()
		listings: List[Listing] = []
		for raw in rows:
			if not raw:
				continue
			listing = Listing.from_mapping(raw)
			if listing.is_live:
				listings.append(listing)
		return listings

	async def live_for_owner(self, owner_id: str) -> Optional[Listing]:
		listing_id = await redis_client.get(_owner_live_key(owner_id))
		if not listing_id:
			return None
		listing = await self.get(listing_id)
		if listing is None or not listing.is_live:
			return None
		return listing

	async def list_for_owner(self, owner_id: str, *, limit: int = 50) -> List[Listing]:
		"""Every listing the owner has created, newest first."""
		ids = await redis_client.zrevrange(_owner_history_key(owner_id), 0, max(0, limit - 1))
		if not ids:
			return []
		async with redis_client.pipeline(transaction=False) as pipe:
			for listing_id in ids:
				pipe.hgetall(_listing_key(listing_id))
			rows = await pipe.execute()
		return [Listing.from_mapping(raw) for raw in rows if raw]

	async def create(
		self,
		*,
		owner_id: str,
		location: Coordinates,
		category: str = "",
		description: str = "",
		address: Optional[str] = None,
	) -> Listing:
		now = utcnow()
		listing = Listing(
			id=str(uuid4()),
			owner_id=owner_id,
			location=location,
			status=ListingStatus.LIVE,
			category=category,
			description=description,
			address=address,
			created_at=now,
			updated_at=now,
		)
		await self._claim_and_store(listing)
		await streams.publish_listing_event(streams.EVENT_CREATED, listing, actor_id=owner_id)
		obs_metrics.inc_listing_created()
		logger.info("listing.created", extra={"listing_id": listing.id, "owner_id": owner_id})
		return listing

	async def _claim_and_store(self, listing: Listing) -> None:
		"""Point the owner's live marker at ``listing`` and persist it in one transaction.

		The marker is WATCHed, so a concurrent create or end for the same owner
		aborts the EXEC and the check runs again.
		"""
		owner_key = _owner_live_key(listing.owner_id)
		for _ in range(_CLAIM_ATTEMPTS):
			async with redis_client.pipeline(transaction=True) as pipe:
				try:
					await pipe.watch(owner_key)
					current_id = await pipe.get(owner_key)
					# The marker may point at a listing that has since ended.
					if current_id and await pipe.sismember(LIVE_SET, current_id):
						raise ConflictError("live_listing_exists")
					pipe.multi()
					pipe.set(owner_key, listing.id)
					pipe.hset(_listing_key(listing.id), mapping=listing.to_mapping())
					pipe.sadd(LIVE_SET, listing.id)
					created = (listing.created_at or utcnow()).timestamp()
					pipe.zadd(_owner_history_key(listing.owner_id), {listing.id: created})
					await pipe.execute()
					return
				except WatchError:
					logger.debug("listing.claim_contended", extra={"owner_id": listing.owner_id})
					continue
		raise ConflictError("live_listing_exists")

	async def end(self, listing_id: str, *, actor_id: str, is_admin: bool = False) -> Listing:
		listing = await self.get(listing_id)
		if listing is None:
			raise NotFoundError("listing_not_found")
		if listing.owner_id != actor_id and not is_admin:
			raise ForbiddenError("not_listing_owner")
		if not listing.is_live:
			raise ConflictError("listing_already_ended")
		# SREM succeeds for exactly one caller, which makes the transition happen once.
		removed = await redis_client.srem(LIVE_SET, listing_id)
		if not removed:
			raise ConflictError("listing_already_ended")

		now = utcnow()
		listing.status = ListingStatus.ENDED
		listing.ended_at = now
		listing.updated_at = now
		await redis_client.hset(
			_listing_key(listing_id),
			mapping={"status": listing.status.value, "ended_at": now.isoformat(), "updated_at": now.isoformat()},
		)
		owner_key = _owner_live_key(listing.owner_id)
		if await redis_client.get(owner_key) == listing_id:
			await redis_client.delete(owner_key)
		await streams.publish_listing_event(streams.EVENT_ENDED, listing, actor_id=actor_id)
		actor = "owner" if listing.owner_id == actor_id else "admin"
		obs_metrics.inc_listing_ended(actor)
		logger.info("listing.ended", extra={"listing_id": listing_id, "actor": actor})
		return listing


__all__ = ["RedisListingRepository", "LIVE_SET"]
