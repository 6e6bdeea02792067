"""In-process hub mirroring the live listing set from the change stream."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from saleradar.domain.common import ListenerSet, Subscription
from saleradar.domain.listings.models import Listing
from saleradar.domain.listings.repo import RedisListingRepository
from saleradar.domain.listings.streams import EVENT_CREATED, EVENT_ENDED, STREAM_LISTING
from saleradar.infra.redis import redis_client
from saleradar.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeBatch:
	"""Listings to add or replace and ids to drop; ``full`` replaces everything."""

	upserts: Tuple[Listing, ...] = ()
	removed: Tuple[str, ...] = ()
	full: bool = False

	def __bool__(self) -> bool:
		return self.full or bool(self.upserts) or bool(self.removed)


class ListingChangeFeed:
	"""Reads ``listings:changes`` once per process and fans batches out to viewers."""

	def __init__(
		self,
		*,
		repository: RedisListingRepository | None = None,
		batch_size: Optional[int] = None,
		poll_interval: Optional[float] = None,
		block_ms: Optional[int] = 1000,
	) -> None:
		self.repo = repository or RedisListingRepository()
		self.batch_size = batch_size or settings.fanout_batch_size
		self.poll_interval = settings.fanout_poll_interval if poll_interval is None else poll_interval
		self.block_ms = block_ms
		self._live: Dict[str, Listing] = {}
		self._listeners: ListenerSet[ChangeBatch] = ListenerSet("change_feed")
		self._last_id: Optional[str] = None
		self._load_lock = asyncio.Lock()
		self._running = False

	@property
	def loaded(self) -> bool:
		return self._last_id is not None

	@property
	def cursor(self) -> Optional[str]:
		"""Id of the last stream entry folded into the snapshot."""
		return self._last_id

	def snapshot(self) -> List[Listing]:
		return list(self._live.values())

	async def load(self) -> None:
		async with self._load_lock:
			if self._last_id is not None:
				return
			# Cursor first: anything written while the snapshot loads is replayed.
			last_id = await redis_client.last_stream_id(STREAM_LISTING)
			listings = await self.repo.list_live()
			self._live = {listing.id: listing for listing in listings}
			self._last_id = last_id
			logger.info("change_feed.loaded", extra={"live_count": len(self._live)})

	async def subscribe(self, listener: Callable[[ChangeBatch], Awaitable[None]]) -> Subscription:
		"""Register ``listener``; it first receives the full live set."""
		await self.load()
		subscription = self._listeners.add(listener)
		await listener(ChangeBatch(upserts=tuple(self._live.values()), full=True))
		return subscription

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			try:
				processed = await self.process_once()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.exception("change_feed.iteration_failed")
				processed = 0
			if processed == 0:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False

	async def process_once(self) -> int:
		await self.load()
		cursor = self._last_id
		if cursor is None:
			return 0
		messages = await redis_client.xread(
			streams={STREAM_LISTING: cursor},
			count=self.batch_size,
			block=self.block_ms,
		)
		if not messages:
			return 0
		upserts: Dict[str, Listing] = {}
		removed: Dict[str, None] = {}
		processed = 0
		for _stream_name, entries in messages:
			for entry_id, payload in entries:
				self._apply_entry(dict(payload), upserts, removed)
				self._last_id = entry_id
				processed += 1
		batch = ChangeBatch(upserts=tuple(upserts.values()), removed=tuple(removed))
		if batch:
			await self._listeners.notify(batch)
		return processed

	def _apply_entry(self, payload: Dict[str, str], upserts: Dict[str, Listing], removed: Dict[str, None]) -> None:
		event = payload.get("event")
		if event not in {EVENT_CREATED, EVENT_ENDED} or not payload.get("id"):
			logger.debug("change_feed.ignored_entry", extra={"event": event})
			return
		listing = Listing.from_mapping(payload)
		if event == EVENT_ENDED or not listing.is_live:
			self._live.pop(listing.id, None)
			upserts.pop(listing.id, None)
			removed[listing.id] = None
			return
		self._live[listing.id] = listing
		removed.pop(listing.id, None)
		upserts[listing.id] = listing


__all__ = ["ChangeBatch", "ListingChangeFeed"]
