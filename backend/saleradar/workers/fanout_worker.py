"""Redis stream consumer that dispatches push notifications for new listings."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from saleradar.domain.listings.models import Listing
from saleradar.domain.listings.streams import EVENT_CREATED, STREAM_LISTING
from saleradar.domain.notifications.dispatcher import FanoutReport, NotificationFanoutDispatcher
from saleradar.infra.redis import redis_client
from saleradar.settings import settings

_LOG = logging.getLogger(__name__)

CURSOR_KEY = "listings:fanout:cursor"


class ListingFanoutWorker:
	"""Consumes listing events and runs one fan-out per ``created`` entry.

	The last handled entry id is persisted so a restart resumes where the
	previous process stopped; a fresh deployment starts at the stream tail.
	"""

	def __init__(
		self,
		*,
		dispatcher: NotificationFanoutDispatcher,
		batch_size: Optional[int] = None,
		poll_interval: Optional[float] = None,
		block_ms: Optional[int] = 1000,
	) -> None:
		self.dispatcher = dispatcher
		self.batch_size = batch_size or settings.fanout_batch_size
		self.poll_interval = settings.fanout_poll_interval if poll_interval is None else poll_interval
		self.block_ms = block_ms
		self._last_id: Optional[str] = None
		self._running = False

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			try:
				processed = await self.process_once()
			except asyncio.CancelledError:
				raise
			except Exception:
				_LOG.exception("fanout_worker.iteration_failed")
				processed = 0
			if processed == 0:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False

	async def stored_cursor(self) -> Optional[str]:
		if self._last_id is not None:
			return self._last_id
		stored = await redis_client.get(CURSOR_KEY)
		return str(stored) if stored else None

	async def _cursor(self) -> str:
		if self._last_id is None:
			stored = await redis_client.get(CURSOR_KEY)
			self._last_id = str(stored) if stored else await redis_client.last_stream_id(STREAM_LISTING)
		return self._last_id

	async def process_once(self) -> int:
		streams: Dict[str, str] = {STREAM_LISTING: await self._cursor()}
		messages = await redis_client.xread(streams=streams, count=self.batch_size, block=self.block_ms)
		if not messages:
			return 0
		processed = 0
		for _stream_name, entries in messages:
			for entry_id, payload in entries:
				await self._handle_event(dict(payload))
				self._last_id = entry_id
				await redis_client.set(CURSOR_KEY, entry_id)
				processed += 1
		return processed

	async def _handle_event(self, payload: dict[str, str]) -> Optional[FanoutReport]:
		if payload.get("event") != EVENT_CREATED:
			return None
		if not payload.get("id"):
			_LOG.warning("fanout_worker.invalid_payload", extra={"event": payload.get("event")})
			return None
		listing = Listing.from_mapping(payload)
		try:
			return await self.dispatcher.dispatch(listing)
		except Exception:
			# At-most-once: the entry is still acknowledged so it is never re-sent.
			_LOG.exception("fanout_worker.dispatch_failed", extra={"listing_id": listing.id})
			return None


__all__ = ["ListingFanoutWorker", "CURSOR_KEY"]
