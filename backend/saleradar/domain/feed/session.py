"""One connected viewer: position relay, tracker and synchronizer wired together."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from saleradar.domain.errors import LocationError
from saleradar.domain.feed.change_feed import ListingChangeFeed
from saleradar.domain.feed.geocoder import Geocoder
from saleradar.domain.feed.location import LocationTracker
from saleradar.domain.feed.positions import BrowserPositionProvider, PositionFix, PositionOptions
from saleradar.domain.feed.synchronizer import FeedView, LiveFeedSynchronizer
from saleradar.domain.geo import Coordinates
from saleradar.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Emit = Callable[[str, Any], Awaitable[None]]


class FeedSession:
	def __init__(
		self,
		*,
		session_id: str,
		user_id: str,
		emit: Emit,
		change_feed: Optional[ListingChangeFeed] = None,
		geocoder: Optional[Geocoder] = None,
		radius: Optional[float] = None,
		tracker: Optional[LocationTracker] = None,
	) -> None:
		self.session_id = session_id
		self.user_id = user_id
		self._emit = emit
		self.change_feed = change_feed
		self.provider = BrowserPositionProvider(request=self._request_position)
		self.tracker = tracker or LocationTracker(self.provider)
		self.synchronizer = LiveFeedSynchronizer(radius=radius, geocoder=geocoder)
		self._opened = False
		self._closed = False

	async def open(self) -> None:
		if self._opened:
			return
		self._opened = True
		self.synchronizer.subscribe(self._on_view)
		self.tracker.subscribe(on_error=self._on_location_error)
		await self.synchronizer.attach(tracker=self.tracker, change_feed=self.change_feed)
		await self.tracker.start()
		obs_metrics.feed_session_opened()
		logger.info("feed.session_opened", extra={"session_id": self.session_id, "user_id": self.user_id})

	async def report_position(self, coords: Coordinates, accuracy_m: Optional[float] = None) -> None:
		await self.provider.report_fix(PositionFix(coords=coords, accuracy_m=accuracy_m))

	async def report_position_error(self, error: LocationError) -> None:
		await self.provider.report_error(error)

	async def set_radius(self, radius: float) -> bool:
		return await self.synchronizer.set_radius(radius)

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		await self.tracker.stop()
		await self.synchronizer.close()
		if self._opened:
			obs_metrics.feed_session_closed()
		logger.info("feed.session_closed", extra={"session_id": self.session_id, "user_id": self.user_id})

	async def _request_position(self, options: PositionOptions) -> None:
		await self._emit("feed.locate", options.to_dict())

	async def _on_view(self, view: FeedView) -> None:
		await self._emit("feed.update", view.to_dict())

	async def _on_location_error(self, error: LocationError) -> None:
		await self._emit("feed.error", {"code": error.kind.value, "message": error.message})


__all__ = ["FeedSession"]
