"""Distance-sorted, radius-filtered live view of nearby listings for one viewer."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from saleradar.domain.common import ListenerSet, Subscription
from saleradar.domain.feed.change_feed import ChangeBatch, ListingChangeFeed
from saleradar.domain.feed.geocoder import Geocoder
from saleradar.domain.feed.location import LocationTracker
from saleradar.domain.feed.positions import PositionFix
from saleradar.domain.feed.ranking import rank_listings
from saleradar.domain.geo import Bounds, Coordinates, distance_between, estimate_viewport
from saleradar.domain.listings.models import Listing
from saleradar.obs import metrics as obs_metrics
from saleradar.settings import settings

logger = logging.getLogger(__name__)


def format_distance(miles: float) -> str:
	value = round(miles, 1)
	unit = "mile" if value == 1 else "miles"
	return f"{value:g} {unit} away"


@dataclass(frozen=True, slots=True)
class FeedItem:
	listing: Listing
	distance: float

	@property
	def id(self) -> str:
		return self.listing.id

	@property
	def distance_display(self) -> str:
		return format_distance(self.distance)

	def to_dict(self) -> Dict[str, Any]:
		listing = self.listing
		return {
			"id": listing.id,
			"owner_id": listing.owner_id,
			"location": listing.location.to_dict() if listing.location else None,
			"category": listing.category,
			"description": listing.description,
			"address": listing.address,
			"created_at": listing.created_at.isoformat() if listing.created_at else None,
			"distance": round(self.distance, 3),
			"distance_display": self.distance_display,
		}


@dataclass(frozen=True, slots=True)
class FeedView:
	"""One immutable published state of the feed."""

	items: Tuple[FeedItem, ...]
	origin: Coordinates
	radius: float
	bounds: Bounds
	zoom: int
	version: int

	@property
	def ids(self) -> List[str]:
		return [item.id for item in self.items]

	def to_dict(self) -> Dict[str, Any]:
		return {
			"version": self.version,
			"origin": self.origin.to_dict(),
			"radius": self.radius,
			"bounds": self.bounds.to_dict(),
			"zoom": self.zoom,
			"items": [item.to_dict() for item in self.items],
		}


class LiveFeedSynchronizer:
	"""Keeps a viewer's feed current as location, radius and listings change.

	Every mutation, recompute and publish happens under a single lock, so
	listeners always see whole views in version order. Views are only
	produced once an origin is known.
	"""

	def __init__(
		self,
		*,
		radius: Optional[float] = None,
		geocoder: Optional[Geocoder] = None,
		significant_change_miles: Optional[float] = None,
	) -> None:
		self._radius = float(radius if radius is not None else settings.default_radius_miles)
		self.geocoder = geocoder
		self.significant_change_miles = (
			settings.significant_change_miles if significant_change_miles is None else significant_change_miles
		)
		self._lock = asyncio.Lock()
		self._snapshot: Dict[str, Listing] = {}
		self._origin: Optional[Coordinates] = None
		self._view: Optional[FeedView] = None
		self._version = 0
		self._listeners: ListenerSet[FeedView] = ListenerSet("feed_view")
		self._addresses: Dict[str, str] = {}
		self._geocode_attempted: Set[str] = set()
		self._geocode_tasks: Set[asyncio.Task[None]] = set()
		self._attachments: List[Subscription] = []
		self._closed = False

	@property
	def view(self) -> Optional[FeedView]:
		return self._view

	@property
	def origin(self) -> Optional[Coordinates]:
		return self._origin

	@property
	def radius(self) -> float:
		return self._radius

	@property
	def closed(self) -> bool:
		return self._closed

	def subscribe(self, listener: Callable[[FeedView], Awaitable[None]]) -> Subscription:
		return self._listeners.add(listener)

	async def attach(
		self,
		*,
		tracker: Optional[LocationTracker] = None,
		change_feed: Optional[ListingChangeFeed] = None,
	) -> None:
		"""Wire a tracker and/or change feed into this synchronizer."""
		if tracker is not None:
			self._attachments.append(tracker.subscribe(on_position=self._on_position))
			if tracker.current is not None:
				await self.update_location(tracker.current.coords)
		if change_feed is not None:
			self._attachments.append(await change_feed.subscribe(self._on_change_batch))

	async def apply_snapshot(self, listings: Iterable[Listing]) -> Optional[FeedView]:
		async with self._lock:
			if self._closed:
				return None
			self._snapshot = {listing.id: listing for listing in listings}
			return await self._recompute("snapshot")

	async def apply_changes(
		self,
		upserts: Iterable[Listing] = (),
		removed_ids: Iterable[str] = (),
	) -> Optional[FeedView]:
		async with self._lock:
			if self._closed:
				return None
			for listing_id in removed_ids:
				self._snapshot.pop(listing_id, None)
			for listing in upserts:
				self._snapshot[listing.id] = listing
			return await self._recompute("changes")

	async def update_location(self, coords: Coordinates) -> bool:
		"""Move the origin; returns False when the move is below the threshold."""
		async with self._lock:
			if self._closed:
				return False
			if self._origin is not None:
				if distance_between(self._origin, coords) <= self.significant_change_miles:
					return False
			self._origin = coords
			await self._recompute("location")
			return True

	async def set_radius(self, radius: float) -> bool:
		async with self._lock:
			if self._closed:
				return False
			radius = float(radius)
			if radius == self._radius:
				return False
			self._radius = radius
			await self._recompute("radius")
			return True

	async def close(self) -> None:
		if self._closed:
			return
		async with self._lock:
			self._closed = True
			for subscription in self._attachments:
				subscription.cancel()
			self._attachments.clear()
			self._listeners.clear()
			tasks = list(self._geocode_tasks)
			self._geocode_tasks.clear()
		for task in tasks:
			task.cancel()
		if tasks:
			await asyncio.gather(*tasks, return_exceptions=True)

	async def _on_position(self, fix: PositionFix) -> None:
		await self.update_location(fix.coords)

	async def _on_change_batch(self, batch: ChangeBatch) -> None:
		if batch.full:
			await self.apply_snapshot(batch.upserts)
		else:
			await self.apply_changes(batch.upserts, batch.removed)

	async def _recompute(self, trigger: str) -> Optional[FeedView]:
		# Caller holds the lock.
		if self._origin is None:
			return None
		ranked = rank_listings(self._snapshot.values(), self._origin, self._radius)
		items = tuple(
			FeedItem(listing=self._with_known_address(entry.listing), distance=entry.distance) for entry in ranked
		)
		viewport = estimate_viewport(self._origin, self._radius)
		self._version += 1
		view = FeedView(
			items=items,
			origin=self._origin,
			radius=self._radius,
			bounds=viewport.bounds,
			zoom=viewport.zoom,
			version=self._version,
		)
		obs_metrics.inc_feed_recompute(trigger)
		await self._publish(view)
		self._schedule_address_lookups(items)
		return view

	async def _publish(self, view: FeedView) -> None:
		self._view = view
		await self._listeners.notify(view)

	def _with_known_address(self, listing: Listing) -> Listing:
		if listing.address:
			return listing
		address = self._addresses.get(listing.id)
		if address is None:
			return listing
		return dataclasses.replace(listing, address=address)

	def _schedule_address_lookups(self, items: Iterable[FeedItem]) -> None:
		if self.geocoder is None:
			return
		for item in items:
			listing = item.listing
			if listing.address or listing.location is None or listing.id in self._geocode_attempted:
				continue
			self._geocode_attempted.add(listing.id)
			task = asyncio.create_task(
				self._resolve_address(listing.id, listing.location),
				name=f"feed-geocode:{listing.id}",
			)
			self._geocode_tasks.add(task)
			task.add_done_callback(self._geocode_tasks.discard)

	async def _resolve_address(self, listing_id: str, coords: Coordinates) -> None:
		geocoder = self.geocoder
		if geocoder is None:
			return
		try:
			address = await geocoder.reverse(coords)
		except Exception:
			logger.warning("feed.geocode_failed", exc_info=True, extra={"listing_id": listing_id})
			return
		if not address:
			return
		async with self._lock:
			if self._closed:
				return
			self._addresses[listing_id] = address
			view = self._view
			if view is None or listing_id not in view.ids:
				return
			items = tuple(
				FeedItem(listing=dataclasses.replace(item.listing, address=address), distance=item.distance)
				if item.id == listing_id
				else item
				for item in view.items
			)
			self._version += 1
			await self._publish(dataclasses.replace(view, items=items, version=self._version))


__all__ = ["FeedItem", "FeedView", "LiveFeedSynchronizer", "format_distance"]
