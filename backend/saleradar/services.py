"""Explicitly constructed service graph shared by the HTTP app and the socket layer."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from saleradar.domain.feed.change_feed import ListingChangeFeed
from saleradar.domain.feed.geocoder import NominatimGeocoder, Geocoder
from saleradar.domain.listings.repo import RedisListingRepository
from saleradar.domain.notifications.dispatcher import NotificationFanoutDispatcher
from saleradar.domain.notifications.sender import FcmPushSender, LoggingPushSender, PushSender
from saleradar.domain.registrations.store import RedisRegistrationStore
from saleradar.settings import Settings, settings as default_settings
from saleradar.workers.fanout_worker import ListingFanoutWorker

logger = logging.getLogger(__name__)


def build_sender(cfg: Settings) -> PushSender:
	if cfg.push_provider == "fcm":
		if not cfg.fcm_project_id or not cfg.fcm_access_token:
			raise RuntimeError("push_provider=fcm requires FCM_PROJECT_ID and FCM_ACCESS_TOKEN")
		return FcmPushSender(
			project_id=cfg.fcm_project_id,
			access_token=cfg.fcm_access_token,
			timeout=cfg.push_timeout_seconds,
		)
	return LoggingPushSender()


def build_geocoder(cfg: Settings) -> Optional[Geocoder]:
	if not cfg.geocoder_enabled:
		return None
	return NominatimGeocoder(
		base_url=cfg.geocoder_base_url,
		user_agent=cfg.geocoder_user_agent,
		request_timeout=cfg.geocoder_timeout_seconds,
	)


class Services:
	"""Owns collaborators and background workers; ``start``/``aclose`` bracket the app lifespan."""

	def __init__(
		self,
		*,
		listings: Optional[RedisListingRepository] = None,
		registrations: Optional[RedisRegistrationStore] = None,
		sender: Optional[PushSender] = None,
		geocoder: Optional[Geocoder] = None,
		change_feed: Optional[ListingChangeFeed] = None,
		dispatcher: Optional[NotificationFanoutDispatcher] = None,
		fanout_worker: Optional[ListingFanoutWorker] = None,
		cfg: Settings = default_settings,
	) -> None:
		self.cfg = cfg
		self.listings = listings or RedisListingRepository()
		self.registrations = registrations or RedisRegistrationStore()
		self.sender = sender or LoggingPushSender()
		self.geocoder = geocoder
		self.change_feed = change_feed or ListingChangeFeed(repository=self.listings)
		self.dispatcher = dispatcher or NotificationFanoutDispatcher(
			store=self.registrations,
			sender=self.sender,
			max_concurrency=cfg.fanout_max_concurrency,
		)
		self.fanout_worker = fanout_worker or ListingFanoutWorker(dispatcher=self.dispatcher)
		self._tasks: Dict[str, asyncio.Task[None]] = {}

	@classmethod
	def from_settings(cls, cfg: Settings = default_settings) -> "Services":
		return cls(sender=build_sender(cfg), geocoder=build_geocoder(cfg), cfg=cfg)

	async def start(self) -> None:
		if self._tasks:
			return
		if self.cfg.change_feed_enabled:
			self._tasks["change_feed"] = asyncio.create_task(self.change_feed.run_forever(), name="listing-change-feed")
		if self.cfg.fanout_worker_enabled:
			self._tasks["fanout"] = asyncio.create_task(self.fanout_worker.run_forever(), name="listing-fanout")
		logger.info("services.started", extra={"workers": sorted(self._tasks)})

	def worker_states(self) -> Dict[str, str]:
		"""``disabled``, ``idle`` (not started), ``running`` or ``stopped`` per stream consumer."""
		states: Dict[str, str] = {}
		for name, enabled in (("change_feed", self.cfg.change_feed_enabled), ("fanout", self.cfg.fanout_worker_enabled)):
			task = self._tasks.get(name)
			if not enabled:
				states[name] = "disabled"
			elif task is None:
				states[name] = "idle"
			elif task.done():
				states[name] = "stopped"
			else:
				states[name] = "running"
		return states

	async def aclose(self) -> None:
		self.change_feed.stop()
		self.fanout_worker.stop()
		tasks = list(self._tasks.values())
		self._tasks = {}
		for task in tasks:
			task.cancel()
		if tasks:
			await asyncio.gather(*tasks, return_exceptions=True)
		await self.sender.aclose()
		if self.geocoder is not None:
			await self.geocoder.aclose()


__all__ = ["Services", "build_geocoder", "build_sender"]
