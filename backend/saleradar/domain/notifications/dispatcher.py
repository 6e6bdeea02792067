"""Fan-out of "listing created" events to registered devices in range."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set

from saleradar.domain.errors import DeliveryError
from saleradar.domain.geo import distance_between
from saleradar.domain.listings.models import Listing
from saleradar.domain.notifications.schemas import NotificationData, NotificationPayload
from saleradar.domain.notifications.sender import PushSender
from saleradar.domain.registrations.models import Registration
from saleradar.domain.registrations.store import RegistrationStore
from saleradar.obs import logging as obs_logging
from saleradar.obs import metrics as obs_metrics
from saleradar.obs import tracing
from saleradar.settings import settings

logger = logging.getLogger(__name__)

_MAX_BODY_LENGTH = 140
_FALLBACK_BODY = "A sale just opened near you."


class FanoutOutcome(str, Enum):
	SKIPPED = "skipped"
	OUT_OF_RANGE = "out_of_range"
	SENT = "sent"
	PRUNED = "pruned"
	FAILED = "failed"


@dataclass(slots=True)
class FanoutReport:
	"""Per-outcome counts for one dispatched listing."""

	listing_id: str
	counts: Dict[str, int] = field(default_factory=lambda: {outcome.value: 0 for outcome in FanoutOutcome})

	def record(self, outcome: FanoutOutcome) -> None:
		self.counts[outcome.value] += 1

	def count(self, outcome: FanoutOutcome) -> int:
		return self.counts[outcome.value]

	@property
	def evaluated(self) -> int:
		return sum(self.counts.values())

	@property
	def sent(self) -> int:
		return self.count(FanoutOutcome.SENT)

	@property
	def pruned(self) -> int:
		return self.count(FanoutOutcome.PRUNED)

	@property
	def failed(self) -> int:
		return self.count(FanoutOutcome.FAILED)


def _notification_body(listing: Listing) -> str:
	parts = [part.strip() for part in (listing.category, listing.description) if part and part.strip()]
	body = " - ".join(parts) or _FALLBACK_BODY
	if len(body) > _MAX_BODY_LENGTH:
		body = f"{body[: _MAX_BODY_LENGTH - 1]}…"
	return body


class NotificationFanoutDispatcher:
	"""Evaluates every registration against a new listing and pushes to those in range.

	Work is spread over a bounded pool of workers; each registration is an
	independent unit whose failure is recorded without affecting its siblings.
	Delivery failures tagged ``ENDPOINT_INVALID`` prune the token everywhere;
	anything else is logged and dropped (no retry).
	"""

	def __init__(
		self,
		*,
		store: RegistrationStore,
		sender: PushSender,
		max_concurrency: Optional[int] = None,
		title: Optional[str] = None,
		deep_link_base: Optional[str] = None,
	) -> None:
		self.store = store
		self.sender = sender
		self.max_concurrency = max(1, int(max_concurrency or settings.fanout_max_concurrency))
		self.title = title or settings.notification_title
		self.deep_link_base = (deep_link_base if deep_link_base is not None else settings.deep_link_base).rstrip("/")

	def build_payload(self, listing: Listing, token: str) -> NotificationPayload:
		return NotificationPayload(
			target=token,
			title=self.title,
			body=_notification_body(listing),
			data=NotificationData(listing_id=listing.id, deep_link=f"{self.deep_link_base}/{listing.id}"),
		)

	async def dispatch(self, listing: Listing) -> FanoutReport:
		report = FanoutReport(listing_id=listing.id)
		if listing.location is None:
			logger.info("fanout.skip_listing_without_location", extra={"listing_id": listing.id})
			return report

		tokens = obs_logging.bind_context(listing_id=listing.id)
		started = time.perf_counter()
		try:
			with tracing.span("fanout.dispatch", listing_id=listing.id):
				await self._run_pool(listing, report)
		finally:
			obs_logging.reset_context(tokens)
		elapsed = time.perf_counter() - started
		obs_metrics.record_fanout(report.counts, elapsed)
		logger.info(
			"fanout.completed",
			extra={"listing_id": listing.id, "duration_ms": round(elapsed * 1000, 2), **report.counts},
		)
		return report

	async def _run_pool(self, listing: Listing, report: FanoutReport) -> None:
		queue: asyncio.Queue[Optional[Registration]] = asyncio.Queue(maxsize=self.max_concurrency * 2)
		seen: Set[str] = set()
		workers = [
			asyncio.create_task(self._worker(queue, listing, report, seen), name=f"fanout:{listing.id}:{idx}")
			for idx in range(self.max_concurrency)
		]
		try:
			async for registration in self.store.list_all():
				await queue.put(registration)
			for _ in workers:
				await queue.put(None)
			await asyncio.gather(*workers)
		except BaseException:
			# Enumeration itself failed (or we were cancelled): stop the pool.
			for worker in workers:
				worker.cancel()
			await asyncio.gather(*workers, return_exceptions=True)
			raise

	async def _worker(
		self,
		queue: "asyncio.Queue[Optional[Registration]]",
		listing: Listing,
		report: FanoutReport,
		seen: Set[str],
	) -> None:
		while True:
			registration = await queue.get()
			if registration is None:
				return
			try:
				outcome = await self.evaluate(registration, listing, seen)
			except Exception:
				logger.exception("fanout.unit_failed", extra={"owner_id": registration.owner_id})
				outcome = FanoutOutcome.FAILED
			report.record(outcome)

	async def evaluate(
		self,
		registration: Registration,
		listing: Listing,
		seen: Optional[Set[str]] = None,
	) -> FanoutOutcome:
		location, radius = registration.location, registration.radius
		if location is None or radius is None or radius <= 0 or listing.location is None:
			return FanoutOutcome.SKIPPED
		miles = distance_between(location, listing.location)
		if miles > radius:
			return FanoutOutcome.OUT_OF_RANGE
		if seen is not None:
			if registration.token in seen:
				return FanoutOutcome.SKIPPED
			seen.add(registration.token)

		try:
			await self.sender.send(self.build_payload(listing, registration.token))
		except DeliveryError as exc:
			obs_metrics.inc_delivery_failure(exc.kind.value)
			if exc.endpoint_invalid:
				removed = await self.store.delete_by_token(registration.token)
				logger.info(
					"fanout.endpoint_pruned",
					extra={"owner_id": registration.owner_id, "records_removed": removed},
				)
				return FanoutOutcome.PRUNED
			logger.warning(
				"fanout.delivery_failed",
				extra={"owner_id": registration.owner_id, "kind": exc.kind.value, "status_code": exc.status_code},
			)
			return FanoutOutcome.FAILED
		return FanoutOutcome.SENT


__all__ = ["NotificationFanoutDispatcher", "FanoutOutcome", "FanoutReport"]
