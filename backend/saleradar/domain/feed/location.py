"""Viewer location tracking with bounded retries and significant-change gating."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from saleradar.domain.common import ListenerSet, Subscription
from saleradar.domain.errors import FailureKind, LocationError
from saleradar.domain.feed.positions import PositionFix, PositionOptions, PositionProvider
from saleradar.domain.geo import distance_between
from saleradar.obs import metrics as obs_metrics
from saleradar.settings import settings

logger = logging.getLogger(__name__)


def retry_schedule(
	*,
	timeout: float,
	maximum_age: float,
	retry_timeout: float,
	max_retries: int,
) -> List[PositionOptions]:
	"""Primary attempt first, then low-accuracy retries with halving timeouts."""
	attempts = [PositionOptions(timeout=timeout, maximum_age=maximum_age, high_accuracy=True)]
	for idx in range(max(0, max_retries)):
		attempts.append(
			PositionOptions(timeout=retry_timeout / (2**idx), maximum_age=maximum_age, high_accuracy=False)
		)
	return attempts


def _consume_outcome(task: asyncio.Task[PositionFix]) -> None:
	# Failures were already delivered to error subscribers.
	if not task.cancelled():
		task.exception()


class LocationTracker:
	"""Tracks the best known viewer position.

	Subscribers only hear about the first fix and fixes that move further than
	``significant_change_miles`` from the last propagated one. One-shot
	acquisitions are coalesced: concurrent ``acquire`` callers share a single
	in-flight attempt. A recoverable error reported by the watch starts a
	recovery acquisition using the low-accuracy retries; it ignores cached fixes.
	"""

	def __init__(
		self,
		provider: PositionProvider,
		*,
		significant_change_miles: Optional[float] = None,
		attempts: Optional[List[PositionOptions]] = None,
	) -> None:
		self.provider = provider
		self.significant_change_miles = (
			settings.significant_change_miles if significant_change_miles is None else significant_change_miles
		)
		self.attempts = attempts or retry_schedule(
			timeout=settings.location_timeout_seconds,
			maximum_age=settings.location_max_age_seconds,
			retry_timeout=settings.location_retry_timeout_seconds,
			max_retries=settings.location_max_retries,
		)
		self._current: Optional[PositionFix] = None
		self._positions: ListenerSet[PositionFix] = ListenerSet("tracker_positions")
		self._errors: ListenerSet[LocationError] = ListenerSet("tracker_errors")
		self._watch: Optional[Subscription] = None
		self._inflight: Optional[asyncio.Task[PositionFix]] = None
		self._initial: Optional[asyncio.Task[None]] = None
		self._running = False

	@property
	def current(self) -> Optional[PositionFix]:
		return self._current

	@property
	def running(self) -> bool:
		return self._running

	@property
	def recovery_attempts(self) -> List[PositionOptions]:
		return [dataclasses.replace(options, maximum_age=0) for options in self.attempts[1:]]

	def subscribe(
		self,
		on_position: Optional[Callable[[PositionFix], Awaitable[None]]] = None,
		on_error: Optional[Callable[[LocationError], Awaitable[None]]] = None,
	) -> Subscription:
		subs: List[Subscription] = []
		if on_position is not None:
			subs.append(self._positions.add(on_position))
		if on_error is not None:
			subs.append(self._errors.add(on_error))

		def _cancel() -> None:
			for sub in subs:
				sub.cancel()

		return Subscription(_cancel)

	async def start(self) -> None:
		if self._running:
			return
		self._running = True
		self._watch = self.provider.watch(self._on_watch_fix, self._on_watch_error)
		self._initial = asyncio.create_task(self._acquire_initial(), name="location-initial")

	async def stop(self) -> None:
		if not self._running:
			return
		self._running = False
		if self._watch is not None:
			self._watch.cancel()
			self._watch = None
		for task in (self._initial, self._inflight):
			if task is not None and not task.done():
				task.cancel()
				try:
					await task
				except (asyncio.CancelledError, LocationError):
					pass
		self._initial = None
		self._inflight = None

	async def acquire(self) -> PositionFix:
		"""One-shot acquisition honouring the retry policy; raises ``LocationError``."""
		return await asyncio.shield(self._begin(self.attempts))

	def _begin(
		self,
		attempts: Sequence[PositionOptions],
		initial_error: Optional[LocationError] = None,
	) -> asyncio.Task[PositionFix]:
		if self._inflight is None or self._inflight.done():
			self._inflight = asyncio.create_task(
				self._acquire_with_retry(attempts, initial_error),
				name="location-acquire",
			)
		return self._inflight

	async def _acquire_initial(self) -> None:
		try:
			await self.acquire()
		except LocationError:
			# Already surfaced to error subscribers.
			return

	async def _acquire_with_retry(
		self,
		attempts: Sequence[PositionOptions],
		initial_error: Optional[LocationError] = None,
	) -> PositionFix:
		last_error = initial_error
		for attempt, options in enumerate(attempts):
			try:
				fix = await self.provider.get_current_position(options)
			except LocationError as exc:
				last_error = exc
				final = exc.terminal or attempt == len(attempts) - 1
				obs_metrics.inc_location_failure(exc.kind.value, terminal=final)
				logger.info(
					"location.attempt_failed",
					extra={"attempt": attempt, "kind": exc.kind.value, "terminal": final},
				)
				if exc.terminal:
					break
				continue
			await self._propagate(fix)
			return fix
		if last_error is None:
			last_error = LocationError(FailureKind.UNKNOWN)
		await self._errors.notify(last_error)
		raise last_error

	async def _on_watch_fix(self, fix: PositionFix) -> None:
		if self._running:
			await self._propagate(fix)

	async def _on_watch_error(self, error: LocationError) -> None:
		if not self._running:
			return
		if self._inflight is not None and not self._inflight.done():
			# The pending acquisition owns this failure.
			return
		if error.terminal:
			obs_metrics.inc_location_failure(error.kind.value, terminal=True)
			await self._errors.notify(error)
			return
		logger.info("location.watch_recovering", extra={"kind": error.kind.value})
		task = self._begin(self.recovery_attempts, error)
		task.add_done_callback(_consume_outcome)

	async def _propagate(self, fix: PositionFix) -> bool:
		current = self._current
		if current is not None:
			moved = distance_between(current.coords, fix.coords)
			if moved <= self.significant_change_miles:
				return False
		self._current = fix
		await self._positions.notify(fix)
		return True


__all__ = ["LocationTracker", "retry_schedule"]
