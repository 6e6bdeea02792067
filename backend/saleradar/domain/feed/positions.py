"""Position providers feeding the location tracker."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from saleradar.domain.common import ListenerSet, Subscription
from saleradar.domain.errors import FailureKind, LocationError
from saleradar.domain.geo import Coordinates

logger = logging.getLogger(__name__)

FixListener = Callable[["PositionFix"], Awaitable[None]]
ErrorListener = Callable[[LocationError], Awaitable[None]]

# W3C GeolocationPositionError codes.
_BROWSER_ERROR_CODES = {
	1: FailureKind.PERMISSION_DENIED,
	2: FailureKind.TRANSIENT,
	3: FailureKind.TIMEOUT,
	"permission_denied": FailureKind.PERMISSION_DENIED,
	"position_unavailable": FailureKind.TRANSIENT,
	"timeout": FailureKind.TIMEOUT,
}


@dataclass(frozen=True, slots=True)
class PositionOptions:
	timeout: float
	maximum_age: float
	high_accuracy: bool

	def to_dict(self) -> dict[str, Any]:
		return {
			"timeout_ms": int(self.timeout * 1000),
			"maximum_age_ms": int(self.maximum_age * 1000),
			"high_accuracy": self.high_accuracy,
		}


@dataclass(frozen=True, slots=True)
class PositionFix:
	coords: Coordinates
	accuracy_m: Optional[float] = None
	timestamp: float = field(default_factory=time.monotonic)

	def age(self, now: Optional[float] = None) -> float:
		return (time.monotonic() if now is None else now) - self.timestamp


class PositionProvider(Protocol):
	async def get_current_position(self, options: PositionOptions) -> PositionFix:
		"""Return one fix or raise ``LocationError``."""

	def watch(self, on_fix: FixListener, on_error: ErrorListener) -> Subscription:
		...


def failure_kind_from_code(code: Any) -> FailureKind:
	if isinstance(code, str):
		key: Any = code.strip().lower()
		if key.isdigit():
			key = int(key)
	else:
		key = code
	return _BROWSER_ERROR_CODES.get(key, FailureKind.UNKNOWN)


class BrowserPositionProvider:
	"""Relays fixes that a browser reports over the feed socket.

	``request`` is invoked at the start of every one-shot acquisition so the
	client can run ``getCurrentPosition`` with the requested options.
	"""

	def __init__(self, *, request: Optional[Callable[[PositionOptions], Awaitable[None]]] = None) -> None:
		self._request = request
		self._last: Optional[PositionFix] = None
		self._waiters: List[asyncio.Future[PositionFix]] = []
		self._fixes: ListenerSet[PositionFix] = ListenerSet("position_fixes")
		self._errors: ListenerSet[LocationError] = ListenerSet("position_errors")

	@property
	def last_fix(self) -> Optional[PositionFix]:
		return self._last

	async def get_current_position(self, options: PositionOptions) -> PositionFix:
		cached = self._last
		if cached is not None and options.maximum_age > 0 and cached.age() <= options.maximum_age:
			return cached
		loop = asyncio.get_running_loop()
		waiter: asyncio.Future[PositionFix] = loop.create_future()
		self._waiters.append(waiter)
		try:
			if self._request is not None:
				await self._request(options)
			return await asyncio.wait_for(waiter, timeout=options.timeout)
		except asyncio.TimeoutError:
			raise LocationError(FailureKind.TIMEOUT) from None
		finally:
			if waiter in self._waiters:
				self._waiters.remove(waiter)

	def watch(self, on_fix: FixListener, on_error: ErrorListener) -> Subscription:
		fix_sub = self._fixes.add(on_fix)
		error_sub = self._errors.add(on_error)

		def _cancel() -> None:
			fix_sub.cancel()
			error_sub.cancel()

		return Subscription(_cancel)

	async def report_fix(self, fix: PositionFix) -> None:
		self._last = fix
		waiters, self._waiters = self._waiters, []
		for waiter in waiters:
			if not waiter.done():
				waiter.set_result(fix)
		await self._fixes.notify(fix)

	async def report_error(self, error: LocationError) -> None:
		waiters, self._waiters = self._waiters, []
		for waiter in waiters:
			if not waiter.done():
				waiter.set_exception(error)
		logger.info("position.error_reported", extra={"kind": error.kind.value})
		await self._errors.notify(error)


__all__ = [
	"BrowserPositionProvider",
	"PositionFix",
	"PositionOptions",
	"PositionProvider",
	"failure_kind_from_code",
]
