"""Small primitives shared by the feed components."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], Awaitable[None]]


class Subscription:
	"""Handle returned by ``subscribe``; ``cancel`` is idempotent."""

	def __init__(self, on_cancel: Callable[[], None]) -> None:
		self._on_cancel = on_cancel
		self._cancelled = False

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	def cancel(self) -> None:
		if self._cancelled:
			return
		self._cancelled = True
		self._on_cancel()


class ListenerSet(Generic[T]):
	"""Ordered async listeners; one failing listener never blocks the rest."""

	def __init__(self, name: str) -> None:
		self._name = name
		self._listeners: Dict[int, Listener[T]] = {}
		self._next = 0

	def add(self, listener: Listener[T]) -> Subscription:
		key = self._next
		self._next += 1
		self._listeners[key] = listener
		return Subscription(lambda: self._listeners.pop(key, None))

	def clear(self) -> None:
		self._listeners.clear()

	def __len__(self) -> int:
		return len(self._listeners)

	async def notify(self, value: T) -> None:
		listeners: List[Listener[T]] = list(self._listeners.values())
		for listener in listeners:
			try:
				await listener(value)
			except Exception:
				logger.exception("listener_failed", extra={"listener_set": self._name})
