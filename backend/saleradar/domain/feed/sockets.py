"""Socket.IO namespace streaming the live nearby feed."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import socketio

from saleradar.domain.errors import LocationError
from saleradar.domain.feed.change_feed import ListingChangeFeed
from saleradar.domain.feed.geocoder import Geocoder
from saleradar.domain.feed.positions import failure_kind_from_code
from saleradar.domain.feed.session import FeedSession
from saleradar.domain.geo import Coordinates
from saleradar.infra import rate_limit
from saleradar.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MAX_RADIUS_MILES = 100.0


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _parse_radius(raw: Any) -> Optional[float]:
	try:
		radius = float(raw)
	except (TypeError, ValueError):
		return None
	if radius != radius or radius <= 0 or radius > MAX_RADIUS_MILES:
		return None
	return radius


def _parse_accuracy(raw: Any) -> Optional[float]:
	if raw is None:
		return None
	try:
		return float(raw)
	except (TypeError, ValueError):
		return None


class FeedNamespace(socketio.AsyncNamespace):
	def __init__(
		self,
		*,
		change_feed: Optional[ListingChangeFeed] = None,
		geocoder: Optional[Geocoder] = None,
	) -> None:
		super().__init__("/feed")
		self.change_feed = change_feed
		self.geocoder = geocoder
		self.sessions: Dict[str, FeedSession] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or {}
		user_id = auth_payload.get("user_id") or _header(scope, "x-user-id")
		if not user_id:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("unauthorized")
		radius = None
		if auth_payload.get("radius") is not None:
			radius = _parse_radius(auth_payload.get("radius"))
		session = FeedSession(
			session_id=sid,
			user_id=str(user_id),
			emit=lambda event, data: self.emit(event, data, room=sid),
			change_feed=self.change_feed,
			geocoder=self.geocoder,
			radius=radius,
		)
		self.sessions[sid] = session
		await session.open()

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		session = self.sessions.pop(sid, None)
		if session is None:
			return
		await session.close()

	async def on_feed_location(self, sid: str, data: dict) -> None:
		obs_metrics.socket_event(self.namespace, "feed_location")
		session = self.sessions.get(sid)
		if session is None:
			await self.emit("sys.warn", {"code": "unauthorized"}, room=sid)
			return
		if not await self._allowed("feed_location", session, sid):
			return
		coords = Coordinates.from_mapping(data if isinstance(data, dict) else None)
		if coords is None:
			await self.emit("sys.warn", {"code": "invalid_payload"}, room=sid)
			return
		await session.report_position(coords, _parse_accuracy(data.get("accuracy_m")))

	async def on_feed_location_error(self, sid: str, data: dict) -> None:
		obs_metrics.socket_event(self.namespace, "feed_location_error")
		session = self.sessions.get(sid)
		if session is None:
			await self.emit("sys.warn", {"code": "unauthorized"}, room=sid)
			return
		code = data.get("code") if isinstance(data, dict) else data
		await session.report_position_error(LocationError(failure_kind_from_code(code)))

	async def on_feed_radius(self, sid: str, data: dict) -> None:
		obs_metrics.socket_event(self.namespace, "feed_radius")
		session = self.sessions.get(sid)
		if session is None:
			await self.emit("sys.warn", {"code": "unauthorized"}, room=sid)
			return
		if not await self._allowed("feed_radius", session, sid):
			return
		radius = _parse_radius(data.get("radius") if isinstance(data, dict) else data)
		if radius is None:
			await self.emit("sys.warn", {"code": "invalid_payload"}, room=sid)
			return
		await session.set_radius(radius)

	async def _allowed(self, kind: str, session: FeedSession, sid: str) -> bool:
		if await rate_limit.allow_action(kind, f"{session.user_id}:{sid}"):
			return True
		await self.emit("sys.warn", {"code": "rate_limited"}, room=sid)
		return False


__all__ = ["FeedNamespace"]
