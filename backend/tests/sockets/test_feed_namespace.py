import asyncio
from unittest.mock import AsyncMock

import pytest
import socketio

from saleradar.domain.feed.change_feed import ListingChangeFeed
from saleradar.domain.feed.sockets import FeedNamespace
from saleradar.domain.geo import Coordinates
from saleradar.domain.listings.repo import RedisListingRepository


def _scope(user_id: str | None = None) -> dict:
	headers = [(b"x-user-id", user_id.encode())] if user_id else []
	return {"asgi.scope": {"headers": headers}}


def _namespace(change_feed=None) -> FeedNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = FeedNamespace(change_feed=change_feed)
	server.register_namespace(namespace)
	namespace.emit = AsyncMock()
	return namespace


def _emitted(namespace, event: str) -> list:
	return [call.args[1] for call in namespace.emit.await_args_list if call.args[0] == event]


async def _settle():
	for _ in range(5):
		await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_connect_requires_user():
	namespace = _namespace()
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", _scope())


@pytest.mark.asyncio
async def test_location_produces_sorted_feed_update():
	repo = RedisListingRepository()
	near = await repo.create(owner_id="seller-near", location=Coordinates(lat=40.0145, lon=-75.0))
	far = await repo.create(owner_id="seller-far", location=Coordinates(lat=40.0724, lon=-75.0))
	await repo.create(owner_id="seller-out", location=Coordinates(lat=41.0, lon=-75.0))
	namespace = _namespace(ListingChangeFeed(repository=repo, block_ms=None))

	await namespace.trigger_event("connect", "sid-1", _scope("viewer-1"))
	await _settle()
	assert _emitted(namespace, "feed.locate")[0]["high_accuracy"] is True

	await namespace.trigger_event("feed_location", "sid-1", {"lat": 40.0, "lon": -75.0})
	await _settle()

	updates = _emitted(namespace, "feed.update")
	assert [item["id"] for item in updates[-1]["items"]] == [near.id, far.id]
	assert updates[-1]["radius"] == 10

	await namespace.trigger_event("disconnect", "sid-1")
	assert "sid-1" not in namespace.sessions


@pytest.mark.asyncio
async def test_radius_change_emits_new_view():
	namespace = _namespace()
	await namespace.trigger_event("connect", "sid-1", _scope("viewer-1"))
	await namespace.trigger_event("feed_location", "sid-1", {"lat": 40.0, "lon": -75.0})
	await _settle()
	before = len(_emitted(namespace, "feed.update"))

	await namespace.trigger_event("feed_radius", "sid-1", {"radius": 25})

	updates = _emitted(namespace, "feed.update")
	assert len(updates) == before + 1
	assert updates[-1]["zoom"] == 12
	await namespace.trigger_event("disconnect", "sid-1")


@pytest.mark.asyncio
async def test_permission_denied_emits_feed_error():
	namespace = _namespace()
	await namespace.trigger_event("connect", "sid-1", _scope("viewer-1"))
	await _settle()

	await namespace.trigger_event("feed_location_error", "sid-1", {"code": 1})
	await _settle()

	errors = _emitted(namespace, "feed.error")
	assert errors == [
		{
			"code": "permission_denied",
			"message": "Location permission denied. Allow location access to see sales near you.",
		}
	]
	await namespace.trigger_event("disconnect", "sid-1")


@pytest.mark.asyncio
async def test_invalid_payloads_warn():
	namespace = _namespace()
	await namespace.trigger_event("connect", "sid-1", _scope("viewer-1"))

	await namespace.trigger_event("feed_location", "sid-1", {"lat": "north"})
	await namespace.trigger_event("feed_radius", "sid-1", {"radius": -3})

	assert _emitted(namespace, "sys.warn") == [{"code": "invalid_payload"}, {"code": "invalid_payload"}]
	await namespace.trigger_event("disconnect", "sid-1")


@pytest.mark.asyncio
async def test_events_without_session_warn():
	namespace = _namespace()
	await namespace.trigger_event("feed_radius", "ghost", {"radius": 5})
	assert _emitted(namespace, "sys.warn") == [{"code": "unauthorized"}]
