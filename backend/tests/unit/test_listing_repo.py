import asyncio

import pytest

from saleradar.domain.errors import ConflictError, ForbiddenError, NotFoundError
from saleradar.domain.geo import Coordinates
from saleradar.domain.listings.models import ListingStatus
from saleradar.domain.listings.repo import LIVE_SET, RedisListingRepository
from saleradar.domain.listings.streams import STREAM_LISTING

HOME = Coordinates(lat=40.0, lon=-75.0)


@pytest.mark.asyncio
async def test_create_persists_and_publishes(fake_redis):
    repo = RedisListingRepository()
    listing = await repo.create(owner_id="seller", location=HOME, description="Books")

    stored = await repo.get(listing.id)
    assert stored is not None
    assert stored.location == HOME
    assert stored.status is ListingStatus.LIVE
    assert await fake_redis.sismember(LIVE_SET, listing.id)

    entries = await fake_redis.xrange(STREAM_LISTING)
    assert len(entries) == 1
    _, payload = entries[0]
    assert payload["event"] == "created"
    assert payload["id"] == listing.id


@pytest.mark.asyncio
async def test_one_live_listing_per_owner():
    repo = RedisListingRepository()
    first = await repo.create(owner_id="seller", location=HOME)
    with pytest.raises(ConflictError):
        await repo.create(owner_id="seller", location=HOME)

    await repo.end(first.id, actor_id="seller")
    second = await repo.create(owner_id="seller", location=HOME)
    assert second.id != first.id


@pytest.mark.asyncio
async def test_end_transitions_exactly_once():
    repo = RedisListingRepository()
    listing = await repo.create(owner_id="seller", location=HOME)

    ended = await repo.end(listing.id, actor_id="seller")
    assert ended.status is ListingStatus.ENDED
    assert ended.ended_at is not None

    with pytest.raises(ConflictError):
        await repo.end(listing.id, actor_id="seller")
    assert await repo.list_live() == []


@pytest.mark.asyncio
async def test_only_owner_or_admin_can_end():
    repo = RedisListingRepository()
    listing = await repo.create(owner_id="seller", location=HOME)

    with pytest.raises(ForbiddenError):
        await repo.end(listing.id, actor_id="someone-else")

    ended = await repo.end(listing.id, actor_id="moderator", is_admin=True)
    assert ended.status is ListingStatus.ENDED


@pytest.mark.asyncio
async def test_end_unknown_listing():
    repo = RedisListingRepository()
    with pytest.raises(NotFoundError):
        await repo.end("missing", actor_id="seller")


@pytest.mark.asyncio
async def test_list_live_ignores_malformed_coordinates(fake_redis):
    repo = RedisListingRepository()
    await fake_redis.hset("listings:bad", mapping={"id": "bad", "owner_id": "x", "lat": "n/a", "lon": "", "status": "live"})
    await fake_redis.sadd(LIVE_SET, "bad")

    listings = await repo.list_live()

    assert [listing.id for listing in listings] == ["bad"]
    assert listings[0].location is None


@pytest.mark.asyncio
async def test_concurrent_creates_leave_one_live_listing():
    repo = RedisListingRepository()
    results = await asyncio.gather(
        *(repo.create(owner_id="seller", location=HOME) for _ in range(4)),
        return_exceptions=True,
    )

    created = [item for item in results if not isinstance(item, Exception)]
    conflicts = [item for item in results if isinstance(item, ConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 3
    assert [listing.id for listing in await repo.list_live()] == [created[0].id]


@pytest.mark.asyncio
async def test_create_reclaims_marker_left_by_ended_listing(fake_redis):
    repo = RedisListingRepository()
    first = await repo.create(owner_id="seller", location=HOME)
    # An end that removed the listing from the live set but never cleared the marker.
    await fake_redis.srem(LIVE_SET, first.id)

    second = await repo.create(owner_id="seller", location=HOME)

    assert await fake_redis.get("listings:owner_live:seller") == second.id
    assert (await repo.live_for_owner("seller")).id == second.id


@pytest.mark.asyncio
async def test_list_for_owner_is_newest_first_and_scoped():
    repo = RedisListingRepository()
    first = await repo.create(owner_id="seller", location=HOME, description="Spring")
    await repo.end(first.id, actor_id="seller")
    second = await repo.create(owner_id="seller", location=HOME, description="Summer")
    await repo.create(owner_id="neighbour", location=HOME)

    history = await repo.list_for_owner("seller")

    assert [listing.id for listing in history] == [second.id, first.id]
    assert [listing.status for listing in history] == [ListingStatus.LIVE, ListingStatus.ENDED]
    assert await repo.list_for_owner("nobody") == []
    assert [listing.id for listing in await repo.list_for_owner("seller", limit=1)] == [second.id]
