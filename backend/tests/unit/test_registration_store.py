import pytest

from saleradar.domain.geo import Coordinates
from saleradar.domain.registrations.store import TOKEN_INDEX, RedisRegistrationStore
from saleradar.settings import settings

HOME = Coordinates(lat=40.0, lon=-75.0)


async def _collect(store):
	return [item async for item in store.list_all()]


@pytest.mark.asyncio
async def test_upsert_defaults_radius_and_platform():
	store = RedisRegistrationStore()
	registration = await store.upsert("tok-1", "owner-1", HOME)
	assert registration.radius == settings.default_radius_miles
	assert registration.platform == "web"
	stored = await store.get("owner-1", "tok-1")
	assert stored is not None
	assert stored.location == HOME


@pytest.mark.asyncio
async def test_upsert_is_idempotent_by_token():
	store = RedisRegistrationStore()
	first = await store.upsert("tok-1", "owner-1", HOME, 5)
	second = await store.upsert("tok-1", "owner-1", HOME, 7)
	items = await _collect(store)
	assert len(items) == 1
	assert items[0].radius == 7
	assert second.created_at == first.created_at


@pytest.mark.asyncio
async def test_upsert_moves_token_to_new_owner(fake_redis):
	store = RedisRegistrationStore()
	await store.upsert("tok-1", "owner-1", HOME)
	await store.upsert("tok-1", "owner-2", HOME)
	assert await store.get("owner-1", "tok-1") is None
	assert await store.get("owner-2", "tok-1") is not None
	assert await fake_redis.hget(TOKEN_INDEX, "tok-1") == "owner-2"


@pytest.mark.asyncio
async def test_upsert_without_location_clears_previous_location():
	store = RedisRegistrationStore()
	await store.upsert("tok-1", "owner-1", HOME)
	await store.upsert("tok-1", "owner-1", None)
	stored = await store.get("owner-1", "tok-1")
	assert stored is not None
	assert stored.location is None
	assert not stored.matchable


@pytest.mark.asyncio
async def test_delete_by_token_removes_records_under_every_owner(fake_redis):
	store = RedisRegistrationStore()
	await store.upsert("shared", "owner-1", HOME)
	# A stale duplicate written outside the index, as left behind by older clients.
	await fake_redis.hset("registrations:owner-2:shared", mapping={"token": "shared", "owner_id": "owner-2"})
	await store.upsert("other", "owner-2", HOME)

	removed = await store.delete_by_token("shared")

	assert removed == 2
	remaining = [item.token for item in await _collect(store)]
	assert remaining == ["other"]
	assert await fake_redis.hget(TOKEN_INDEX, "shared") is None


@pytest.mark.asyncio
async def test_delete_by_token_treats_glob_characters_literally():
	store = RedisRegistrationStore()
	await store.upsert("a*", "owner-1", HOME)
	await store.upsert("abc", "owner-1", HOME)
	assert await store.delete_by_token("a*") == 1
	assert [item.token for item in await _collect(store)] == ["abc"]


@pytest.mark.asyncio
async def test_remove_is_scoped_to_owner():
	store = RedisRegistrationStore()
	await store.upsert("tok-1", "owner-1", HOME)
	assert not await store.remove("owner-2", "tok-1")
	assert await store.remove("owner-1", "tok-1")
	assert await store.list_for_owner("owner-1") == []


@pytest.mark.asyncio
async def test_list_all_skips_malformed_records(fake_redis):
	store = RedisRegistrationStore()
	await store.upsert("tok-1", "owner-1", HOME)
	await fake_redis.hset("registrations:owner-9:broken", mapping={"owner_id": "owner-9"})
	assert [item.token for item in await _collect(store)] == ["tok-1"]


@pytest.mark.asyncio
async def test_list_all_tolerates_concurrent_upserts_and_deletes():
	store = RedisRegistrationStore(scan_count=2)
	owners = {f"tok-{idx}": f"owner-{idx}" for idx in range(24)}
	for token, owner in owners.items():
		await store.upsert(token, owner, HOME)
	doomed = {token for idx, token in enumerate(owners) if idx % 3 == 0}

	before, after = [], []
	mutated = False
	async for registration in store.list_all():
		(after if mutated else before).append(registration.token)
		if mutated:
			continue
		for token in doomed - {registration.token}:
			assert await store.remove(owners[token], token)
		for idx in range(6):
			await store.upsert(f"late-{idx}", "owner-late", HOME)
		await store.delete_by_token("tok-1")
		mutated = True

	yielded = before + after
	stable = set(owners) - doomed - {"tok-1"}
	assert stable <= set(yielded)
	assert not (set(after) & (doomed | {"tok-1"}))
