import pytest

from saleradar.domain.geo import Coordinates
from saleradar.domain.listings.repo import RedisListingRepository
from saleradar.workers.fanout_worker import CURSOR_KEY, ListingFanoutWorker

HOME = Coordinates(lat=40.0, lon=-75.0)


class StubDispatcher:
	def __init__(self, fail=False):
		self.listings = []
		self.fail = fail

	async def dispatch(self, listing):
		self.listings.append(listing)
		if self.fail:
			raise ConnectionError("redis went away")


@pytest.mark.asyncio
async def test_worker_dispatches_created_events_only(fake_redis):
	repo = RedisListingRepository()
	dispatcher = StubDispatcher()
	worker = ListingFanoutWorker(dispatcher=dispatcher, block_ms=None)
	assert await worker.process_once() == 0

	listing = await repo.create(owner_id="seller-1", location=HOME, category="Estate Sale")
	await repo.end(listing.id, actor_id="seller-1")

	assert await worker.process_once() == 2
	assert [item.id for item in dispatcher.listings] == [listing.id]
	assert dispatcher.listings[0].location == HOME
	assert dispatcher.listings[0].category == "Estate Sale"
	assert await fake_redis.get(CURSOR_KEY) is not None


@pytest.mark.asyncio
async def test_new_worker_starts_at_tail_and_resumes_from_cursor():
	repo = RedisListingRepository()
	await repo.create(owner_id="seller-1", location=HOME)

	fresh = ListingFanoutWorker(dispatcher=StubDispatcher(), block_ms=None)
	assert await fresh.process_once() == 0

	second = await repo.create(owner_id="seller-2", location=HOME)
	assert await fresh.process_once() == 1

	third = await repo.create(owner_id="seller-3", location=HOME)
	restarted_dispatcher = StubDispatcher()
	restarted = ListingFanoutWorker(dispatcher=restarted_dispatcher, block_ms=None)
	assert await restarted.process_once() == 1
	assert [item.id for item in restarted_dispatcher.listings] == [third.id]
	assert second.id != third.id


@pytest.mark.asyncio
async def test_dispatch_failure_is_logged_and_cursor_advances():
	repo = RedisListingRepository()
	worker = ListingFanoutWorker(dispatcher=StubDispatcher(fail=True), block_ms=None)
	await worker.process_once()
	await repo.create(owner_id="seller-1", location=HOME)

	assert await worker.process_once() == 1
	assert await worker.process_once() == 0
