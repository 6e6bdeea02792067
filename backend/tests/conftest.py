import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from saleradar.main import create_app
from saleradar.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from saleradar.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep background workers and outbound HTTP out of unit tests."""
	original = (settings.environment, settings.geocoder_enabled, settings.push_provider)
	settings.environment = "dev"
	settings.geocoder_enabled = False
	settings.push_provider = "log"
	try:
		yield
	finally:
		settings.environment, settings.geocoder_enabled, settings.push_provider = original


@pytest_asyncio.fixture
async def app(force_test_settings):
	application = create_app(settings)
	try:
		yield application
	finally:
		await application.state.services.aclose()


@pytest_asyncio.fixture
async def api_client(app):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
