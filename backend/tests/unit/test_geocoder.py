import httpx
import pytest

from saleradar.domain.errors import GeocoderUnavailableError
from saleradar.domain.feed.geocoder import NominatimGeocoder, ResolvedAddress
from saleradar.domain.geo import Coordinates


def _geocoder(handler) -> NominatimGeocoder:
	client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
	return NominatimGeocoder(base_url="https://geo.test/", user_agent="saleradar-tests", http=client)


@pytest.mark.asyncio
async def test_resolve_parses_first_match():
	seen = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(request)
		return httpx.Response(
			200,
			json=[
				{
					"lat": "40.0021",
					"lon": "-75.0003",
					"display_name": "12 Elm St, Media, Pennsylvania, 19063",
					"address": {"town": "Media", "state": "Pennsylvania", "postcode": "19063"},
				}
			],
		)

	resolved = await _geocoder(handler).resolve("12 Elm St")

	assert resolved == ResolvedAddress(
		coords=Coordinates(lat=40.0021, lon=-75.0003),
		formatted="12 Elm St, Media, Pennsylvania, 19063",
		city="Media",
		state="Pennsylvania",
		postcode="19063",
	)
	assert resolved.complete
	assert seen[0].url.path == "/search"
	assert seen[0].url.params["q"] == "12 Elm St"


@pytest.mark.asyncio
async def test_resolve_without_locality_is_incomplete():
	def handler(request):
		return httpx.Response(200, json=[{"lat": "40", "lon": "-75", "display_name": "Pennsylvania", "address": {"state": "Pennsylvania"}}])

	resolved = await _geocoder(handler).resolve("Pennsylvania")
	assert resolved is not None
	assert not resolved.complete


@pytest.mark.asyncio
async def test_resolve_returns_none_when_nothing_matches():
	geocoder = _geocoder(lambda request: httpx.Response(200, json=[]))
	assert await geocoder.resolve("zzz") is None


@pytest.mark.asyncio
async def test_resolve_raises_when_service_fails():
	geocoder = _geocoder(lambda request: httpx.Response(502))
	with pytest.raises(GeocoderUnavailableError):
		await geocoder.resolve("12 Elm St")


@pytest.mark.asyncio
async def test_reverse_degrades_to_none():
	ok = _geocoder(lambda request: httpx.Response(200, json={"display_name": "1 Main St"}))
	broken = _geocoder(lambda request: httpx.Response(500))
	coords = Coordinates(lat=40.0, lon=-75.0)

	assert await ok.reverse(coords) == "1 Main St"
	assert await broken.reverse(coords) is None


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
	client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])))
	geocoder = NominatimGeocoder(base_url="https://geo.test", user_agent="t", http=client)
	await geocoder.aclose()
	assert not client.is_closed
	await client.aclose()
