import pytest

OWNER = {"X-User-Id": "owner-1"}


@pytest.mark.asyncio
async def test_upsert_list_and_delete_registration(api_client):
	resp = await api_client.put(
		"/registrations",
		json={"token": "device-abc", "location": {"lat": 40.0, "lon": -75.0}},
		headers=OWNER,
	)
	assert resp.status_code == 200
	body = resp.json()
	assert body["radius"] == 10
	assert body["has_location"] is True
	assert "token" not in body

	listed = await api_client.get("/registrations", headers=OWNER)
	assert len(listed.json()) == 1

	deleted = await api_client.delete("/registrations/device-abc", headers=OWNER)
	assert deleted.status_code == 204

	missing = await api_client.delete("/registrations/device-abc", headers=OWNER)
	assert missing.status_code == 404


@pytest.mark.asyncio
async def test_other_owner_cannot_delete(api_client):
	await api_client.put("/registrations", json={"token": "device-xyz", "radius": 5}, headers=OWNER)
	resp = await api_client.delete("/registrations/device-xyz", headers={"X-User-Id": "intruder"})
	assert resp.status_code == 404


@pytest.mark.asyncio
async def test_radius_must_be_positive(api_client):
	resp = await api_client.put("/registrations", json={"token": "t", "radius": 0}, headers=OWNER)
	assert resp.status_code == 422
