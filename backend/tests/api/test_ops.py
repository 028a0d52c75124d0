import pytest

from swipematch.settings import settings


@pytest.mark.asyncio
async def test_health_live(api_client):
	response = await api_client.get("/health/live")
	assert response.status_code == 200
	body = response.json()
	assert body["status"] == "ok"
	assert body["service"] == settings.service_name


@pytest.mark.asyncio
async def test_health_ready_with_memory_backend(api_client):
	response = await api_client.get("/health/ready")
	assert response.status_code == 200
	body = response.json()
	assert body["checks"]["postgres"]["skipped"] is True
	assert body["checks"]["redis"]["ok"] is True


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "s3cret")

	response = await api_client.get("/metrics")
	assert response.status_code == 403

	response = await api_client.get("/metrics", headers={"X-Admin-Token": "s3cret"})
	assert response.status_code == 200
	assert "swipematch_swipes_recorded_total" in response.text


@pytest.mark.asyncio
async def test_metrics_public(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", True)
	response = await api_client.get("/metrics")
	assert response.status_code == 200
