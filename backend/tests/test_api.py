import json
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.exceptions import UpstreamError
from app.main import app, limiter
from app.schemas.weather import DailyForecast, ForecastCity, ForecastResponse
from app.services import weather_cache

PARIS = {
    "name": "Paris",
    "coord": {"lat": 48.85, "lon": 2.35},
    "main": {"temp": 36, "feels_like": 38, "humidity": 10, "pressure": 1012},
    "wind": {"speed": 25, "deg": 200},
    "weather": [{"main": "Clear", "description": "ciel dégagé", "icon": "01d"}],
}


@pytest.fixture(autouse=True)
def _reset_state():
    weather_cache.clear()
    limiter.reset()
    yield
    weather_cache.clear()
    limiter.reset()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "timestamp" in data
    assert data["cache"]["entries"] == 0


@pytest.mark.asyncio
async def test_api_test_route(client):
    resp = await client.get("/api/test")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "message": "API fonctionnelle"}


@pytest.mark.asyncio
async def test_weather_includes_alerts(client):
    with patch("app.services.owm_client.fetch_current", AsyncMock(return_value=PARIS)):
        resp = await client.get("/api/weather/Paris")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Paris"
    assert data["coord"] == {"lat": 48.85, "lon": 2.35}
    assert [(a["type"], a["severity"]) for a in data["alerts"]] == [
        ("temperature", "critical"),
        ("wind", "critical"),
        ("humidity", "info"),
    ]
    assert data["notify"] == ["temperature_Paris_critical_0", "wind_Paris_critical_1"]


@pytest.mark.asyncio
async def test_weather_is_cached(client):
    fetch = AsyncMock(return_value=PARIS)
    with patch("app.services.owm_client.fetch_current", fetch):
        await client.get("/api/weather/Paris")
        resp = await client.get("/api/weather/paris")
    assert resp.status_code == 200
    assert fetch.await_count == 1


@pytest.mark.asyncio
async def test_weather_custom_alerts(client):
    custom = json.dumps({"tempBelow": {"enabled": True, "value": 40}})
    with patch("app.services.owm_client.fetch_current", AsyncMock(return_value=PARIS)):
        resp = await client.get("/api/weather/Paris", params={"customAlerts": custom})
    types = [a["type"] for a in resp.json()["alerts"]]
    assert types[-1] == "custom_temp_low"


@pytest.mark.asyncio
async def test_weather_malformed_custom_alerts_ignored(client):
    with patch("app.services.owm_client.fetch_current", AsyncMock(return_value=PARIS)):
        resp = await client.get("/api/weather/Paris", params={"customAlerts": "{not json"})
    assert resp.status_code == 200
    assert len(resp.json()["alerts"]) == 3


@pytest.mark.asyncio
async def test_weather_invalid_city(client):
    fetch = AsyncMock(return_value=PARIS)
    with patch("app.services.owm_client.fetch_current", fetch):
        resp = await client.get("/api/weather/Paris123")
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Nom de ville invalide")
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_weather_upstream_error(client):
    fetch = AsyncMock(side_effect=UpstreamError("Ville non trouvée", 404))
    with patch("app.services.owm_client.fetch_current", fetch):
        resp = await client.get("/api/weather/Atlantide")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Ville non trouvée"}


@pytest.mark.asyncio
async def test_weather_multiple(client):
    async def fake_fetch(city):
        if city == "Atlantide":
            raise UpstreamError("Ville non trouvée", 404)
        return {**PARIS, "name": city}

    with patch("app.services.owm_client.fetch_current", AsyncMock(side_effect=fake_fetch)):
        resp = await client.get("/api/weather/multiple", params={"cities": "Paris, Atlantide,,Lyon"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] == ["Paris", "Lyon"]
    assert data["errors"] == [{"city": "Atlantide", "error": "Ville non trouvée"}]
    assert set(data["data"]) == {"paris", "lyon"}
    assert data["data"]["lyon"]["alerts"][0]["id"] == "temperature_Lyon_critical_0"


@pytest.mark.asyncio
async def test_forecast_rain_tomorrow(client):
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    forecast = ForecastResponse(
        city=ForecastCity(name="Paris", country="FR"),
        forecasts=[DailyForecast(date=tomorrow, temp=11, temp_min=8, temp_max=13,
                                 main="Rain", description="pluie modérée")],
    )
    custom = json.dumps({"rainTomorrow": True})
    with patch("app.services.owm_client.fetch_forecast", AsyncMock(return_value=forecast)):
        with_flag = await client.get("/api/forecast/Paris", params={"customAlerts": custom})
        without_flag = await client.get("/api/forecast/Paris")

    assert with_flag.status_code == 200
    [alert] = with_flag.json()["alerts"]
    assert alert["type"] == "custom_rain_tomorrow"
    assert alert["severity"] == "info"
    assert without_flag.json()["alerts"] == []
    assert without_flag.json()["forecasts"][0]["date"] == tomorrow


@pytest.mark.asyncio
async def test_radar_tile(client):
    png = b"\x89PNG\r\n\x1a\n"
    with patch("app.services.owm_client.fetch_tile", AsyncMock(return_value=png)):
        resp = await client.get("/api/radar/precipitation_new/5/16/11")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content == png


@pytest.mark.asyncio
async def test_radar_unknown_layer(client):
    resp = await client.get("/api/radar/lava_new/5/16/11")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unknown_route(client):
    resp = await client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Route non trouvée", "path": "/api/nowhere", "method": "GET"}


@pytest.mark.asyncio
async def test_missing_query_parameter_is_400(client):
    resp = await client.get("/api/weather/multiple")
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Paramètres de requête invalides"
    assert body["fields"] == ["query.cities"]


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/radar/precipitation_new/19/1/1", "/api/radar/precipitation_new/5/east/1"])
async def test_invalid_tile_coordinates_are_400(client, path):
    fetch = AsyncMock()
    with patch("app.services.owm_client.fetch_tile", fetch):
        resp = await client.get(path)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Paramètres de requête invalides"
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limit(client):
    with patch.object(limiter, "max_requests", 2):
        assert (await client.get("/api/test")).status_code == 200
        assert (await client.get("/api/test")).status_code == 200
        resp = await client.get("/api/test")
    assert resp.status_code == 429
    assert resp.json() == {"error": "Trop de requêtes, veuillez réessayer plus tard."}
