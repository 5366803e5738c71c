import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import httpx

from app.config import settings
from app.exceptions import UpstreamError
from app.schemas.weather import DailyForecast, ForecastCity, ForecastResponse

logger = logging.getLogger(__name__)

HEADERS = {"Accept": "application/json"}

FORECAST_DAYS = 5

RADAR_LAYERS = frozenset({"precipitation_new", "clouds_new", "temp_new", "wind_new"})

# Upstream status -> message shown to the client
_STATUS_MESSAGES: dict[int, str] = {
    400: "Requête invalide",
    401: "Clé API invalide",
    404: "Ville non trouvée",
    429: "Limite de requêtes API atteinte",
}
_GENERIC_MESSAGE = "Erreur lors de la récupération des données météo"
_TIMEOUT_MESSAGE = "Le serveur météo ne répond pas"


async def fetch_current(city: str) -> dict:
    """Fetch current conditions for a city from OpenWeatherMap (raw payload)."""
    return await _get_json("/weather", city)


async def fetch_forecast(city: str, now: datetime | None = None) -> ForecastResponse:
    """Fetch the 5 day / 3 hour forecast and collapse it into one entry per day."""
    data = await _get_json("/forecast", city)
    city_info = data.get("city") or {}
    offset = int(city_info.get("timezone") or 0)
    return ForecastResponse(
        city=ForecastCity(
            name=city_info.get("name") or city,
            country=city_info.get("country"),
            timezone=offset,
        ),
        forecasts=summarize_daily(data.get("list", []), offset, now),
    )


async def fetch_tile(layer: str, z: int, x: int, y: int) -> bytes:
    """Fetch one map tile (PNG) for a weather overlay layer."""
    _require_key()
    url = f"{settings.owm_tile_url}/{layer}/{z}/{x}/{y}.png"
    try:
        async with httpx.AsyncClient(timeout=settings.owm_timeout_seconds) as client:
            resp = await client.get(url, params={"appid": settings.owm_api_key})
            resp.raise_for_status()
            return resp.content
    except httpx.HTTPStatusError as e:
        raise _translate_status(e, f"tile {layer}/{z}/{x}/{y}") from e
    except httpx.RequestError as e:
        logger.warning("OWM tile fetch failed for %s/%s/%s/%s: %s", layer, z, x, y, e)
        raise UpstreamError(_TIMEOUT_MESSAGE, 504) from e


def summarize_daily(
    points: list[dict],
    tz_offset: int = 0,
    now: datetime | None = None,
) -> list[DailyForecast]:
    """Group 3-hourly points by city-local date, skipping today.

    Temperatures: mean of temp, min of temp_min, max of temp_max.
    Condition: taken from the point closest to local noon.
    """
    offset = timedelta(seconds=tz_offset)
    today = ((now or datetime.now(timezone.utc)) + offset).date()

    by_day: dict[str, list[tuple[datetime, dict]]] = defaultdict(list)
    for p in points:
        if "dt" not in p:
            continue
        local = datetime.fromtimestamp(p["dt"], tz=timezone.utc) + offset
        if local.date() <= today:
            continue
        by_day[local.date().isoformat()].append((local, p))

    days = []
    for day in sorted(by_day)[:FORECAST_DAYS]:
        entries = by_day[day]
        mains = [p.get("main") or {} for _, p in entries]
        mains = [m for m in mains if m.get("temp") is not None]
        if not mains:
            continue
        temps = [m["temp"] for m in mains]
        lows = [m["temp_min"] if m.get("temp_min") is not None else m["temp"] for m in mains]
        highs = [m["temp_max"] if m.get("temp_max") is not None else m["temp"] for m in mains]
        humidities = [m["humidity"] for m in mains if m.get("humidity") is not None]
        _, midday = min(entries, key=lambda e: abs(e[0].hour - 12))
        condition = (midday.get("weather") or [{}])[0]
        days.append(DailyForecast(
            date=day,
            temp=round(sum(temps) / len(temps), 1),
            temp_min=min(lows),
            temp_max=max(highs),
            humidity=round(sum(humidities) / len(humidities)) if humidities else None,
            main=condition.get("main"),
            description=condition.get("description"),
            icon=condition.get("icon"),
        ))
    return days


async def _get_json(path: str, city: str) -> dict:
    _require_key()
    params = {
        "q": city,
        "units": settings.owm_units,
        "lang": settings.owm_lang,
        "appid": settings.owm_api_key,
    }
    try:
        async with httpx.AsyncClient(headers=HEADERS, timeout=settings.owm_timeout_seconds) as client:
            resp = await client.get(f"{settings.owm_base_url}{path}", params=params)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPStatusError as e:
        raise _translate_status(e, f"{path} for {city}") from e
    except httpx.RequestError as e:
        logger.warning("OWM %s fetch failed for %s: %s", path, city, e)
        raise UpstreamError(_TIMEOUT_MESSAGE, 504) from e

    if not data:
        raise UpstreamError("Aucune donnée reçue de l'API OpenWeather", 502)
    return data


def _translate_status(e: httpx.HTTPStatusError, what: str) -> UpstreamError:
    status = e.response.status_code
    logger.warning("OWM %s returned HTTP %d", what, status)
    if status in _STATUS_MESSAGES:
        return UpstreamError(_STATUS_MESSAGES[status], status)
    return UpstreamError(_GENERIC_MESSAGE, status)


def _require_key():
    if not settings.owm_api_key:
        logger.error("OWM_API_KEY is not configured")
        raise UpstreamError(_GENERIC_MESSAGE, 500)
