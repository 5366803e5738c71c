import asyncio
import json
import logging
import re

from fastapi import APIRouter, Query

from app.config import settings
from app.exceptions import InvalidCityError, WeatherServiceError
from app.schemas.weather import ForecastResponse
from app.services import owm_client, weather_cache
from app.services.alert_engine import (
    DEFAULT_THRESHOLDS,
    check_rain_tomorrow,
    detect_alerts,
    should_notify,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["weather"])

# Letters (accented included), spaces, hyphens and apostrophes
_CITY_PATTERN = re.compile(r"^[a-zA-ZÀ-ÖØ-öø-ÿ\s'-]+$")
_INVALID_CITY = (
    "Nom de ville invalide. Utilisez uniquement des lettres, "
    "des espaces, des tirets et des apostrophes."
)

CUSTOM_ALERTS_QUERY = Query(None, alias="customAlerts", description="JSON-encoded custom alert settings")


@router.get("/weather/multiple")
async def get_multiple_weather(
    cities: str = Query(..., description="Comma-separated city names"),
    custom_alerts: str | None = CUSTOM_ALERTS_QUERY,
):
    """Current weather for several cities; per-city failures are reported, not raised."""
    names = [c.strip() for c in cities.split(",") if c.strip()][:settings.multi_city_limit]
    custom = parse_custom_alerts(custom_alerts)

    results = await asyncio.gather(
        *(_weather_with_alerts(name, custom) for name in names),
        return_exceptions=True,
    )

    success, errors, data = [], [], {}
    for name, result in zip(names, results):
        if isinstance(result, WeatherServiceError):
            errors.append({"city": name, "error": result.message})
        elif isinstance(result, Exception):
            logger.error("Unexpected failure fetching %s: %s", name, result)
            errors.append({"city": name, "error": "Erreur inconnue"})
        else:
            success.append(name)
            data[name.lower()] = result
    return {"success": success, "errors": errors, "data": data}


@router.get("/weather/{city}")
async def get_weather(city: str, custom_alerts: str | None = CUSTOM_ALERTS_QUERY):
    """Current weather for a city with its alerts attached."""
    return await _weather_with_alerts(city, parse_custom_alerts(custom_alerts))


@router.get("/forecast/{city}", response_model=ForecastResponse)
async def get_forecast(city: str, custom_alerts: str | None = CUSTOM_ALERTS_QUERY):
    """Daily forecast starting tomorrow; alerts holds the rain-tomorrow alert if it fires."""
    city = validate_city(city)
    key = weather_cache.cache_key("forecast", city)
    cached = weather_cache.get(key)
    if cached is not None:
        logger.info("Forecast cache hit for %s", city)
        forecast = ForecastResponse.model_validate(cached)
    else:
        forecast = await owm_client.fetch_forecast(city)
        weather_cache.put(key, forecast.model_dump(mode="json"))

    rain = check_rain_tomorrow(forecast, parse_custom_alerts(custom_alerts))
    forecast.alerts = [rain] if rain else []
    return forecast


async def _weather_with_alerts(city: str, custom: dict | None) -> dict:
    city = validate_city(city)
    key = weather_cache.cache_key("weather", city)
    payload = weather_cache.get(key)
    if payload is not None:
        logger.info("Weather cache hit for %s", city)
    else:
        payload = await owm_client.fetch_current(city)
        weather_cache.put(key, payload)

    alerts = detect_alerts(payload, DEFAULT_THRESHOLDS, custom)
    return {
        **payload,
        "alerts": [a.model_dump(mode="json") for a in alerts],
        "notify": [a.id for a in alerts if should_notify(a)],
    }


def validate_city(city: str) -> str:
    city = (city or "").strip()
    if not city or not _CITY_PATTERN.match(city):
        logger.info("Rejected city name: %r", city)
        raise InvalidCityError(_INVALID_CITY)
    return city


def parse_custom_alerts(raw: str | None) -> dict | None:
    """Decode the client's custom-alert JSON blob. Malformed input disables custom checks."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring malformed customAlerts parameter: %s", e)
        return None
    if not isinstance(parsed, dict):
        logger.warning("Ignoring customAlerts parameter of type %s", type(parsed).__name__)
        return None
    return parsed
