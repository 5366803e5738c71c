"""Threshold-based weather alert detection.

Classifies one current-weather observation into a list of alert events:

  1. Temperature   - one of extreme cold / cold / heatwave / hot, or nothing
  2. Wind          - dangerous or strong (km/h), or nothing
  3. Condition     - thunderstorm or snow
  4. Humidity      - dry or humid air, only for a valid 0-100 reading
  5. Custom        - user thresholds (temp below, temp above, wind above)

Checks 1 and 2 are exclusive chains: rules are tried in order and the first
match wins. Everything else is independent and may co-fire.

Bad input never raises. Unusable readings are NaN and compare false, so the
result is simply fewer alerts.
"""

import logging
import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable, NamedTuple

from pydantic import ValidationError

from app.schemas.alerts import (
    AlertEvent,
    AlertType,
    CustomAlertConfig,
    Severity,
    ThresholdConfig,
)
from app.schemas.weather import ForecastResponse, WeatherObservation

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = ThresholdConfig()

NOTIFY_SEVERITIES = frozenset({Severity.CRITICAL, Severity.WARNING})

# Forecast condition codes that count as rain (language independent)
RAIN_CONDITIONS = frozenset({"rain", "drizzle"})


class _Rule(NamedTuple):
    predicate: Callable[[float, ThresholdConfig], bool]
    severity: Severity
    title: str
    message: str  # formatted with {value}
    icon: str


_TEMPERATURE_RULES: tuple[_Rule, ...] = (
    _Rule(lambda t, th: t <= th.temperature.extreme_cold, Severity.CRITICAL,
          "Froid extrême", "Température très basse: {value}°C", "snowflake"),
    _Rule(lambda t, th: t <= th.temperature.cold, Severity.WARNING,
          "Température froide", "Risque de gel: {value}°C", "freeze"),
    _Rule(lambda t, th: t >= th.temperature.extreme_hot, Severity.CRITICAL,
          "Canicule", "Chaleur extrême: {value}°C", "fire"),
    _Rule(lambda t, th: t >= th.temperature.hot, Severity.WARNING,
          "Forte chaleur", "Température élevée: {value}°C", "sun"),
)

_WIND_RULES: tuple[_Rule, ...] = (
    _Rule(lambda w, th: w >= th.wind.dangerous, Severity.CRITICAL,
          "Vent dangereux", "Vent très fort: {value} km/h", "alert"),
    _Rule(lambda w, th: w >= th.wind.strong, Severity.WARNING,
          "Vent fort", "Vent soutenu: {value} km/h", "wind"),
)

_HUMIDITY_RULES: tuple[_Rule, ...] = (
    _Rule(lambda h, th: h <= th.humidity.low, Severity.INFO,
          "Air sec", "Humidité faible: {value}%", "desert"),
    _Rule(lambda h, th: h >= th.humidity.high, Severity.WARNING,
          "Humidité élevée", "Air très humide: {value}%", "droplet"),
)

# condition code -> (severity, title, message, icon)
_SPECIAL_CONDITIONS: dict[str, tuple[Severity, str, str, str]] = {
    "thunderstorm": (Severity.CRITICAL, "Orage", "Risque d'orages violents", "lightning"),
    "snow": (Severity.WARNING, "Chutes de neige", "Conditions de circulation difficiles", "snow"),
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def detect_alerts(
    observation: WeatherObservation | dict,
    thresholds: ThresholdConfig = DEFAULT_THRESHOLDS,
    custom: CustomAlertConfig | dict | None = None,
    now: datetime | None = None,
) -> list[AlertEvent]:
    """Run every check against one observation and return the alerts in check order."""
    obs = _coerce_observation(observation)
    custom_cfg = _coerce_custom(custom)

    temp = obs.main.temp
    wind_kmh = wind_speed_kmh(obs)

    drafts: list[dict] = []
    drafts.extend(_first_match(_TEMPERATURE_RULES, temp, thresholds, AlertType.TEMPERATURE,
                               display=_js_round(temp)))
    drafts.extend(_first_match(_WIND_RULES, wind_kmh, thresholds, AlertType.WIND))
    drafts.extend(_condition_alerts(obs))
    humidity = parse_humidity(obs.main.humidity)
    if humidity is not None:
        drafts.extend(_first_match(_HUMIDITY_RULES, humidity, thresholds, AlertType.HUMIDITY))
    if custom_cfg is not None:
        drafts.extend(_custom_alerts(custom_cfg, temp, wind_kmh))

    alerts = _finalize(drafts, obs.name, now)
    logger.debug(
        "%s: %d alert(s) (temp=%s humidity=%s wind=%s km/h)",
        obs.name, len(alerts), temp, obs.main.humidity, wind_kmh,
    )
    return alerts


def check_rain_tomorrow(
    forecast: ForecastResponse | dict | None,
    custom: CustomAlertConfig | dict | None,
    today: date | None = None,
    now: datetime | None = None,
) -> AlertEvent | None:
    """Return an info alert when rain is forecast for tomorrow and the user asked for it."""
    custom_cfg = _coerce_custom(custom)
    if custom_cfg is None or not custom_cfg.rain_tomorrow or not forecast:
        return None

    entries = forecast.forecasts if isinstance(forecast, ForecastResponse) else forecast.get("forecasts")
    if not entries:
        return None

    tomorrow = ((today or date.today()) + timedelta(days=1)).isoformat()
    for entry in entries:
        day = entry if isinstance(entry, dict) else entry.model_dump()
        if day.get("date") != tomorrow:
            continue
        if not _is_rain(day.get("main"), day.get("description")):
            return None
        description = day.get("description") or day.get("main")
        station = _forecast_city_name(forecast)
        [alert] = _finalize([{
            "type": AlertType.CUSTOM_RAIN_TOMORROW,
            "severity": Severity.INFO,
            "title": "Pluie prévue demain",
            "message": f"Il va pleuvoir demain: {description}",
            "icon": "rain",
        }], station, now)
        return alert
    return None


def should_notify(alert: AlertEvent) -> bool:
    """Critical and warning alerts are pushed to the user; info is display-only."""
    return alert.severity in NOTIFY_SEVERITIES


def wind_speed_kmh(observation: WeatherObservation) -> int:
    """Wind speed in whole km/h; missing or unusable speed counts as calm."""
    if observation.wind is None:
        return 0
    speed = observation.wind.speed
    if math.isnan(speed) or math.isinf(speed):
        return 0
    return _js_round(speed * 3.6)


def parse_humidity(value: Any) -> int | None:
    """Leading-integer parse of a humidity reading; None unless it lands in 0-100."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        parsed = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return None
        parsed = int(match.group(1))
    if 0 <= parsed <= 100:
        return parsed
    return None


# --- Checks ---

def _first_match(
    rules: Iterable[_Rule],
    value: float,
    thresholds: ThresholdConfig,
    alert_type: AlertType,
    display: Any = None,
) -> list[dict]:
    for rule in rules:
        if rule.predicate(value, thresholds):
            return [{
                "type": alert_type,
                "severity": rule.severity,
                "title": rule.title,
                "message": rule.message.format(value=value if display is None else display),
                "icon": rule.icon,
            }]
    return []


def _condition_alerts(obs: WeatherObservation) -> list[dict]:
    if not obs.weather or not obs.weather[0].main:
        return []
    special = _SPECIAL_CONDITIONS.get(obs.weather[0].main.lower())
    if special is None:
        return []
    severity, title, message, icon = special
    return [{
        "type": AlertType.WEATHER,
        "severity": severity,
        "title": title,
        "message": message,
        "icon": icon,
    }]


def _custom_alerts(custom: CustomAlertConfig, temp: float, wind_kmh: int) -> list[dict]:
    drafts = []
    rounded = _js_round(temp)

    below = custom.temp_below
    if below and below.enabled and below.value is not None and temp <= below.value:
        drafts.append({
            "type": AlertType.CUSTOM_TEMP_LOW,
            "severity": Severity.WARNING,
            "title": "Alerte personnalisée",
            "message": f"Température sous votre seuil: {rounded}°C (seuil: {_fmt(below.value)}°C)",
            "icon": "freeze",
        })

    above = custom.temp_above
    if above and above.enabled and above.value is not None and temp >= above.value:
        drafts.append({
            "type": AlertType.CUSTOM_TEMP_HIGH,
            "severity": Severity.WARNING,
            "title": "Alerte personnalisée",
            "message": f"Température au-dessus de votre seuil: {rounded}°C (seuil: {_fmt(above.value)}°C)",
            "icon": "fire",
        })

    wind = custom.wind_above
    if wind and wind.enabled and wind.value is not None and wind_kmh >= wind.value:
        drafts.append({
            "type": AlertType.CUSTOM_WIND,
            "severity": Severity.WARNING,
            "title": "Alerte vent personnalisée",
            "message": f"Vent au-dessus de votre seuil: {wind_kmh} km/h (seuil: {_fmt(wind.value)} km/h)",
            "icon": "alert",
        })

    return drafts


# --- Helpers ---

def _finalize(drafts: list[dict], station: str, now: datetime | None) -> list[AlertEvent]:
    stamp = now or datetime.now(timezone.utc)
    timestamp = int(stamp.timestamp() * 1000)
    return [
        AlertEvent(
            **draft,
            timestamp=timestamp,
            id=f"{draft['type'].value}_{station}_{draft['severity'].value}_{index}",
        )
        for index, draft in enumerate(drafts)
    ]


def _coerce_observation(observation: WeatherObservation | dict) -> WeatherObservation:
    if isinstance(observation, WeatherObservation):
        return observation
    try:
        return WeatherObservation.model_validate(observation or {})
    except ValidationError as e:
        logger.warning("Unusable observation, no alerts computed: %s", e)
        return WeatherObservation()


def _coerce_custom(custom: CustomAlertConfig | dict | None) -> CustomAlertConfig | None:
    if custom is None or isinstance(custom, CustomAlertConfig):
        return custom
    try:
        return CustomAlertConfig.model_validate(custom)
    except ValidationError as e:
        logger.warning("Ignoring malformed custom alert config: %s", e)
        return None


def _is_rain(main: str | None, description: str | None) -> bool:
    if main:
        return main.lower() in RAIN_CONDITIONS
    # No condition code: fall back to the (English) description
    return bool(description) and "rain" in description.lower()


def _forecast_city_name(forecast: ForecastResponse | dict) -> str:
    if isinstance(forecast, ForecastResponse):
        return forecast.city.name
    city = forecast.get("city") or {}
    return city.get("name", "") if isinstance(city, dict) else ""


def _js_round(value: float) -> float | int:
    """Round half up like the browser does; NaN is passed through."""
    if math.isnan(value) or math.isinf(value):
        return value
    return math.floor(value + 0.5)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
