import math
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from app.schemas.alerts import AlertEvent


def _lenient_float(value: Any) -> float:
    """Coerce to float; anything unusable becomes NaN so comparisons stay false."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class MainReadings(BaseModel):
    model_config = ConfigDict(extra="allow")

    temp: float = math.nan
    feels_like: float = math.nan
    temp_min: float = math.nan
    temp_max: float = math.nan
    humidity: Any = None  # parsed by the humidity check itself
    pressure: float = math.nan

    @field_validator("temp", "feels_like", "temp_min", "temp_max", "pressure", mode="before")
    @classmethod
    def _coerce(cls, v):
        return _lenient_float(v)


class WindReadings(BaseModel):
    model_config = ConfigDict(extra="allow")

    speed: float = math.nan  # m/s
    deg: float = math.nan

    @field_validator("speed", "deg", mode="before")
    @classmethod
    def _coerce(cls, v):
        return _lenient_float(v)


class Condition(BaseModel):
    model_config = ConfigDict(extra="allow")

    main: str | None = None
    description: str | None = None
    icon: str | None = None


class WeatherObservation(BaseModel):
    """OpenWeatherMap current-weather payload. Unknown fields pass through."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    main: MainReadings = MainReadings()
    wind: WindReadings | None = None
    weather: list[Condition] = []

    @field_validator("name", mode="before")
    @classmethod
    def _name_default(cls, v):
        return "" if v is None else str(v)

    @field_validator("main", mode="before")
    @classmethod
    def _main_default(cls, v):
        return v if isinstance(v, dict) or isinstance(v, MainReadings) else {}

    @field_validator("wind", mode="before")
    @classmethod
    def _wind_default(cls, v):
        return v if isinstance(v, dict) or isinstance(v, WindReadings) else None

    @field_validator("weather", mode="before")
    @classmethod
    def _weather_default(cls, v):
        if not isinstance(v, list):
            return []
        # keep positions: only weather[0] is read
        return [c if isinstance(c, (dict, Condition)) else {} for c in v]


class DailyForecast(BaseModel):
    date: str  # YYYY-MM-DD, city local date
    temp: float
    temp_min: float
    temp_max: float
    humidity: float | None = None
    main: str | None = None
    description: str | None = None
    icon: str | None = None


class ForecastCity(BaseModel):
    name: str
    country: str | None = None
    timezone: int = 0  # UTC offset, seconds


class ForecastResponse(BaseModel):
    city: ForecastCity
    forecasts: list[DailyForecast] = []
    alerts: list[AlertEvent] = []
