import math
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class AlertType(str, Enum):
    TEMPERATURE = "temperature"
    WIND = "wind"
    WEATHER = "weather"
    HUMIDITY = "humidity"
    CUSTOM_TEMP_LOW = "custom_temp_low"
    CUSTOM_TEMP_HIGH = "custom_temp_high"
    CUSTOM_WIND = "custom_wind"
    CUSTOM_RAIN_TOMORROW = "custom_rain_tomorrow"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertEvent(BaseModel):
    type: AlertType
    severity: Severity
    title: str
    message: str
    icon: str
    timestamp: int  # epoch milliseconds
    id: str


# --- Threshold configuration (immutable) ---

class TemperatureThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    extreme_cold: float = -15.0
    cold: float = -5.0
    hot: float = 30.0
    extreme_hot: float = 35.0


class WindThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    strong: float = 50.0  # km/h
    dangerous: float = 80.0


class HumidityThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: float = 25.0
    high: float = 85.0


class PressureThresholds(BaseModel):
    """Reserved: no check reads these yet."""

    model_config = ConfigDict(frozen=True)

    low: float = 980.0  # hPa
    high: float = 1030.0


class ThresholdConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: TemperatureThresholds = TemperatureThresholds()
    wind: WindThresholds = WindThresholds()
    humidity: HumidityThresholds = HumidityThresholds()
    pressure: PressureThresholds = PressureThresholds()


# --- User-defined alerts (sent by the client as a JSON blob) ---

_BOOL = TypeAdapter(bool)


def _lenient_bool(value) -> bool:
    try:
        return _BOOL.validate_python(value)
    except ValidationError:
        return False


class ThresholdToggle(BaseModel):
    """One {enabled, value} pair. Junk in either field disables only this pair."""

    enabled: bool = False
    value: float | None = None

    @field_validator("enabled", mode="before")
    @classmethod
    def _coerce_enabled(cls, v):
        return _lenient_bool(v)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            number = float(v)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None


class CustomAlertConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rain_tomorrow: bool = Field(default=False, alias="rainTomorrow")
    temp_below: ThresholdToggle | None = Field(default=None, alias="tempBelow")
    temp_above: ThresholdToggle | None = Field(default=None, alias="tempAbove")
    wind_above: ThresholdToggle | None = Field(default=None, alias="windAbove")

    @field_validator("rain_tomorrow", mode="before")
    @classmethod
    def _coerce_rain(cls, v):
        return _lenient_bool(v)

    @field_validator("temp_below", "temp_above", "wind_above", mode="before")
    @classmethod
    def _drop_non_mapping(cls, v):
        return v if isinstance(v, (dict, ThresholdToggle)) else None
