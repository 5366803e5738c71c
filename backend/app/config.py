from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # OpenWeatherMap
    owm_api_key: str = Field(default="")
    owm_base_url: str = Field(default="https://api.openweathermap.org/data/2.5")
    owm_tile_url: str = Field(default="https://tile.openweathermap.org/map")
    owm_units: str = Field(default="metric")
    owm_lang: str = Field(default="fr")
    owm_timeout_seconds: float = Field(default=10.0)

    # Upstream payload cache
    weather_cache_ttl_seconds: int = Field(default=600)
    cache_sweep_interval: int = Field(default=5)  # minutes

    # Rate limiting (per client address)
    rate_limit_max_requests: int = Field(default=100)
    rate_limit_window_seconds: int = Field(default=15 * 60)

    # Max cities accepted by /weather/multiple
    multi_city_limit: int = Field(default=10)

    # CORS
    cors_origins: str = Field(default="http://localhost:5173,http://127.0.0.1:5173")
    frontend_url: str = Field(default="")

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if self.frontend_url:
            origins.append(self.frontend_url)
        return origins

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()
