"""
Exceptions raised by the weather proxy layer and translated to HTTP responses.
"""


class WeatherServiceError(Exception):
    """Base error carrying the HTTP status and the message shown to the client."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidCityError(WeatherServiceError):
    """City name failed validation."""

    status_code = 400


class UpstreamError(WeatherServiceError):
    """OpenWeatherMap call failed or returned an error status."""

    pass
