"""Weather API client with caching and error normalization."""

from typing import Any
from urllib.parse import quote, urlencode

import httpx
from prometheus_client import Counter
from pydantic import BaseModel, ValidationError

from weather_dashboard.core.config import Settings, settings as default_settings
from weather_dashboard.core.logging import get_logger
from weather_dashboard.models.weather import ForecastResponse, WeatherResponse
from weather_dashboard.services.cache import CacheService
from weather_dashboard.services.errors import (
    ConfigurationError,
    RemoteError,
    TransportError,
    WeatherServiceError,
)

logger = get_logger(__name__)

FETCH_REQUESTS = Counter(
    "weather_dashboard_api_requests_total",
    "Requests sent to the remote weather API",
    ["kind", "status"],
)

FORECAST_ERROR_PREFIX = "Failed to fetch forecast data: "


class WeatherService:
    """Fetch client for current conditions and forecasts."""

    def __init__(
        self,
        config: Settings | None = None,
        cache: CacheService | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize weather service.

        Args:
            config: Settings to read the API key, base URL and timeout from
            cache: Payload cache, a fresh one is built from ``config`` if omitted
            client: HTTP client to reuse; one with pooled connections is created
                otherwise and closed by ``close()``
        """
        self.settings = config or default_settings
        self.cache = (
            cache
            if cache is not None
            else CacheService(ttl=self.settings.cache_ttl, enabled=self.settings.caching_enabled)
        )
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
                keepalive_expiry=30.0,
            ),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._owns_client:
            await self.client.aclose()

    def _ensure_api_key(self) -> str:
        if not self.settings.api_key:
            raise ConfigurationError("Weather API key is not configured")
        return self.settings.api_key

    def _build_url(self, endpoint: str, params: dict[str, Any]) -> str:
        """Build a request URL with percent-encoded query parameters."""
        return f"{self.settings.api_base_url}/{endpoint}?{urlencode(params, quote_via=quote)}"

    async def _request(self, kind: str, url: str, city: str) -> Any:
        """Send a GET request and return the decoded JSON body.

        Raises:
            TransportError: On timeout or connectivity failure
            RemoteError: On a non-success status
        """
        try:
            response = await self.client.get(url, timeout=self.settings.request_timeout)
        except httpx.TimeoutException as e:
            FETCH_REQUESTS.labels(kind=kind, status="timeout").inc()
            logger.warning("weather_api_timeout", kind=kind, city=city, timeout=self.settings.request_timeout)
            raise TransportError(
                str(e) or f"Request timed out after {self.settings.request_timeout}s"
            ) from e
        except httpx.HTTPError as e:
            FETCH_REQUESTS.labels(kind=kind, status="transport_error").inc()
            logger.warning("weather_api_unreachable", kind=kind, city=city, error=str(e))
            raise TransportError(str(e) or type(e).__name__) from e

        FETCH_REQUESTS.labels(kind=kind, status=str(response.status_code)).inc()

        if not response.is_success:
            raise self._remote_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"Malformed response: {e}", status_code=response.status_code) from e

    @staticmethod
    def _remote_error(response: httpx.Response) -> RemoteError:
        """Extract the structured error message of a failed response."""
        fallback = f"HTTP error! status: {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            return RemoteError(fallback, status_code=response.status_code)

        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return RemoteError(fallback, status_code=response.status_code)

        return RemoteError(
            error.get("message") or fallback,
            status_code=response.status_code,
            error_code=error.get("code"),
        )

    async def _fetch(self, kind: str, cache_key: str, url: str, city: str, model: type[BaseModel]) -> Any:
        """Read-through/write-through cached fetch of one payload."""
        cached_data = self.cache.get(cache_key)
        if cached_data is not None:
            logger.info("weather_cache_hit", kind=kind, city=city)
            return model.model_validate(cached_data)

        logger.info("weather_cache_miss", kind=kind, city=city)
        data = await self._request(kind, url, city)

        try:
            result = model.model_validate(data)
        except ValidationError as e:
            logger.error("weather_payload_invalid", kind=kind, city=city, error=str(e))
            raise RemoteError(f"Malformed response: {e.error_count()} invalid field(s)") from e

        self.cache.set(cache_key, data)
        return result

    async def get_current_weather(self, city: str) -> WeatherResponse:
        """Get current conditions for a city.

        Args:
            city: City name

        Returns:
            Parsed current-conditions response

        Raises:
            ConfigurationError: If no API key is configured
            WeatherServiceError: If the request fails
        """
        api_key = self._ensure_api_key()
        url = self._build_url("current.json", {"key": api_key, "q": city, "aqi": "no"})
        result = await self._fetch("current", f"weather:{city}", url, city, WeatherResponse)
        logger.info("weather_fetched", city=city, temperature=result.current.temp_c)
        return result

    async def get_forecast(self, city: str, days: int = 5) -> ForecastResponse:
        """Get a multi-day forecast for a city.

        Args:
            city: City name
            days: Number of forecast days

        Returns:
            Parsed forecast response

        Raises:
            ConfigurationError: If no API key is configured
            WeatherServiceError: If the request fails, with a message
                prefixed by ``FORECAST_ERROR_PREFIX``
        """
        api_key = self._ensure_api_key()
        url = self._build_url(
            "forecast.json",
            {"key": api_key, "q": city, "days": days, "aqi": "no", "alerts": "no"},
        )
        try:
            result = await self._fetch("forecast", f"forecast:{city}:{days}", url, city, ForecastResponse)
        except RemoteError as e:
            raise RemoteError(
                f"{FORECAST_ERROR_PREFIX}{e}", status_code=e.status_code, error_code=e.error_code
            ) from e
        except WeatherServiceError as e:
            raise type(e)(f"{FORECAST_ERROR_PREFIX}{e}") from e

        logger.info("forecast_fetched", city=city, days=len(result.forecast.forecastday))
        return result
