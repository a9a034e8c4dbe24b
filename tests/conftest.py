"""Test configuration and fixtures."""

import asyncio
from typing import Callable

import httpx
import pytest

from weather_dashboard.core.config import Settings
from weather_dashboard.services.cache import CacheService
from weather_dashboard.services.orchestrator import FetchOrchestrator
from weather_dashboard.services.retry import RetryExecutor
from weather_dashboard.services.weather import WeatherService


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that returns immediately and records delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ManualTimer:
    """Sleep replacement that blocks until the test advances time."""

    def __init__(self):
        self.calls: list[float] = []
        self._ticks: asyncio.Queue = asyncio.Queue()

    async def sleep(self, seconds: float) -> None:
        self.calls.append(seconds)
        await self._ticks.get()

    def advance(self) -> None:
        self._ticks.put_nowait(None)


class FakeWeatherAPI:
    """Routes requests of an ``httpx.MockTransport`` like the remote weather API.

    Cities listed in ``failing`` answer with a structured 400 error.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.failing: set[str] = set()

    def calls(self, endpoint: str, city: str | None = None) -> int:
        return sum(
            1
            for r in self.requests
            if r.url.path.endswith(endpoint) and (city is None or r.url.params.get("q") == city)
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        city = request.url.params.get("q", "")

        if city in self.failing:
            return httpx.Response(
                400, json={"error": {"code": 1006, "message": "No matching location found."}}
            )
        if request.url.path.endswith("/current.json"):
            return httpx.Response(200, json=make_weather_payload(city))
        if request.url.path.endswith("/forecast.json"):
            days = int(request.url.params.get("days", "5"))
            return httpx.Response(200, json=make_forecast_payload(city, days))
        return httpx.Response(404, json={"error": {"code": 0, "message": "Unknown endpoint"}})


def make_weather_payload(city: str = "London", temp_c: float = 10.0) -> dict:
    return {
        "location": {
            "name": city,
            "region": "",
            "country": "United Kingdom",
            "lat": 51.52,
            "lon": -0.11,
            "tz_id": "Europe/London",
            "localtime_epoch": 1609459200,
            "localtime": "2021-01-01 12:00",
        },
        "current": {
            "last_updated_epoch": 1609459200,
            "last_updated": "2021-01-01 12:00",
            "temp_c": temp_c,
            "temp_f": 50,
            "is_day": 1,
            "condition": {
                "text": "Partly cloudy",
                "icon": "//cdn.weatherapi.com/weather/64x64/day/116.png",
                "code": 1003,
            },
            "wind_kph": 11.2,
            "wind_degree": 230,
            "wind_dir": "SW",
            "humidity": 82,
            "cloud": 75,
            "feelslike_c": 9,
        },
    }


def make_forecast_payload(city: str = "London", days: int = 5) -> dict:
    payload = make_weather_payload(city)
    payload["forecast"] = {
        "forecastday": [
            {
                "date": f"2021-01-{day + 1:02d}",
                "date_epoch": 1609459200 + day * 86400,
                "day": {
                    "maxtemp_c": 12.0 + day,
                    "mintemp_c": 4.0 + day,
                    "avgtemp_c": 8.0,
                    "daily_chance_of_rain": 10 * day,
                    "condition": {
                        "text": "Light rain",
                        "icon": "//cdn.weatherapi.com/weather/64x64/day/296.png",
                        "code": 1183,
                    },
                },
            }
            for day in range(days)
        ]
    }
    return payload


@pytest.fixture
def dashboard_settings():
    """Settings with an API key and caching disabled."""
    return Settings(
        api_key="test-api-key",
        api_base_url="https://api.weatherapi.com/v1",
        debug=False,
        caching_enabled=False,
        cities=["London", "Paris"],
        refresh_interval=300,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_api():
    return FakeWeatherAPI()


@pytest.fixture
def weather_service(dashboard_settings, fake_api):
    """Weather service talking to the fake API."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api))
    return WeatherService(
        config=dashboard_settings,
        cache=CacheService(enabled=False),
        client=client,
    )


@pytest.fixture
def retry_sleep():
    return RecordingSleep()


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def orchestrator(dashboard_settings, weather_service, retry_sleep, timer):
    """Orchestrator over London and Paris with instant retries and a manual timer."""
    return FetchOrchestrator(
        cities=["London", "Paris"],
        service=weather_service,
        config=dashboard_settings,
        retry=RetryExecutor(max_attempts=3, sleep=retry_sleep),
        sleep=timer.sleep,
    )


@pytest.fixture
def wait_until() -> Callable:
    """Yield to the event loop until a condition holds."""

    async def _wait_until(predicate: Callable[[], bool], attempts: int = 500) -> None:
        for _ in range(attempts):
            if predicate():
                return
            await asyncio.sleep(0)
        raise AssertionError("condition not reached")

    return _wait_until


@pytest.fixture
def dashboard_app(monkeypatch, orchestrator):
    """FastAPI app serving the test orchestrator."""
    from weather_dashboard.main import app
    from weather_dashboard.middleware.rate_limit import limiter

    monkeypatch.setattr(app.state, "orchestrator", orchestrator, raising=False)
    limiter.reset()
    return app
