"""Fetch orchestration for the tracked cities of the dashboard."""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from prometheus_client import Counter, Histogram

from weather_dashboard.core.config import Settings, settings as default_settings
from weather_dashboard.core.logging import get_logger
from weather_dashboard.models.weather import (
    DashboardState,
    ForecastDay,
    ForecastRecord,
    ForecastResponse,
    RecordKind,
    WeatherRecord,
    WeatherResponse,
)
from weather_dashboard.services.retry import RetryExecutor
from weather_dashboard.services.weather import WeatherService

logger = get_logger(__name__)

# Metrics
FETCH_CYCLE_DURATION = Histogram(
    "weather_dashboard_fetch_cycle_duration_seconds",
    "Time taken by one fetch cycle over all tracked cities",
)
FETCH_CYCLES = Counter(
    "weather_dashboard_fetch_cycles_total",
    "Number of completed fetch cycles",
    ["mode"],
)
RECORD_UPDATES = Counter(
    "weather_dashboard_record_updates_total",
    "Per-city record outcomes of fetch cycles",
    ["kind", "status"],
)

WEATHER_FALLBACK_ERROR = "Failed to fetch weather"
FORECAST_FALLBACK_ERROR = "Failed to fetch forecast"

RecordListener = Callable[[RecordKind, str, WeatherRecord | ForecastRecord], None]


def weather_record_from_response(response: WeatherResponse) -> WeatherRecord:
    current = response.current
    return WeatherRecord(
        city_name=response.location.name,
        temperature=current.temp_c,
        condition=current.condition.text,
        icon=current.condition.icon,
        humidity=current.humidity,
        wind_speed=current.wind_kph,
        wind_direction=current.wind_dir,
        is_loading=False,
        error=None,
    )


def forecast_days_from_response(response: ForecastResponse) -> tuple[ForecastDay, ...]:
    return tuple(
        ForecastDay(
            date=day.date,
            max_temp=day.day.maxtemp_c,
            min_temp=day.day.mintemp_c,
            condition=day.day.condition.text,
            icon=day.day.condition.icon,
            chance_of_rain=day.day.daily_chance_of_rain,
        )
        for day in response.forecast.forecastday
    )


class FetchOrchestrator:
    """Keeps one weather and one forecast record per tracked city up to date.

    A fetch cycle requests current conditions and a forecast for every city
    concurrently, each call wrapped in a :class:`RetryExecutor`, and waits for
    all of them to settle. Failures are written into the affected record and
    never propagate out of the cycle.

    Cycles are serialized: a manual :meth:`refresh` waits for a cycle in
    flight, while a background tick that finds one in flight is skipped.
    """

    def __init__(
        self,
        cities: Iterable[str],
        service: WeatherService,
        config: Settings | None = None,
        retry: RetryExecutor | None = None,
        refresh_interval: float | None = None,
        forecast_days: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator with every record in the loading state.

        Args:
            cities: Tracked city names
            service: Fetch client
            config: Settings providing defaults for the remaining arguments
            retry: Retry policy, built from ``config.retry_attempts`` if omitted
            refresh_interval: Seconds between background cycles
            forecast_days: Number of forecast days to request
            sleep: Timer sleep used by the background refresh loop
        """
        self.settings = config or default_settings
        self.service = service
        self.retry = retry or RetryExecutor(max_attempts=self.settings.retry_attempts)
        self.refresh_interval = (
            self.settings.refresh_interval if refresh_interval is None else refresh_interval
        )
        self.forecast_days = self.settings.forecast_days if forecast_days is None else forecast_days
        self._sleep = sleep

        self.cities: tuple[str, ...] = tuple(dict.fromkeys(cities))
        self._weather: dict[str, WeatherRecord] = {
            city: WeatherRecord(city_name=city) for city in self.cities
        }
        self._forecasts: dict[str, ForecastRecord] = {
            city: ForecastRecord(city_name=city) for city in self.cities
        }

        self.is_loading = False
        self.last_updated = ""
        self.cycle_count = 0

        self._listeners: list[RecordListener] = []
        self._lock = asyncio.Lock()
        self._timer: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    # State

    @property
    def weather_records(self) -> list[WeatherRecord]:
        return list(self._weather.values())

    @property
    def forecast_records(self) -> dict[str, ForecastRecord]:
        return dict(self._forecasts)

    @property
    def has_errors(self) -> bool:
        return any(r.error for r in self._weather.values()) or any(
            r.error for r in self._forecasts.values()
        )

    @property
    def all_loaded(self) -> bool:
        return not any(r.is_loading for r in self._weather.values()) and not any(
            r.is_loading for r in self._forecasts.values()
        )

    @property
    def auto_refresh_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def weather_for(self, city: str) -> WeatherRecord | None:
        return self._weather.get(city)

    def forecast_for(self, city: str) -> ForecastRecord | None:
        return self._forecasts.get(city)

    def snapshot(self) -> DashboardState:
        """Return an immutable view of every record and the aggregate flags."""
        return DashboardState(
            weather=self.weather_records,
            forecasts=self.forecast_records,
            is_loading=self.is_loading,
            last_updated=self.last_updated,
            has_errors=self.has_errors,
            all_loaded=self.all_loaded,
        )

    # Observers

    def subscribe(self, listener: RecordListener) -> Callable[[], None]:
        """Register a callback invoked with ``(kind, city, record)`` on every record change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, kind: RecordKind, city: str, record: WeatherRecord | ForecastRecord) -> None:
        if kind == "weather":
            self._weather[city] = record
        else:
            self._forecasts[city] = record

        for listener in list(self._listeners):
            try:
                listener(kind, city, record)
            except Exception:
                logger.exception("record_listener_failed", kind=kind, city=city)

    # Fetch cycle

    def _mark_loading(self) -> None:
        self.is_loading = True
        for city, record in list(self._weather.items()):
            self._publish("weather", city, record.model_copy(update={"is_loading": True, "error": None}))
        for city, record in list(self._forecasts.items()):
            self._publish("forecast", city, record.model_copy(update={"is_loading": True, "error": None}))

    async def _update_weather(self, city: str) -> None:
        try:
            response = await self.retry.run(
                lambda: self.service.get_current_weather(city), name=f"weather:{city}"
            )
        except Exception as e:
            logger.warning("weather_fetch_failed", city=city, error=str(e))
            RECORD_UPDATES.labels(kind="weather", status="failed").inc()
            record = self._weather[city].model_copy(
                update={"is_loading": False, "error": str(e) or WEATHER_FALLBACK_ERROR}
            )
        else:
            RECORD_UPDATES.labels(kind="weather", status="success").inc()
            record = weather_record_from_response(response)
        self._publish("weather", city, record)

    async def _update_forecast(self, city: str) -> None:
        try:
            response = await self.retry.run(
                lambda: self.service.get_forecast(city, self.forecast_days), name=f"forecast:{city}"
            )
        except Exception as e:
            logger.warning("forecast_fetch_failed", city=city, error=str(e))
            RECORD_UPDATES.labels(kind="forecast", status="failed").inc()
            record = self._forecasts[city].model_copy(
                update={"is_loading": False, "error": str(e) or FORECAST_FALLBACK_ERROR}
            )
        else:
            RECORD_UPDATES.labels(kind="forecast", status="success").inc()
            record = self._forecasts[city].model_copy(
                update={
                    "forecast": forecast_days_from_response(response),
                    "is_loading": False,
                    "error": None,
                }
            )
        self._publish("forecast", city, record)

    async def _run_cycle(self, show_loading: bool) -> None:
        """Fetch weather and forecast for every city and wait for all to settle."""
        mode = "visible" if show_loading else "silent"
        async with self._lock:
            if show_loading:
                self._mark_loading()

            logger.info("fetch_cycle_started", mode=mode, cities=list(self.cities))
            with FETCH_CYCLE_DURATION.time():
                tasks = [self._update_weather(city) for city in self.cities]
                tasks += [self._update_forecast(city) for city in self.cities]
                results = await asyncio.gather(*tasks, return_exceptions=True)

            for result in results:
                if isinstance(result, Exception):
                    logger.error("fetch_cycle_task_error", error=str(result))

            self.last_updated = datetime.now().strftime("%c")
            self.is_loading = False
            self.cycle_count += 1
            FETCH_CYCLES.labels(mode=mode).inc()
            logger.info(
                "fetch_cycle_completed",
                mode=mode,
                cycle=self.cycle_count,
                has_errors=self.has_errors,
                all_loaded=self.all_loaded,
            )

    async def refresh(self) -> DashboardState:
        """Reset every record to loading and run one full fetch cycle."""
        await self._run_cycle(show_loading=True)
        return self.snapshot()

    # Background refresh

    async def _auto_refresh_loop(self) -> None:
        while True:
            await self._sleep(self.refresh_interval)
            if self._lock.locked():
                logger.info("background_refresh_skipped", reason="cycle_in_flight")
                continue

            # Shielded so that stopping the timer lets a running cycle finish.
            task = asyncio.create_task(self._run_cycle(show_loading=False))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            await asyncio.shield(task)

    def start_auto_refresh(self) -> None:
        """Start the background timer, replacing one that is already running.

        Ticks are spaced with a fixed delay: the next interval starts once the
        previous silent cycle has finished, so the period drifts by the cycle
        duration.
        """
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._auto_refresh_loop())
        logger.info("auto_refresh_started", interval=self.refresh_interval)

    def stop_auto_refresh(self) -> None:
        """Stop the background timer; a no-op when it is not running."""
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("auto_refresh_stopped")

    # Lifecycle

    async def activate(self) -> DashboardState:
        """Start the background timer (when enabled) and run a visible refresh."""
        if self.settings.auto_refresh:
            self.start_auto_refresh()
        return await self.refresh()

    async def deactivate(self) -> None:
        """Stop the background timer and wait for background cycles in flight."""
        self.stop_auto_refresh()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
