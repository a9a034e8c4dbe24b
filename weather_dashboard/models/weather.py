"""Pydantic models for remote payloads, dashboard records and API responses."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RecordKind = Literal["weather", "forecast"]


# Remote API payloads (WeatherAPI.com)


class Condition(BaseModel):
    """Weather condition as reported by the remote API."""

    model_config = ConfigDict(extra="ignore")

    text: str = Field(..., description="Condition text, e.g. 'Partly cloudy'")
    icon: str = Field(..., description="Condition icon URL")
    code: int | None = Field(None, description="Remote condition code")


class Location(BaseModel):
    """Resolved location of a request."""

    model_config = ConfigDict(extra="ignore")

    name: str
    region: str = ""
    country: str = ""
    lat: float | None = None
    lon: float | None = None
    tz_id: str | None = None
    localtime: str | None = None


class CurrentConditions(BaseModel):
    """Current conditions block of a response."""

    model_config = ConfigDict(extra="ignore")

    temp_c: float
    condition: Condition
    humidity: float
    wind_kph: float
    wind_dir: str
    feelslike_c: float | None = None
    last_updated: str | None = None


class DaySummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    maxtemp_c: float
    mintemp_c: float
    condition: Condition
    daily_chance_of_rain: float = 0


class ForecastDayPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: str
    day: DaySummary


class ForecastBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    forecastday: list[ForecastDayPayload] = Field(default_factory=list)


class WeatherResponse(BaseModel):
    """Response of ``current.json``."""

    model_config = ConfigDict(extra="ignore")

    location: Location
    current: CurrentConditions


class ForecastResponse(WeatherResponse):
    """Response of ``forecast.json``."""

    forecast: ForecastBlock


# Dashboard records


class WeatherRecord(BaseModel):
    """Current-conditions snapshot for one tracked city.

    Records are immutable; every change produces a new snapshot.
    """

    model_config = ConfigDict(frozen=True)

    city_name: str = Field(..., description="City name")
    temperature: float = Field(0, description="Current temperature in Celsius")
    condition: str = Field("", description="Condition text")
    icon: str = Field("", description="Condition icon URL")
    humidity: float = Field(0, description="Relative humidity in percent")
    wind_speed: float = Field(0, description="Wind speed in km/h")
    wind_direction: str = Field("", description="Wind compass direction")
    is_loading: bool = Field(True, description="Whether a visible fetch is in progress")
    error: str | None = Field(None, description="Last fetch error, if any")


class ForecastDay(BaseModel):
    """One day of a city forecast."""

    model_config = ConfigDict(frozen=True)

    date: str
    max_temp: float
    min_temp: float
    condition: str
    icon: str
    chance_of_rain: float


class ForecastRecord(BaseModel):
    """Multi-day forecast snapshot for one tracked city."""

    model_config = ConfigDict(frozen=True)

    city_name: str
    forecast: tuple[ForecastDay, ...] = ()
    is_loading: bool = True
    error: str | None = None


class DashboardState(BaseModel):
    """Immutable snapshot of every record plus aggregate flags."""

    model_config = ConfigDict(frozen=True)

    weather: list[WeatherRecord]
    forecasts: dict[str, ForecastRecord]
    is_loading: bool
    last_updated: str
    has_errors: bool
    all_loaded: bool


# HTTP surface


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    cycles_completed: int = Field(..., description="Number of completed fetch cycles")
    auto_refresh_running: bool = Field(..., description="Whether the refresh timer is active")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
