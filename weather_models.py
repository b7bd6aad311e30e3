# ABOUTME: Data model for the Weatherly dashboard aggregation layer
# ABOUTME: Frozen dataclasses, unit/locale constants and the error taxonomy

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any


METRIC = 'metric'
IMPERIAL = 'imperial'
UNITS = (METRIC, IMPERIAL)

SUPPORTED_LOCALES = ('tr', 'en', 'es', 'de', 'fr', 'ru')
DEFAULT_LOCALE = 'tr'

NATIVE = 'native'
FALLBACK = 'fallback'

# OpenWeatherMap "main" condition groups
WEATHER_CONDITIONS = (
    'Clear',
    'Clouds',
    'Rain',
    'Drizzle',
    'Thunderstorm',
    'Snow',
    'Mist',
    'Smoke',
    'Haze',
    'Dust',
    'Fog',
    'Sand',
    'Ash',
    'Squall',
    'Tornado',
)


class WeatherError(Exception):
    """Base class for dashboard errors"""


class FatalFetchError(WeatherError):
    """A primary provider call did not succeed; the whole query fails"""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f'{provider}: {message}')
        self.provider = provider
        self.status_code = status_code


class SoftFetchError(WeatherError):
    """A supplemental provider call failed; callers degrade silently"""


class NotFoundError(WeatherError):
    """The geocoder returned no candidates for a query"""

    def __init__(self, query: str):
        super().__init__(f"No location found for '{query}'")
        self.query = query


class CapabilityUnavailable(WeatherError):
    """Speech recognition or geolocation is not available"""

    def __init__(self, capability: str):
        super().__init__(f'{capability} is not available')
        self.capability = capability


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_serialize(item) for item in value]
    return value


@dataclass(frozen=True)
class Location:
    name: str
    country: str
    lat: float
    lon: float
    state: str | None = None

    @property
    def identity(self) -> str:
        """Favorites identity, e.g. 'Paris, FR'"""
        return f'{self.name}, {self.country}'

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), 'identity': self.identity}


@dataclass(frozen=True)
class Wind:
    speed: float
    degrees: float


@dataclass(frozen=True)
class WeatherSnapshot:
    """Current conditions for one resolved location"""

    location: Location
    observed_at: datetime
    temperature: float
    feels_like: float
    temp_min: float
    temp_max: float
    humidity: int
    pressure: int
    visibility: int | None
    wind: Wind
    weather_main: str
    description: str
    sunrise: datetime
    sunset: datetime
    icon_code: str
    unit: str = METRIC
    locale: str = 'en'
    timezone_offset: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = _serialize(asdict(self))
        data['location'] = self.location.to_dict()
        return data


@dataclass(frozen=True)
class ForecastPoint:
    """One 3-hourly forecast sample"""

    time: datetime
    stamp: str
    temperature: float
    temp_min: float
    temp_max: float
    weather_main: str
    description: str
    icon_code: str
    precipitation_chance: float | None = None

    @property
    def date_key(self) -> str:
        return self.stamp.split(' ')[0]

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class HourlyPoint:
    time: str
    temperature: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyEntry:
    date: date
    temp_min: float
    temp_max: float
    icon_code: str
    weather_code: int | None = None
    precipitation_chance: float | None = None
    uv_index_max: float | None = None
    description: str | None = None
    provenance: str = NATIVE

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class AirQuality:
    aqi: int
    components: dict[str, float] = field(default_factory=dict)
    observed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class LunarInfo:
    phase: float
    moonrise: str | None = None
    moonset: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyForecast:
    """Parsed 10-day feed from the supplemental provider"""

    entries: list[DailyEntry]
    lunar: LunarInfo | None = None
    uv_index: float | None = None
    timezone: str | None = None


@dataclass(frozen=True)
class WeatherBundle:
    """Everything one query produced, merged from all providers"""

    snapshot: WeatherSnapshot
    forecast: list[ForecastPoint]
    air_quality: AirQuality | None
    daily: list[DailyEntry]
    daily_source: str
    lunar: LunarInfo | None = None
    uv_index: float | None = None

    @property
    def location(self) -> Location:
        return self.snapshot.location
