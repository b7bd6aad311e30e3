# ABOUTME: Provider clients for OpenWeatherMap (current, forecast, air, geocoding) and Open-Meteo
# ABOUTME: Network adapters that turn provider-native JSON into weather_models types

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any

import requests

from weather_derivations import icon_from_weather_code
from weather_models import (
    IMPERIAL,
    METRIC,
    NATIVE,
    AirQuality,
    DailyEntry,
    DailyForecast,
    FatalFetchError,
    ForecastPoint,
    Location,
    LunarInfo,
    NotFoundError,
    SoftFetchError,
    WeatherSnapshot,
    Wind,
)


GEOCODE_LIMIT = 5


def _utc(timestamp: int | float | None) -> datetime:
    return datetime.fromtimestamp(timestamp or 0, tz=timezone.utc)


class WeatherProvider(ABC):
    """Abstract base class for provider clients: shared timeout, request and info helpers"""

    def __init__(self, name: str, api_key: str | None = None):
        self.name = name
        self.api_key = api_key
        self.timeout = 10

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Endpoint root every request of this provider is built on"""

    def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        """GET a JSON document, raising FatalFetchError on any failure"""
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FatalFetchError(self.name, str(e), status) from e
        except requests.exceptions.RequestException as e:
            raise FatalFetchError(self.name, str(e)) from e
        except ValueError as e:
            raise FatalFetchError(self.name, f'invalid JSON body: {e}') from e

    def get_provider_info(self) -> dict[str, Any]:
        """Get information about this provider"""
        return {
            'name': self.name,
            'timeout': self.timeout,
            'base_url': self.base_url,
            'description': self.__doc__ or f'{self.name} weather provider',
        }


class GeoResolver(WeatherProvider):
    """OpenWeatherMap direct geocoding with locale-preference ordering"""

    base_url = 'https://api.openweathermap.org/geo/1.0/direct'

    def __init__(self, api_key: str):
        super().__init__('OpenWeatherMapGeocoding', api_key)

    def _search(self, query: str) -> list[Location]:
        params = {'q': query, 'limit': GEOCODE_LIMIT, 'appid': self.api_key}
        data = self._get_json(self.base_url, params)
        if not isinstance(data, list):
            raise FatalFetchError(self.name, 'unexpected geocoding payload')
        return [
            Location(
                name=item.get('name', query),
                country=item.get('country', ''),
                lat=float(item['lat']),
                lon=float(item['lon']),
                state=item.get('state'),
            )
            for item in data
            if 'lat' in item and 'lon' in item
        ]

    @staticmethod
    def prefer_country(
        candidates: list[Location], country: str | None
    ) -> list[Location]:
        """Stable partition: candidates in `country` first, provider order kept"""
        if not country:
            return list(candidates)
        preferred = [c for c in candidates if c.country == country]
        others = [c for c in candidates if c.country != country]
        return preferred + others

    def resolve(self, query: str, locale_preference: str | None = None) -> list[Location]:
        """Resolve free text into ordered candidates; NotFoundError when empty"""
        query = query.strip()
        if not query:
            raise NotFoundError(query)

        print(f'🔎 Geocoding "{query}" (prefer {locale_preference})')
        candidates = self.prefer_country(self._search(query), locale_preference)
        if not candidates:
            raise NotFoundError(query)
        return candidates

    def suggest(self, query: str, locale_preference: str | None = None) -> list[Location]:
        """Autocomplete candidates; an empty result is not an error here"""
        query = query.strip()
        if not query:
            return []
        return self.prefer_country(self._search(query), locale_preference)

    def resolve_location(
        self, lat: float, lon: float, name: str, country: str = ''
    ) -> Location:
        """Coordinate echo for map clicks and geolocation, no reverse geocoding"""
        return Location(name=name, country=country, lat=lat, lon=lon)


class OpenWeatherMapProvider(WeatherProvider):
    """OpenWeatherMap: current conditions, 5-day/3-hour forecast and air pollution"""

    base_url = 'https://api.openweathermap.org/data/2.5'

    def __init__(self, api_key: str):
        super().__init__('OpenWeatherMap', api_key)

    def _params(self, lat: float, lon: float, unit: str, locale: str) -> dict[str, Any]:
        return {
            'lat': lat,
            'lon': lon,
            'appid': self.api_key,
            'units': unit,
            'lang': locale,
        }

    def fetch_current(
        self, lat: float, lon: float, unit: str = METRIC, locale: str = 'en'
    ) -> WeatherSnapshot:
        """Fetch current conditions for coordinates"""
        print(f'🌤️  OpenWeatherMap current for {lat:.4f},{lon:.4f} ({unit}, {locale})')
        data = self._get_json(
            f'{self.base_url}/weather', self._params(lat, lon, unit, locale)
        )
        return self.parse_current(data, unit, locale)

    def fetch_current_by_name(
        self, query: str, unit: str = METRIC, locale: str = 'en'
    ) -> WeatherSnapshot:
        """Fetch current conditions by city query, e.g. 'London, GB'"""
        params = {'q': query, 'appid': self.api_key, 'units': unit, 'lang': locale}
        data = self._get_json(f'{self.base_url}/weather', params)
        return self.parse_current(data, unit, locale)

    def fetch_forecast(
        self, lat: float, lon: float, unit: str = METRIC, locale: str = 'en'
    ) -> list[ForecastPoint]:
        """Fetch the 5-day forecast as ordered 3-hourly points"""
        data = self._get_json(
            f'{self.base_url}/forecast', self._params(lat, lon, unit, locale)
        )
        return self.parse_forecast(data)

    def fetch_air_quality(self, lat: float, lon: float) -> list[AirQuality]:
        """Fetch the air pollution series; the first entry is current"""
        data = self._get_json(
            f'{self.base_url}/air_pollution',
            {'lat': lat, 'lon': lon, 'appid': self.api_key},
        )
        return self.parse_air_quality(data)

    def parse_current(
        self, data: dict[str, Any], unit: str = METRIC, locale: str = 'en'
    ) -> WeatherSnapshot:
        try:
            coord = data.get('coord', {})
            weather = (data.get('weather') or [{}])[0]
            main = data['main']
            sys_info = data.get('sys', {})
            wind = data.get('wind', {})
            return WeatherSnapshot(
                location=Location(
                    name=data.get('name', ''),
                    country=sys_info.get('country', ''),
                    lat=float(coord.get('lat', 0)),
                    lon=float(coord.get('lon', 0)),
                ),
                observed_at=_utc(data.get('dt')),
                temperature=float(main['temp']),
                feels_like=float(main.get('feels_like', main['temp'])),
                temp_min=float(main.get('temp_min', main['temp'])),
                temp_max=float(main.get('temp_max', main['temp'])),
                humidity=int(main.get('humidity', 0)),
                pressure=int(main.get('pressure', 0)),
                visibility=data.get('visibility'),
                wind=Wind(
                    speed=float(wind.get('speed', 0)),
                    degrees=float(wind.get('deg', 0)),
                ),
                weather_main=weather.get('main', 'Clear'),
                description=weather.get('description', ''),
                sunrise=_utc(sys_info.get('sunrise')),
                sunset=_utc(sys_info.get('sunset')),
                icon_code=weather.get('icon', '01d'),
                unit=unit,
                locale=locale,
                timezone_offset=int(data.get('timezone', 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FatalFetchError(self.name, f'malformed current weather: {e}') from e

    def parse_forecast(self, data: dict[str, Any]) -> list[ForecastPoint]:
        points = []
        for item in data.get('list', []):
            try:
                main = item['main']
                weather = (item.get('weather') or [{}])[0]
                points.append(
                    ForecastPoint(
                        time=_utc(item['dt']),
                        stamp=item.get('dt_txt')
                        or _utc(item['dt']).strftime('%Y-%m-%d %H:%M:%S'),
                        temperature=float(main['temp']),
                        temp_min=float(main.get('temp_min', main['temp'])),
                        temp_max=float(main.get('temp_max', main['temp'])),
                        weather_main=weather.get('main', 'Clear'),
                        description=weather.get('description', ''),
                        icon_code=weather.get('icon', '01d'),
                        precipitation_chance=item.get('pop'),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                print(f'⚠️  Skipping malformed forecast entry: {e}')
        return points

    def parse_air_quality(self, data: dict[str, Any]) -> list[AirQuality]:
        series = []
        for item in data.get('list', []):
            aqi = item.get('main', {}).get('aqi')
            if aqi is None:
                continue
            series.append(
                AirQuality(
                    aqi=int(aqi),
                    components=dict(item.get('components', {})),
                    observed_at=_utc(item.get('dt')) if item.get('dt') else None,
                )
            )
        return series


class OpenMeteoProvider(WeatherProvider):
    """Open-Meteo 10-day daily forecast with UV index and lunar data"""

    DAILY_FIELDS = (
        'weather_code,temperature_2m_max,temperature_2m_min,uv_index_max,'
        'precipitation_probability_max,moon_phase,moonrise,moonset'
    )
    FORECAST_DAYS = 10
    base_url = 'https://api.open-meteo.com/v1/forecast'

    def __init__(self) -> None:
        super().__init__('OpenMeteo')

    def fetch_daily(
        self, lat: float, lon: float, unit: str = METRIC
    ) -> DailyForecast | None:
        """Fetch the 10-day daily feed; returns None on any failure"""
        params: dict[str, str | float | int] = {
            'latitude': lat,
            'longitude': lon,
            'daily': self.DAILY_FIELDS,
            'timezone': 'auto',
            'forecast_days': self.FORECAST_DAYS,
            'temperature_unit': 'fahrenheit' if unit == IMPERIAL else 'celsius',
        }
        try:
            try:
                data = self._get_json(self.base_url, params)
            except FatalFetchError as e:
                raise SoftFetchError(str(e)) from e
            return self.parse_daily(data)
        except SoftFetchError as e:
            print(f'❌ Open-Meteo daily forecast unavailable: {e}')
            return None

    def parse_daily(self, data: dict[str, Any]) -> DailyForecast:
        """Parse index-aligned daily arrays into entries sorted and unique by date"""
        daily = data.get('daily') if isinstance(data, dict) else None
        if not daily or not daily.get('time'):
            raise SoftFetchError('response has no daily data')

        def column(key: str) -> list[Any]:
            values = daily.get(key) or []
            return list(values) + [None] * (len(daily['time']) - len(values))

        codes = column('weather_code')
        highs = column('temperature_2m_max')
        lows = column('temperature_2m_min')
        uv = column('uv_index_max')
        precip = column('precipitation_probability_max')
        phases = column('moon_phase')
        rises = column('moonrise')
        sets = column('moonset')

        by_date: dict[date, DailyEntry] = {}
        try:
            for i, day in enumerate(daily['time']):
                entry_date = date.fromisoformat(day)
                if entry_date in by_date:
                    continue
                by_date[entry_date] = DailyEntry(
                    date=entry_date,
                    temp_min=lows[i],
                    temp_max=highs[i],
                    icon_code=icon_from_weather_code(codes[i]),
                    weather_code=codes[i],
                    precipitation_chance=precip[i],
                    uv_index_max=uv[i],
                    provenance=NATIVE,
                )
        except (TypeError, ValueError) as e:
            raise SoftFetchError(f'malformed daily data: {e}') from e

        lunar = None
        if phases[0] is not None:
            lunar = LunarInfo(phase=float(phases[0]), moonrise=rises[0], moonset=sets[0])

        return DailyForecast(
            entries=[by_date[key] for key in sorted(by_date)],
            lunar=lunar,
            uv_index=uv[0],
            timezone=data.get('timezone'),
        )
