import os
import sys
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests
from flask import Flask
from flask.testing import FlaskClient


# Keep module-level state in main.py away from the filesystem and the real API
os.environ['WEATHERLY_STORAGE_PATH'] = ':memory:'
os.environ['WEATHERLY_LANG'] = 'en'
os.environ.setdefault('OPENWEATHER_API_KEY', 'test_api_key')
os.environ['SUGGESTION_DEBOUNCE_SECONDS'] = '0'

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from main import app  # noqa: E402
from weather_aggregator import WeatherAggregator  # noqa: E402
from weather_providers import (  # noqa: E402
    GeoResolver,
    OpenMeteoProvider,
    OpenWeatherMapProvider,
)


MOCK_API_KEY = 'test_api_key'
LONDON_LAT = 51.5074
LONDON_LON = -0.1278
OBSERVED_AT = 1704110400  # 2024-01-01T12:00:00Z


def make_response(payload: Any, status_code: int = 200) -> MagicMock:
    """Build a requests.Response stand-in"""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:  # noqa: PLR2004
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f'{status_code} Error', response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


def forecast_item(stamp: str, temp: float, main: str = 'Clouds') -> dict[str, Any]:
    moment = datetime.strptime(stamp, '%Y-%m-%d %H:%M:%S').replace(tzinfo=timezone.utc)
    return {
        'dt': int(moment.timestamp()),
        'main': {'temp': temp, 'temp_min': temp - 1, 'temp_max': temp + 1},
        'weather': [{'main': main, 'description': main.lower(), 'icon': '04d'}],
        'pop': 0.2,
        'dt_txt': stamp,
    }


class FakeWeatherApi:
    """Routes requests.get calls to canned provider payloads by URL"""

    ROUTES = (
        ('geo/1.0/direct', 'geocode'),
        ('data/2.5/weather', 'current'),
        ('data/2.5/forecast', 'forecast'),
        ('data/2.5/air_pollution', 'air'),
        ('api.open-meteo.com', 'daily'),
    )

    def __init__(self, payloads: dict[str, Any]) -> None:
        self.payloads = payloads
        self.failures: dict[str, int | Exception] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def fail(self, route: str, failure: int | Exception) -> None:
        """Make a route answer with an HTTP status code or raise an exception"""
        self.failures[route] = failure

    def calls_to(self, route: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == route]

    def __call__(
        self, url: str, params: dict[str, Any] | None = None, timeout: int | None = None
    ) -> MagicMock:
        route = next(name for fragment, name in self.ROUTES if fragment in url)
        self.calls.append((route, dict(params or {})))
        failure = self.failures.get(route)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return make_response({'message': 'error'}, failure)
        payload = self.payloads[route]
        if callable(payload):
            payload = payload(params or {})
        return make_response(payload)


@pytest.fixture  # type: ignore[misc]
def flask_app() -> Flask:
    """Create a Flask app instance for testing"""
    app.config['TESTING'] = True
    return app


@pytest.fixture  # type: ignore[misc]
def client(flask_app: Flask) -> FlaskClient:
    """Create a test client for the Flask app"""
    return flask_app.test_client()


@pytest.fixture  # type: ignore[misc]
def mock_current_response() -> dict[str, Any]:
    """Mock OpenWeatherMap current weather response (London, clear)"""
    return {
        'coord': {'lon': LONDON_LON, 'lat': LONDON_LAT},
        'weather': [{'id': 800, 'main': 'Clear', 'description': 'clear sky', 'icon': '01d'}],
        'main': {
            'temp': 18.5,
            'feels_like': 17.9,
            'temp_min': 16.2,
            'temp_max': 20.1,
            'pressure': 1015,
            'humidity': 62,
        },
        'visibility': 10000,
        'wind': {'speed': 4.1, 'deg': 230},
        'dt': OBSERVED_AT,
        'sys': {'country': 'GB', 'sunrise': 1704096300, 'sunset': 1704124800},
        'timezone': 0,
        'name': 'London',
    }


@pytest.fixture  # type: ignore[misc]
def mock_forecast_response() -> dict[str, Any]:
    """3-hourly forecast spanning three calendar dates; only the middle one has 12:00"""
    return {
        'list': [
            forecast_item('2024-01-01 15:00:00', 9.0),
            forecast_item('2024-01-01 18:00:00', 7.5),
            forecast_item('2024-01-01 21:00:00', 6.0),
            forecast_item('2024-01-02 00:00:00', 5.0),
            forecast_item('2024-01-02 09:00:00', 6.5),
            forecast_item('2024-01-02 12:00:00', 10.0, 'Rain'),
            forecast_item('2024-01-02 15:00:00', 9.5),
            forecast_item('2024-01-03 00:00:00', 4.0),
            forecast_item('2024-01-03 03:00:00', 3.5, 'Snow'),
            forecast_item('2024-01-03 06:00:00', 3.0),
        ],
        'city': {'name': 'London', 'country': 'GB', 'timezone': 0},
    }


@pytest.fixture  # type: ignore[misc]
def mock_air_response() -> dict[str, Any]:
    """Mock OpenWeatherMap air pollution series"""
    return {
        'coord': {'lon': LONDON_LON, 'lat': LONDON_LAT},
        'list': [
            {'main': {'aqi': 2}, 'components': {'pm2_5': 5.1, 'no2': 12.3}, 'dt': OBSERVED_AT},
            {'main': {'aqi': 3}, 'components': {'pm2_5': 9.8}, 'dt': OBSERVED_AT + 3600},
        ],
    }


@pytest.fixture  # type: ignore[misc]
def mock_open_meteo_response() -> dict[str, Any]:
    """Mock Open-Meteo 10-day daily response"""
    start = datetime(2024, 1, 1)
    days = [(start + timedelta(days=i)).strftime('%Y-%m-%d') for i in range(10)]
    return {
        'timezone': 'Europe/London',
        'daily': {
            'time': days,
            'weather_code': [0, 2, 61, 3, 45, 71, 95, 80, 1, 999],
            'temperature_2m_max': [12.0 + i for i in range(10)],
            'temperature_2m_min': [4.0 + i for i in range(10)],
            'uv_index_max': [4.5, 2.0, 1.0, 3.0, 3.5, 1.0, 2.0, 5.0, 6.0, 2.5],
            'precipitation_probability_max': [0, 10, 80, 20, 5, 60, 90, 70, 0, 15],
            'moon_phase': [0.25, 0.28, 0.31, 0.35, 0.38, 0.42, 0.45, 0.5, 0.53, 0.57],
            'moonrise': [f'{day}T10:12' for day in days],
            'moonset': [f'{day}T23:40' for day in days],
        },
    }


@pytest.fixture  # type: ignore[misc]
def mock_geocode_response() -> list[dict[str, Any]]:
    """Mock OpenWeatherMap direct geocoding response, in provider order"""
    return [
        {'name': 'Paris', 'country': 'FR', 'lat': 48.8566, 'lon': 2.3522, 'state': 'Ile-de-France'},
        {'name': 'Paris', 'country': 'US', 'lat': 33.6609, 'lon': -95.5555, 'state': 'Texas'},
        {'name': 'Paris', 'country': 'CA', 'lat': 43.1939, 'lon': -80.3842, 'state': 'Ontario'},
        {'name': 'Paris', 'country': 'US', 'lat': 36.302, 'lon': -88.3267, 'state': 'Tennessee'},
    ]


@pytest.fixture  # type: ignore[misc]
def fake_api(
    mock_current_response: dict[str, Any],
    mock_forecast_response: dict[str, Any],
    mock_air_response: dict[str, Any],
    mock_open_meteo_response: dict[str, Any],
    mock_geocode_response: list[dict[str, Any]],
) -> Generator[FakeWeatherApi, None, None]:
    """Patch requests.get with a router over all provider payloads"""
    api = FakeWeatherApi(
        {
            'geocode': mock_geocode_response,
            'current': mock_current_response,
            'forecast': mock_forecast_response,
            'air': mock_air_response,
            'daily': mock_open_meteo_response,
        }
    )
    with patch('requests.get', side_effect=api):
        yield api


@pytest.fixture  # type: ignore[misc]
def aggregator() -> Generator[WeatherAggregator, None, None]:
    """Create a WeatherAggregator over fresh provider clients"""
    instance = WeatherAggregator(OpenWeatherMapProvider(MOCK_API_KEY), OpenMeteoProvider())
    yield instance
    instance.close()


@pytest.fixture  # type: ignore[misc]
def geo_resolver() -> GeoResolver:
    return GeoResolver(MOCK_API_KEY)


@pytest.fixture  # type: ignore[misc]
def reset_dashboard() -> Generator[None, None, None]:
    """Reset the module-level dashboard, cache and stores in main"""
    import main

    def reset() -> None:
        main.weather_cache.clear()
        main.dashboard.bundle = None
        main.dashboard.error = None
        main.preferences.set_locale('en')
        for identity in main.favorites.items():
            main.favorites.remove(identity)

    reset()
    yield
    reset()
