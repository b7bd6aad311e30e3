import json
from datetime import date
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from flask import Flask
from flask.testing import FlaskClient

from main import (
    DEFAULT_LAT,
    DEFAULT_LON,
    error_response,
    parse_day,
    weather_cache,
)
from weather_models import FatalFetchError, NotFoundError


# Test constants
HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_INTERNAL_SERVER_ERROR = 500
HTTP_BAD_GATEWAY = 502
CACHE_MAX_SIZE = 100
CACHE_TTL_SECONDS = 180


class TestUtilityFunctions:
    """Test helper functions in main.py"""

    def test_parse_day(self) -> None:
        assert parse_day('2024-01-02') == date(2024, 1, 2)
        assert parse_day('tomorrow') is None
        assert parse_day(None) is None
        assert parse_day('') is None

    def test_error_response(self, flask_app: Flask) -> None:
        with flask_app.app_context():
            response = error_response('nope', HTTP_BAD_REQUEST)

        assert response.status_code == HTTP_BAD_REQUEST
        assert response.get_json() == {'error': 'nope'}

    def test_default_location_is_istanbul(self) -> None:
        assert DEFAULT_LAT == pytest.approx(41.0082)
        assert DEFAULT_LON == pytest.approx(28.9784)


@pytest.mark.usefixtures('reset_dashboard')
class TestWeatherRoute:
    """Test the stateless /api/weather route"""

    def test_weather_success(self, client: FlaskClient, fake_api: Any) -> None:
        response = client.get('/api/weather?lat=51.5074&lon=-0.1278&location=London')

        assert response.status_code == HTTP_OK
        data = json.loads(response.data)
        assert data['location']['name'] == 'London'
        assert data['daily_source'] == 'native'
        assert data['unit'] == 'imperial'
        assert 'ETag' in response.headers
        assert response.headers['Cache-Control'] == 'public, max-age=180'

    def test_weather_defaults_to_istanbul(self, client: FlaskClient, fake_api: Any) -> None:
        response = client.get('/api/weather')

        assert response.status_code == HTTP_OK
        assert json.loads(response.data)['location']['name'] == 'Istanbul'
        assert fake_api.calls_to('current')[0]['lat'] == DEFAULT_LAT

    def test_weather_unit_and_lang_params(self, client: FlaskClient, fake_api: Any) -> None:
        client.get('/api/weather?lat=1&lon=2&unit=metric&lang=tr')

        params = fake_api.calls_to('current')[0]
        assert params['units'] == 'metric'
        assert params['lang'] == 'tr'

    def test_unknown_unit_uses_locale_default(
        self, client: FlaskClient, fake_api: Any
    ) -> None:
        client.get('/api/weather?lat=1&lon=2&unit=kelvin&lang=de')

        assert fake_api.calls_to('current')[0]['units'] == 'metric'

    def test_weather_cached(self, client: FlaskClient, fake_api: Any) -> None:
        client.get('/api/weather?lat=51.5074&lon=-0.1278&location=London')
        response = client.get('/api/weather?lat=51.5074&lon=-0.1278&location=Westminster')

        assert len(fake_api.calls_to('current')) == 1
        # cached bundles are shown under the name of the new request
        assert json.loads(response.data)['location']['name'] == 'Westminster'
        assert '51.5074,-0.1278,imperial,en' in weather_cache

    def test_display_name_does_not_stick_to_cache(
        self, client: FlaskClient, fake_api: Any
    ) -> None:
        first = client.get('/api/weather?lat=51.5074&lon=-0.1278&location=Karakoy')
        second = client.get('/api/weather?lat=51.5074&lon=-0.1278')

        assert json.loads(first.data)['location']['name'] == 'Karakoy'
        assert json.loads(second.data)['location']['name'] == 'London'
        assert weather_cache['51.5074,-0.1278,imperial,en'].location.name == 'London'
        assert len(fake_api.calls_to('current')) == 1

    def test_weather_fatal_failure(self, client: FlaskClient, fake_api: Any) -> None:
        fake_api.fail('air', HTTP_INTERNAL_SERVER_ERROR)

        response = client.get('/api/weather?lat=1&lon=2')

        assert response.status_code == HTTP_INTERNAL_SERVER_ERROR
        assert json.loads(response.data)['error'] == 'Failed to fetch weather data'
        assert len(weather_cache) == 0

    def test_weather_selected_day(self, client: FlaskClient, fake_api: Any) -> None:
        response = client.get('/api/weather?lat=1&lon=2&day=2024-01-02')

        hourly = json.loads(response.data)['hourly']
        assert [point['time'] for point in hourly] == ['00:00', '09:00', '12:00', '15:00']


@pytest.mark.usefixtures('reset_dashboard')
class TestGeocodeRoute:
    @patch('main.geo_resolver.resolve')
    def test_geocode_not_found(self, mock_resolve: MagicMock, client: FlaskClient) -> None:
        mock_resolve.side_effect = NotFoundError('Atlantis')

        response = client.get('/api/geocode?q=Atlantis')

        assert response.status_code == HTTP_NOT_FOUND

    @patch('main.geo_resolver.resolve')
    def test_geocode_failure(self, mock_resolve: MagicMock, client: FlaskClient) -> None:
        mock_resolve.side_effect = FatalFetchError('OpenWeatherMapGeocoding', 'down')

        response = client.get('/api/geocode?q=Paris')

        assert response.status_code == HTTP_BAD_GATEWAY

    def test_geocode_orders_by_locale(self, client: FlaskClient, fake_api: Any) -> None:
        response = client.get('/api/geocode?q=Paris&lang=fr')

        results = json.loads(response.data)['results']
        assert results[0]['country'] == 'FR'
        assert results[0]['identity'] == 'Paris, FR'

        response = client.get('/api/geocode?q=Paris&lang=en')

        assert json.loads(response.data)['results'][0]['state'] == 'Texas'


@pytest.mark.usefixtures('reset_dashboard')
class TestInfoRoutes:
    def test_providers(self, client: FlaskClient) -> None:
        data = json.loads(client.get('/api/providers').data)

        assert data['primary']['name'] == 'OpenWeatherMap'
        assert data['supplemental']['name'] == 'OpenMeteo'
        assert data['geocoding']['name'] == 'OpenWeatherMapGeocoding'

    def test_cache_stats(self, client: FlaskClient) -> None:
        data = json.loads(client.get('/api/cache/stats').data)

        assert data['cache_size'] == 0
        assert data['max_size'] == CACHE_MAX_SIZE
        assert data['ttl_seconds'] == CACHE_TTL_SECONDS

    @patch('main.weather_aggregator.capital_summaries')
    def test_capitals(self, mock_summaries: MagicMock, client: FlaskClient) -> None:
        mock_summaries.return_value = []

        response = client.get('/api/capitals?lang=de')

        assert response.status_code == HTTP_OK
        first, second = mock_summaries.call_args_list
        assert first[0][0][0] == 'London, GB'
        assert second[0][0][0] == 'Berlin, DE'
        assert first[0][1] == 'metric'


@pytest.mark.usefixtures('reset_dashboard')
class TestDashboardRoutes:
    def test_empty_dashboard(self, client: FlaskClient) -> None:
        data = json.loads(client.get('/api/dashboard').data)

        assert data['weather'] is None
        assert data['loading'] is False
        assert data['preferences']['locale'] == 'en'

    def test_search_requires_query(self, client: FlaskClient) -> None:
        response = client.post('/api/dashboard/search', json={'query': '  '})

        assert response.status_code == HTTP_BAD_REQUEST

    def test_location_requires_coordinates(self, client: FlaskClient) -> None:
        response = client.post('/api/dashboard/location', json={'lat': 'north'})

        assert response.status_code == HTTP_BAD_REQUEST

    def test_preferences_reject_bad_locale(self, client: FlaskClient) -> None:
        response = client.post('/api/preferences', json={'locale': 'xx'})

        assert response.status_code == HTTP_BAD_REQUEST

    def test_preferences_get(self, client: FlaskClient) -> None:
        data = json.loads(client.get('/api/preferences').data)

        assert data == {'locale': 'en', 'unit': 'imperial', 'preferred_country': 'US'}

    def test_toggle_favorite_without_location(self, client: FlaskClient) -> None:
        response = client.post('/api/favorites/toggle')

        assert response.status_code == HTTP_CONFLICT

    def test_delete_unknown_favorite(self, client: FlaskClient) -> None:
        response = client.delete('/api/favorites', json={'identity': 'Nowhere, XX'})

        assert response.status_code == HTTP_NOT_FOUND

    def test_delete_requires_identity(self, client: FlaskClient) -> None:
        response = client.delete('/api/favorites', json={})

        assert response.status_code == HTTP_BAD_REQUEST
