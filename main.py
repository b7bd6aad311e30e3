import os
import time
from datetime import date
from typing import Any

from cachetools import TTLCache
from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request
from flask_compress import Compress
from flask_socketio import SocketIO, emit

from dashboard_session import DashboardSession, SuggestionSearch
from translations import translate
from weather_aggregator import CAPITAL_CITIES, WeatherAggregator, rename_bundle
from weather_derivations import build_view_model
from weather_models import (
    SUPPORTED_LOCALES,
    UNITS,
    FatalFetchError,
    Location,
    NotFoundError,
)
from weather_providers import GeoResolver, OpenMeteoProvider, OpenWeatherMapProvider
from weather_storage import (
    FEATURED_CITIES,
    PREFERRED_COUNTRIES,
    FavoritesStore,
    KeyValueStorage,
    PreferencesStore,
    default_unit,
)


load_dotenv()

app = Flask(__name__)
secret_key = os.getenv('SECRET_KEY')
if not secret_key:
    import secrets

    secret_key = secrets.token_hex(16)
    print(
        'Warning: No SECRET_KEY environment variable set. '
        'Generated temporary key for this session.'
    )
app.config['SECRET_KEY'] = secret_key

# Enable gzip compression for all responses
Compress(app)

# Initialize SocketIO with secure CORS settings
cors_origins = os.getenv(
    'CORS_ALLOWED_ORIGINS', 'http://localhost:5001,http://127.0.0.1:5001'
).split(',')
socketio = SocketIO(app, cors_allowed_origins=cors_origins)

# Istanbul coordinates, used when a request has none
DEFAULT_LAT = 41.0082
DEFAULT_LON = 28.9784
DEFAULT_LOCATION = 'Istanbul'

# Cache for merged weather bundles (3 minutes TTL, max 100 entries)
weather_cache: TTLCache[str, Any] = TTLCache(maxsize=100, ttl=180)

openweather_api_key = os.getenv('OPENWEATHER_API_KEY', '')
if openweather_api_key:
    print('🔑 OpenWeatherMap API key found')
else:
    print('⚠️  No OPENWEATHER_API_KEY set - OpenWeatherMap requests will be rejected')

geo_resolver = GeoResolver(openweather_api_key)
weather_aggregator = WeatherAggregator(
    OpenWeatherMapProvider(openweather_api_key), OpenMeteoProvider()
)

storage = KeyValueStorage(os.getenv('WEATHERLY_STORAGE_PATH', 'weatherly.db'))
preferences = PreferencesStore(storage, os.getenv('WEATHERLY_LANG') or os.getenv('LANG'))
favorites = FavoritesStore(storage)
dashboard = DashboardSession(weather_aggregator, geo_resolver, preferences, favorites)

suggestion_debounce = float(os.getenv('SUGGESTION_DEBOUNCE_SECONDS', '0.3'))
suggestion_searches: dict[str, SuggestionSearch] = {}


def error_response(message: str, status_code: int) -> Response:
    response = jsonify({'error': message})
    response.status_code = status_code
    return response


def parse_day(value: str | None) -> date | None:
    """Parse an optional YYYY-MM-DD chart day"""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def request_locale() -> str:
    lang = request.args.get('lang')
    return lang if lang in SUPPORTED_LOCALES else preferences.locale


def request_unit(locale: str) -> str:
    unit = request.args.get('unit')
    return unit if unit in UNITS else default_unit(locale)


@app.route('/api/weather')  # type: ignore[misc]
def weather_api() -> Response:
    """Stateless merged weather for coordinates"""
    lat = request.args.get('lat', type=float)
    lon = request.args.get('lon', type=float)
    location_name = request.args.get('location')
    locale = request_locale()
    unit = request_unit(locale)

    if lat is None or lon is None:
        lat, lon = DEFAULT_LAT, DEFAULT_LON
        location_name = location_name or DEFAULT_LOCATION

    cache_key = f'{lat:.4f},{lon:.4f},{unit},{locale}'

    if cache_key in weather_cache:
        print(f'📦 Returning cached data for {cache_key}')
        bundle = weather_cache[cache_key]
    else:
        print(f'🌤️  Fetching weather for {location_name or cache_key}')
        try:
            bundle = weather_aggregator.load_weather(lat, lon, None, unit, locale)
        except FatalFetchError as e:
            print(f'❌ Weather request failed: {e}')
            return error_response('Failed to fetch weather data', 500)
        weather_cache[cache_key] = bundle
        print(f'💾 Cached weather data for {cache_key}')

    # cached bundles keep the provider's name, display names apply per request
    if location_name:
        bundle = rename_bundle(bundle, location_name)

    response = jsonify(
        build_view_model(bundle, selected_day=parse_day(request.args.get('day')))
    )
    response.headers['Cache-Control'] = 'public, max-age=180'
    etag_value = hash(cache_key + str(int(time.time() // 300)))
    response.headers['ETag'] = f'"{etag_value}"'
    return response


@app.route('/api/geocode')  # type: ignore[misc]
def geocode_api() -> Response:
    """Candidates for a free-text location, preferred country first"""
    query = request.args.get('q', '')
    locale = request_locale()
    try:
        candidates = geo_resolver.resolve(query, PREFERRED_COUNTRIES[locale])
    except NotFoundError:
        return error_response(translate(None, 'searchCityError'), 404)
    except FatalFetchError as e:
        print(f'❌ Geocoding failed: {e}')
        return error_response('Failed to search locations', 502)
    return jsonify({'query': query, 'results': [c.to_dict() for c in candidates]})


@app.route('/api/capitals')  # type: ignore[misc]
def capitals_api() -> Response:
    """Current-condition tiles for capitals and the locale's featured cities"""
    locale = request_locale()
    unit = request_unit(locale)
    return jsonify(
        {
            'capitals': weather_aggregator.capital_summaries(CAPITAL_CITIES, unit, locale),
            'featured': weather_aggregator.capital_summaries(
                FEATURED_CITIES[locale], unit, locale
            ),
        }
    )


@app.route('/api/providers')  # type: ignore[misc]
def get_providers() -> Response:
    """API endpoint to get weather provider information"""
    return jsonify(
        {
            **weather_aggregator.get_provider_info(),
            'geocoding': geo_resolver.get_provider_info(),
        }
    )


@app.route('/api/cache/stats')  # type: ignore[misc]
def cache_stats() -> Response:
    """API endpoint for cache statistics"""
    return jsonify(
        {
            'cache_size': len(weather_cache),
            'max_size': weather_cache.maxsize,
            'ttl_seconds': weather_cache.ttl,
            'cached_locations': list(weather_cache.keys()),
        }
    )


@app.route('/api/dashboard')  # type: ignore[misc]
def dashboard_state() -> Response:
    """Current dashboard view model"""
    return jsonify(dashboard.view_model(parse_day(request.args.get('day'))))


@app.route('/api/dashboard/search', methods=['POST'])  # type: ignore[misc]
def dashboard_search() -> Response:
    data = request.get_json(silent=True) or {}
    query = data.get('query', '')
    if not query.strip():
        return error_response('Query is required', 400)

    dashboard.search(query)
    return jsonify(dashboard.view_model())


@app.route('/api/dashboard/location', methods=['POST'])  # type: ignore[misc]
def dashboard_location() -> Response:
    """Load weather for a map click or geolocation fix"""
    data = request.get_json(silent=True) or {}
    try:
        lat = float(data['lat'])
        lon = float(data['lon'])
    except (KeyError, TypeError, ValueError):
        return error_response('lat and lon are required', 400)

    dashboard.select_point(lat, lon, data.get('name'))
    return jsonify(dashboard.view_model())


@app.route('/api/dashboard/refresh', methods=['POST'])  # type: ignore[misc]
def dashboard_refresh() -> Response:
    dashboard.refresh()
    return jsonify(dashboard.view_model())


@app.route('/api/preferences', methods=['GET', 'POST'])  # type: ignore[misc]
def preferences_api() -> Response:
    """Read or change unit and locale; changes re-fetch the current location"""
    if request.method == 'GET':
        return jsonify(preferences.to_dict())

    data = request.get_json(silent=True) or {}
    try:
        if 'locale' in data:
            dashboard.set_locale(data['locale'])
        if 'unit' in data:
            dashboard.set_unit(data['unit'])
        elif data.get('toggle_unit'):
            dashboard.toggle_unit()
    except ValueError as e:
        return error_response(str(e), 400)

    socketio.emit('preferences', preferences.to_dict())
    return jsonify(dashboard.view_model())


@app.route('/api/favorites', methods=['GET', 'DELETE'])  # type: ignore[misc]
def favorites_api() -> Response:
    if request.method == 'DELETE':
        data = request.get_json(silent=True) or {}
        identity = data.get('identity')
        if not identity:
            return error_response('identity is required', 400)
        if not dashboard.remove_favorite(identity):
            return error_response(f"'{identity}' is not a favorite", 404)
    return jsonify({'favorites': favorites.items(), 'is_favorite': dashboard.is_favorite})


@app.route('/api/favorites/toggle', methods=['POST'])  # type: ignore[misc]
def toggle_favorite() -> Response:
    """Star or unstar the location currently shown"""
    result = dashboard.toggle_favorite()
    if result is None:
        return error_response('No location loaded', 409)
    return jsonify({'favorites': favorites.items(), 'is_favorite': result})


# WebSocket event handlers
@socketio.on('connect')  # type: ignore[misc]
def handle_connect() -> None:
    """Handle client connection"""
    print(f'🔗 Client connected: {request.sid}')
    emit('preferences', preferences.to_dict())


@socketio.on('disconnect')  # type: ignore[misc]
def handle_disconnect() -> None:
    """Handle client disconnection"""
    print(f'📡 Client disconnected: {request.sid}')
    search = suggestion_searches.pop(request.sid, None)
    if search is not None:
        search.cancel()


@socketio.on('search_suggestions')  # type: ignore[misc]
def handle_search_suggestions(data: dict) -> None:
    """Debounced autocomplete; only the newest query of a client is answered"""
    sid = request.sid
    search = suggestion_searches.get(sid)
    if search is None:

        def publish(query: str, results: list[Location]) -> None:
            socketio.emit(
                'suggestions',
                {'query': query, 'results': [r.to_dict() for r in results]},
                to=sid,
            )

        search = SuggestionSearch(geo_resolver, suggestion_debounce, publish)
        suggestion_searches[sid] = search

    search.submit(str(data.get('query', '')), preferences.preferred_country)


@socketio.on('request_weather_update')  # type: ignore[misc]
def handle_weather_update_request(data: dict) -> None:
    """Handle weather update request from client"""
    lat = float(data.get('lat', DEFAULT_LAT))
    lon = float(data.get('lon', DEFAULT_LON))
    location = data.get('location')

    print(f'🌤️  Weather update requested for {location or f"{lat},{lon}"}')

    try:
        bundle = weather_aggregator.load_weather(
            lat, lon, None, preferences.unit, preferences.locale
        )
    except FatalFetchError as e:
        print(f'❌ Weather update failed: {e}')
        emit('weather_error', {'error': 'Failed to fetch weather data'})
        return

    cache_key = f'{lat:.4f},{lon:.4f},{preferences.unit},{preferences.locale}'
    weather_cache[cache_key] = bundle
    if location:
        bundle = rename_bundle(bundle, location)
    emit('weather_update', build_view_model(bundle))


@socketio.on('ping')  # type: ignore[misc]
def handle_ping() -> None:
    """Handle ping from client to check connection"""
    emit('pong', {'timestamp': time.time()})


if __name__ == '__main__':
    dashboard.start()
    port = int(os.getenv('PORT', '5001'))
    host = os.getenv('HOST', '127.0.0.1')  # Default to localhost, allow override
    try:
        socketio.run(app, debug=False, host=host, port=port, allow_unsafe_werkzeug=True)
    finally:
        weather_aggregator.close()
        storage.close()
