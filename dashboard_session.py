# ABOUTME: Per-user dashboard flow: search, voice, geolocation, toggles and favorites
# ABOUTME: Owns the snapshot slot; generation numbers make the last issued query win

import re
import threading
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from translations import translate
from weather_aggregator import WeatherAggregator
from weather_derivations import build_view_model, greeting_key
from weather_models import (
    CapabilityUnavailable,
    FatalFetchError,
    Location,
    NotFoundError,
    WeatherBundle,
)
from weather_providers import GeoResolver
from weather_storage import FavoritesStore, PreferencesStore


DEFAULT_CITY = 'Istanbul, TR'
SUGGESTION_DEBOUNCE_SECONDS = 0.3

SPEECH_LOCALE_TAGS = {'en': 'en-US', 'tr': 'tr-TR'}
TRANSCRIPT_PUNCTUATION = re.compile(r'[.,]')

Locator = Callable[[], tuple[float, float]]
Recognizer = Callable[[str], str]
Query = Callable[[str, str], WeatherBundle]


def speech_locale_tag(locale: str) -> str:
    """Locale tag handed to the speech recognizer"""
    return SPEECH_LOCALE_TAGS.get(locale, locale)


def clean_transcript(transcript: str) -> str:
    """Strip the punctuation some recognizers append to a spoken city name"""
    return TRANSCRIPT_PUNCTUATION.sub('', transcript).strip()


class SuggestionSearch:
    """Debounced search-as-you-type where only the newest query may publish"""

    def __init__(
        self,
        resolver: GeoResolver,
        debounce_seconds: float = SUGGESTION_DEBOUNCE_SECONDS,
        on_results: Callable[[str, list[Location]], None] | None = None,
    ) -> None:
        self.resolver = resolver
        self.debounce_seconds = debounce_seconds
        self.on_results = on_results
        self.query = ''
        self.results: list[Location] = []
        self._generation = 0
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def issue(self, query: str) -> int:
        """Start a new query generation, superseding any pending one"""
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            return self._generation

    def apply(self, generation: int, query: str, results: list[Location]) -> bool:
        """Publish results unless a newer query has been issued since"""
        with self._lock:
            if generation != self._generation:
                print(f'🗑️  Dropping stale suggestions for "{query}"')
                return False
            self.query = query
            self.results = list(results)
        if self.on_results is not None:
            self.on_results(query, list(results))
        return True

    def submit(self, query: str, country: str | None = None) -> int:
        """Schedule a debounced lookup for a keystroke"""
        generation = self.issue(query)
        if not query.strip():
            self.apply(generation, query, [])
            return generation

        timer = threading.Timer(
            self.debounce_seconds, self._run, args=(generation, query, country)
        )
        timer.daemon = True
        with self._lock:
            if generation != self._generation:
                return generation
            self._timer = timer
        timer.start()
        return generation

    def _run(self, generation: int, query: str, country: str | None) -> None:
        if generation != self._generation:
            return
        try:
            results = self.resolver.suggest(query, country)
        except FatalFetchError as e:
            print(f'❌ Suggestion lookup failed for "{query}": {e}')
            return
        self.apply(generation, query, results)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class DashboardSession:
    """Query flow for one user, holding the single current bundle"""

    def __init__(
        self,
        aggregator: WeatherAggregator,
        resolver: GeoResolver,
        preferences: PreferencesStore,
        favorites: FavoritesStore,
        strings: dict[str, str] | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.resolver = resolver
        self.preferences = preferences
        self.favorites = favorites
        self.strings = strings
        self.bundle: WeatherBundle | None = None
        self.error: str | None = None
        self._generation = 0
        self._in_flight = 0
        self._refresh_pending = False
        self._lock = threading.Lock()

    def _t(self, key: str) -> str:
        return translate(self.strings, key)

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    def _begin(self) -> int:
        with self._lock:
            self._generation += 1
            self._in_flight += 1
            return self._generation

    def _end(self) -> None:
        with self._lock:
            self._in_flight -= 1
        self._refresh_if_stale()

    def _commit(self, generation: int, bundle: WeatherBundle) -> bool:
        with self._lock:
            if generation != self._generation:
                print(f'🗑️  Discarding superseded result for {bundle.location.name}')
                return False
            self.bundle = bundle
            self.error = None
            self._refresh_pending = True
            return True

    def _fail(self, generation: int, message: str) -> None:
        with self._lock:
            if generation == self._generation:
                self.error = message

    def _report(self, message: str) -> None:
        with self._lock:
            self.error = message

    def _fetch(self, generation: int, query: Query) -> WeatherBundle | None:
        # unit and locale are read now, so a toggle made during geocoding applies
        unit, locale = self.preferences.unit, self.preferences.locale
        try:
            bundle = query(unit, locale)
        except FatalFetchError as e:
            print(f'❌ Weather load failed: {e}')
            self._fail(generation, self._t('weatherError'))
            return None
        if not self._commit(generation, bundle):
            return None
        return bundle

    def _refresh_if_stale(self) -> None:
        """Re-fetch once nothing is in flight if preferences moved under a new bundle"""
        with self._lock:
            # only a fresh commit can be stale; a failed fetch keeps the old bundle as is
            if self._in_flight or self.bundle is None or not self._refresh_pending:
                return
            self._refresh_pending = False
            snapshot = self.bundle.snapshot
        if (snapshot.unit, snapshot.locale) != (
            self.preferences.unit,
            self.preferences.locale,
        ):
            print('🔄 Preferences changed during a query, refreshing')
            self.refresh()

    def load(
        self, lat: float, lon: float, display_name: str | None = None
    ) -> WeatherBundle | None:
        """Load weather for coordinates, showing `display_name` when given"""
        generation = self._begin()
        try:
            return self._fetch(
                generation,
                lambda unit, locale: self.aggregator.load_weather(
                    lat, lon, display_name, unit, locale
                ),
            )
        finally:
            self._end()

    def search(self, text: str) -> WeatherBundle | None:
        """Geocode free text and load the best candidate"""
        query = text.strip()
        if not query:
            return None

        generation = self._begin()
        try:
            try:
                candidates = self.resolver.resolve(query, self.preferences.preferred_country)
            except NotFoundError:
                self._fail(generation, self._t('searchCityError'))
                return None
            except FatalFetchError as e:
                print(f'❌ Geocoding failed for "{query}": {e}')
                self._fail(generation, self._t('searchError'))
                return None

            best = candidates[0]
            return self._fetch(
                generation,
                lambda unit, locale: self.aggregator.load_weather(
                    best.lat, best.lon, best.name, unit, locale
                ),
            )
        finally:
            self._end()

    def refresh(self) -> WeatherBundle | None:
        """Re-fetch the current location under its preserved name"""
        if self.loading:
            # the in-flight query picks up the new preferences when it resolves
            return None
        bundle = self.bundle
        if bundle is None:
            return None
        generation = self._begin()
        try:
            return self._fetch(
                generation, lambda unit, locale: self.aggregator.reload(bundle, unit, locale)
            )
        finally:
            self._end()

    def set_unit(self, unit: str) -> WeatherBundle | None:
        self.preferences.set_unit(unit)
        return self.refresh()

    def toggle_unit(self) -> WeatherBundle | None:
        self.preferences.toggle_unit()
        return self.refresh()

    def set_locale(self, locale: str) -> WeatherBundle | None:
        self.preferences.set_locale(locale)
        return self.refresh()

    def select_point(
        self, lat: float, lon: float, name: str | None = None
    ) -> WeatherBundle | None:
        """Map click or direct coordinates"""
        return self.load(lat, lon, name)

    def use_current_location(self, locator: Locator | None) -> WeatherBundle | None:
        if locator is None:
            self._report(self._t('locationUnsupportedError'))
            return None
        try:
            lat, lon = locator()
        except CapabilityUnavailable:
            self._report(self._t('locationUnsupportedError'))
            return None
        except PermissionError:
            self._report(self._t('locationPermissionError'))
            return None
        location = self.resolver.resolve_location(lat, lon, self._t('myLocation'))
        return self.load(location.lat, location.lon, location.name)

    def start(self, locator: Locator | None = None) -> WeatherBundle | None:
        """First load: current position if available, else the default city"""
        if locator is not None:
            try:
                lat, lon = locator()
            except (CapabilityUnavailable, PermissionError) as e:
                print(f'📍 Geolocation unavailable ({e}), falling back to {DEFAULT_CITY}')
            else:
                return self.load(lat, lon, self._t('myLocation'))
        return self.search(DEFAULT_CITY)

    def voice_search(self, recognizer: Recognizer | None) -> WeatherBundle | None:
        if recognizer is None:
            self._report(self._t('voiceNotSupported'))
            return None
        try:
            transcript = recognizer(speech_locale_tag(self.preferences.locale))
        except CapabilityUnavailable:
            self._report(self._t('voiceNotSupported'))
            return None
        return self.search(clean_transcript(transcript or ''))

    @property
    def is_favorite(self) -> bool:
        return self.bundle is not None and self.favorites.contains(
            self.bundle.location.identity
        )

    def toggle_favorite(self) -> bool | None:
        """Star or unstar the displayed location; None when nothing is shown"""
        if self.bundle is None:
            return None
        return self.favorites.toggle(self.bundle.location.identity)

    def remove_favorite(self, identity: str) -> bool:
        return self.favorites.remove(identity)

    def select_favorite(self, identity: str) -> WeatherBundle | None:
        return self.search(identity)

    def view_model(self, selected_day: date | None = None) -> dict[str, Any]:
        bundle = self.bundle
        return {
            'greeting': self._t(greeting_key(datetime.now().hour)),
            'preferences': self.preferences.to_dict(),
            'favorites': self.favorites.items(),
            'is_favorite': self.is_favorite,
            'loading': self.loading,
            'error': self.error,
            'weather': build_view_model(bundle, self.strings, selected_day)
            if bundle is not None
            else None,
        }
