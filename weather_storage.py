# ABOUTME: Persisted dashboard state: favorites list and locale preference
# ABOUTME: A small sqlite key/value table holding the two named storage entries

import json
import sqlite3
import threading

from weather_models import (
    DEFAULT_LOCALE,
    IMPERIAL,
    METRIC,
    SUPPORTED_LOCALES,
    UNITS,
)


FAVORITES_KEY = 'weatherFavorites'
LOCALE_KEY = 'weatherAppLang'

# Country used to bias ambiguous geocoding results for each UI language
PREFERRED_COUNTRIES = {
    'tr': 'TR',
    'en': 'US',
    'es': 'ES',
    'de': 'DE',
    'fr': 'FR',
    'ru': 'RU',
}

# Major cities shown as tiles for each UI language
FEATURED_CITIES = {
    'tr': ('İstanbul, TR', 'Ankara, TR', 'İzmir, TR', 'Bursa, TR', 'Antalya, TR'),
    'en': ('New York, US', 'Los Angeles, US', 'Chicago, US', 'Houston, US', 'Phoenix, US'),
    'es': ('Madrid, ES', 'Barcelona, ES', 'Valencia, ES', 'Sevilla, ES', 'Zaragoza, ES'),
    'de': ('Berlin, DE', 'Hamburg, DE', 'München, DE', 'Köln, DE', 'Frankfurt, DE'),
    'fr': ('Paris, FR', 'Marseille, FR', 'Lyon, FR', 'Toulouse, FR', 'Nice, FR'),
    'ru': (
        'Moscow, RU',
        'Saint Petersburg, RU',
        'Novosibirsk, RU',
        'Yekaterinburg, RU',
        'Kazan, RU',
    ),
}

_SCHEMA = """
CREATE TABLE IF NOT EXISTS storage (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
)
"""


class KeyValueStorage:
    """String key/value entries that survive process restarts"""

    def __init__(self, path: str = ':memory:') -> None:
        self.path = path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.execute(_SCHEMA)
        self._conn.commit()

    def get_item(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                'SELECT value FROM storage WHERE key = ?', (key,)
            ).fetchone()
        if row is None:
            return None
        return row[0]

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                'INSERT INTO storage (key, value, updated_at) '
                'VALUES (?, ?, CURRENT_TIMESTAMP) '
                'ON CONFLICT(key) DO UPDATE SET value = excluded.value, '
                'updated_at = CURRENT_TIMESTAMP',
                (key, value),
            )
            self._conn.commit()

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._conn.execute('DELETE FROM storage WHERE key = ?', (key,))
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class FavoritesStore:
    """Ordered, duplicate-free list of 'Name, CC' identities"""

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage
        self._items: list[str] = self._load()

    def _load(self) -> list[str]:
        raw = self.storage.get_item(FAVORITES_KEY)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
            if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
                raise ValueError('favorites entry is not a list of strings')
        except ValueError as e:
            print(f'❌ Corrupt favorites entry, resetting: {e}')
            self.storage.remove_item(FAVORITES_KEY)
            return []
        # collapse duplicates from older data, keeping first position
        return list(dict.fromkeys(items))

    def _save(self) -> None:
        self.storage.set_item(FAVORITES_KEY, json.dumps(self._items, ensure_ascii=False))
        print(f'💾 Saved {len(self._items)} favorites')

    def items(self) -> list[str]:
        return list(self._items)

    def contains(self, identity: str) -> bool:
        return identity in self._items

    def add(self, identity: str) -> bool:
        """Append an identity; returns False when it was already present"""
        if identity in self._items:
            return False
        self._items.append(identity)
        self._save()
        return True

    def remove(self, identity: str) -> bool:
        if identity not in self._items:
            return False
        self._items.remove(identity)
        self._save()
        return True

    def toggle(self, identity: str) -> bool:
        """Add or remove an identity; returns True when it is now a favorite"""
        if self.remove(identity):
            return False
        self.add(identity)
        return True


def default_unit(locale: str) -> str:
    """Imperial for the US English UI, metric everywhere else"""
    return IMPERIAL if locale == 'en' else METRIC


def language_from_system(value: str | None) -> str | None:
    """Extract the language code from a tag like 'en-US' or 'de_DE.UTF-8'"""
    if not value:
        return None
    return value.replace('_', '-').split('-')[0].split('.')[0].lower() or None


class PreferencesStore:
    """Active locale (persisted) and unit (locale default unless overridden)"""

    def __init__(self, storage: KeyValueStorage, system_language: str | None = None) -> None:
        self.storage = storage
        saved = storage.get_item(LOCALE_KEY)
        system = language_from_system(system_language)
        if saved in SUPPORTED_LOCALES:
            self._locale = saved
        elif system in SUPPORTED_LOCALES:
            self._locale = system
        else:
            self._locale = DEFAULT_LOCALE
        self._unit_override: str | None = None

    @property
    def locale(self) -> str:
        return self._locale

    @property
    def unit(self) -> str:
        return self._unit_override or default_unit(self._locale)

    @property
    def preferred_country(self) -> str:
        return PREFERRED_COUNTRIES[self._locale]

    @property
    def featured_cities(self) -> tuple[str, ...]:
        return FEATURED_CITIES[self._locale]

    def set_locale(self, locale: str) -> None:
        """Switch UI language; the unit goes back to that language's default"""
        if locale not in SUPPORTED_LOCALES:
            msg = f"Unsupported locale '{locale}'"
            raise ValueError(msg)
        self._locale = locale
        self._unit_override = None
        self.storage.set_item(LOCALE_KEY, locale)

    def set_unit(self, unit: str) -> None:
        if unit not in UNITS:
            msg = f"Unsupported unit '{unit}'"
            raise ValueError(msg)
        self._unit_override = unit

    def toggle_unit(self) -> str:
        self.set_unit(IMPERIAL if self.unit == METRIC else METRIC)
        return self.unit

    def to_dict(self) -> dict[str, str]:
        return {
            'locale': self.locale,
            'unit': self.unit,
            'preferred_country': self.preferred_country,
        }
