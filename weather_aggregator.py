# ABOUTME: Aggregates OpenWeatherMap and Open-Meteo results into one WeatherBundle
# ABOUTME: Concurrent primary fetches, display-name preservation and the fallback daily view

import dataclasses
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from typing import Any

from weather_derivations import round_half_up
from weather_models import (
    FALLBACK,
    METRIC,
    NATIVE,
    AirQuality,
    DailyEntry,
    DailyForecast,
    FatalFetchError,
    ForecastPoint,
    WeatherBundle,
    WeatherSnapshot,
)
from weather_providers import OpenMeteoProvider, OpenWeatherMapProvider


FALLBACK_DAYS = 5
NOON_STAMP = '12:00:00'

CAPITAL_CITIES = ('London, GB', 'New York, US', 'Tokyo, JP', 'Paris, FR', 'Berlin, DE')


def fallback_daily(points: list[ForecastPoint], limit: int = FALLBACK_DAYS) -> list[DailyEntry]:
    """Reconstruct daily entries from 3-hourly samples.

    Dates keep their first-encounter order. Each date is represented by its
    12:00 sample when present, otherwise by the first sample of that date.
    """
    chosen: dict[str, ForecastPoint] = {}
    for point in points:
        key = point.date_key
        if key not in chosen:
            chosen[key] = point
        elif point.stamp.endswith(NOON_STAMP) and not chosen[key].stamp.endswith(
            NOON_STAMP
        ):
            chosen[key] = point

    return [
        DailyEntry(
            date=date.fromisoformat(key),
            temp_min=point.temp_min,
            temp_max=point.temp_max,
            icon_code=point.icon_code,
            precipitation_chance=point.precipitation_chance,
            description=point.description,
            provenance=FALLBACK,
        )
        for key, point in list(chosen.items())[:limit]
    ]


def with_display_name(snapshot: WeatherSnapshot, name: str) -> WeatherSnapshot:
    """Show the searched or selected name; the country stays as returned"""
    return dataclasses.replace(
        snapshot, location=dataclasses.replace(snapshot.location, name=name)
    )


def rename_bundle(bundle: WeatherBundle, name: str) -> WeatherBundle:
    return dataclasses.replace(bundle, snapshot=with_display_name(bundle.snapshot, name))


class WeatherAggregator:
    """Single entry point for every query origin: coordinates in, bundle out"""

    def __init__(
        self,
        primary: OpenWeatherMapProvider,
        supplemental: OpenMeteoProvider,
        max_workers: int = 4,
    ) -> None:
        self.primary = primary
        self.supplemental = supplemental
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='weather-fetch'
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def load_weather(
        self,
        lat: float,
        lon: float,
        display_name: str | None = None,
        unit: str = METRIC,
        locale: str = 'en',
    ) -> WeatherBundle:
        """Fetch all providers for one location and merge them.

        Raises FatalFetchError when current, forecast or air quality fails;
        the supplemental daily feed only ever degrades to the fallback view.
        """
        print(f'🌤️  Loading weather for {display_name or "coordinates"} at {lat:.4f},{lon:.4f}')
        current_future = self._executor.submit(
            self.primary.fetch_current, lat, lon, unit, locale
        )
        forecast_future = self._executor.submit(
            self.primary.fetch_forecast, lat, lon, unit, locale
        )
        air_future = self._executor.submit(self.primary.fetch_air_quality, lat, lon)
        daily_future = self._executor.submit(self.supplemental.fetch_daily, lat, lon, unit)

        snapshot, forecast, air_series = self._settle_primary(
            current_future, forecast_future, air_future
        )

        if display_name:
            snapshot = with_display_name(snapshot, display_name)

        daily = self._settle_supplemental(daily_future)
        return self.merge(snapshot, forecast, air_series, daily)

    def reload(
        self, bundle: WeatherBundle, unit: str | None = None, locale: str | None = None
    ) -> WeatherBundle:
        """Re-run a query for an existing bundle, keeping its coordinates and name"""
        location = bundle.location
        return self.load_weather(
            location.lat,
            location.lon,
            location.name,
            unit or bundle.snapshot.unit,
            locale or bundle.snapshot.locale,
        )

    def _settle_primary(
        self,
        current_future: 'Future[WeatherSnapshot]',
        forecast_future: 'Future[list[ForecastPoint]]',
        air_future: 'Future[list[AirQuality]]',
    ) -> tuple[WeatherSnapshot, list[ForecastPoint], list[AirQuality]]:
        errors = []
        results: list[Any] = []
        for future in (current_future, forecast_future, air_future):
            try:
                results.append(future.result())
            except FatalFetchError as e:
                errors.append(e)
                results.append(None)

        if errors:
            print(f'❌ Primary weather fetch failed: {errors[0]}')
            raise errors[0]
        return results[0], results[1], results[2]

    def _settle_supplemental(
        self, daily_future: 'Future[DailyForecast | None]'
    ) -> DailyForecast | None:
        try:
            return daily_future.result()
        except Exception as e:
            print(f'❌ Open-Meteo daily fetch crashed: {e}')
            return None

    @staticmethod
    def merge(
        snapshot: WeatherSnapshot,
        forecast: list[ForecastPoint],
        air_series: list[AirQuality],
        daily: DailyForecast | None,
    ) -> WeatherBundle:
        """Combine provider results; exactly one daily provenance is used"""
        air_quality = air_series[0] if air_series else None
        if daily is not None and daily.entries:
            return WeatherBundle(
                snapshot=snapshot,
                forecast=forecast,
                air_quality=air_quality,
                daily=daily.entries,
                daily_source=NATIVE,
                lunar=daily.lunar,
                uv_index=daily.uv_index,
            )

        print('🔄 Using 5-day fallback built from the 3-hourly forecast')
        return WeatherBundle(
            snapshot=snapshot,
            forecast=forecast,
            air_quality=air_quality,
            daily=fallback_daily(forecast),
            daily_source=FALLBACK,
        )

    def capital_summaries(
        self, names: tuple[str, ...] | list[str], unit: str = METRIC, locale: str = 'en'
    ) -> list[dict[str, Any]]:
        """Current-condition tiles for a list of 'City, CC' names; failures are skipped"""
        futures = [
            (name, self._executor.submit(self.primary.fetch_current_by_name, name, unit, locale))
            for name in names
        ]
        tiles = []
        for name, future in futures:
            try:
                snapshot = future.result()
            except FatalFetchError as e:
                print(f'❌ Tile for {name} unavailable: {e}')
                continue
            tiles.append(
                {
                    'query': name,
                    'name': name.split(',')[0],
                    'description': snapshot.description,
                    'icon_code': snapshot.icon_code,
                    'temperature': round_half_up(snapshot.temperature),
                    'unit': unit,
                }
            )
        return tiles

    def get_provider_info(self) -> dict[str, Any]:
        """Get information about the providers behind this aggregator"""
        return {
            'primary': self.primary.get_provider_info(),
            'supplemental': self.supplemental.get_provider_info(),
        }
