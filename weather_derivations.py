# ABOUTME: Pure derivations over a merged weather bundle (AQI band, compass, moon, clothing...)
# ABOUTME: Side-effect free and cheap; build_view_model assembles the JSON view for the UI

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any

from translations import translate
from weather_models import (
    IMPERIAL,
    ForecastPoint,
    HourlyPoint,
    WeatherBundle,
    WeatherSnapshot,
)


# Air quality bands keyed by the provider's 1-5 ordinal
AQI_BANDS = {
    1: ('good', '#22c55e'),
    2: ('good', '#facc15'),
    3: ('moderate', '#f97316'),
    4: ('unhealthy', '#ef4444'),
    5: ('dangerous', '#7e22ce'),
}
DEFAULT_AQI = 1

COMPASS_POINTS = ('N', 'NE', 'E', 'SE', 'S', 'SW', 'W', 'NW')
COMPASS_SECTOR = 45

# WMO weather code -> OpenWeatherMap icon code
WMO_ICON_MAP = {
    0: '01d',  # Clear sky
    1: '02d',  # Mainly clear
    2: '03d',  # Partly cloudy
    3: '04d',  # Overcast
    45: '50d',  # Fog
    48: '50d',  # Depositing rime fog
    51: '09d',  # Light drizzle
    53: '09d',  # Moderate drizzle
    55: '09d',  # Dense drizzle
    56: '09d',  # Light freezing drizzle
    57: '09d',  # Dense freezing drizzle
    61: '10d',  # Slight rain
    63: '10d',  # Moderate rain
    65: '10d',  # Heavy rain
    66: '10d',  # Light freezing rain
    67: '10d',  # Heavy freezing rain
    71: '13d',  # Slight snow fall
    73: '13d',  # Moderate snow fall
    75: '13d',  # Heavy snow fall
    77: '13d',  # Snow grains
    80: '09d',  # Slight rain showers
    81: '09d',  # Moderate rain showers
    82: '09d',  # Violent rain showers
    85: '13d',  # Slight snow showers
    86: '13d',  # Heavy snow showers
    95: '11d',  # Thunderstorm
    96: '11d',  # Thunderstorm with slight hail
    99: '11d',  # Thunderstorm with heavy hail
}
DEFAULT_WMO_ICON = '01d'

RAIN_FAMILY = ('Rain', 'Drizzle', 'Thunderstorm')
FAIR_WEATHER = ('Clear', 'Clouds')

# Compared against the snapshot temperature in its own unit
RUNNING_MIN_TEMP = 5
RUNNING_MAX_TEMP = 30
CAMPING_MIN_TEMP = 15
PICNIC_MIN_TEMP = 18
OUTDOOR_MAX_TEMP = 35
WARM_TEMP = 20
MILD_TEMP = 10
HOT_TEMP = 25
FREEZING_TEMP = 5
RAINCOAT_TEMP = 15
SUNGLASSES_UV = 3

FIRST_QUARTER = 0.25
FULL_MOON = 0.5
LAST_QUARTER = 0.75

MORNING_START = 5
AFTERNOON_START = 12
EVENING_START = 18


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def aqi_band(aqi: int | None, strings: dict[str, str] | None = None) -> dict[str, Any]:
    """Map the 1-5 AQI ordinal to a labelled band; unknown values use band 1"""
    key, color = AQI_BANDS.get(aqi, AQI_BANDS[DEFAULT_AQI])  # type: ignore[arg-type]
    return {'key': key, 'label': translate(strings, key), 'color': color}


def normalize_degrees(degrees: float) -> float:
    """Wrap any angle into [0, 360)"""
    return degrees % 360


def wind_compass(degrees: float) -> str:
    """8-point compass direction for a wind bearing"""
    index = round_half_up(normalize_degrees(degrees) / COMPASS_SECTOR) % 8
    return COMPASS_POINTS[index]


def icon_from_weather_code(code: int | None) -> str:
    """Translate a WMO weather code into the OpenWeatherMap icon vocabulary"""
    if code is None:
        return DEFAULT_WMO_ICON
    return WMO_ICON_MAP.get(int(code), DEFAULT_WMO_ICON)


def activity_suitability(snapshot: WeatherSnapshot) -> dict[str, bool]:
    """Which outdoor activities suit the current conditions (exclusive bounds)"""
    main = snapshot.weather_main
    temp = snapshot.temperature
    return {
        'running': main not in ('Rain', 'Snow', 'Thunderstorm')
        and RUNNING_MIN_TEMP < temp < RUNNING_MAX_TEMP,
        'camping': main in FAIR_WEATHER and CAMPING_MIN_TEMP < temp < OUTDOOR_MAX_TEMP,
        'picnic': main in FAIR_WEATHER and PICNIC_MIN_TEMP < temp < OUTDOOR_MAX_TEMP,
        'carWash': main not in ('Rain', 'Snow', 'Drizzle', 'Thunderstorm'),
    }


def clothing_suggestions(
    snapshot: WeatherSnapshot, uv_index: float | None = None
) -> list[str]:
    """Ordered clothing keys; several rules may each add an item"""
    temp = snapshot.temperature
    main = snapshot.weather_main
    suggestions = []

    if temp >= WARM_TEMP:
        suggestions.append('wearTshirt')
    elif temp >= MILD_TEMP:
        suggestions.append('wearJacket')
    else:
        suggestions.append('wearCoat')

    if temp >= HOT_TEMP:
        suggestions.append('wearShorts')
    if temp < FREEZING_TEMP:
        suggestions.append('wearHat')

    if main in RAIN_FAMILY:
        suggestions.append('takeUmbrella')
        if temp < RAINCOAT_TEMP:
            suggestions.extend(['wearRaincoat', 'wearBoots'])

    # the hat was already suggested by the temperature rule
    if main == 'Snow':
        suggestions.append('wearBoots')

    # sunglasses on clear days even without UV data
    if main == 'Clear' and (uv_index is None or uv_index > SUNGLASSES_UV):
        suggestions.append('wearSunglasses')

    return suggestions


def moon_phase_key(phase: float) -> str:
    """Named phase for a continuous 0..1 value; exact points win over intervals"""
    if phase in (0, 1):
        return 'newMoon'
    if phase < FIRST_QUARTER:
        return 'waxingCrescent'
    if phase == FIRST_QUARTER:
        return 'firstQuarter'
    if phase < FULL_MOON:
        return 'waxingGibbous'
    if phase == FULL_MOON:
        return 'fullMoon'
    if phase < LAST_QUARTER:
        return 'waningGibbous'
    if phase == LAST_QUARTER:
        return 'lastQuarter'
    return 'waningCrescent'


MOON_ICONS = {
    'newMoon': '🌑',
    'waxingCrescent': '🌒',
    'firstQuarter': '🌓',
    'waxingGibbous': '🌔',
    'fullMoon': '🌕',
    'waningGibbous': '🌖',
    'lastQuarter': '🌗',
    'waningCrescent': '🌘',
}


def moon_phase_name(phase: float, strings: dict[str, str] | None = None) -> str:
    return translate(strings, moon_phase_key(phase))


def moon_phase_icon(phase: float) -> str:
    return MOON_ICONS[moon_phase_key(phase)]


def daylight_duration(sunrise: datetime, sunset: datetime) -> tuple[int, int]:
    """Whole hours and remaining minutes between sunrise and sunset"""
    seconds = int((sunset - sunrise).total_seconds())
    return seconds // 3600, (seconds % 3600) // 60


def format_daylight(
    sunrise: datetime, sunset: datetime, strings: dict[str, str] | None = None
) -> str:
    hours, minutes = daylight_duration(sunrise, sunset)
    return (
        f'{hours}{translate(strings, "hourShort")} '
        f'{minutes}{translate(strings, "minuteShort")}'
    )


def greeting_key(hour: int) -> str:
    """Time-of-day greeting for the header"""
    if MORNING_START <= hour < AFTERNOON_START:
        return 'goodMorning'
    if AFTERNOON_START <= hour < EVENING_START:
        return 'goodAfternoon'
    return 'goodEvening'


DEFAULT_HOURLY_POINTS = 9


def hourly_points(
    points: list[ForecastPoint],
    day: date | None = None,
    timezone_offset: int = 0,
) -> list[HourlyPoint]:
    """Chart points in the location's local time.

    With a `day`, only that local calendar day is kept; otherwise the next
    24 hours (the first nine 3-hourly samples).
    """
    tz = timezone(timedelta(seconds=timezone_offset))
    if day is not None:
        selected = [p for p in points if p.time.astimezone(tz).date() == day]
    else:
        selected = points[:DEFAULT_HOURLY_POINTS]
    return [
        HourlyPoint(
            time=p.time.astimezone(tz).strftime('%H:%M'),
            temperature=round_half_up(p.temperature),
        )
        for p in selected
    ]


def build_view_model(
    bundle: WeatherBundle,
    strings: dict[str, str] | None = None,
    selected_day: date | None = None,
) -> dict[str, Any]:
    """Assemble the presentation-ready view of one bundle"""
    snapshot = bundle.snapshot

    air_quality = None
    if bundle.air_quality is not None:
        air_quality = {
            'aqi': bundle.air_quality.aqi,
            'band': aqi_band(bundle.air_quality.aqi, strings),
            'components': bundle.air_quality.components,
        }
    lunar = None
    if bundle.lunar is not None:
        lunar = {
            **bundle.lunar.to_dict(),
            'name': moon_phase_name(bundle.lunar.phase, strings),
            'icon': moon_phase_icon(bundle.lunar.phase),
        }

    return {
        'location': snapshot.location.to_dict(),
        'current': {
            **snapshot.to_dict(),
            'temperature': round_half_up(snapshot.temperature),
            'feels_like': round_half_up(snapshot.feels_like),
            'wind_direction': wind_compass(snapshot.wind.degrees),
            'daylight': format_daylight(snapshot.sunrise, snapshot.sunset, strings),
        },
        'unit': snapshot.unit,
        'temperature_symbol': 'F' if snapshot.unit == IMPERIAL else 'C',
        'air_quality': air_quality,
        'activities': activity_suitability(snapshot),
        'clothing': [
            {'key': key, 'label': translate(strings, key)}
            for key in clothing_suggestions(snapshot, bundle.uv_index)
        ],
        'uv_index': bundle.uv_index,
        'lunar': lunar,
        'hourly': [
            point.to_dict()
            for point in hourly_points(
                bundle.forecast, selected_day, snapshot.timezone_offset
            )
        ],
        'daily': [entry.to_dict() for entry in bundle.daily],
        'daily_source': bundle.daily_source,
    }
