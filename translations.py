# ABOUTME: English fallback labels for the injected translation dictionary
# ABOUTME: Callers pass their own locale table; missing keys fall back to these

DEFAULT_STRINGS: dict[str, str] = {
    # Air quality bands
    'good': 'Good',
    'moderate': 'Moderate',
    'unhealthy': 'Unhealthy',
    'dangerous': 'Dangerous',
    # Moon phases
    'newMoon': 'New Moon',
    'waxingCrescent': 'Waxing Crescent',
    'firstQuarter': 'First Quarter',
    'waxingGibbous': 'Waxing Gibbous',
    'fullMoon': 'Full Moon',
    'waningGibbous': 'Waning Gibbous',
    'lastQuarter': 'Last Quarter',
    'waningCrescent': 'Waning Crescent',
    # Clothing
    'wearTshirt': 'T-shirt',
    'wearJacket': 'Light jacket',
    'wearCoat': 'Warm coat',
    'wearShorts': 'Shorts',
    'wearHat': 'Beanie',
    'takeUmbrella': 'Umbrella',
    'wearRaincoat': 'Raincoat',
    'wearBoots': 'Boots',
    'wearSunglasses': 'Sunglasses',
    # Activities
    'running': 'Running',
    'camping': 'Camping',
    'picnic': 'Picnic',
    'carWash': 'Car wash',
    # Greetings
    'goodMorning': 'Good morning',
    'goodAfternoon': 'Good afternoon',
    'goodEvening': 'Good evening',
    # Daylight suffixes
    'hourShort': 'h',
    'minuteShort': 'm',
    # Messages
    'myLocation': 'My Location',
    'searchCityError': 'City not found',
    'searchError': 'Search failed, please try again',
    'weatherError': 'Weather data fetch failed',
    'voiceNotSupported': 'Voice search is not supported on this device',
    'locationPermissionError': 'Location permission denied',
    'locationUnsupportedError': 'Geolocation is not supported on this device',
}


def translate(strings: dict[str, str] | None, key: str) -> str:
    """Look up `key` in the injected table, then the English defaults"""
    if strings and key in strings:
        return strings[key]
    return DEFAULT_STRINGS.get(key, key)
