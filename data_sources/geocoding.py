"""
Geocoding API Client
Uses Nominatim for reverse geocoding and location autocomplete
"""

import os
import threading
import time
from typing import Optional, Dict, List, Any

import requests

from logging_config import get_logger, log_api_call
from .cache import cached, CACHE_TTL
from .retry_config import request_with_retry

logger = get_logger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
DEFAULT_USER_AGENT = "AroundUs Nature Discovery App"

# Nominatim usage policy: at most one request per second
MIN_REQUEST_INTERVAL = 1.0
MAX_SUGGESTIONS = 5
MAX_DISPLAY_NAME_LENGTH = 60

_throttle_lock = threading.Lock()
_last_request_time = 0.0


def _headers() -> Dict[str, str]:
    return {"User-Agent": os.getenv("NOMINATIM_USER_AGENT", DEFAULT_USER_AGENT)}


def _throttled_get(url: str, params: Dict[str, Any], timeout: int = 10) -> requests.Response:
    """GET against Nominatim, spacing requests at least MIN_REQUEST_INTERVAL apart."""
    global _last_request_time

    with _throttle_lock:
        elapsed = time.time() - _last_request_time
        if elapsed < MIN_REQUEST_INTERVAL:
            time.sleep(MIN_REQUEST_INTERVAL - elapsed)
        _last_request_time = time.time()

    return requests.get(url, params=params, headers=_headers(), timeout=timeout)


def extract_location_info(data: Dict) -> Dict[str, Any]:
    """
    Pull the display fields out of a Nominatim reverse response.

    Prefers city/town, then region/state, then country.
    """
    address = data.get("address") or {}

    city = (address.get("city") or
            address.get("town") or
            address.get("village") or
            address.get("municipality"))
    region = (address.get("state") or
              address.get("province") or
              address.get("region") or
              address.get("county"))
    country = address.get("country")

    if city and region:
        location_name = f"{city}, {region}"
    elif city:
        location_name = city
    elif region:
        location_name = region
    elif country:
        location_name = country
    else:
        location_name = "Unknown location"

    return {
        "location_name": location_name,
        "city": city,
        "region": region,
        "country": country,
        "full_response": data,
    }


@cached(ttl_seconds=CACHE_TTL['geocoding'], key_prefix="geocoding",
        key_func=lambda lat, lon: (f"{lat:.4f}", f"{lon:.4f}"))
def reverse_geocode(lat: float, lon: float) -> Optional[Dict[str, Any]]:
    """
    Reverse geocode coordinates to a human readable location.

    Args:
        lat, lon: Coordinates

    Returns:
        Location info dict (location_name, city, region, country) or None if failed
    """
    params = {
        "lat": lat,
        "lon": lon,
        "format": "json",
        "addressdetails": 1,
        "accept-language": "en",
    }
    log_api_call(logger, "nominatim", "reverse", lat=lat, lon=lon)

    try:
        response = request_with_retry(
            lambda: _throttled_get(NOMINATIM_REVERSE_URL, params),
            "reverse_geocoding",
        )
        if response is None or response.status_code != 200:
            return None

        data = response.json()
    except ValueError as e:
        logger.warning(f"Reverse geocoding returned invalid JSON: {e}")
        return None

    if not isinstance(data, dict) or data.get("error"):
        return None

    return extract_location_info(data)


def _format_location_suggestion(result: Dict) -> Optional[Dict[str, Any]]:
    """Convert a Nominatim search hit into a suggestion, or None if unusable."""
    try:
        lat = float(result.get("lat"))
        lng = float(result.get("lon"))
    except (TypeError, ValueError):
        return None

    address = result.get("address") or {}
    region = (address.get("state") or
              address.get("province") or
              address.get("region") or
              address.get("county"))

    full_name = result.get("display_name") or ""
    display_name = full_name
    if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
        parts = display_name.split(", ")
        if len(parts) > 3:
            display_name = ", ".join(parts[:3]) + "..."

    return {
        "id": str(result.get("place_id", "")),
        "name": full_name.split(", ")[0] or full_name,
        "display_name": display_name,
        "lat": lat,
        "lng": lng,
        "type": result.get("type"),
        "importance": result.get("importance"),
        "region": region,
        "country": address.get("country"),
    }


@cached(ttl_seconds=CACHE_TTL['autocomplete'], key_prefix="autocomplete",
        key_func=lambda normalized_query, query: (normalized_query,))
def _search_nominatim(normalized_query: str, query: str) -> Optional[List[Dict[str, Any]]]:
    params = {
        "q": query,
        "format": "json",
        "addressdetails": 1,
        "limit": MAX_SUGGESTIONS,
        "accept-language": "en",
    }
    log_api_call(logger, "nominatim", "search", place_name=query)

    try:
        response = request_with_retry(
            lambda: _throttled_get(NOMINATIM_URL, params),
            "autocomplete",
        )
        if response is None:
            return None
        if response.status_code != 200:
            logger.error(f"Nominatim search API error: {response.status_code} {response.reason}")
            return None

        data = response.json()
    except ValueError as e:
        logger.warning(f"Nominatim search returned invalid JSON: {e}")
        return None

    if not isinstance(data, list):
        logger.error("Unexpected Nominatim response format")
        return None

    suggestions = [s for s in (_format_location_suggestion(r) for r in data) if s is not None]
    return suggestions[:MAX_SUGGESTIONS]


def search_locations(query: str) -> List[Dict[str, Any]]:
    """
    Autocomplete a location name.

    Args:
        query: Free text typed by the user

    Returns:
        Up to 5 suggestions; empty list for short queries or upstream failure
    """
    if not query or len(query.strip()) < 2:
        return []

    trimmed = query.strip()
    # Cache key is the lowercased query so "Paris" and "paris" share an entry
    return _search_nominatim(trimmed.lower(), trimmed) or []


def format_location_display(suggestion: Dict[str, Any]) -> str:
    """Join name, region and country, skipping repeats."""
    parts = [suggestion.get("name", "")]

    region = suggestion.get("region")
    if region and region != suggestion.get("name"):
        parts.append(region)

    country = suggestion.get("country")
    if country and country != region:
        parts.append(country)

    return ", ".join(parts)
