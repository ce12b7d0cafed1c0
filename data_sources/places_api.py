"""
Google Places API (New) client
Enriches places with photos, reviews, opening hours and practical info
"""

import os
import time
from typing import Optional, Dict, Any, List

import requests

from logging_config import get_logger, log_api_call, log_performance
from .cache import cached, CACHE_TTL
from .retry_config import request_with_retry

logger = get_logger(__name__)

PLACES_BASE_URL = "https://places.googleapis.com/v1"
SEARCH_TEXT_URL = f"{PLACES_BASE_URL}/places:searchText"
SEARCH_RADIUS_M = 50000
MAX_PHOTOS = 5
MAX_REVIEWS = 5
PHOTO_MAX_WIDTH_PX = 800

DETAILS_FIELD_MASK = (
    "id,displayName,photos,reviews,rating,userRatingCount,googleMapsUri,"
    "regularOpeningHours.weekdayDescriptions,priceLevel,parkingOptions,accessibilityOptions"
)

PRICE_LEVEL_LABELS = {
    "PRICE_LEVEL_FREE": "Free",
    "PRICE_LEVEL_INEXPENSIVE": "Inexpensive ($)",
    "PRICE_LEVEL_MODERATE": "Moderate ($$)",
    "PRICE_LEVEL_EXPENSIVE": "Expensive ($$$)",
    "PRICE_LEVEL_VERY_EXPENSIVE": "Very expensive ($$$$)",
}

# Ordered (option flag, sentence) pairs
PARKING_OPTIONS = [
    ("freeParking", "Free parking available"),
    ("paidParking", "Paid parking available"),
    ("freeStreetParking", "Free street parking"),
    ("paidStreetParking", "Paid street parking"),
    ("freeGarageParking", "Free garage parking"),
    ("paidGarageParking", "Paid garage parking"),
]

ACCESSIBILITY_OPTIONS = [
    ("wheelchairAccessibleEntrance", "Wheelchair accessible entrance"),
    ("wheelchairAccessibleParking", "Wheelchair accessible parking"),
    ("wheelchairAccessibleRestroom", "Wheelchair accessible restroom"),
    ("wheelchairAccessibleSeating", "Wheelchair accessible seating"),
]


def _get_api_key() -> Optional[str]:
    return os.getenv("GOOGLE_PLACES_API_KEY")


def _empty_places_data() -> Dict[str, Any]:
    return {"photos": [], "reviews": []}


def _describe_options(options: Optional[Dict[str, bool]], labels: List[tuple]) -> Optional[str]:
    if not options:
        return None
    details = [sentence for flag, sentence in labels if options.get(flag)]
    return ", ".join(details) if details else None


def search_place_id(name: str, lat: float, lng: float) -> Optional[str]:
    """
    Find the Places API id for a named place near the given point.

    Args:
        name: Place name as suggested to the user
        lat, lng: Approximate coordinates (biases a 50km circle)

    Returns:
        Place id or None if not found / API unavailable
    """
    api_key = _get_api_key()
    if not api_key:
        logger.error("Google Places API key not configured")
        return None

    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": "places.id,places.displayName",
    }
    body = {
        "textQuery": name,
        "locationBias": {
            "circle": {
                "center": {"latitude": lat, "longitude": lng},
                "radius": SEARCH_RADIUS_M,
            }
        },
        "maxResultCount": 1,
    }
    log_api_call(logger, "google_places", "searchText", place_name=name, lat=lat, lon=lng)

    try:
        response = request_with_retry(
            lambda: requests.post(SEARCH_TEXT_URL, json=body, headers=headers, timeout=10),
            "places_search",
        )
        if response is None:
            return None
        if not response.ok:
            logger.error(f"Google Places search failed: {response.status_code} {response.reason}")
            return None

        data = response.json()
    except ValueError as e:
        logger.error(f"Google Places search returned invalid JSON: {e}")
        return None

    places = data.get("places") or []
    if not places:
        return None
    return places[0].get("id")


def get_place_details(place_id: str) -> Dict[str, Any]:
    """
    Fetch photos, reviews and practical details for a place in one request.

    Returns:
        Details dict; on any failure only empty photos/reviews lists
    """
    api_key = _get_api_key()
    if not api_key:
        logger.error("Google Places API key not configured")
        return _empty_places_data()

    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": DETAILS_FIELD_MASK,
    }
    url = f"{PLACES_BASE_URL}/places/{place_id}"
    log_api_call(logger, "google_places", "details")

    try:
        response = request_with_retry(
            lambda: requests.get(url, headers=headers, timeout=10),
            "places_details",
        )
        if response is None:
            return _empty_places_data()
        if not response.ok:
            logger.error(f"Google Places details request failed: {response.status_code} {response.reason}")
            return _empty_places_data()

        data = response.json()
    except ValueError as e:
        logger.error(f"Google Places details returned invalid JSON: {e}")
        return _empty_places_data()

    photos = []
    for photo in (data.get("photos") or [])[:MAX_PHOTOS]:
        authors = photo.get("authorAttributions") or []
        photos.append({
            "url": f"{PLACES_BASE_URL}/{photo.get('name')}/media?maxWidthPx={PHOTO_MAX_WIDTH_PX}&key={api_key}",
            "attribution": authors[0].get("displayName") if authors else None,
        })

    reviews = []
    for review in (data.get("reviews") or [])[:MAX_REVIEWS]:
        author = review.get("authorAttribution") or {}
        reviews.append({
            "author": author.get("displayName") or "Anonymous",
            "rating": review.get("rating") or 0,
            "text": (review.get("text") or {}).get("text", ""),
            "publish_time": review.get("publishTime") or "",
            "author_photo_url": author.get("photoUri"),
        })

    operating_hours = None
    weekday_descriptions = (data.get("regularOpeningHours") or {}).get("weekdayDescriptions")
    if weekday_descriptions:
        operating_hours = "\n".join(weekday_descriptions)

    price_level = data.get("priceLevel")
    if price_level:
        price_level = PRICE_LEVEL_LABELS.get(price_level, price_level)

    return {
        "photos": photos,
        "reviews": reviews,
        "google_rating": data.get("rating"),
        "review_count": data.get("userRatingCount"),
        "google_maps_uri": data.get("googleMapsUri"),
        "operating_hours": operating_hours,
        "price_level": price_level,
        "parking_info": _describe_options(data.get("parkingOptions"), PARKING_OPTIONS),
        "accessibility_info": _describe_options(data.get("accessibilityOptions"), ACCESSIBILITY_OPTIONS),
        "display_name": (data.get("displayName") or {}).get("text"),
    }


@cached(ttl_seconds=CACHE_TTL['places'], key_prefix="places",
        key_func=lambda name, lat, lng: (name, f"{lat:.4f}", f"{lng:.4f}"))
def enrich_place_with_google_data(name: str, lat: float, lng: float) -> Dict[str, Any]:
    """
    Enrich a place with Google photos, reviews and practical details.

    Empty results (no key, no match, upstream failure) are returned but not
    cached so a later call can retry.
    """
    start_time = time.time()

    place_id = search_place_id(name, lat, lng)
    if not place_id:
        logger.info(f"No place id found for {name}", extra={"place_name": name})
        return {**_empty_places_data(), "_cache_skip": True}

    details = get_place_details(place_id)
    if set(details) == {"photos", "reviews"}:
        return {**details, "_cache_skip": True}

    log_performance(logger, "places_enrichment", time.time() - start_time, place_name=name)
    return {**details, "place_id": place_id}
