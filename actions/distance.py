"""
Distance and place helpers
Turns travel-time choices into search radii and database places into
result items
"""

from typing import Any, Dict, List

from data_sources.utils import google_maps_link

# Base radius (km) for each travel-time option, before the transport multiplier
BASE_RADIUS_KM = {
    "less than 30 min": 10,
    "less than 1 hour": 25,
    "less than 2 hours": 50,
    "between 1 and 2 hours": 50,
    "between 2 and 3 hours": 100,
    "between 4 and 5 hours": 150,
}
DEFAULT_RADIUS_KM = 50

TRANSPORT_MULTIPLIERS = {
    "foot": 0.15,
    "bike": 0.4,
    "public_transport": 0.7,
    "transit": 0.7,
}

ACTIVITY_PLACE_TYPES = {
    "hiking": ["trail", "mountain", "hill", "peak", "viewpoint", "national_park", "regional_park"],
    "biking": ["trail", "bike_trail", "park", "national_park", "regional_park"],
    "swimming": ["beach", "lake", "river", "swimming_area", "waterfall"],
    "relaxing": ["park", "garden", "beach", "lake", "viewpoint", "forest"],
    "photography": ["viewpoint", "peak", "waterfall", "beach", "monument", "national_park"],
}


def distance_to_radius_km(distance: str, transport_type: str) -> float:
    """
    Convert a travel-time option into a search radius in kilometres.

    Unknown options use a 50km base; car (or any unknown mode) keeps the
    base radius unchanged.
    """
    base_radius = BASE_RADIUS_KM.get(distance, DEFAULT_RADIUS_KM)
    return base_radius * TRANSPORT_MULTIPLIERS.get(transport_type, 1.0)


def map_activity_to_place_types(activity: str) -> List[str]:
    return list(ACTIVITY_PLACE_TYPES.get(activity, []))


def convert_place_to_result_item(place: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a database place row as a result item."""
    lat = place.get("lat")
    long = place.get("long")
    return {
        "id": place.get("id"),
        "name": place.get("name") or "Unnamed Place",
        "description": place.get("description") or "",
        "lat": lat,
        "long": long,
        "landscape": place.get("type") or None,
        "activity": None,
        "photos": [],
        "google_maps_link": google_maps_link(lat, long),
        "google_maps_uri": None,
        "star_rating": None,
        "star_rating_reason": None,
    }
