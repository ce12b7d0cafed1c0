"""
Shared utilities for AroundUs data sources
Consolidates common helpers like distance calculations and map links
"""

import math
from typing import List, Dict, Optional

GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query={lat},{lon}"


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using the Haversine formula.

    Args:
        lat1, lon1: First point coordinates
        lat2, lon2: Second point coordinates

    Returns:
        Distance in meters
    """
    R = 6371000  # Earth radius in meters
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi/2)**2 + math.cos(phi1) * \
        math.cos(phi2) * math.sin(delta_lambda/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

    return R * c


def deduplicate_by_proximity(places: List[Dict], max_distance_m: float,
                             existing: Optional[List[Dict]] = None) -> List[Dict]:
    """
    Remove places that sit within max_distance_m of a place already kept.

    Order is preserved, so earlier (higher ranked) places win. Places in
    `existing` are never returned but still block near-duplicates.

    Args:
        places: Place dictionaries with 'lat' and 'long' keys
        max_distance_m: Maximum distance for considering duplicates
        existing: Places from earlier batches

    Returns:
        List of unique places
    """
    kept: List[Dict] = []
    anchors = [p for p in (existing or []) if _has_coordinates(p)]

    for place in places:
        if not _has_coordinates(place):
            kept.append(place)
            continue

        is_duplicate = False
        for other in anchors:
            dist = haversine_distance(
                place["lat"], place["long"],
                other["lat"], other["long"]
            )
            if dist < max_distance_m:
                is_duplicate = True
                break

        if not is_duplicate:
            kept.append(place)
            anchors.append(place)

    return kept


def _has_coordinates(place: Dict) -> bool:
    return isinstance(place.get("lat"), (int, float)) and isinstance(place.get("long"), (int, float))


def google_maps_link(lat: float, lon: float) -> str:
    """Google Maps search URL centred on the given coordinates."""
    return GOOGLE_MAPS_SEARCH_URL.format(lat=lat, lon=lon)
