"""
Database place search
Nearby places from the search_places_by_location function and their photos
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logging_config import get_logger, log_error
from data_sources.database import PlacePhoto, call_stored_function
from .distance import convert_place_to_result_item, distance_to_radius_km, map_activity_to_place_types
from .schemas import Location

logger = get_logger(__name__)

DEFAULT_LIMIT = 20
MIN_SCORE = 3


def search_places_by_location(session: Session, latitude: float, longitude: float,
                              radius_km: float, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
    """
    Places within radius_km of a point, ranked by the database function.

    Rows carry distance_km; photos are left unloaded (None) for lazy fetching.
    Database errors are logged and yield an empty list.
    """
    try:
        rows = call_stored_function(session, "search_places_by_location", {
            "search_lat": latitude,
            "search_lng": longitude,
            "radius_km": radius_km,
            "result_limit": limit,
            "min_score": MIN_SCORE,
        })
    except SQLAlchemyError as e:
        session.rollback()
        log_error(logger, "database_error", f"Error searching places: {e}", lat=latitude, lon=longitude)
        return []

    return [{**row, "photos": None} for row in rows]


def search_places(session: Session, location: Location, distance: str,
                  transport_type: str) -> List[Dict[str, Any]]:
    radius_km = distance_to_radius_km(distance, transport_type)
    return search_places_by_location(session, location.latitude, location.longitude,
                                     radius_km, limit=DEFAULT_LIMIT)


def search_result_items(session: Session, location: Location, distance: str, transport_type: str,
                        activity: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Nearby places shaped as result items.

    With a known activity only places of the matching types are kept;
    an unknown activity keeps everything.
    """
    places = search_places(session, location, distance, transport_type)
    place_types = map_activity_to_place_types(activity) if activity else []
    if place_types:
        places = [p for p in places if p.get("type") in place_types]
    return [{**convert_place_to_result_item(p), "distance_km": p.get("distance_km")} for p in places]


def get_place_photos(session: Session, place_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Photos for one place, primary first then oldest first."""
    try:
        query = (
            session.query(PlacePhoto)
            .filter(PlacePhoto.place_id == place_id)
            .order_by(PlacePhoto.is_primary.desc(), PlacePhoto.created_at.asc())
        )
        if limit:
            query = query.limit(limit)
        photos = query.all()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error fetching photos for place {place_id}: {e}")
        return []

    return [
        {
            "id": photo.id,
            "url": photo.url,
            "attribution": photo.attribution,
            "is_primary": bool(photo.is_primary),
            "source": photo.source,
        }
        for photo in photos
    ]
