"""
Map exploration
Places inside the viewport, place geometry/metadata and park outlines
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logging_config import get_logger
from data_sources.database import Place, call_stored_function
from data_sources.error_handling import DataUnavailableError
from .schemas import BoundingBox

logger = get_logger(__name__)

MAX_RESULTS = 100
MIN_SCORE = 3
PARK_TYPES = ("national_park", "regional_park")


def get_places_in_bounds(session: Session, bounds: BoundingBox) -> List[Dict[str, Any]]:
    """
    Places inside a map viewport via search_places_in_view.

    Raises:
        DataUnavailableError: the spatial query failed
    """
    try:
        return call_stored_function(session, "search_places_in_view", {
            "min_lat": bounds.south,
            "min_long": bounds.west,
            "max_lat": bounds.north,
            "max_long": bounds.east,
            "max_results": MAX_RESULTS,
            "min_score": MIN_SCORE,
        })
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"PostGIS spatial query error: {e}")
        raise DataUnavailableError("Failed to fetch places from database") from e


def get_place_geometry(session: Session, place_id: str) -> Optional[Dict[str, Any]]:
    try:
        place = (
            session.query(Place.geometry)
            .filter(Place.id == place_id, Place.geometry.isnot(None))
            .first()
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Failed to fetch geometry data: {e}")
        return None

    if place is None:
        return None
    return place.geometry or None


def get_place_metadata(session: Session, place_id: str) -> Optional[Dict[str, Any]]:
    """OSM tags and quality score for one place."""
    try:
        place = (
            session.query(Place.place_metadata, Place.score)
            .filter(Place.id == place_id)
            .first()
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Failed to fetch metadata: {e}")
        return None

    if place is None:
        return None

    metadata = place.place_metadata if isinstance(place.place_metadata, dict) else {}
    return {"tags": metadata.get("tags") or None, "score": place.score}


def get_all_park_geometries(session: Session) -> List[Dict[str, Any]]:
    try:
        parks = (
            session.query(Place.id, Place.name, Place.type, Place.geometry)
            .filter(Place.type.in_(PARK_TYPES), Place.geometry.isnot(None))
            .all()
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to fetch park geometries: {e}")
        return []

    return [
        {"id": park.id, "name": park.name or "", "type": park.type or "", "geometry": park.geometry}
        for park in parks
    ]
