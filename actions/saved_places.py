"""
Saved places (bookmarked trips)
"""

from typing import Any, Dict

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from logging_config import get_logger
from data_sources.auth_client import AuthenticatedUser
from data_sources.database import SavedPlace
from .schemas import TripToSave, flatten_errors

logger = get_logger(__name__)

# Postgres SQLSTATE codes
FOREIGN_KEY_VIOLATION = "23503"
INSUFFICIENT_PRIVILEGE = "42501"

SAVED_PLACE_FIELDS = tuple(TripToSave.model_fields)


def _pgcode(error: SQLAlchemyError):
    return getattr(getattr(error, "orig", None), "pgcode", None)


def saved_place_to_dict(place: SavedPlace) -> Dict[str, Any]:
    data = {"id": place.id}
    for field in SAVED_PLACE_FIELDS:
        data[field] = getattr(place, field)
    data["created_at"] = place.created_at.isoformat() if place.created_at else None
    return data


def get_saved_places(session: Session, user: AuthenticatedUser) -> Dict[str, Any]:
    try:
        places = (
            session.query(SavedPlace)
            .filter(SavedPlace.user_id == user.id)
            .order_by(SavedPlace.created_at.desc())
            .all()
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error getting saved trips: {e}", extra={"user_id": user.id})
        return {"error": f"Failed to get saved trips: {e}"}

    return {"success": True, "data": [saved_place_to_dict(p) for p in places]}


def save_place(session: Session, user: AuthenticatedUser, trip: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bookmark a trip for the user.

    Returns:
        {"success": True, "data": {...}} or {"error": ..., ["details": ...]}
    """
    try:
        validated = TripToSave.model_validate(trip)
    except ValidationError as e:
        logger.error("Invalid trip data for saving", extra={"user_id": user.id})
        return {"error": "Invalid trip data provided.", "details": flatten_errors(e)}

    place = SavedPlace(user_id=user.id, **validated.model_dump())
    try:
        session.add(place)
        session.commit()
        session.refresh(place)
    except IntegrityError as e:
        session.rollback()
        logger.error(f"Integrity error saving trip: {e}", extra={"user_id": user.id})
        if _pgcode(e) == FOREIGN_KEY_VIOLATION and "auth.users" in str(e.orig):
            return {"error": "Failed to save trip due to a user reference issue. Please try again."}
        return {"error": f"Failed to save trip: {e.orig}"}
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error saving trip: {e}", extra={"user_id": user.id})
        if _pgcode(e) == INSUFFICIENT_PRIVILEGE:
            return {"error": "You don't have permission to save this trip. Please ensure you are logged in."}
        return {"error": f"Failed to save trip: {getattr(e, 'orig', None) or e}"}

    logger.info("Trip saved successfully", extra={"user_id": user.id})
    return {"success": True, "data": saved_place_to_dict(place)}


def delete_saved_place(session: Session, user: AuthenticatedUser, trip_id: str) -> Dict[str, Any]:
    """Remove one of the user's saved trips; other users' trips are never matched."""
    if not trip_id:
        return {"error": "Trip ID is required to delete."}

    try:
        deleted = (
            session.query(SavedPlace)
            .filter(SavedPlace.id == trip_id, SavedPlace.user_id == user.id)
            .delete(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error deleting trip: {e}", extra={"user_id": user.id})
        if _pgcode(e) == INSUFFICIENT_PRIVILEGE:
            return {"error": "You don't have permission to delete this trip."}
        return {"error": f"Failed to delete trip: {getattr(e, 'orig', None) or e}"}

    logger.info("Trip deleted", extra={"user_id": user.id, "deleted": deleted})
    return {"success": True}
