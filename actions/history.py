"""
Search history
Each user's past discover searches with the results loaded so far
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logging_config import get_logger
from data_sources.auth_client import AuthenticatedUser
from data_sources.database import SearchHistory
from .schemas import SearchQuery, SearchResult

logger = get_logger(__name__)


def _validated_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        SearchResult.model_validate(result).model_dump(mode="json", exclude_none=True)
        for result in results
    ]


def _latest(session: Session, user: AuthenticatedUser) -> Optional[SearchHistory]:
    return (
        session.query(SearchHistory)
        .filter(SearchHistory.user_id == user.id)
        .order_by(SearchHistory.created_at.desc())
        .first()
    )


def save_search_to_history(session: Session, user: AuthenticatedUser, query: Dict[str, Any],
                           results: List[Dict[str, Any]], has_more_results: bool = False,
                           current_batch: int = 1, title: Optional[str] = None) -> Dict[str, Any]:
    try:
        validated_query = SearchQuery.model_validate(query).model_dump(mode="json", exclude_none=True)
        validated_results = _validated_results(results)
    except ValidationError as e:
        logger.error(f"Error validating search history: {e.error_count()} error(s)")
        return {"error": "Failed to save search history due to validation error."}

    record = SearchHistory(
        user_id=user.id,
        query=validated_query,
        results=validated_results,
        current_batch=current_batch,
        has_more_results=has_more_results,
        total_results_loaded=len(validated_results),
        title=title,
    )
    try:
        session.add(record)
        session.commit()
        session.refresh(record)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error saving search history: {e}", extra={"user_id": user.id})
        return {"error": "Failed to save search history."}

    return {"success": True, "data": record.to_dict()}


def get_latest_search_from_history(session: Session, user: AuthenticatedUser) -> Dict[str, Any]:
    """Most recent search; data is None when the user has none."""
    try:
        record = _latest(session, user)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error getting latest search history: {e}", extra={"user_id": user.id})
        return {"error": "Failed to get search history."}

    return {"success": True, "data": record.to_dict() if record else None}


def get_user_search_history(session: Session, user: AuthenticatedUser) -> Dict[str, Any]:
    try:
        records = (
            session.query(SearchHistory)
            .filter(SearchHistory.user_id == user.id)
            .order_by(SearchHistory.created_at.desc())
            .all()
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error getting user search history: {e}", extra={"user_id": user.id})
        return {"error": "Failed to get search history."}

    return {"success": True, "data": [r.to_dict() for r in records]}


def update_search_history_results(session: Session, user: AuthenticatedUser,
                                  all_results: List[Dict[str, Any]], has_more_results: bool = False,
                                  current_batch: int = 1, title: Optional[str] = None) -> Dict[str, Any]:
    """
    Replace the results of the user's latest search.

    The title is only changed when one is given.
    """
    try:
        validated_results = _validated_results(all_results)
    except ValidationError as e:
        logger.error(f"Error validating search history update: {e.error_count()} error(s)")
        return {"error": "Failed to update search history due to validation error."}

    try:
        record = _latest(session, user)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error getting latest search to update: {e}", extra={"user_id": user.id})
        return {"error": "No recent search found to update."}

    if record is None:
        return {"error": "No recent search found to update."}

    record.results = validated_results
    record.current_batch = current_batch
    record.has_more_results = has_more_results
    record.total_results_loaded = len(validated_results)
    record.updated_at = datetime.now(timezone.utc)
    if title:
        record.title = title

    try:
        session.commit()
        session.refresh(record)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error updating search history: {e}", extra={"user_id": user.id})
        return {"error": "Failed to update search history."}

    return {"success": True, "data": record.to_dict()}


def delete_search_from_history(session: Session, user: AuthenticatedUser, search_id: str) -> Dict[str, Any]:
    try:
        (
            session.query(SearchHistory)
            .filter(SearchHistory.id == search_id, SearchHistory.user_id == user.id)
            .delete(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error deleting search history: {e}", extra={"user_id": user.id})
        return {"error": "Failed to delete search history."}

    return {"success": True}
