"""
Database access for AroundUs
SQLAlchemy engine/session setup for the PostGIS database, ORM models for
the tables we read and write, and stored-function calls
"""

import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text,
    create_engine, text,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from logging_config import get_logger
from .error_handling import DataUnavailableError

logger = get_logger(__name__)

# DATABASE_URL example: postgresql+psycopg2://user:password@db:5432/postgres
Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Place(Base):
    __tablename__ = "places"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text)
    description = Column(Text)
    type = Column(String(64))
    lat = Column(Float)
    long = Column(Float)
    country = Column(Text)
    region = Column(Text)
    score = Column(Integer)
    source = Column(String(64))
    website = Column(Text)
    wikipedia_query = Column(Text)
    # "metadata" is reserved on declarative classes
    place_metadata = Column("metadata", JSON(none_as_null=True))
    # GeoJSON geometry as exposed to the API
    geometry = Column(JSON(none_as_null=True))


class PlacePhoto(Base):
    __tablename__ = "place_photos"

    id = Column(String(36), primary_key=True, default=_uuid)
    place_id = Column(String(36), ForeignKey("places.id"), index=True, nullable=False)
    url = Column(Text, nullable=False)
    attribution = Column(Text)
    is_primary = Column(Boolean, default=False)
    source = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class SearchHistory(Base):
    __tablename__ = "search_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), index=True, nullable=False)
    query = Column(JSON, nullable=False)
    results = Column(JSON, nullable=False, default=list)
    title = Column(Text)
    current_batch = Column(Integer, default=1)
    has_more_results = Column(Boolean, default=False)
    total_results_loaded = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "query": self.query,
            "results": self.results or [],
            "title": self.title,
            "current_batch": self.current_batch,
            "has_more_results": self.has_more_results,
            "total_results_loaded": self.total_results_loaded,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SavedPlace(Base):
    __tablename__ = "saved_places"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), index=True, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    lat = Column(Float, nullable=False)
    long = Column(Float, nullable=False)
    landscape = Column(Text)
    activity = Column(Text)
    estimated_activity_duration = Column(Text)
    estimated_transport_time = Column(Text)
    why_recommended = Column(Text)
    star_rating = Column(Integer)
    best_time_to_visit = Column(Text)
    time_to_avoid = Column(Text)
    google_maps_link = Column(Text)
    operating_hours = Column(Text)
    entrance_fee = Column(Text)
    parking_info = Column(Text)
    current_conditions = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


def _make_engine():
    url = os.getenv("DATABASE_URL", "")
    if not url:
        logger.warning("DATABASE_URL is not set; database features are disabled")
        return None
    return create_engine(
        url,
        pool_pre_ping=True,
        echo=False,
        future=True,
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
        pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "5")),
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "1800")),
    )


engine = None
SessionLocal = None


def init_engine():
    """Create the engine and session factory from the environment (idempotent)."""
    global engine, SessionLocal
    if engine is None:
        engine = _make_engine()
        if engine is not None:
            SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True)
    return engine


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    init_engine()
    if SessionLocal is None:
        raise DataUnavailableError("Database is not configured")
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def call_stored_function(session: Session, name: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Call a set-returning SQL function with named arguments.

    Equivalent to SELECT * FROM name(arg => :arg, ...); rows come back as dicts.
    Raises sqlalchemy.exc.SQLAlchemyError on database errors.
    """
    args = ", ".join(f"{key} => :{key}" for key in params)
    result = session.execute(text(f"SELECT * FROM {name}({args})"), params)
    return [dict(row) for row in result.mappings()]
