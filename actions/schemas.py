"""
Request and record schemas for AroundUs
Pydantic models for search criteria, results and saved places, plus the
option lists the search form offers
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError


ACTIVITY_OPTIONS = [
    {"value": "hiking", "label": "Hiking"},
    {"value": "biking", "label": "Biking"},
    {"value": "swimming", "label": "Swimming"},
    {"value": "relaxing", "label": "Relaxing"},
    {"value": "photography", "label": "Photography"},
    {"value": "other", "label": "Other"},
]

WHEN_OPTIONS = [
    {"value": "today", "label": "Today"},
    {"value": "tomorrow", "label": "Tomorrow"},
    {"value": "this_weekend", "label": "This weekend"},
    {"value": "custom", "label": "Pick a date"},
]

DISTANCE_OPTIONS = [
    {"value": "less than 30 min", "label": "Less than 30 minutes"},
    {"value": "less than 1 hour", "label": "Less than 1 hour"},
    {"value": "less than 2 hours", "label": "Less than 2 hours"},
    {"value": "between 1 and 2 hours", "label": "Between 1 and 2 hours"},
    {"value": "between 2 and 3 hours", "label": "Between 2 and 3 hours"},
    {"value": "between 4 and 5 hours", "label": "Between 4 and 5 hours"},
]

TRANSPORT_OPTIONS = [
    {"value": "foot", "label": "On foot"},
    {"value": "bike", "label": "Bike"},
    {"value": "public_transport", "label": "Public transport"},
    {"value": "car", "label": "Car"},
]

ACTIVITY_DURATION_VALUES = [1, 2, 3, 4, 5, 6, 8, 12]


class ActivityDurationUnit(str, Enum):
    HOURS = "hours"
    DAYS = "days"


class SpecialCare(str, Enum):
    CHILDREN = "children"
    LOW_MOBILITY = "lowMobility"
    DOGS = "dogs"
    OTHER = "other"


class TransportType(str, Enum):
    FOOT = "foot"
    BIKE = "bike"
    PUBLIC_TRANSPORT = "public_transport"
    CAR = "car"


def normalize_transport_type(value: Any) -> Any:
    """Accept "transit" as a spelling of public transport."""
    if isinstance(value, str) and value.strip().lower() == "transit":
        return TransportType.PUBLIC_TRANSPORT.value
    return value


def _refinement_error(message: str) -> PydanticCustomError:
    return PydanticCustomError("refinement", message)


class Location(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class SearchQuery(BaseModel):
    """Discover criteria submitted from the search form."""

    activity: str = Field(min_length=1)
    other_activity: Optional[str] = Field(default=None, validate_default=True)
    when: str = Field(min_length=1)
    custom_date: Optional[date] = Field(default=None, validate_default=True)
    special_care: Optional[SpecialCare] = None
    other_special_care: Optional[str] = Field(default=None, validate_default=True)
    distance: str = Field(min_length=1)
    transport_type: Optional[TransportType] = None
    activity_level: int = Field(ge=1, le=5)
    activity_duration_value: int = Field(ge=1)
    activity_duration_unit: ActivityDurationUnit
    location: Location
    location_name: Optional[str] = None
    additional_info: Optional[str] = None

    @field_validator("transport_type", mode="before")
    @classmethod
    def _normalize_transport(cls, value):
        return normalize_transport_type(value)

    @field_validator("other_activity")
    @classmethod
    def _other_activity_required(cls, value, info):
        if info.data.get("activity") == "other" and not (value or "").strip():
            raise _refinement_error("Please describe your activity when selecting 'Other'.")
        return value

    @field_validator("custom_date", mode="before")
    @classmethod
    def _custom_date_from_datetime(cls, value):
        if isinstance(value, str) and "T" in value:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("custom_date")
    @classmethod
    def _custom_date_required(cls, value, info):
        if info.data.get("when") == "custom" and value is None:
            raise _refinement_error("Please select a custom date.")
        return value

    @field_validator("other_special_care")
    @classmethod
    def _other_special_care_required(cls, value, info):
        if info.data.get("special_care") == SpecialCare.OTHER and not (value or "").strip():
            raise _refinement_error(
                "Please describe your special requirements when selecting 'Other'.")
        return value


class SearchFormQuery(BaseModel):
    """Criteria for the database-backed place search."""

    location: Location
    distance: str = Field(min_length=1)
    transport_type: Literal["public_transport", "car"]
    location_name: Optional[str] = None

    @field_validator("transport_type", mode="before")
    @classmethod
    def _normalize_transport(cls, value):
        return normalize_transport_type(value)


class PlacePhoto(BaseModel):
    url: str
    attribution: Optional[str] = None


class PlaceReview(BaseModel):
    author: str
    rating: float
    text: str
    publish_time: str
    author_photo_url: Optional[str] = None


class SearchResult(BaseModel):
    """One suggested or found place."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str
    description: str = ""
    lat: float
    long: float
    landscape: Optional[str] = None
    activity: Optional[str] = None
    estimated_activity_duration: Optional[str] = None
    estimated_transport_time: Optional[str] = None
    why_recommended: Optional[str] = None
    star_rating: Optional[int] = Field(default=None, ge=1, le=3)
    star_rating_reason: Optional[str] = None
    best_time_to_visit: Optional[str] = None
    time_to_avoid: Optional[str] = None
    google_maps_link: Optional[str] = None
    google_maps_uri: Optional[str] = None
    operating_hours: Optional[str] = None
    entrance_fee: Optional[str] = None
    parking_info: Optional[str] = None
    current_conditions: Optional[str] = None
    accessibility_info: Optional[str] = None
    price_level: Optional[str] = None
    photos: List[PlacePhoto] = Field(default_factory=list)
    reviews: List[PlaceReview] = Field(default_factory=list)
    google_rating: Optional[float] = None
    review_count: Optional[int] = None
    transport_mode: Optional[str] = None
    user_feedback: Optional[Literal["liked", "disliked"]] = None


class TripToSave(BaseModel):
    """A trip the user bookmarks; mirrors the saved_places columns."""

    name: str
    description: str
    lat: float
    long: float
    landscape: Optional[str] = None
    activity: Optional[str] = None
    estimated_activity_duration: Optional[str] = None
    estimated_transport_time: Optional[str] = None
    why_recommended: Optional[str] = None
    star_rating: Optional[int] = None
    best_time_to_visit: Optional[str] = None
    time_to_avoid: Optional[str] = None
    google_maps_link: Optional[str] = None
    operating_hours: Optional[str] = None
    entrance_fee: Optional[str] = None
    parking_info: Optional[str] = None
    current_conditions: Optional[str] = None


class AIMappingResult(BaseModel):
    """Form filters inferred from a free-text query."""

    activity: str
    when: str
    special_care: Optional[SpecialCare] = None
    other_special_care: Optional[str] = None
    distance: str
    activity_level: int = Field(ge=1, le=5)
    activity_duration_value: int = Field(ge=1)
    activity_duration_unit: ActivityDurationUnit
    transport_type: TransportType
    additional_info: Optional[str] = None

    @field_validator("transport_type", mode="before")
    @classmethod
    def _normalize_transport(cls, value):
        return normalize_transport_type(value)


class BoundingBox(BaseModel):
    north: float = Field(ge=-90, le=90)
    south: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)
    west: float = Field(ge=-180, le=180)


def flatten_errors(exc: ValidationError) -> Dict[str, Any]:
    """
    Group validation errors by top-level field.

    Errors without a field location end up in form_errors.
    """
    form_errors: List[str] = []
    field_errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = error.get("loc") or ()
        message = error.get("msg", "Invalid value")
        if not loc:
            form_errors.append(message)
            continue
        field_errors.setdefault(str(loc[0]), []).append(message)
    return {"form_errors": form_errors, "field_errors": field_errors}
