"""
Error handling for AroundUs API
Provides the exception types and the error taxonomy surfaced to clients
"""

import os
from enum import Enum
from typing import Any, Optional, Dict


class AroundUsError(Exception):
    """Base exception for AroundUs errors."""
    pass


class APIError(AroundUsError):
    """Exception for API-related errors."""
    def __init__(self, message: str, api_name: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.api_name = api_name
        self.status_code = status_code


class AIResponseFormatError(APIError):
    """The AI answered, but not in a usable format."""
    pass


class DataUnavailableError(AroundUsError):
    """Exception for when required data is unavailable."""
    pass


class AuthError(AroundUsError):
    """Exception for authentication failures."""
    pass


class DiscoverErrorType(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
    AI_PARSE_ERROR = "AI_PARSE_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


def create_discover_error(
    error_type: DiscoverErrorType,
    message: str,
    details: Any = None,
    retryable: bool = False,
    user_friendly_message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build a typed error payload for the discover flow.

    The user-facing message falls back to the technical message when
    no friendlier wording is supplied.
    """
    return {
        "type": error_type.value,
        "message": message,
        "details": details,
        "retryable": retryable,
        "user_friendly_message": user_friendly_message or message,
    }


def check_api_credentials() -> Dict[str, bool]:
    """
    Check which API credentials are available.

    Returns:
        Dict mapping API names to availability status
    """
    credentials = {
        "database": bool(os.getenv("DATABASE_URL")),
        "ai": bool(os.getenv("AI_API_KEY") or os.getenv("OPENAI_API_KEY")),
        "places": bool(os.getenv("GOOGLE_PLACES_API_KEY")),
        "weather": bool(os.getenv("OPENWEATHER_API_KEY")),
        "auth": bool(os.getenv("SUPABASE_URL") and os.getenv("SUPABASE_ANON_KEY")),
        "geocoding": True,  # Nominatim doesn't require credentials
    }

    return credentials
