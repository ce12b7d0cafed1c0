"""
Centralized Retry Configuration for AroundUs API
Provides configurable retry profiles for the external services we call.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Dict
from enum import Enum

import requests

from logging_config import get_logger

logger = get_logger(__name__)


class RetryProfile(Enum):
    """Retry behavior profiles for different query types."""
    STANDARD = "standard"          # Default for REST lookups
    INTERACTIVE = "interactive"    # User is waiting on keystrokes (autocomplete) - fail fast
    NON_CRITICAL = "non_critical"  # Enrichment data the page can live without
    AUTH = "auth"                  # Auth provider calls - a single retry at most


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_wait: float = 0.5
    max_wait: float = 5.0  # Maximum wait time between retries
    exponential_backoff: bool = True
    retry_on_timeout: bool = True
    retry_on_429: bool = True  # Retry on rate limits
    retry_on_5xx: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_wait < 0:
            raise ValueError("base_wait must be >= 0")
        if self.max_wait < self.base_wait:
            raise ValueError("max_wait must be >= base_wait")

    def wait_for_attempt(self, attempt: int) -> float:
        """Seconds to sleep after the given zero-based failed attempt."""
        if self.exponential_backoff:
            wait = self.base_wait * (2 ** attempt)
        else:
            wait = self.base_wait
        return min(wait, self.max_wait)


RETRY_PROFILES: Dict[RetryProfile, RetryConfig] = {
    RetryProfile.STANDARD: RetryConfig(
        max_attempts=3,
        base_wait=0.5,
        max_wait=5.0,
    ),
    RetryProfile.INTERACTIVE: RetryConfig(
        max_attempts=2,
        base_wait=0.25,
        max_wait=1.0,
        retry_on_429=False,  # Nominatim asks clients to back off, not hammer
    ),
    RetryProfile.NON_CRITICAL: RetryConfig(
        max_attempts=2,
        base_wait=0.5,
        max_wait=2.0,
    ),
    RetryProfile.AUTH: RetryConfig(
        max_attempts=2,
        base_wait=0.5,
        max_wait=1.0,
        retry_on_429=False,
    ),
}


QUERY_TYPE_PROFILES: Dict[str, RetryProfile] = {
    "reverse_geocoding": RetryProfile.STANDARD,
    "autocomplete": RetryProfile.INTERACTIVE,
    "places_search": RetryProfile.NON_CRITICAL,
    "places_details": RetryProfile.NON_CRITICAL,
    "weather": RetryProfile.STANDARD,
    "auth": RetryProfile.AUTH,
}


def get_retry_config(query_type: str, profile: Optional[RetryProfile] = None) -> RetryConfig:
    """
    Get retry configuration for a query type.

    Args:
        query_type: Type of query (e.g., "autocomplete", "weather")
        profile: Optional override profile (if None, uses query_type mapping)

    Returns:
        RetryConfig for the query type
    """
    if profile is not None:
        return RETRY_PROFILES[profile]

    profile = QUERY_TYPE_PROFILES.get(query_type, RetryProfile.STANDARD)
    return RETRY_PROFILES[profile]


def request_with_retry(
    request_fn: Callable[[], requests.Response],
    query_type: str,
    config: Optional[RetryConfig] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> Optional[requests.Response]:
    """
    Run request_fn with retries on timeouts, connection errors, 429 and 5xx.

    Returns the last response received (which may still be an error status
    the caller has to inspect), or None if every attempt raised.
    """
    retry_config = config or get_retry_config(query_type)
    sleep = sleep or time.sleep
    last_response = None

    for attempt in range(retry_config.max_attempts):
        is_last = attempt == retry_config.max_attempts - 1
        try:
            resp = request_fn()
        except requests.exceptions.Timeout:
            if not retry_config.retry_on_timeout or is_last:
                logger.warning(f"{query_type} request timeout after {attempt + 1} attempt(s)")
                return None
            wait = retry_config.wait_for_attempt(attempt)
            logger.warning(f"{query_type} request timeout, waiting {wait:.1f}s before retry "
                           f"({attempt + 1}/{retry_config.max_attempts})...")
            sleep(wait)
            continue
        except requests.exceptions.RequestException as e:
            if is_last:
                logger.warning(f"{query_type} network error after {attempt + 1} attempt(s): {e}")
                return None
            wait = retry_config.wait_for_attempt(attempt)
            logger.warning(f"{query_type} network error, waiting {wait:.1f}s before retry "
                           f"({attempt + 1}/{retry_config.max_attempts})...")
            sleep(wait)
            continue

        last_response = resp
        status = resp.status_code
        retryable = (
            (status == 429 and retry_config.retry_on_429)
            or (status >= 500 and retry_config.retry_on_5xx)
        )
        if not retryable or is_last:
            return resp

        wait = retry_config.wait_for_attempt(attempt)
        if status == 429:
            retry_after = resp.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                wait = min(float(retry_after), retry_config.max_wait)
        logger.warning(f"{query_type} returned {status}, waiting {wait:.1f}s before retry "
                       f"({attempt + 1}/{retry_config.max_attempts})...")
        sleep(wait)

    return last_response
