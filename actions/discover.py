"""
AI trip discovery
Builds the destination prompt from search criteria and runs it in batches,
carrying the conversation forward so later batches avoid repeats
"""

import re
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from logging_config import get_logger, log_error, log_performance
from data_sources import ai_client
from data_sources.error_handling import AIResponseFormatError, APIError, DiscoverErrorType
from data_sources.utils import deduplicate_by_proximity
from data_sources.weather_api import get_weather_summary
from .schemas import SearchQuery, SpecialCare, flatten_errors

logger = get_logger(__name__)

RESULTS_PER_BATCH = 4
DEFAULT_STAR_RATING = 2
# Suggestions this close to an earlier one are treated as the same place
DUPLICATE_DISTANCE_M = 500

TRANSPORT_DESCRIPTIONS = {
    "foot": "traveling on foot/walking",
    "bike": "traveling by bicycle",
    "public_transport": "using public transport (buses, trains, metro)",
    "transit": "using public transport (buses, trains, metro)",
    "car": "traveling by car",
}

SPECIAL_CARE_TEXT = {
    SpecialCare.CHILDREN: "- CHILD-FRIENDLY: Must be safe and suitable for children, with easy trails, "
                          "no dangerous cliffs/drops, and engaging activities",
    SpecialCare.LOW_MOBILITY: "- ACCESSIBILITY: Must be accessible for people with limited mobility "
                              "(paved paths, minimal elevation, wheelchair accessible where possible)",
    SpecialCare.DOGS: "- DOG-FRIENDLY: Must allow dogs, have leash-friendly trails, and provide water sources",
}

RESULT_FIELDS = """
    For each suggestion, provide these details:
    - name: A catchy and descriptive name for the spot/activity
    - description: A brief, engaging description (2-3 sentences) including specific activities and how to get there
    - lat: The precise latitude of the starting point of the activity (full precision, e.g. 40.594721)
    - long: The precise longitude of the starting point of the activity (full precision, e.g. -4.156937)
    - landscape: Must be ONE of: "mountain", "forest", "lake", "beach", "river", "park", "wetland", "desert"
    - activity: Must be ONE of: "hiking", "biking", "camping", "photography", "wildlife", "walking", "swimming"
    - estimated_activity_duration: The estimated time for the activity (e.g. "3 hours", "1 day")
    - estimated_transport_time: The estimated one-way travel time from the starting location
    - why_recommended: Brief explanation of why this fits the criteria
    - star_rating: 1-3 (3 = perfect match and must-go, 2 = very good match, 1 = good option but less ideal)
    - best_time_to_visit: Recommended time range for the best experience given weather and crowds
    - time_to_avoid: Times or conditions to avoid

    Return ONLY a valid JSON array with NO additional text, explanations or markdown formatting.
    Start your response immediately with [ and end with ].
"""

JSON_FALLBACK_PROMPT = """
    The previous response contained good information but was not in the required JSON format.
    Convert the destinations from your previous response into a strict JSON array.

    Return ONLY a JSON array with NO additional text, explanations or markdown formatting.
    Each destination must have this structure:

    [
      {
        "name": "destination name",
        "description": "detailed description",
        "lat": latitude_number,
        "long": longitude_number,
        "landscape": "landscape_type",
        "activity": "activity_type",
        "estimated_activity_duration": "duration",
        "estimated_transport_time": "transport_time",
        "why_recommended": "reason",
        "star_rating": star_number,
        "best_time_to_visit": "timing_info",
        "time_to_avoid": "timing_to_avoid"
      }
    ]

    Previous response:
    {previous}
"""


def get_target_date(when: str, now: Optional[datetime] = None, custom_date=None) -> datetime:
    """
    Resolve the visit date for a "when" option.

    this_weekend is the coming Saturday: today when it is Saturday, six days
    ahead when it is Sunday. Anything else is parsed as an ISO date,
    falling back to now.
    """
    now = now or datetime.now()

    if when == "today":
        return now
    if when == "tomorrow":
        return now + timedelta(days=1)
    if when == "this_weekend":
        # Sunday-based day index: Sunday=0 ... Saturday=6
        day_index = (now.weekday() + 1) % 7
        return now + timedelta(days=6 - day_index)
    if when == "custom" and custom_date is not None:
        return datetime(custom_date.year, custom_date.month, custom_date.day, now.hour, now.minute)

    try:
        return datetime.fromisoformat(when.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return now


def transport_description(transport_type: Optional[str]) -> str:
    return TRANSPORT_DESCRIPTIONS.get(transport_type or "", "using any available transport method")


def special_care_requirements(query: SearchQuery) -> List[str]:
    if query.special_care is None:
        return []
    if query.special_care == SpecialCare.OTHER:
        return [f"- SPECIAL REQUIREMENT: {query.other_special_care.strip()}"]
    return [SPECIAL_CARE_TEXT[query.special_care]]


def _activity_label(query: SearchQuery) -> str:
    if query.activity == "other" and query.other_activity:
        return query.other_activity.strip()
    return query.activity


def build_search_prompt(query: SearchQuery, target_date: datetime, weather_summary: str,
                        has_history: bool) -> str:
    """Assemble the destination request for one batch."""
    activity = _activity_label(query)
    transport = transport_description(query.transport_type.value if query.transport_type else None)
    value = query.activity_duration_value
    unit = query.activity_duration_unit.value
    lat = query.location.latitude
    lon = query.location.longitude
    care = special_care_requirements(query)

    sections = [
        f"You are an expert nature concierge. Find {RESULTS_PER_BATCH} excellent nature "
        f"destinations that match the user's criteria.",
        f"""STRICT REQUIREMENTS:
    - Preferred activity type: {activity}
    - Visit date: {target_date.strftime('%a %b %d %Y')} ({target_date.strftime('%A')})
    - Maximum travel time to location: {query.distance} (ONE WAY)
    - Preferred transport method: {transport}
    - Desired activity duration at location: {value} {unit}
    - Physical activity level: {query.activity_level} (where 1 is very light and 5 is very strenuous)
    - Starting GPS location: latitude {lat}, longitude {lon}""",
    ]

    if care:
        sections.append("SPECIAL CARE REQUIREMENTS:\n    " + "\n    ".join(care))

    sections.append(f"WEATHER FORECAST:\n{weather_summary}")

    sections.append(f"""TRANSPORT & TIMING:
    - Only suggest destinations practical to reach {transport}
    - Consider parking, transit stops or bike-friendly routes as appropriate
    - Account for season, weekend vs weekday crowds and local events on the visit date

    CRITICAL: suggest activities that take between {max(1, value - 1)} and {value + 1} {unit}.
    ONLY suggest places realistically reachable within {query.distance} from ({lat}, {lon}) {transport}.""")

    sections.append(f'ACTIVITY FOCUS: Prioritize locations that align with "{activity}" activities.')

    if query.additional_info:
        sections.append(f"""CRITICAL USER REQUEST - HIGHEST PRIORITY:
    The user specifically searched for: "{query.additional_info}"
    This is the user's PRIMARY desire for this trip and outranks every other criterion.""")

    if has_history:
        sections.append("""IMPORTANT DUPLICATION AVOIDANCE:
    Based on our conversation history, avoid suggesting places that are:
    - Too similar to previously mentioned destinations
    - Located too close to previously suggested locations (at least 10km apart)
    - Of the same exact type/category as previous suggestions""")

    if care:
        sections.append("IMPORTANT: All suggestions must strictly comply with the special care requirements above.")

    sections.append(f"Return exactly {RESULTS_PER_BATCH} destinations.\n{RESULT_FIELDS}")
    return "\n\n".join(sections)


def _normalize_history(history: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Chat messages only; "model" turns are treated as assistant turns."""
    messages = []
    for message in history or []:
        role = message.get("role")
        content = message.get("content")
        if role == "model":
            role = "assistant"
        if role in ("user", "assistant", "system") and isinstance(content, str):
            messages.append({"role": role, "content": content})
    return messages


def _request_destinations(prompt: str, history: List[Dict[str, str]],
                          model: str) -> Tuple[Any, List[Dict[str, str]]]:
    """Run the prompt; one strict-JSON follow-up if the answer cannot be parsed."""
    messages = history + [{"role": "user", "content": prompt}]
    response_text = ai_client.generate_text(messages, model=model)

    try:
        parsed = ai_client.parse_json_response(response_text)
    except ValueError:
        logger.info("JSON extraction failed, requesting strict JSON format")
        fallback_text = ai_client.generate_text(
            [{"role": "user", "content": JSON_FALLBACK_PROMPT.replace("{previous}", response_text)}],
            model=model,
        )
        try:
            parsed = ai_client.parse_json_response(ai_client.strip_code_fences(fallback_text))
        except ValueError as e:
            raise AIResponseFormatError(
                "Unable to extract valid JSON from AI response after multiple attempts", "ai") from e

    updated_history = messages + [{"role": "assistant", "content": response_text}]
    return parsed, updated_history


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _normalize_result(place: Dict[str, Any], batch_number: int, index: int) -> Dict[str, Any]:
    result = {_snake_case(k): v for k, v in place.items()}
    result["id"] = result.get("id") or f"batch-{batch_number}-{index}"
    result["star_rating"] = result.get("star_rating") or DEFAULT_STAR_RATING
    return result


def handle_trip_search_batch(query: Union[SearchQuery, Dict[str, Any]], batch_number: int = 1,
                             conversation_history: Optional[List[Dict[str, Any]]] = None,
                             previous_results: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Fetch one batch of AI destination suggestions.

    Args:
        query: Discover criteria (validated here)
        batch_number: 1-based batch index, used for generated ids
        conversation_history: Messages from earlier batches
        previous_results: Results already shown; near-duplicates are dropped

    Returns:
        {data, conversation_history, batch_number, success, has_more} or a
        dict carrying "error", "error_type" and "retryable" (plus
        success=False for AI failures)
    """
    history = _normalize_history(conversation_history or [])

    if not isinstance(query, SearchQuery):
        try:
            query = SearchQuery.model_validate(query)
        except ValidationError as e:
            logger.warning("Invalid data for trip search", extra={"error_type": "validation"})
            return {"error": "Invalid search criteria provided.", "details": flatten_errors(e),
                    "error_type": DiscoverErrorType.VALIDATION_ERROR, "retryable": False}

    if not ai_client.is_ai_available():
        return {"error": "AI service is not configured. Missing API key.",
                "error_type": DiscoverErrorType.AI_SERVICE_ERROR, "retryable": False}

    start_time = time.time()
    target_date = get_target_date(query.when, custom_date=query.custom_date)
    weather_summary = get_weather_summary(query.location.latitude, query.location.longitude, target_date)
    prompt = build_search_prompt(query, target_date, weather_summary, has_history=bool(history))

    logger.info(f"Searching for batch {batch_number} destinations", extra={"batch_number": batch_number})
    try:
        parsed, updated_history = _request_destinations(prompt, history, ai_client.search_model())
    except APIError as e:
        log_error(logger, "ai_error", f"Batch {batch_number} AI search error: {e}", batch_number=batch_number)
        return {
            "error": f"Failed to get trip suggestions from AI. Details: {e}",
            "error_type": (DiscoverErrorType.AI_PARSE_ERROR if isinstance(e, AIResponseFormatError)
                           else DiscoverErrorType.AI_SERVICE_ERROR),
            "retryable": True,
            "batch_number": batch_number,
            "success": False,
            "has_more": False,
            "conversation_history": history,
        }

    if not isinstance(parsed, list):
        return {
            "data": [],
            "conversation_history": history,
            "batch_number": batch_number,
            "success": False,
            "has_more": False,
            "error": "Invalid response format from AI",
            "error_type": DiscoverErrorType.AI_PARSE_ERROR,
            "retryable": True,
        }

    results = [
        _normalize_result(place, batch_number, i)
        for i, place in enumerate(parsed) if isinstance(place, dict)
    ]
    results = deduplicate_by_proximity(results, DUPLICATE_DISTANCE_M, existing=previous_results)

    log_performance(logger, "trip_search_batch", time.time() - start_time,
                    batch_number=batch_number, result_count=len(results))
    return {
        "data": results,
        "conversation_history": updated_history,
        "batch_number": batch_number,
        "success": True,
        "has_more": True,
    }
