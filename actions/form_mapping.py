"""
Free-text search to form filters
"""

import json
from typing import Any, Dict, Optional

from pydantic import ValidationError

from logging_config import get_logger
from data_sources import ai_client
from data_sources.error_handling import APIError
from .schemas import ACTIVITY_OPTIONS, DISTANCE_OPTIONS, WHEN_OPTIONS, AIMappingResult

logger = get_logger(__name__)

SHORTCUT_TYPES = ("feeling-lucky", "exercise", "relax", "something-new")


def _options(options) -> str:
    return "\n".join(f'- "{o["value"]}" ({o["label"]})' for o in options)


def build_mapping_prompt(search_query: str, shortcut_type: Optional[str] = None) -> str:
    shortcut_clause = f' or shortcut type "{shortcut_type}"' if shortcut_type else ""
    shortcut_line = f'Shortcut type: "{shortcut_type}"' if shortcut_type else ""
    return f"""
You are a helpful assistant that maps natural language search queries to form filters for a nature trip discovery app.

Given a search query{shortcut_clause}, map it to the appropriate form values.

ACTIVITIES:
{_options(ACTIVITY_OPTIONS)}

WHEN:
{_options(WHEN_OPTIONS)}

SPECIAL CARE:
- "children" (Child-friendly)
- "lowMobility" (Low Mobility Access)
- "dogs" (Dog-friendly)

DISTANCE:
{_options(DISTANCE_OPTIONS)}

TRANSPORT TYPE:
- "foot" (Walking)
- "bike" (Cycling)
- "public_transport" (Public Transport)
- "car" (Car)

ACTIVITY LEVEL (1-5): 1 very easy, 3 moderate, 5 very hard.
ACTIVITY DURATION: value 1-24, unit "hours" or "days".

Search query: "{search_query}"
{shortcut_line}

For shortcut types:
- "feeling-lucky": activity "other", additional_info "surprise me with something unique"
- "exercise": activity "hiking", activity_level 4, focus on physical activities
- "relax": activity "relaxing", activity_level 1-2, focus on peaceful activities
- "something-new": activity "other", additional_info "looking for unique experiences"

Return a JSON object with keys activity, when, special_care (or null), distance,
activity_level, activity_duration_value, activity_duration_unit, transport_type
and optionally additional_info. Choose the most likely option when ambiguous.

Only return the JSON object, no other text.
"""


def map_search_to_form_filters(search_query: str, shortcut_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Infer discover form values from a free-text query or shortcut.

    Returns:
        {"success": True, "data": {...}} or {"success": False, "error": ...}
    """
    try:
        text = ai_client.generate_text(
            [{"role": "user", "content": build_mapping_prompt(search_query, shortcut_type)}],
            model=ai_client.light_model(),
        )
    except APIError as e:
        logger.error(f"Error mapping search to form filters: {e}")
        return {"success": False, "error": "Failed to map search query to form filters"}

    try:
        parsed = json.loads(ai_client.strip_code_fences(text))
    except ValueError:
        logger.error(f"Failed to parse AI response: {text[:200]}")
        return {"success": False, "error": "Failed to parse AI response"}

    try:
        mapping = AIMappingResult.model_validate(parsed)
    except ValidationError as e:
        logger.error(f"Invalid AI response format: {e.error_count()} error(s)")
        return {"success": False, "error": "Invalid response format from AI"}

    # null special care means "no requirement", so drop it
    data = mapping.model_dump(mode="json", exclude_none=True)
    return {"success": True, "data": data}
