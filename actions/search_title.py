"""
Short poetic titles for saved searches
"""

import re
from typing import Any, Dict, Union

from pydantic import ValidationError

from logging_config import get_logger
from data_sources import ai_client
from data_sources.error_handling import APIError
from .schemas import SearchQuery

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 40

TITLE_PROMPT = """
Generate a short, poetic and engaging title (maximum 40 characters) for this nature discovery search.
Be creative and evocative of the search. Think of titles that would make someone excited to explore.

Search details:
{description}

Examples of good poetic titles:
- "Whispers of Weekend Trails"
- "Sunset Cycling Dreams"
- "Hidden Forest Treasures"
- "Peaceful Lakeside Moments"
- "Colorado Mountain Dreams"

Include location context when available to make titles more specific and personal.
Return ONLY the title, no quotes, no additional text.
Keep it under 6 words and make it poetic yet accessible.
"""


def build_search_description(query: SearchQuery) -> str:
    if query.activity == "other":
        activity = query.other_activity or "custom activity"
    else:
        activity = query.activity

    transport = query.transport_type.value if query.transport_type else ""
    lines = [
        f"Activity: {activity}",
        f"When: {query.when}",
        f"Distance: {query.distance} {transport}".rstrip(),
        f"Duration: {query.activity_duration_value} {query.activity_duration_unit.value}",
    ]
    if query.location_name:
        lines.append(f"Location: {query.location_name}")
    if query.additional_info:
        lines.append(f"Search query: {query.additional_info}")
    if query.special_care:
        lines.append(f"Special requirements: {query.special_care.value}")
    return "\n".join(lines)


def clean_title(text: str) -> str:
    """Strip quotes and stray whitespace; cap at 40 characters."""
    title = text.strip()
    title = re.sub(r"^[\"']|[\"']$", "", title)
    title = title.replace("\n", " ")
    title = re.sub(r"\s+", " ", title).strip()
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH - 3] + "..."
    return title


def generate_search_title(query: Union[SearchQuery, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Ask the light model for a title.

    Returns:
        {"success": True, "data": {"title": ...}} or {"error": ...}
    """
    if not isinstance(query, SearchQuery):
        try:
            query = SearchQuery.model_validate(query)
        except ValidationError:
            return {"error": "Invalid search criteria provided."}

    if not ai_client.is_ai_available():
        return {"error": ai_client.get_ai_error() or "AI service unavailable"}

    prompt = TITLE_PROMPT.format(description=build_search_description(query))
    try:
        text = ai_client.generate_text([{"role": "user", "content": prompt}], model=ai_client.light_model())
    except APIError as e:
        logger.error(f"Error generating search title: {e}")
        return {"error": f"Failed to generate search title: {e}"}

    return {"success": True, "data": {"title": clean_title(text)}}
