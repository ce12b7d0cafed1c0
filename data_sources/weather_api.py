"""
OpenWeather API client
Current conditions, 5-day forecast and a prompt-friendly forecast summary
"""

import os
from datetime import datetime, date, timezone
from typing import Dict, Any, Union

import requests

from logging_config import get_logger, log_api_call
from .cache import cached, CACHE_TTL
from .retry_config import request_with_retry

logger = get_logger(__name__)

OPENWEATHER_BASE_URL = "https://api.openweathermap.org/data/2.5"

WEATHER_UNAVAILABLE = "Weather data unavailable"
FORECAST_NOT_AVAILABLE = "Weather forecast not available for target date"


def _get_api_key():
    return os.getenv("OPENWEATHER_API_KEY")


def _error_message(response: requests.Response) -> str:
    """Weather API error: <status> <reason>[ - <message>]"""
    try:
        detail = response.json().get("message")
    except (ValueError, AttributeError):
        detail = None
    message = f"Weather API error: {response.status_code} {response.reason}"
    if detail:
        message += f" - {detail}"
    return message


@cached(ttl_seconds=CACHE_TTL['weather'], key_prefix="weather")
def _fetch_weather(endpoint: str, lat: float, lon: float) -> Dict[str, Any]:
    api_key = _get_api_key()
    if not api_key:
        return {"error": "OpenWeather API key is not configured", "_cache_skip": True}

    params = {"lat": lat, "lon": lon, "appid": api_key, "units": "metric"}
    url = f"{OPENWEATHER_BASE_URL}/{endpoint}"
    log_api_call(logger, "openweather", endpoint, lat=lat, lon=lon)

    response = request_with_retry(
        lambda: requests.get(url, params=params, timeout=10),
        "weather",
    )
    if response is None:
        return {"error": f"Failed to fetch {endpoint} data", "_cache_skip": True}
    if not response.ok:
        return {"error": _error_message(response), "_cache_skip": True}

    try:
        return {"data": response.json()}
    except ValueError as e:
        logger.error(f"OpenWeather returned invalid JSON: {e}")
        return {"error": f"Failed to fetch {endpoint} data", "_cache_skip": True}


def get_current_weather(lat: float, lon: float) -> Dict[str, Any]:
    """
    Fetch current weather for coordinates.

    Returns:
        {"data": <OpenWeather payload>} or {"error": <message>}
    """
    return _fetch_weather("weather", lat, lon)


def get_five_day_forecast(lat: float, lon: float) -> Dict[str, Any]:
    """
    Fetch the 3-hourly 5-day forecast for coordinates.

    Returns:
        {"data": <OpenWeather payload>} or {"error": <message>}
    """
    return _fetch_weather("forecast", lat, lon)


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def _item_time(item: Dict) -> datetime:
    return datetime.fromtimestamp(item["dt"], tz=timezone.utc)


def _conditions(item: Dict) -> Dict[str, Any]:
    main = item.get("main", {})
    weather = item.get("weather") or [{}]
    return {
        "description": weather[0].get("description", "unknown"),
        "temp": round(main.get("temp", 0)),
        "feels_like": round(main.get("feels_like", 0)),
        "humidity": main.get("humidity"),
        "wind": round(item.get("wind", {}).get("speed", 0)),
        "precip": round(item.get("pop", 0) * 100),
    }


def summarize_forecast_for_date(forecast: Dict[str, Any], target_date: Union[date, datetime]) -> str:
    """
    Summarize forecast items for one day as prompt text.

    Items are compared by their UTC date. If the day is outside the
    forecast window, the first item at or after it is summarized instead.
    """
    if isinstance(target_date, datetime):
        target_dt = target_date if target_date.tzinfo else target_date.replace(tzinfo=timezone.utc)
        target_day = target_dt.date()
    else:
        target_day = target_date
        target_dt = datetime(target_day.year, target_day.month, target_day.day, tzinfo=timezone.utc)

    items = forecast.get("list") or []
    day_items = [item for item in items if _item_time(item).date() == target_day]

    if not day_items:
        closest = next((item for item in items if _item_time(item) >= target_dt), None)
        if closest is None:
            return FORECAST_NOT_AVAILABLE
        c = _conditions(closest)
        return (f"Weather forecast for {_item_time(closest).strftime('%a %b %d %Y')}: "
                f"{c['description']}, temperature {c['temp']}°C (feels like {c['feels_like']}°C), "
                f"humidity {c['humidity']}%, wind {c['wind']} m/s, "
                f"precipitation chance {c['precip']}%")

    lines = [f"Weather forecast for {target_day.strftime('%a %b %d %Y')}:"]
    for item in day_items:
        when = _item_time(item)
        c = _conditions(item)
        lines.append(
            f"- {time_of_day(when.hour)} ({when.strftime('%I:%M %p')}): {c['description']}, "
            f"{c['temp']}°C (feels like {c['feels_like']}°C), {c['precip']}% chance of precipitation, "
            f"wind {c['wind']} m/s, humidity {c['humidity']}%"
        )
    return "\n".join(lines)


def get_weather_summary(lat: float, lon: float, target_date: Union[date, datetime]) -> str:
    """Forecast summary for prompts; never raises."""
    result = get_five_day_forecast(lat, lon)
    if result.get("error") or not result.get("data"):
        return WEATHER_UNAVAILABLE
    try:
        return summarize_forecast_for_date(result["data"], target_date)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Error summarizing weather data: {e}")
        return "Weather data unavailable due to error"
