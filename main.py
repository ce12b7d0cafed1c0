from fastapi import FastAPI, HTTPException, Request, Depends, Header, Query, Cookie
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session
import time
from typing import Optional, Dict, Any, List

# Load environment variables
load_dotenv()

from logging_config import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

from data_sources import auth_client, geocoding, places_api, weather_api
from data_sources.auth_client import AuthenticatedUser
from data_sources.cache import clear_cache, get_cache_stats, cleanup_expired_cache
from data_sources.database import get_db
from data_sources.error_handling import (
    check_api_credentials, create_discover_error, AuthError, DataUnavailableError, DiscoverErrorType,
)
from data_sources.telemetry import (
    record_request_metrics, record_error, get_telemetry_stats, get_endpoint_analysis,
)
from actions import discover, explore, form_mapping, history, saved_places, search, search_title
from actions.schemas import (
    ACTIVITY_DURATION_VALUES, ACTIVITY_OPTIONS, DISTANCE_OPTIONS, TRANSPORT_OPTIONS, WHEN_OPTIONS,
    ActivityDurationUnit, BoundingBox, Location, SearchFormQuery, SpecialCare, flatten_errors,
)

VERSION = "1.0.0"

app = FastAPI(
    title="AroundUs API",
    description="Nature discovery API: AI trip suggestions, place search, weather and saved trips",
    version=VERSION
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


##########################
# REQUEST BODIES
##########################

class Credentials(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class DiscoverRequest(BaseModel):
    query: Dict[str, Any]
    batch_number: int = Field(default=1, ge=1)
    conversation_history: List[Dict[str, Any]] = Field(default_factory=list)
    previous_results: List[Dict[str, Any]] = Field(default_factory=list)


class TitleRequest(BaseModel):
    query: Dict[str, Any]


class MapQueryRequest(BaseModel):
    search_query: str = ""
    shortcut_type: Optional[str] = None


class HistoryCreate(BaseModel):
    query: Dict[str, Any]
    results: List[Dict[str, Any]] = Field(default_factory=list)
    has_more_results: bool = False
    current_batch: int = 1
    title: Optional[str] = None


class HistoryUpdate(BaseModel):
    results: List[Dict[str, Any]]
    has_more_results: bool = False
    current_batch: int = 1
    title: Optional[str] = None


##########################
# DEPENDENCIES / ERRORS
##########################

def require_user(authorization: Optional[str] = Header(None),
                 access_token: Optional[str] = Cookie(None)) -> AuthenticatedUser:
    """Resolve the bearer token (or the session cookie) into a user or answer 401."""
    if not authorization and access_token:
        authorization = f"Bearer {access_token}"
    result = auth_client.authenticate_user(authorization)
    if result.error or result.user is None:
        raise AuthError(result.error)
    return result.user


@app.exception_handler(AuthError)
def auth_error_handler(request: Request, exc: AuthError):
    logger.info(f"Rejected request: {exc}", extra={"endpoint": request.url.path})
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(DataUnavailableError)
def data_unavailable_handler(request: Request, exc: DataUnavailableError):
    logger.error(f"Data unavailable: {exc}", extra={"endpoint": request.url.path})
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def _raise_for_error(result: Dict[str, Any], status_code: int = 400) -> Dict[str, Any]:
    if result.get("error"):
        detail = result["error"]
        if result.get("details"):
            detail = {"message": result["error"], "details": result["details"]}
        raise HTTPException(status_code=status_code, detail=detail)
    return result


##########################
# SERVICE ENDPOINTS
##########################

@app.get("/")
def root():
    """Health check endpoint."""
    return {
        "service": "AroundUs API",
        "status": "running",
        "version": VERSION,
        "endpoints": {
            "discover": "POST /discover",
            "search": "/search?lat=LAT&lon=LON&distance=DISTANCE&transport_type=car",
            "explore": "/explore?north=N&south=S&east=E&west=W",
            "docs": "/docs"
        }
    }


@app.get("/health")
def health_check():
    """Detailed health check with API credential validation."""
    credentials = check_api_credentials()
    cleanup_expired_cache()
    cache_stats = get_cache_stats()

    checks = {
        "geocoding": "✅ Nominatim (no credentials required)",
        "database": "✅ DATABASE_URL configured" if credentials["database"] else "❌ DATABASE_URL missing",
        "ai": "✅ AI API key configured" if credentials["ai"] else "❌ AI API key missing",
        "places": "✅ Google Places API key configured" if credentials["places"] else "❌ Google Places API key missing",
        "weather": "✅ OpenWeather API key configured" if credentials["weather"] else "❌ OpenWeather API key missing",
        "auth": "✅ Supabase auth configured" if credentials["auth"] else "❌ Supabase auth missing",
    }

    return {
        "status": "healthy",
        "checks": checks,
        "cache_stats": cache_stats,
        "version": VERSION,
    }


##########################
# AUTH
##########################

@app.post("/auth/sign-in")
def sign_in(credentials: Credentials):
    result = auth_client.sign_in(credentials.email, credentials.password)
    return _raise_for_error(result, status_code=401)


@app.post("/auth/sign-up")
def sign_up(credentials: Credentials):
    result = auth_client.sign_up(credentials.email, credentials.password)
    return _raise_for_error(result)


SESSION_COOKIES = ("access_token", "refresh_token")


def _safe_redirect_path(path: Optional[str]) -> str:
    """Same-origin path only; absolute and scheme-relative targets fall back to '/'."""
    if not path or not path.startswith("/") or path.startswith("//") or path.startswith("/\\"):
        return "/"
    return path


def _session_redirect(request: Request, path: str, session: Dict[str, Any]) -> RedirectResponse:
    """Redirect carrying the provider session as HTTP-only cookies."""
    response = RedirectResponse(path, status_code=303)
    max_age = session.get("expires_in")
    for name in SESSION_COOKIES:
        if session.get(name):
            response.set_cookie(
                name, session[name],
                max_age=max_age if name == "access_token" else None,
                httponly=True,
                samesite="lax",
                secure=request.url.scheme == "https",
            )
    return response


@app.get("/auth/confirm")
def auth_confirm(request: Request, token_hash: Optional[str] = None, type: Optional[str] = None,
                 next: str = "/"):
    """Email confirmation link target; redirects like the web flow does."""
    result = auth_client.verify_otp(token_hash, type)
    if result.get("error"):
        return RedirectResponse("/sign-in?error=confirmation_failed", status_code=303)
    return _session_redirect(request, _safe_redirect_path(next), result.get("session") or {})


@app.get("/auth/callback")
def auth_callback(request: Request, code: Optional[str] = None, redirect_to: Optional[str] = None,
                  code_verifier: Optional[str] = None):
    session = {}
    if code:
        result = auth_client.exchange_code_for_session(code, code_verifier)
        if result.get("error"):
            return RedirectResponse(f"/sign-in?error={result['error']}", status_code=303)
        session = result.get("session") or {}
    return _session_redirect(request, _safe_redirect_path(redirect_to), session)


##########################
# DISCOVER
##########################

def _classify_discover_error(result: Dict[str, Any]):
    """(error type, HTTP status, retryable) for a failed discover batch."""
    error_type = DiscoverErrorType(result.get("error_type") or DiscoverErrorType.UNKNOWN_ERROR)
    retryable = bool(result.get("retryable"))
    if error_type == DiscoverErrorType.VALIDATION_ERROR:
        return error_type, 400, retryable
    if error_type == DiscoverErrorType.AI_SERVICE_ERROR and not retryable:
        # not configured
        return error_type, 503, retryable
    if error_type in (DiscoverErrorType.AI_SERVICE_ERROR, DiscoverErrorType.AI_PARSE_ERROR):
        return error_type, 502, retryable
    return error_type, 500, retryable


@app.get("/discover/options")
def discover_options():
    """Choices offered by the search form."""
    return {
        "activities": ACTIVITY_OPTIONS,
        "when": WHEN_OPTIONS,
        "distances": DISTANCE_OPTIONS,
        "transport_types": TRANSPORT_OPTIONS,
        "special_care": [care.value for care in SpecialCare],
        "activity_duration_values": ACTIVITY_DURATION_VALUES,
        "activity_duration_units": [unit.value for unit in ActivityDurationUnit],
    }


@app.post("/discover")
def discover_endpoint(body: DiscoverRequest, user: AuthenticatedUser = Depends(require_user)):
    """One batch of AI destination suggestions."""
    start_time = time.time()
    result = discover.handle_trip_search_batch(
        body.query,
        batch_number=body.batch_number,
        conversation_history=body.conversation_history,
        previous_results=body.previous_results,
    )
    elapsed = time.time() - start_time

    if result.get("error"):
        error_type, status_code, retryable = _classify_discover_error(result)
        record_error("/discover", error_type.value.lower(), elapsed)
        raise HTTPException(status_code=status_code, detail=create_discover_error(
            error_type, result["error"], details=result.get("details"), retryable=retryable,
        ))

    record_request_metrics("/discover", elapsed, result_count=len(result["data"]),
                           transport_type=body.query.get("transport_type"),
                           activity=body.query.get("activity"))
    return result


@app.post("/discover/title")
def discover_title(body: TitleRequest, user: AuthenticatedUser = Depends(require_user)):
    return _raise_for_error(search_title.generate_search_title(body.query), status_code=502)


@app.post("/discover/map-query")
def discover_map_query(body: MapQueryRequest):
    return _raise_for_error(
        form_mapping.map_search_to_form_filters(body.search_query, body.shortcut_type),
        status_code=502,
    )


##########################
# PLACES
##########################

def _search_form(endpoint: str, lat: float, lon: float, distance: str, transport_type: str,
                 location_name: Optional[str]) -> SearchFormQuery:
    try:
        return SearchFormQuery(
            location=Location(latitude=lat, longitude=lon),
            distance=distance,
            transport_type=transport_type,
            location_name=location_name,
        )
    except ValidationError as e:
        record_error(endpoint, "validation")
        raise HTTPException(status_code=422, detail=flatten_errors(e))


@app.get("/search")
def search_endpoint(lat: float, lon: float, distance: str, transport_type: str,
                    location_name: Optional[str] = None, db: Session = Depends(get_db)):
    """Places near a point within the travel-time radius."""
    start_time = time.time()
    form = _search_form("/search", lat, lon, distance, transport_type, location_name)

    places = search.search_places(db, form.location, form.distance, form.transport_type)
    record_request_metrics("/search", time.time() - start_time, result_count=len(places),
                           transport_type=form.transport_type)
    return {"status": "success", "data": places}


@app.get("/search/results")
def search_results_endpoint(lat: float, lon: float, distance: str, transport_type: str,
                            activity: Optional[str] = None, location_name: Optional[str] = None,
                            db: Session = Depends(get_db)):
    """Nearby places as result items, optionally narrowed to an activity."""
    start_time = time.time()
    form = _search_form("/search/results", lat, lon, distance, transport_type, location_name)
    items = search.search_result_items(db, form.location, form.distance, form.transport_type, activity)
    record_request_metrics("/search/results", time.time() - start_time, result_count=len(items),
                           transport_type=form.transport_type, activity=activity)
    return {"status": "success", "data": items}


@app.get("/places/{place_id}/photos")
def place_photos(place_id: str, limit: Optional[int] = Query(None, ge=1), db: Session = Depends(get_db)):
    return {"status": "success", "data": search.get_place_photos(db, place_id, limit)}


@app.get("/explore")
def explore_endpoint(north: float, south: float, east: float, west: float, db: Session = Depends(get_db)):
    """Places inside the map viewport."""
    try:
        bounds = BoundingBox(north=north, south=south, east=east, west=west)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=flatten_errors(e))

    places = explore.get_places_in_bounds(db, bounds)
    return {"status": "success", "data": places}


@app.get("/places/{place_id}/geometry")
def place_geometry(place_id: str, db: Session = Depends(get_db)):
    geometry = explore.get_place_geometry(db, place_id)
    if geometry is None:
        raise HTTPException(status_code=404, detail="Geometry not found")
    return {"status": "success", "data": geometry}


@app.get("/places/{place_id}/metadata")
def place_metadata(place_id: str, db: Session = Depends(get_db)):
    metadata = explore.get_place_metadata(db, place_id)
    if metadata is None:
        raise HTTPException(status_code=404, detail="Place not found")
    return {"status": "success", "data": metadata}


@app.get("/parks/geometries")
def park_geometries(db: Session = Depends(get_db)):
    return {"status": "success", "data": explore.get_all_park_geometries(db)}


@app.get("/places/enrich")
def enrich_place(name: str, lat: float, lng: float):
    """Photos, reviews and practical details from Google Places."""
    return {"status": "success", "data": places_api.enrich_place_with_google_data(name, lat, lng)}


##########################
# WEATHER / LOCATIONS
##########################

@app.get("/weather/current")
def current_weather(lat: float, lon: float):
    return _raise_for_error(weather_api.get_current_weather(lat, lon), status_code=502)


@app.get("/weather/forecast")
def weather_forecast(lat: float, lon: float):
    return _raise_for_error(weather_api.get_five_day_forecast(lat, lon), status_code=502)


@app.get("/locations/reverse")
def reverse_location(lat: float, lon: float):
    info = geocoding.reverse_geocode(lat, lon)
    if info is None:
        raise HTTPException(status_code=404, detail="Could not resolve location")
    info = {k: v for k, v in info.items() if k != "full_response"}
    return {"status": "success", "data": info}


@app.get("/locations/search")
def search_locations(q: str = ""):
    suggestions = [
        {**suggestion, "label": geocoding.format_location_display(suggestion)}
        for suggestion in geocoding.search_locations(q)
    ]
    return {"status": "success", "data": suggestions}


##########################
# HISTORY / SAVED PLACES
##########################

@app.get("/history")
def list_history(user: AuthenticatedUser = Depends(require_user), db: Session = Depends(get_db)):
    return _raise_for_error(history.get_user_search_history(db, user), status_code=500)


@app.get("/history/latest")
def latest_history(user: AuthenticatedUser = Depends(require_user), db: Session = Depends(get_db)):
    return _raise_for_error(history.get_latest_search_from_history(db, user), status_code=500)


@app.post("/history")
def create_history(body: HistoryCreate, user: AuthenticatedUser = Depends(require_user),
                   db: Session = Depends(get_db)):
    result = history.save_search_to_history(
        db, user, body.query, body.results,
        has_more_results=body.has_more_results,
        current_batch=body.current_batch,
        title=body.title,
    )
    return _raise_for_error(result)


@app.put("/history/latest")
def update_history(body: HistoryUpdate, user: AuthenticatedUser = Depends(require_user),
                   db: Session = Depends(get_db)):
    result = history.update_search_history_results(
        db, user, body.results,
        has_more_results=body.has_more_results,
        current_batch=body.current_batch,
        title=body.title,
    )
    status_code = 404 if result.get("error") == "No recent search found to update." else 400
    return _raise_for_error(result, status_code=status_code)


@app.delete("/history/{search_id}")
def delete_history(search_id: str, user: AuthenticatedUser = Depends(require_user),
                   db: Session = Depends(get_db)):
    return _raise_for_error(history.delete_search_from_history(db, user, search_id), status_code=500)


@app.get("/saved-places")
def list_saved_places(user: AuthenticatedUser = Depends(require_user), db: Session = Depends(get_db)):
    return _raise_for_error(saved_places.get_saved_places(db, user), status_code=500)


@app.post("/saved-places")
def create_saved_place(trip: Dict[str, Any], user: AuthenticatedUser = Depends(require_user),
                       db: Session = Depends(get_db)):
    return _raise_for_error(saved_places.save_place(db, user, trip))


@app.delete("/saved-places/{trip_id}")
def delete_saved_place(trip_id: str, user: AuthenticatedUser = Depends(require_user),
                      db: Session = Depends(get_db)):
    result = saved_places.delete_saved_place(db, user, trip_id)
    status_code = 403 if result.get("error", "").startswith("You don't have permission") else 500
    return _raise_for_error(result, status_code=status_code)


##########################
# OPERATIONS
##########################

@app.post("/cache/clear")
def clear_cache_endpoint(cache_type: str = None):
    """Clear cache entries."""
    removed = clear_cache(cache_type)
    return {
        "status": "success",
        "message": f"Cache cleared for {cache_type or 'all'}",
        "removed": removed
    }


@app.get("/cache/stats")
def cache_stats_endpoint():
    """Get cache statistics."""
    return {
        "status": "success",
        "cache_stats": get_cache_stats()
    }


@app.get("/telemetry")
def telemetry_endpoint():
    """Get telemetry and analytics data."""
    return {
        "status": "success",
        "telemetry": get_telemetry_stats()
    }


@app.get("/telemetry/endpoint")
def telemetry_endpoint_analysis(path: str = Query(..., description="Endpoint path, e.g. /discover")):
    """Latency and result-count analysis for one endpoint."""
    analysis = get_endpoint_analysis(path)
    if analysis.get("error"):
        raise HTTPException(status_code=404, detail=analysis["error"])
    return {"status": "success", "analysis": analysis}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
