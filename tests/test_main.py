from unittest.mock import patch

import jwt
import pytest
from fastapi.testclient import TestClient

import main
from data_sources import database
from data_sources.database import Place, get_db
from data_sources.error_handling import AuthError, DiscoverErrorType


HISTORY_QUERY = {
    "activity": "hiking",
    "when": "today",
    "distance": "less than 1 hour",
    "transport_type": "car",
    "activity_level": 3,
    "activity_duration_value": 2,
    "activity_duration_unit": "hours",
    "location": {"latitude": 46.5, "longitude": 7.9},
}


@pytest.fixture
def client(db_session, user):
    def _db():
        yield db_session

    main.app.dependency_overrides[get_db] = _db
    main.app.dependency_overrides[main.require_user] = lambda: user
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client():
    main.app.dependency_overrides.clear()
    return TestClient(main.app)


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "AroundUs API"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert set(health["checks"]) == {"geocoding", "database", "ai", "places", "weather", "auth"}


def test_protected_route_requires_token(anonymous_client):
    response = anonymous_client.post("/discover", json={"query": HISTORY_QUERY})
    assert response.status_code == 401
    assert response.json()["detail"] == "User not authenticated. Please sign in again."


def test_database_not_configured(anonymous_client, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(database, "engine", None)
    monkeypatch.setattr(database, "SessionLocal", None)

    response = anonymous_client.get("/parks/geometries")

    assert response.status_code == 503
    assert response.json() == {"detail": "Database is not configured"}


@patch("actions.discover.handle_trip_search_batch")
def test_discover(mock_batch, client):
    mock_batch.return_value = {"data": [{"name": "Aletsch"}], "conversation_history": [],
                               "batch_number": 1, "success": True, "has_more": True}

    response = client.post("/discover", json={"query": HISTORY_QUERY, "batch_number": 1})

    assert response.status_code == 200
    assert response.json()["data"] == [{"name": "Aletsch"}]
    assert mock_batch.call_args.kwargs["batch_number"] == 1


@pytest.mark.parametrize("result,status", [
    ({"error": "Invalid search criteria provided.", "details": {"form_errors": [], "field_errors": {}},
      "error_type": "VALIDATION_ERROR", "retryable": False}, 400),
    ({"error": "AI service is not configured. Missing API key.", "error_type": "AI_SERVICE_ERROR",
      "retryable": False}, 503),
    ({"error": "Failed to get trip suggestions from AI. Details: boom", "success": False,
      "error_type": "AI_SERVICE_ERROR", "retryable": True}, 502),
    ({"error": "Unexpected failure"}, 500),
])
def test_discover_errors(client, result, status):
    with patch("actions.discover.handle_trip_search_batch", return_value=result):
        response = client.post("/discover", json={"query": HISTORY_QUERY})
    assert response.status_code == status


@patch("actions.search.call_stored_function", return_value=[{"id": "p1", "distance_km": 2.0}])
def test_search(mock_call, client):
    response = client.get("/search", params={"lat": 46.5, "lon": 7.9, "distance": "less than 30 min",
                                             "transport_type": "transit"})

    assert response.status_code == 200
    assert response.json() == {"status": "success", "data": [{"id": "p1", "distance_km": 2.0, "photos": None}]}
    assert mock_call.call_args.args[2]["radius_km"] == pytest.approx(7.0)


def test_search_rejects_unsupported_transport(client):
    response = client.get("/search", params={"lat": 46.5, "lon": 7.9, "distance": "less than 30 min",
                                             "transport_type": "bike"})
    assert response.status_code == 422
    assert "transport_type" in response.json()["detail"]["field_errors"]


def test_explore_rejects_bad_bounds(client):
    response = client.get("/explore", params={"north": 95, "south": 0, "east": 1, "west": 0})
    assert response.status_code == 422


def test_place_metadata_and_geometry(client, db_session):
    db_session.add(Place(id="p1", name="Eiger", type="peak", score=7, place_metadata={"tags": {"ele": "3967"}}))
    db_session.commit()

    assert client.get("/places/p1/metadata").json()["data"] == {"tags": {"ele": "3967"}, "score": 7}
    assert client.get("/places/p1/geometry").status_code == 404
    assert client.get("/places/nope/metadata").status_code == 404


def test_history_round_trip(client):
    created = client.post("/history", json={"query": HISTORY_QUERY, "results": [], "title": "Alpine Dreams"})
    assert created.status_code == 200

    latest = client.get("/history/latest").json()["data"]
    assert latest["title"] == "Alpine Dreams"

    updated = client.put("/history/latest", json={"results": [{"name": "Grindelwald", "lat": 46.6, "long": 8.0}],
                                                  "current_batch": 2})
    assert updated.json()["data"]["total_results_loaded"] == 1

    assert client.delete(f"/history/{latest['id']}").json() == {"success": True}
    assert client.get("/history").json()["data"] == []


def test_update_history_without_record(client):
    response = client.put("/history/latest", json={"results": []})
    assert response.status_code == 404


def test_saved_places(client):
    response = client.post("/saved-places", json={"name": "Oeschinensee", "description": "Lake", "lat": 46.5,
                                                  "long": 7.7})
    assert response.status_code == 200
    assert [p["name"] for p in client.get("/saved-places").json()["data"]] == ["Oeschinensee"]

    invalid = client.post("/saved-places", json={"name": "No coords"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["message"] == "Invalid trip data provided."


@patch("data_sources.auth_client.verify_otp", return_value={"error": "confirmation_failed"})
def test_auth_confirm_failure_redirects(_verify, anonymous_client):
    response = anonymous_client.get("/auth/confirm", params={"token_hash": "x", "type": "email"},
                                    follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/sign-in?error=confirmation_failed"


@patch("data_sources.auth_client.sign_in", return_value={"error": "Invalid login credentials"})
def test_sign_in_failure(_sign_in, anonymous_client):
    response = anonymous_client.post("/auth/sign-in", json={"email": "a@b.c", "password": "x"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid login credentials"


@patch("data_sources.geocoding.reverse_geocode")
def test_reverse_location_hides_raw_response(mock_reverse, anonymous_client):
    mock_reverse.return_value = {"location_name": "Bern", "city": "Bern", "region": None,
                                 "country": "Switzerland", "full_response": {"raw": True}}

    data = anonymous_client.get("/locations/reverse", params={"lat": 46.9, "lon": 7.4}).json()["data"]

    assert "full_response" not in data
    assert data["location_name"] == "Bern"


@patch("data_sources.weather_api.get_current_weather", return_value={"error": "OpenWeather API key is not configured"})
def test_weather_error(_weather, anonymous_client):
    response = anonymous_client.get("/weather/current", params={"lat": 1, "lon": 2})
    assert response.status_code == 502


def test_telemetry_and_cache_endpoints(anonymous_client):
    assert anonymous_client.get("/telemetry").json()["status"] == "success"
    assert anonymous_client.get("/cache/stats").json()["cache_stats"]["redis_available"] is False
    assert anonymous_client.post("/cache/clear").json()["removed"] == 0


def test_discover_error_is_typed(client):
    result = {"error": "Failed to get trip suggestions from AI. Details: Invalid response format from AI",
              "error_type": DiscoverErrorType.AI_PARSE_ERROR, "retryable": True}
    with patch("actions.discover.handle_trip_search_batch", return_value=result):
        detail = client.post("/discover", json={"query": HISTORY_QUERY}).json()["detail"]

    assert detail["type"] == "AI_PARSE_ERROR"
    assert detail["retryable"] is True
    assert detail["user_friendly_message"] == result["error"]


def test_discover_options(anonymous_client):
    options = anonymous_client.get("/discover/options").json()
    assert {"value": "public_transport", "label": "Public transport"} in options["transport_types"]
    assert options["special_care"] == ["children", "lowMobility", "dogs", "other"]
    assert options["activity_duration_units"] == ["hours", "days"]


@patch("actions.search.call_stored_function")
def test_search_results_filtered_by_activity(mock_call, client):
    mock_call.return_value = [
        {"id": "p1", "name": "Lake Thun", "type": "lake", "lat": 46.7, "long": 7.7, "distance_km": 12.0},
        {"id": "p2", "name": "Niesen", "type": "peak", "lat": 46.6, "long": 7.6, "distance_km": 20.0},
    ]

    response = client.get("/search/results", params={"lat": 46.5, "lon": 7.9, "distance": "less than 1 hour",
                                                     "transport_type": "car", "activity": "swimming"})

    data = response.json()["data"]
    assert [item["name"] for item in data] == ["Lake Thun"]
    assert data[0]["landscape"] == "lake"
    assert data[0]["distance_km"] == 12.0
    assert data[0]["google_maps_link"].endswith("query=46.7,7.7")


@patch("data_sources.geocoding.search_locations")
def test_location_search_adds_label(mock_search, anonymous_client):
    mock_search.return_value = [{"id": "1", "name": "Bern", "region": "Bern", "country": "Switzerland"}]

    data = anonymous_client.get("/locations/search", params={"q": "Bern"}).json()["data"]

    assert data[0]["label"] == "Bern, Switzerland"


@pytest.mark.parametrize("target", [
    "https://evil.example/phish",
    "//evil.example/phish",
    "/\\evil.example",
    "javascript:alert(1)",
])
@patch("data_sources.auth_client.exchange_code_for_session", return_value={"success": True, "session": {}})
def test_auth_callback_stays_on_origin(_exchange, target, anonymous_client):
    response = anonymous_client.get("/auth/callback", params={"code": "c", "redirect_to": target},
                                    follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/"


@patch("data_sources.auth_client.exchange_code_for_session")
def test_auth_callback_sets_session_cookies(mock_exchange, anonymous_client):
    mock_exchange.return_value = {"success": True, "session": {
        "access_token": "AT", "refresh_token": "RT", "expires_in": 3600}}

    response = anonymous_client.get("/auth/callback", params={"code": "c", "redirect_to": "/history"},
                                    follow_redirects=False)

    assert response.headers["location"] == "/history"
    cookies = response.headers.get_list("set-cookie")
    access = next(c for c in cookies if c.startswith("access_token="))
    assert access.startswith("access_token=AT;")
    assert "HttpOnly" in access
    assert "Max-Age=3600" in access
    assert any(c.startswith("refresh_token=RT;") for c in cookies)


@patch("data_sources.auth_client.exchange_code_for_session", return_value={"error": "code_exchange_failed"})
def test_auth_callback_exchange_failure(_exchange, anonymous_client):
    response = anonymous_client.get("/auth/callback", params={"code": "bad"}, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/sign-in?error=code_exchange_failed"
    assert response.headers.get_list("set-cookie") == []


@patch("data_sources.auth_client.verify_otp")
def test_auth_confirm_sets_session_cookie(mock_verify, anonymous_client):
    mock_verify.return_value = {"success": True, "session": {"access_token": "AT", "expires_in": 60}}

    response = anonymous_client.get("/auth/confirm", params={"token_hash": "x", "type": "email",
                                                             "next": "https://evil.example"},
                                    follow_redirects=False)

    assert response.headers["location"] == "/"
    assert response.headers["set-cookie"].startswith("access_token=AT;")


def test_require_user_accepts_session_cookie(monkeypatch):
    secret = "cookie-test-secret-of-sufficient-length-1234"
    monkeypatch.setenv("SUPABASE_JWT_SECRET", secret)
    token = jwt.encode({"sub": "user-9", "aud": "authenticated"}, secret, algorithm="HS256")

    assert main.require_user(authorization=None, access_token=token).id == "user-9"
    with pytest.raises(AuthError):
        main.require_user(authorization=None, access_token=None)


def test_delete_saved_place_route(client):
    trip_id = client.post("/saved-places", json={"name": "Blausee", "description": "Lake", "lat": 46.5,
                                                 "long": 7.6}).json()["data"]["id"]

    assert client.delete(f"/saved-places/{trip_id}").json() == {"success": True}
    assert client.get("/saved-places").json()["data"] == []


@patch("actions.saved_places.delete_saved_place",
       return_value={"error": "You don't have permission to delete this trip."})
def test_delete_saved_place_permission_denied(_delete, client):
    response = client.delete("/saved-places/trip-1")
    assert response.status_code == 403


def test_telemetry_endpoint_analysis(anonymous_client):
    main.record_request_metrics("/search", 0.25, result_count=3)

    analysis = anonymous_client.get("/telemetry/endpoint", params={"path": "/search"}).json()["analysis"]
    assert analysis["endpoint"] == "/search"
    assert analysis["sample_size"] >= 1

    missing = anonymous_client.get("/telemetry/endpoint", params={"path": "/nowhere"})
    assert missing.status_code == 404
