from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from actions import explore, search
from actions.schemas import BoundingBox, Location
from data_sources.database import Place, PlacePhoto, call_stored_function
from data_sources.error_handling import DataUnavailableError


POLYGON = {"type": "Polygon", "coordinates": [[[6.0, 45.0], [6.1, 45.0], [6.1, 45.1], [6.0, 45.0]]]}


@pytest.fixture
def places(db_session):
    now = datetime.now(timezone.utc)
    db_session.add_all([
        Place(id="park-1", name="Vanoise", type="national_park", lat=45.4, long=6.8, score=9,
              geometry=POLYGON, place_metadata={"tags": {"boundary": "national_park"}}),
        Place(id="park-2", name=None, type="regional_park", lat=45.1, long=6.1, score=5, geometry=None),
        Place(id="lake-1", name="Lac d'Annecy", type="lake", lat=45.86, long=6.17, score=8,
              geometry=POLYGON),
        PlacePhoto(id="ph-1", place_id="park-1", url="https://img/1.jpg", is_primary=False,
                   created_at=now - timedelta(days=2)),
        PlacePhoto(id="ph-2", place_id="park-1", url="https://img/2.jpg", is_primary=True,
                   created_at=now),
        PlacePhoto(id="ph-3", place_id="park-1", url="https://img/3.jpg", is_primary=False,
                   created_at=now - timedelta(days=1)),
    ])
    db_session.commit()
    return db_session


def test_photos_primary_first_then_oldest(places):
    photos = search.get_place_photos(places, "park-1")
    assert [p["id"] for p in photos] == ["ph-2", "ph-1", "ph-3"]
    assert photos[0]["is_primary"] is True
    assert len(search.get_place_photos(places, "park-1", limit=2)) == 2
    assert search.get_place_photos(places, "unknown") == []


def test_geometry_and_metadata(places):
    assert explore.get_place_geometry(places, "park-1") == POLYGON
    assert explore.get_place_geometry(places, "park-2") is None
    assert explore.get_place_metadata(places, "park-1") == {
        "tags": {"boundary": "national_park"}, "score": 9}
    assert explore.get_place_metadata(places, "lake-1") == {"tags": None, "score": 8}
    assert explore.get_place_metadata(places, "missing") is None


def test_park_geometries_only_parks_with_outlines(places):
    parks = explore.get_all_park_geometries(places)
    assert parks == [{"id": "park-1", "name": "Vanoise", "type": "national_park", "geometry": POLYGON}]


def test_call_stored_function_uses_named_arguments():
    session = MagicMock()
    session.execute.return_value.mappings.return_value = [{"id": "a", "distance_km": 1.5}]

    rows = call_stored_function(session, "search_places_by_location", {"search_lat": 1, "search_lng": 2})

    statement, params = session.execute.call_args.args
    assert str(statement) == "SELECT * FROM search_places_by_location(search_lat => :search_lat, search_lng => :search_lng)"
    assert params == {"search_lat": 1, "search_lng": 2}
    assert rows == [{"id": "a", "distance_km": 1.5}]


@patch("actions.search.call_stored_function")
def test_search_places_radius_and_lazy_photos(mock_call):
    mock_call.return_value = [{"id": "p1", "name": "Lake", "distance_km": 3.2}]
    session = MagicMock()

    results = search.search_places(session, Location(latitude=45.0, longitude=6.0),
                                   "less than 1 hour", "public_transport")

    assert results == [{"id": "p1", "name": "Lake", "distance_km": 3.2, "photos": None}]
    params = mock_call.call_args.args[2]
    assert params["radius_km"] == pytest.approx(17.5)
    assert params["result_limit"] == 20
    assert params["min_score"] == 3


@patch("actions.search.call_stored_function")
def test_search_database_error_yields_empty(mock_call):
    mock_call.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
    session = MagicMock()

    assert search.search_places_by_location(session, 1, 2, 10) == []
    session.rollback.assert_called_once()


@patch("actions.explore.call_stored_function")
def test_places_in_bounds(mock_call):
    mock_call.return_value = [{"id": "p1"}]
    bounds = BoundingBox(north=46, south=45, east=7, west=6)

    assert explore.get_places_in_bounds(MagicMock(), bounds) == [{"id": "p1"}]
    assert mock_call.call_args.args[1] == "search_places_in_view"
    assert mock_call.call_args.args[2] == {
        "min_lat": 45, "min_long": 6, "max_lat": 46, "max_long": 7, "max_results": 100, "min_score": 3}


@patch("actions.explore.call_stored_function")
def test_places_in_bounds_error(mock_call):
    mock_call.side_effect = OperationalError("SELECT", {}, Exception("boom"))
    with pytest.raises(DataUnavailableError):
        explore.get_places_in_bounds(MagicMock(), BoundingBox(north=1, south=0, east=1, west=0))


@patch("actions.search.call_stored_function")
def test_result_items_unknown_activity_keeps_everything(mock_call):
    mock_call.return_value = [{"id": "p1", "name": None, "type": "museum", "lat": 1.0, "long": 2.0,
                               "distance_km": 4.0}]

    items = search.search_result_items(MagicMock(), Location(latitude=1, longitude=2),
                                       "less than 30 min", "car", activity="knitting")

    assert items[0]["name"] == "Unnamed Place"
    assert items[0]["distance_km"] == 4.0
    assert items[0]["photos"] == []
