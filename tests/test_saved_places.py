import unittest
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, ProgrammingError

from actions import saved_places
from data_sources.auth_client import AuthenticatedUser


TRIP = {
    "name": "Gorges du Verdon",
    "description": "Turquoise river canyon",
    "lat": 43.75,
    "long": 6.32,
    "landscape": "river",
    "activity": "hiking",
    "star_rating": 3,
}


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def test_save_and_list(db_session, user):
    saved = saved_places.save_place(db_session, user, TRIP)

    assert saved["success"] is True
    assert saved["data"]["name"] == "Gorges du Verdon"
    assert saved["data"]["entrance_fee"] is None
    assert saved["data"]["created_at"] is not None

    listed = saved_places.get_saved_places(db_session, user)
    assert [p["id"] for p in listed["data"]] == [saved["data"]["id"]]

    other = AuthenticatedUser(id="44444444-4444-4444-4444-444444444444")
    assert saved_places.get_saved_places(db_session, other)["data"] == []


def test_invalid_trip(db_session, user):
    result = saved_places.save_place(db_session, user, {"name": "No coordinates"})

    assert result["error"] == "Invalid trip data provided."
    assert set(result["details"]["field_errors"]) == {"description", "lat", "long"}


class TestSaveErrors(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.user = AuthenticatedUser(id="11111111-1111-1111-1111-111111111111")

    def test_missing_user_reference(self):
        orig = _PgError('insert violates foreign key constraint on table "auth.users"', "23503")
        self.session.commit.side_effect = IntegrityError("INSERT", {}, orig)

        result = saved_places.save_place(self.session, self.user, TRIP)

        self.assertEqual(result["error"],
                         "Failed to save trip due to a user reference issue. Please try again.")
        self.session.rollback.assert_called_once()

    def test_other_integrity_error(self):
        orig = _PgError("duplicate key value", "23505")
        self.session.commit.side_effect = IntegrityError("INSERT", {}, orig)

        result = saved_places.save_place(self.session, self.user, TRIP)

        self.assertEqual(result["error"], "Failed to save trip: duplicate key value")

    def test_permission_denied(self):
        orig = _PgError("permission denied for table saved_places", "42501")
        self.session.commit.side_effect = ProgrammingError("INSERT", {}, orig)

        result = saved_places.save_place(self.session, self.user, TRIP)

        self.assertIn("don't have permission", result["error"])


def test_delete_only_own_trip(db_session, user):
    trip_id = saved_places.save_place(db_session, user, TRIP)["data"]["id"]
    other = AuthenticatedUser(id="44444444-4444-4444-4444-444444444444")

    assert saved_places.delete_saved_place(db_session, other, trip_id) == {"success": True}
    assert [p["id"] for p in saved_places.get_saved_places(db_session, user)["data"]] == [trip_id]

    assert saved_places.delete_saved_place(db_session, user, trip_id) == {"success": True}
    assert saved_places.get_saved_places(db_session, user)["data"] == []


def test_delete_requires_trip_id(user):
    session = MagicMock()
    assert saved_places.delete_saved_place(session, user, "") == {"error": "Trip ID is required to delete."}
    session.query.assert_not_called()


class TestDeleteErrors(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.user = AuthenticatedUser(id="11111111-1111-1111-1111-111111111111")

    def test_permission_denied(self):
        orig = _PgError("permission denied for table saved_places", "42501")
        self.session.commit.side_effect = ProgrammingError("DELETE", {}, orig)

        result = saved_places.delete_saved_place(self.session, self.user, "trip-1")

        self.assertEqual(result["error"], "You don't have permission to delete this trip.")
        self.session.rollback.assert_called_once()

    def test_other_database_error(self):
        orig = _PgError("connection reset", "08006")
        self.session.commit.side_effect = ProgrammingError("DELETE", {}, orig)

        result = saved_places.delete_saved_place(self.session, self.user, "trip-1")

        self.assertEqual(result["error"], "Failed to delete trip: connection reset")


if __name__ == "__main__":
    pytest.main([__file__])
