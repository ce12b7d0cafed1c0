from datetime import date

import pytest
from pydantic import ValidationError

from actions.schemas import (
    SearchQuery,
    SearchFormQuery,
    SearchResult,
    TransportType,
    flatten_errors,
)


def _query(**overrides):
    data = {
        'activity': 'hiking',
        'when': 'today',
        'distance': 'less than 1 hour',
        'transport_type': 'car',
        'activity_level': 3,
        'activity_duration_value': '4',
        'activity_duration_unit': 'hours',
        'location': {'latitude': 48.85, 'longitude': 2.35},
    }
    data.update(overrides)
    return data


def test_valid_query_coerces_duration():
    query = SearchQuery.model_validate(_query())
    assert query.activity_duration_value == 4
    assert query.transport_type == TransportType.CAR


def test_transit_normalized_to_public_transport():
    query = SearchQuery.model_validate(_query(transport_type='transit'))
    assert query.transport_type == TransportType.PUBLIC_TRANSPORT


def test_other_activity_required():
    with pytest.raises(ValidationError) as exc_info:
        SearchQuery.model_validate(_query(activity='other', other_activity='  '))
    errors = flatten_errors(exc_info.value)
    assert errors['field_errors']['other_activity'] == [
        "Please describe your activity when selecting 'Other'."
    ]


def test_custom_date_required_for_custom_when():
    with pytest.raises(ValidationError) as exc_info:
        SearchQuery.model_validate(_query(when='custom'))
    assert 'custom_date' in flatten_errors(exc_info.value)['field_errors']

    query = SearchQuery.model_validate(_query(when='custom', custom_date='2026-11-07T10:00:00Z'))
    assert query.custom_date == date(2026, 11, 7)


def test_other_special_care_required():
    with pytest.raises(ValidationError) as exc_info:
        SearchQuery.model_validate(_query(special_care='other'))
    assert 'other_special_care' in flatten_errors(exc_info.value)['field_errors']

    query = SearchQuery.model_validate(_query(special_care='other', other_special_care='stroller access'))
    assert query.other_special_care == 'stroller access'


@pytest.mark.parametrize('level', [0, 6])
def test_activity_level_bounds(level):
    with pytest.raises(ValidationError):
        SearchQuery.model_validate(_query(activity_level=level))


def test_duration_must_be_positive():
    with pytest.raises(ValidationError):
        SearchQuery.model_validate(_query(activity_duration_value=0))


def test_empty_activity_rejected():
    with pytest.raises(ValidationError) as exc_info:
        SearchQuery.model_validate(_query(activity=''))
    assert 'activity' in flatten_errors(exc_info.value)['field_errors']


def test_search_form_query_only_allows_transit_or_car():
    form = SearchFormQuery.model_validate({
        'location': {'latitude': 1, 'longitude': 2},
        'distance': 'less than 30 min',
        'transport_type': 'transit',
    })
    assert form.transport_type == 'public_transport'

    with pytest.raises(ValidationError):
        SearchFormQuery.model_validate({
            'location': {'latitude': 1, 'longitude': 2},
            'distance': 'less than 30 min',
            'transport_type': 'bike',
        })


def test_search_result_star_rating_range():
    with pytest.raises(ValidationError):
        SearchResult.model_validate({'name': 'x', 'lat': 1, 'long': 2, 'star_rating': 4})
    result = SearchResult.model_validate({'name': 'x', 'lat': 1, 'long': 2, 'unknown': 'ignored'})
    assert result.photos == []
