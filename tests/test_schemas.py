"""
Tests de la validation des payloads à la frontière HTTP.
"""
import pytest

import schemas
from errors import InvalidArgument


def test_missing_body_becomes_empty_object():
    assert schemas.validate_payload(schemas.RESERVE_ZONE, None) == {}


def test_error_lists_failing_paths():
    with pytest.raises(InvalidArgument) as exc:
        schemas.validate_payload(schemas.UPDATE_PROGRAM, {'activity_ids': [1, 'two']})
    assert '[activity_ids][1]' in str(exc.value)


def test_required_field_missing():
    with pytest.raises(InvalidArgument, match="'place_number' is a required property"):
        schemas.validate_payload(schemas.RESERVE_PLACE, {})


def test_booleans_are_not_integers():
    with pytest.raises(InvalidArgument):
        schemas.validate_payload(schemas.GENERATE_ZONES, {'count': True})


def test_unknown_fields_rejected():
    with pytest.raises(InvalidArgument):
        schemas.validate_payload(schemas.ASSIGN_JE, {'je_id': 1, 'zone_id': 2})


def test_correlation_role_accepts_all_and_roles():
    payload = {'source_activity_id': 1, 'target_activity_id': 2, 'rule': 'EXCLUDES', 'role': 'ALL'}
    assert schemas.validate_payload(schemas.ADD_CORRELATION, payload) is payload
    payload['role'] = 'BUREAU_NATIONAL'
    schemas.validate_payload(schemas.ADD_CORRELATION, payload)
    payload['role'] = 'PRESIDENT'
    with pytest.raises(InvalidArgument):
        schemas.validate_payload(schemas.ADD_CORRELATION, payload)
