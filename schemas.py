"""JSON Schemas of the API request bodies.

Every write endpoint validates its body here before calling a service, so
services always receive well-typed arguments.
"""
from jsonschema import Draft7Validator

from errors import InvalidArgument
from models import CORRELATION_RULES, PARTICIPANT_ROLES, PAYMENT_STATUSES

_ID = {'type': 'integer', 'minimum': 1}
_OPTIONAL_ID = {'type': ['integer', 'null'], 'minimum': 1}

LOGIN = {
    'type': 'object',
    'properties': {
        'email': {'type': 'string', 'minLength': 3},
        'password': {'type': 'string', 'minLength': 1},
    },
    'required': ['email', 'password'],
}

CREATE_ZONE = {
    'type': 'object',
    'properties': {'name': {'type': 'string', 'minLength': 1, 'maxLength': 20}},
    'required': ['name'],
    'additionalProperties': False,
}

GENERATE_ZONES = {
    'type': 'object',
    'properties': {'count': {'type': 'integer'}},
    'required': ['count'],
    'additionalProperties': False,
}

RESERVE_ZONE = {
    'type': 'object',
    'properties': {'je_id': _ID},
    'additionalProperties': False,
}

ASSIGN_JE = {
    'type': 'object',
    'properties': {'je_id': _ID},
    'required': ['je_id'],
    'additionalProperties': False,
}

RESERVE_PLACE = {
    'type': 'object',
    'properties': {
        'place_number': {'type': 'integer'},
        'participant_id': _ID,
    },
    'required': ['place_number'],
    'additionalProperties': False,
}

RELEASE_PLACE = {
    'type': 'object',
    'properties': {'participant_id': _ID},
    'additionalProperties': False,
}

RECORD_PAYMENT = {
    'type': 'object',
    'properties': {'status': {'enum': list(PAYMENT_STATUSES)}},
    'required': ['status'],
    'additionalProperties': False,
}

SELECT_ACTIVITY = {
    'type': 'object',
    'properties': {'participant_id': _ID},
    'additionalProperties': False,
}

UPDATE_PROGRAM = {
    'type': 'object',
    'properties': {
        'activity_ids': {'type': 'array', 'items': _ID},
    },
    'required': ['activity_ids'],
    'additionalProperties': False,
}

_ACTIVITY_PROPERTIES = {
    'name': {'type': 'string', 'minLength': 1, 'maxLength': 200},
    'description': {'type': ['string', 'null']},
    'start_time': {'type': 'string', 'minLength': 1},
    'end_time': {'type': 'string', 'minLength': 1},
    'capacity': {'type': ['integer', 'null'], 'minimum': 0},
    'is_required': {'type': 'boolean'},
    'required_for_roles': {'type': 'array', 'items': {'enum': list(PARTICIPANT_ROLES)}, 'uniqueItems': True},
    'salle_id': _ID,
    'activity_type_id': _ID,
}

CREATE_ACTIVITY = {
    'type': 'object',
    'properties': _ACTIVITY_PROPERTIES,
    'required': ['name', 'start_time', 'end_time', 'salle_id', 'activity_type_id'],
    'additionalProperties': False,
}

UPDATE_ACTIVITY = {
    'type': 'object',
    'properties': _ACTIVITY_PROPERTIES,
    'minProperties': 1,
    'additionalProperties': False,
}

ADD_CORRELATION = {
    'type': 'object',
    'properties': {
        'source_activity_id': _ID,
        'target_activity_id': _OPTIONAL_ID,
        'rule': {'enum': list(CORRELATION_RULES)},
        'role': {'enum': list(PARTICIPANT_ROLES) + ['ALL', None]},
        'description': {'type': ['string', 'null'], 'maxLength': 500},
    },
    'required': ['source_activity_id', 'rule'],
    'additionalProperties': False,
}


def validate_payload(schema, payload):
    """Validate a request body against `schema`.

    Returns:
        The payload (an empty dict when the body is missing)

    Raises:
        InvalidArgument: listing every failing path
    """
    if payload is None:
        payload = {}
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if errors:
        messages = []
        for e in errors:
            path = ''.join(['[{}]'.format(p) for p in e.path])
            messages.append(f"{path or '<root>'} {e.message}")
        raise InvalidArgument('Invalid request: ' + '; '.join(messages))
    return payload
