"""Flask backend for JOBS 2K26 (zones, places and activity program).

Architecture:
- API Layer (app.py): Routes HTTP, validation des payloads (schemas.py), rôles
- Service Layer (services/): Logique métier, lève les erreurs de errors.py
- Repository Layer (repositories/): Accès données
- Domain Layer (models, eligibility): Entités et règles métier
"""
from flask import Flask, jsonify, request, Response
from flask_cors import CORS
from flask_jwt_extended import JWTManager, jwt_required
from werkzeug.exceptions import HTTPException
from models import db
from auth import login_user, get_current_user, roles_required
from errors import DomainError, Forbidden, InvalidArgument
import schemas
import os
import logging

# Import des services et repositories (DIP)
from services.zone_service import ZoneService
from services.place_service import PlaceService
from services.activity_service import ActivityService
from repositories.zone_repository import ZoneRepository
from repositories.je_repository import JERepository
from repositories.participant_repository import ParticipantRepository
from repositories.activity_repository import ActivityRepository

# Configure basic logging so INFO logs appear in the Flask console by default
logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logging.getLogger('werkzeug').setLevel(logging.INFO)

app = Flask(__name__)
app.logger.setLevel(logging.INFO)

# Configuration
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY', 'jwt-secret-key-change-in-production')
app.config['JWT_TOKEN_LOCATION'] = ['headers']
app.config['JWT_HEADER_NAME'] = 'Authorization'
app.config['JWT_HEADER_TYPE'] = 'Bearer'
app.config['JWT_ACCESS_TOKEN_HOURS'] = int(os.environ.get('JWT_ACCESS_TOKEN_HOURS', '24'))
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///jobs2k26.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# Initialize extensions
CORS(app,
     supports_credentials=True,
     origins=os.environ.get('CORS_ORIGINS', '*'),
     allow_headers=['Content-Type', 'Authorization'])
db.init_app(app)
jwt = JWTManager(app)


# JWT error handlers
@jwt.invalid_token_loader
def invalid_token_callback(error):
    return jsonify({'error': 'Invalid token', 'message': str(error)}), 422

@jwt.unauthorized_loader
def missing_token_callback(error):
    return jsonify({'error': 'Authorization required', 'message': str(error)}), 401

@jwt.expired_token_loader
def expired_token_callback(jwt_header, jwt_payload):
    return jsonify({'error': 'Token has expired'}), 401


# Create tables
with app.app_context():
    db.create_all()

# -------------------- Service Layer Initialization (DIP) --------------------
# Les services sont injectés avec leurs dépendances (repositories)

zone_repository = ZoneRepository()
je_repository = JERepository()
participant_repository = ParticipantRepository()
activity_repository = ActivityRepository()

zone_service = ZoneService(zone_repository, je_repository)
place_service = PlaceService(participant_repository, je_repository, zone_repository)
activity_service = ActivityService(activity_repository, participant_repository)

# -------------------- helpers --------------------


def _body(schema):
    """Request JSON body validated against `schema`."""
    return schemas.validate_payload(schema, request.get_json(silent=True))


def _resolve_je_id(user, requested_je_id=None):
    """JE concernée par la requête : la sienne pour un compte JE, celle demandée pour un admin."""
    if user.role == 'ADMIN':
        if requested_je_id is None:
            raise InvalidArgument('je_id is required')
        return requested_je_id
    je = je_repository.find_by_user(user.id)
    if not je:
        raise Forbidden('JE profile not found')
    if requested_je_id is not None and requested_je_id != je.id:
        raise Forbidden('You can only act on your own JE')
    return je.id


def _resolve_participant_id(user, requested_participant_id=None):
    """Participant concerné : soi-même pour un participant, celui demandé pour un admin."""
    if user.role == 'ADMIN':
        if requested_participant_id is None:
            raise InvalidArgument('participant_id is required')
        return requested_participant_id
    own_id = activity_service.participant_id_for_user(user.id)
    if requested_participant_id is not None and requested_participant_id != own_id:
        raise Forbidden('You can only act on your own participant record')
    return own_id


# -------------------- error handlers --------------------

@app.errorhandler(DomainError)
def _handle_domain_error(e):
    logging.getLogger(__name__).warning('%s %s refused: %s', request.method, request.path, e.message)
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(Exception)
def _handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'error': e.description}), e.code
    logging.getLogger(__name__).exception('Unhandled exception in request')
    return jsonify({'error': 'Internal server error'}), 500


# ==================== AUTHENTICATION ENDPOINTS ====================

@app.route('/api/auth/login', methods=['POST'])
def api_login():
    """Login and get a JWT access token."""
    data = _body(schemas.LOGIN)
    result, error = login_user(data['email'], data['password'],
                               expires_hours=app.config['JWT_ACCESS_TOKEN_HOURS'])
    if error:
        return jsonify({'error': error}), 401
    return jsonify(result), 200


@app.route('/api/auth/me', methods=['GET'])
@jwt_required()
def api_get_current_user():
    """Get current user info from JWT token."""
    user = get_current_user()
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify({'user': user.to_dict()}), 200


# ==================== ZONE ENDPOINTS ====================

@app.route('/api/zones', methods=['GET'])
@jwt_required()
def api_list_zones():
    """List zones with their owning JE."""
    return jsonify({'zones': zone_service.list_zones()}), 200


@app.route('/api/zones/<int:zone_id>', methods=['GET'])
@jwt_required()
def api_get_zone(zone_id):
    """Zone detail with the owning JE roster."""
    return jsonify({'zone': zone_service.get_zone(zone_id)}), 200


@app.route('/api/zones', methods=['POST'])
@roles_required('ADMIN')
def api_create_zone():
    data = _body(schemas.CREATE_ZONE)
    return jsonify({'zone': zone_service.create_zone(data['name'])}), 201


@app.route('/api/zones/generate', methods=['POST'])
@roles_required('ADMIN')
def api_generate_zones():
    """Bulk-create zones A, A', B, B', ..."""
    data = _body(schemas.GENERATE_ZONES)
    zones = zone_service.generate_zones(data['count'])
    return jsonify({'zones': zones, 'created': len(zones)}), 201


@app.route('/api/zones/<int:zone_id>/reserve', methods=['POST'])
@roles_required('JE', 'ADMIN')
def api_reserve_zone(zone_id):
    """Reserve a zone for the caller's JE (or for `je_id` as admin)."""
    data = _body(schemas.RESERVE_ZONE)
    user = get_current_user()
    je_id = _resolve_je_id(user, data.get('je_id'))
    zone = zone_service.reserve_zone(je_id, zone_id)
    return jsonify({'zone': zone, 'message': 'Zone reserved'}), 200


@app.route('/api/zones/<int:zone_id>/assign-je', methods=['POST'])
@roles_required('ADMIN')
def api_assign_je(zone_id):
    data = _body(schemas.ASSIGN_JE)
    return jsonify({'zone': zone_service.assign_je(zone_id, data['je_id'])}), 200


@app.route('/api/zones/unassign-je', methods=['POST'])
@roles_required('ADMIN')
def api_unassign_je():
    data = _body(schemas.ASSIGN_JE)
    return jsonify({'je': zone_service.unassign_je(data['je_id'])}), 200


@app.route('/api/zones/export', methods=['GET'])
@roles_required('ADMIN')
def api_export_zones():
    """CSV export of participant placement."""
    csv_content = zone_service.export_placements_csv()
    return Response(
        csv_content,
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename=zoning-export.csv'}
    )


# ==================== PLACE ENDPOINTS ====================

@app.route('/api/places/my-je-stats', methods=['GET'])
@roles_required('PARTICIPANT')
def api_my_je_stats():
    """Placement stats of the caller's JE (taken places, without identities)."""
    user = get_current_user()
    return jsonify(place_service.get_participant_place_stats(user.id)), 200


@app.route('/api/jes/<int:je_id>/place-stats', methods=['GET'])
@roles_required('JE', 'ADMIN')
def api_je_place_stats(je_id):
    user = get_current_user()
    je_id = _resolve_je_id(user, je_id)
    return jsonify(place_service.get_je_place_stats(je_id)), 200


@app.route('/api/places/reserve', methods=['POST'])
@roles_required('PARTICIPANT', 'ADMIN')
def api_reserve_place():
    """Reserve a numbered place in the JE's zone."""
    data = _body(schemas.RESERVE_PLACE)
    user = get_current_user()
    participant_id = _resolve_participant_id(user, data.get('participant_id'))
    participant = place_service.reserve_place(participant_id, data['place_number'])
    return jsonify({'participant': participant, 'message': 'Place reserved'}), 200


@app.route('/api/places/reserve', methods=['DELETE'])
@roles_required('PARTICIPANT', 'ADMIN')
def api_release_place():
    data = _body(schemas.RELEASE_PLACE)
    user = get_current_user()
    participant_id = _resolve_participant_id(user, data.get('participant_id'))
    return jsonify({'participant': place_service.release_place(participant_id)}), 200


@app.route('/api/participants/<int:participant_id>/payment', methods=['PUT'])
@roles_required('ADMIN')
def api_record_payment(participant_id):
    data = _body(schemas.RECORD_PAYMENT)
    participant = place_service.record_payment(participant_id, data['status'])
    return jsonify({'participant': participant}), 200


# ==================== ACTIVITY ENDPOINTS ====================

@app.route('/api/activities', methods=['GET'])
@jwt_required()
def api_list_activities():
    """Activities with remaining capacity."""
    return jsonify({'activities': activity_service.list_activities()}), 200


@app.route('/api/activities/<int:activity_id>/select', methods=['POST'])
@roles_required('PARTICIPANT', 'ADMIN')
def api_select_activity(activity_id):
    """Add an activity to a program. REQUIRES targets come back in `pending_required`."""
    data = _body(schemas.SELECT_ACTIVITY)
    user = get_current_user()
    participant_id = _resolve_participant_id(user, data.get('participant_id'))
    result = activity_service.select_activity(participant_id, activity_id)
    return jsonify(result), 201


@app.route('/api/activities/<int:activity_id>/select', methods=['DELETE'])
@roles_required('PARTICIPANT', 'ADMIN')
def api_deselect_activity(activity_id):
    data = _body(schemas.SELECT_ACTIVITY)
    user = get_current_user()
    participant_id = _resolve_participant_id(user, data.get('participant_id'))
    return jsonify(activity_service.deselect_activity(participant_id, activity_id)), 200


@app.route('/api/activities/me', methods=['GET'])
@roles_required('PARTICIPANT')
def api_my_program():
    user = get_current_user()
    participant_id = _resolve_participant_id(user)
    return jsonify({'program': activity_service.get_program(participant_id)}), 200


@app.route('/api/activities/program', methods=['POST'])
@roles_required('PARTICIPANT')
def api_update_program():
    """Replace the caller's program with `activity_ids` (all-or-nothing)."""
    data = _body(schemas.UPDATE_PROGRAM)
    user = get_current_user()
    participant_id = _resolve_participant_id(user)
    return jsonify({'program': activity_service.update_program(participant_id, data['activity_ids'])}), 200


@app.route('/api/activities/ensure-required', methods=['POST'])
@roles_required('PARTICIPANT', 'ADMIN')
def api_ensure_required():
    data = _body(schemas.SELECT_ACTIVITY)
    user = get_current_user()
    participant_id = _resolve_participant_id(user, data.get('participant_id'))
    return jsonify(activity_service.ensure_required(participant_id)), 200


@app.route('/api/activities/admin', methods=['POST'])
@roles_required('ADMIN')
def api_create_activity():
    data = _body(schemas.CREATE_ACTIVITY)
    return jsonify({'activity': activity_service.create_activity(data)}), 201


@app.route('/api/activities/admin/<int:activity_id>', methods=['PUT'])
@roles_required('ADMIN')
def api_update_activity(activity_id):
    data = _body(schemas.UPDATE_ACTIVITY)
    return jsonify({'activity': activity_service.update_activity(activity_id, data)}), 200


@app.route('/api/activities/admin/<int:activity_id>', methods=['DELETE'])
@roles_required('ADMIN')
def api_delete_activity(activity_id):
    activity_service.delete_activity(activity_id)
    return jsonify({'ok': True}), 200


@app.route('/api/activities/admin/correlations', methods=['GET'])
@roles_required('ADMIN')
def api_list_correlations():
    return jsonify({'correlations': activity_service.list_correlations()}), 200


@app.route('/api/activities/admin/correlations', methods=['POST'])
@roles_required('ADMIN')
def api_add_correlation():
    data = _body(schemas.ADD_CORRELATION)
    correlation = activity_service.add_correlation(
        data['source_activity_id'],
        data.get('target_activity_id'),
        data['rule'],
        data.get('role'),
        data.get('description'),
    )
    return jsonify({'correlation': correlation}), 201


@app.route('/api/activities/admin/correlations/<int:correlation_id>', methods=['DELETE'])
@roles_required('ADMIN')
def api_remove_correlation(correlation_id):
    activity_service.remove_correlation(correlation_id)
    return jsonify({'ok': True}), 200


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', '3000')), debug=True)
