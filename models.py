"""Database models for the JOBS 2K26 reservation and eligibility backend."""
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
import bcrypt

db = SQLAlchemy()

# User account roles (who is calling the API)
USER_ROLES = ('ADMIN', 'JE', 'PARTICIPANT')

# Participant roles (who is attending the seminar)
PARTICIPANT_ROLES = (
    'MEMBRE_JUNIOR',
    'MEMBRE_SENIOR',
    'ALUMNUS',
    'ALUMNA',
    'RESPONSABLE',
    'QUARTET',
    'OC',
    'CDM',
    'BUREAU_NATIONAL',
)

CORRELATION_RULES = ('REQUIRES', 'EXCLUDES', 'ALL')

PAYMENT_STATUSES = ('unpaid', 'first_part', 'paid')


class User(db.Model):
    """User account used for authentication and role gating."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='PARTICIPANT')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_password(self, password):
        """Hash and set password."""
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    def check_password(self, password):
        """Verify password against hash."""
        return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))

    def to_dict(self):
        """Convert user to dictionary (without sensitive data)."""
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Zone(db.Model):
    """Exhibition area that a single JE can reserve.

    Ownership is NOT stored on the zone itself: the ZoneReservation table is
    the only source of truth, `owner` is a read-only view over it.
    """
    __tablename__ = 'zones'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(20), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    reservation = db.relationship('ZoneReservation', backref='zone', uselist=False, lazy=True)

    @property
    def owner(self):
        return self.reservation.je if self.reservation else None

    def to_dict(self, include_roster=False):
        """Convert zone to dictionary, with the owning JE summary."""
        owner = self.owner
        result = {
            'id': self.id,
            'name': self.name,
            'je': None,
        }
        if owner:
            result['je'] = {
                'id': owner.id,
                'name': owner.name,
                'code': owner.code,
                'participant_count': len(owner.participants),
            }
            if include_roster:
                roster = sorted(owner.participants, key=lambda p: ((p.last_name or '').lower(), p.id))
                result['je']['participants'] = [p.to_roster_dict() for p in roster]
        return result


class ZoneReservation(db.Model):
    """Authoritative zone <-> JE ownership mapping.

    One row per owned zone. Both columns are unique, so a zone has at most one
    owner and a JE owns at most one zone, whatever the interleaving of requests.
    """
    __tablename__ = 'zone_reservations'

    id = db.Column(db.Integer, primary_key=True)
    zone_id = db.Column(db.Integer, db.ForeignKey('zones.id'), unique=True, nullable=False)
    je_id = db.Column(db.Integer, db.ForeignKey('jes.id'), unique=True, nullable=False)
    reserved_at = db.Column(db.DateTime, default=datetime.utcnow)


class JE(db.Model):
    """Junior-Entreprise: the organization that reserves a zone."""
    __tablename__ = 'jes'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    code = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    user = db.relationship('User', lazy=True)
    participants = db.relationship('Participant', backref='je', lazy=True)
    reservation = db.relationship('ZoneReservation', backref='je', uselist=False, lazy=True)

    @property
    def reserved_zone(self):
        return self.reservation.zone if self.reservation else None

    def to_dict(self):
        zone = self.reserved_zone
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'email': self.email,
            'phone': self.phone,
            'reserved_zone': {'id': zone.id, 'name': zone.name} if zone else None,
        }


class Participant(db.Model):
    """Seminar participant, member of (at most) one JE.

    Payment state is derived from the two dates:
    - pay_date set       -> 'paid'
    - first_pay_date set -> 'first part paid'
    - neither            -> 'unpaid'
    """
    __tablename__ = 'participants'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, unique=True)
    je_id = db.Column(db.Integer, db.ForeignKey('jes.id'), nullable=True, index=True)
    first_name = db.Column(db.String(100), nullable=False, default='')
    last_name = db.Column(db.String(100), nullable=False, default='')
    role = db.Column(db.String(30), nullable=False, default='MEMBRE_JUNIOR')
    first_pay_date = db.Column(db.DateTime, nullable=True)
    pay_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    user = db.relationship('User', lazy=True)
    place = db.relationship('PlaceAllocation', backref='participant', uselist=False, lazy=True,
                            cascade='all, delete-orphan')
    selections = db.relationship('ActivitySelection', backref='participant', lazy=True,
                                 cascade='all, delete-orphan')

    @property
    def payment_status(self):
        if self.pay_date:
            return 'paid'
        if self.first_pay_date:
            return 'first part paid'
        return 'unpaid'

    @property
    def has_paid_something(self):
        return self.pay_date is not None or self.first_pay_date is not None

    @property
    def place_name(self):
        return self.place.place_name if self.place else None

    def to_roster_dict(self):
        """Short form used in zone rosters."""
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'role': self.role,
            'payment_status': self.payment_status,
            'place_name': self.place_name,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'je_id': self.je_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'role': self.role,
            'payment_status': self.payment_status,
            'first_pay_date': self.first_pay_date.isoformat() if self.first_pay_date else None,
            'pay_date': self.pay_date.isoformat() if self.pay_date else None,
            'place_name': self.place_name,
        }


class PlaceAllocation(db.Model):
    """A numbered place inside a zone held by one participant.

    The public name of a place is "{zone name}_{number}" (e.g. "A_3").
    """
    __tablename__ = 'place_allocations'

    id = db.Column(db.Integer, primary_key=True)
    zone_id = db.Column(db.Integer, db.ForeignKey('zones.id'), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), unique=True, nullable=False)
    reserved_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    zone = db.relationship('Zone', lazy=True)

    # One holder per place in a zone
    __table_args__ = (
        db.UniqueConstraint('zone_id', 'number', name='unique_zone_place'),
        db.CheckConstraint('number >= 1', name='check_place_number_positive'),
    )

    @property
    def place_name(self):
        return format_place_name(self.zone.name, self.number)


class Salle(db.Model):
    """Room hosting activities."""
    __tablename__ = 'salles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    capacity = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'capacity': self.capacity}


class ActivityType(db.Model):
    """Category of activity (workshop, conference...) with its day."""
    __tablename__ = 'activity_types'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    day = db.Column(db.Integer, nullable=True)
    earliest_time = db.Column(db.String(5), nullable=True)  # "HH:MM"

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'day': self.day, 'earliest_time': self.earliest_time}


class Activity(db.Model):
    """Scheduled session participants can select.

    capacity = None means unlimited.
    required_for_roles holds participant roles for which the activity is mandatory.
    """
    __tablename__ = 'activities'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    capacity = db.Column(db.Integer, nullable=True)
    is_required = db.Column(db.Boolean, default=False, nullable=False)
    required_for_roles = db.Column(db.JSON, default=list, nullable=False)
    salle_id = db.Column(db.Integer, db.ForeignKey('salles.id'), nullable=False)
    activity_type_id = db.Column(db.Integer, db.ForeignKey('activity_types.id'), nullable=False)

    # Relationships
    salle = db.relationship('Salle', lazy=True)
    activity_type = db.relationship('ActivityType', lazy=True)
    selections = db.relationship('ActivitySelection', backref='activity', lazy=True,
                                 cascade='all, delete-orphan')

    __table_args__ = (
        db.CheckConstraint('capacity IS NULL OR capacity >= 0', name='check_activity_capacity'),
    )

    def is_required_for(self, participant_role):
        return bool(self.is_required) or participant_role in (self.required_for_roles or [])

    def overlaps(self, other):
        return self.start_time < other.end_time and self.end_time > other.start_time

    def to_dict(self, selected_count=None):
        result = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'capacity': self.capacity,
            'is_required': self.is_required,
            'required_for_roles': list(self.required_for_roles or []),
            'salle_id': self.salle_id,
            'salle_name': self.salle.name if self.salle else None,
            'activity_type_id': self.activity_type_id,
            'activity_type_name': self.activity_type.name if self.activity_type else None,
        }
        if selected_count is not None:
            result['selected_count'] = selected_count
            result['capacity_left'] = (self.capacity - selected_count) if self.capacity is not None else None
        return result


class ActivityCorrelation(db.Model):
    """Rule between two activities, optionally scoped to a participant role.

    - REQUIRES: selecting source calls for target (or, without target, source is
      mandatory for `role`)
    - EXCLUDES: source and target cannot both be selected (or, without target,
      source is forbidden for `role`)
    - ALL: source is mandatory for `role` (every role when role is NULL)
    """
    __tablename__ = 'activity_correlations'

    id = db.Column(db.Integer, primary_key=True)
    source_activity_id = db.Column(db.Integer, db.ForeignKey('activities.id'), nullable=False, index=True)
    target_activity_id = db.Column(db.Integer, db.ForeignKey('activities.id'), nullable=True, index=True)
    rule = db.Column(db.String(20), nullable=False)
    role = db.Column(db.String(30), nullable=True)  # NULL = every role
    description = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    source_activity = db.relationship('Activity', foreign_keys=[source_activity_id], lazy=True)
    target_activity = db.relationship('Activity', foreign_keys=[target_activity_id], lazy=True)

    def to_dict(self, include_activities=False):
        result = {
            'id': self.id,
            'source_activity_id': self.source_activity_id,
            'target_activity_id': self.target_activity_id,
            'rule': self.rule,
            'role': self.role or 'ALL',
            'description': self.description,
        }
        if include_activities:
            result['source_activity'] = self.source_activity.to_dict() if self.source_activity else None
            result['target_activity'] = self.target_activity.to_dict() if self.target_activity else None
        return result


class ActivitySelection(db.Model):
    """A participant's choice of an activity (their "program")."""
    __tablename__ = 'activity_selections'

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, index=True)
    activity_id = db.Column(db.Integer, db.ForeignKey('activities.id'), nullable=False, index=True)
    enrolled_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('participant_id', 'activity_id', name='unique_participant_activity'),
    )

    def to_dict(self, include_activity=False):
        result = {
            'id': self.id,
            'participant_id': self.participant_id,
            'activity_id': self.activity_id,
            'enrolled_at': self.enrolled_at.isoformat() if self.enrolled_at else None,
        }
        if include_activity and self.activity:
            result['activity'] = self.activity.to_dict()
        return result


def format_place_name(zone_name, number):
    """Build the public place name, e.g. ("B'", 4) -> "B'_4"."""
    return f"{zone_name}_{number}"
