"""Shared fixtures: in-memory database, factories and JWT headers per role."""
import os

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-with-enough-length-for-hs256'

from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from app import app as flask_app
from repositories.user_repository import UserRepository
from models import (
    db, JE, Participant, Zone, ZoneReservation, Salle, ActivityType, Activity,
    ActivityCorrelation, ActivitySelection,
)

EVENT_DAY = datetime(2026, 2, 14, 9, 0)


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Small helpers creating committed records."""

    def __init__(self):
        self._seq = 0
        self._salle = None
        self._type = None

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, role='PARTICIPANT', email=None, password='secret123'):
        return UserRepository.create(email or f'user{self._next()}@jobs2k26.test', password, role)

    def je(self, name=None, with_user=False):
        n = self._next()
        je = JE(name=name or f'JE {n}', code=f'JE{n:03d}')
        if with_user:
            je.user_id = self.user(role='JE').id
        db.session.add(je)
        db.session.commit()
        return je

    def participant(self, je=None, paid=False, first_part=False, role='MEMBRE_JUNIOR',
                    with_user=False, first_name=None, last_name=None):
        n = self._next()
        participant = Participant(
            je_id=je.id if je else None,
            first_name=first_name or f'First{n}',
            last_name=last_name or f'Last{n}',
            role=role,
        )
        if paid:
            participant.first_pay_date = datetime.utcnow()
            participant.pay_date = datetime.utcnow()
        elif first_part:
            participant.first_pay_date = datetime.utcnow()
        if with_user:
            participant.user_id = self.user(role='PARTICIPANT').id
        db.session.add(participant)
        db.session.commit()
        return participant

    def zone(self, name):
        zone = Zone(name=name)
        db.session.add(zone)
        db.session.commit()
        return zone

    def own(self, zone, je):
        db.session.add(ZoneReservation(zone_id=zone.id, je_id=je.id))
        db.session.commit()

    def activity(self, name=None, capacity=None, start=None, hours=1, is_required=False,
                 required_for_roles=None):
        if self._salle is None:
            self._salle = Salle(name='Amphi A', capacity=200)
            self._type = ActivityType(name='Workshop', day=1, earliest_time='09:00')
            db.session.add_all([self._salle, self._type])
            db.session.commit()
        n = self._next()
        # Distinct activities do not overlap unless a start is given
        start = start or EVENT_DAY + timedelta(hours=2 * n)
        activity = Activity(
            name=name or f'Activity {n}',
            start_time=start,
            end_time=start + timedelta(hours=hours),
            capacity=capacity,
            is_required=is_required,
            required_for_roles=required_for_roles or [],
            salle_id=self._salle.id,
            activity_type_id=self._type.id,
        )
        db.session.add(activity)
        db.session.commit()
        return activity

    def correlation(self, source, target, rule, role=None):
        correlation = ActivityCorrelation(
            source_activity_id=source.id,
            target_activity_id=target.id if target else None,
            rule=rule,
            role=role,
        )
        db.session.add(correlation)
        db.session.commit()
        return correlation

    def select(self, participant, activity):
        selection = ActivitySelection(participant_id=participant.id, activity_id=activity.id)
        db.session.add(selection)
        db.session.commit()
        return selection


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def headers_for(app):
    """Build Authorization headers for a user."""
    def _headers(user):
        token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
        return {'Authorization': f'Bearer {token}'}
    return _headers
