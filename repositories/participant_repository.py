"""Participant Repository - Gestion de la persistence des participants et de leurs places.

Responsabilité (SRP) : Accès aux données des participants uniquement.
- Lecture des participants
- Table d'allocation des places (une ligne par participant placé)
- Mise à jour des dates de paiement
"""
from datetime import datetime
from typing import Optional, List
from sqlalchemy.exc import IntegrityError
from models import db, Participant, PlaceAllocation


class ParticipantRepository:
    """Repository pour la gestion de la persistence des participants.

    Pattern: Repository Pattern
    SOLID: SRP (une seule responsabilité - accès données participants)
    """

    @staticmethod
    def find_by_id(participant_id: int) -> Optional[Participant]:
        """Trouve un participant par son ID."""
        return db.session.get(Participant, participant_id)

    @staticmethod
    def find_by_user(user_id: int) -> Optional[Participant]:
        """Trouve le participant rattaché à un compte."""
        return Participant.query.filter_by(user_id=user_id).first()

    @staticmethod
    def find_allocation(zone_id: int, number: int) -> Optional[PlaceAllocation]:
        """Place `number` de la zone, si elle est occupée."""
        return PlaceAllocation.query.filter_by(zone_id=zone_id, number=number).first()

    @staticmethod
    def allocate_place(participant_id: int, zone_id: int, number: int) -> PlaceAllocation:
        """Attribue une place au participant dans un seul commit.

        Un participant déjà placé voit sa ligne déplacée, jamais dupliquée.

        Raises:
            IntegrityError: si la place a été prise entre-temps (contrainte unique)
        """
        allocation = PlaceAllocation.query.filter_by(participant_id=participant_id).first()
        try:
            if allocation:
                allocation.zone_id = zone_id
                allocation.number = number
            else:
                allocation = PlaceAllocation(participant_id=participant_id, zone_id=zone_id, number=number)
                db.session.add(allocation)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise
        return allocation

    @staticmethod
    def release_place(participant_id: int) -> bool:
        """Libère la place du participant. Retourne False s'il n'en avait pas."""
        allocation = PlaceAllocation.query.filter_by(participant_id=participant_id).first()
        if not allocation:
            return False
        db.session.delete(allocation)
        db.session.commit()
        return True

    @staticmethod
    def set_payment(participant: Participant, status: str) -> List[int]:
        """Positionne les dates de paiement selon le statut ('unpaid', 'first_part', 'paid').

        Dans le même commit, libère les places devenues invalides :
        - celle du participant s'il n'a plus aucun paiement
        - celles de sa JE dont le numéro dépasse le nouveau nombre de payés

        Returns:
            IDs des participants dont la place a été libérée
        """
        now = datetime.utcnow()
        if status == 'paid':
            participant.first_pay_date = participant.first_pay_date or now
            participant.pay_date = participant.pay_date or now
        elif status == 'first_part':
            participant.first_pay_date = participant.first_pay_date or now
            participant.pay_date = None
        else:
            participant.first_pay_date = None
            participant.pay_date = None
        db.session.flush()

        released = []
        if not participant.has_paid_something and participant.place:
            released.append(participant.id)
        if participant.je_id is not None:
            members = Participant.query.filter_by(je_id=participant.je_id)
            paid_count = members.filter(Participant.pay_date.isnot(None)).count()
            member_ids = [p.id for p in members.all()]
            rows = db.session.query(PlaceAllocation.participant_id).filter(
                PlaceAllocation.participant_id.in_(member_ids),
                PlaceAllocation.number > paid_count,
            ).all()
            released.extend(pid for (pid,) in rows if pid not in released)
        if released:
            PlaceAllocation.query.filter(PlaceAllocation.participant_id.in_(released))\
                .delete(synchronize_session='fetch')
        db.session.commit()
        return released
