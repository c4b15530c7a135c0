"""JE Repository - Gestion de la persistence des Junior-Entreprises.

Responsabilité (SRP) : Accès aux données des JE uniquement.
"""
from typing import Optional, List
from models import db, JE, Participant, PlaceAllocation, Zone, format_place_name


class JERepository:
    """Repository pour la gestion de la persistence des JE.

    Pattern: Repository Pattern
    SOLID: SRP (une seule responsabilité - accès données JE)
    """

    @staticmethod
    def find_by_id(je_id: int) -> Optional[JE]:
        """Trouve une JE par son ID."""
        return db.session.get(JE, je_id)

    @staticmethod
    def find_by_user(user_id: int) -> Optional[JE]:
        """Trouve la JE rattachée à un compte JE."""
        return JE.query.filter_by(user_id=user_id).first()

    @staticmethod
    def count_paid_participants(je_id: int) -> int:
        """Nombre de participants de la JE ayant entièrement payé."""
        return Participant.query.filter(
            Participant.je_id == je_id,
            Participant.pay_date.isnot(None),
        ).count()

    @staticmethod
    def reserved_place_names(je_id: int) -> List[str]:
        """Noms des places occupées par les participants de la JE, triés par numéro."""
        rows = db.session.query(Zone.name, PlaceAllocation.number)\
            .join(PlaceAllocation, PlaceAllocation.zone_id == Zone.id)\
            .join(Participant, Participant.id == PlaceAllocation.participant_id)\
            .filter(Participant.je_id == je_id)\
            .order_by(PlaceAllocation.number.asc())\
            .all()
        return [format_place_name(zone_name, number) for zone_name, number in rows]
