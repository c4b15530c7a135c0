"""Zone Repository - Gestion de la persistence des zones et de leur attribution.

Responsabilité (SRP) : Accès aux données des zones uniquement.
- CRUD sur Zone
- Table d'attribution ZoneReservation (source unique de vérité zone <-> JE)
- Libération des places d'une zone quittée par une JE
- Pas de logique métier, pas de validation
"""
from datetime import datetime
from typing import Optional, List, Tuple
from sqlalchemy.exc import IntegrityError
from models import db, Zone, ZoneReservation, PlaceAllocation, Participant, JE


class ZoneRepository:
    """Repository pour la gestion de la persistence des zones.

    Pattern: Repository Pattern
    SOLID: SRP (une seule responsabilité - accès données zones)
    """

    @staticmethod
    def find_by_id(zone_id: int) -> Optional[Zone]:
        """Trouve une zone par son ID."""
        return db.session.get(Zone, zone_id)

    @staticmethod
    def find_all() -> List[Zone]:
        """Récupère toutes les zones, triées par nom."""
        return Zone.query.order_by(Zone.name.asc()).all()

    @staticmethod
    def existing_names(names: List[str]) -> set:
        """Retourne les noms de zones déjà présents parmi `names`."""
        if not names:
            return set()
        rows = db.session.query(Zone.name).filter(Zone.name.in_(names)).all()
        return {r[0] for r in rows}

    @staticmethod
    def create_many(names: List[str]) -> List[Zone]:
        """Crée plusieurs zones dans un seul commit."""
        zones = [Zone(name=name) for name in names]
        db.session.add_all(zones)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise
        return zones

    @staticmethod
    def find_reservation_by_zone(zone_id: int) -> Optional[ZoneReservation]:
        """Attribution courante d'une zone (None si libre)."""
        return ZoneReservation.query.filter_by(zone_id=zone_id).first()

    @staticmethod
    def find_reservation_by_je(je_id: int) -> Optional[ZoneReservation]:
        """Attribution courante d'une JE (None si elle n'a pas de zone)."""
        return ZoneReservation.query.filter_by(je_id=je_id).first()

    @staticmethod
    def _release_places(zone_id: int, je_id: int) -> int:
        """Supprime les places tenues par les participants de la JE dans la zone (sans commit)."""
        participant_ids = [pid for (pid,) in db.session.query(Participant.id).filter_by(je_id=je_id).all()]
        if not participant_ids:
            return 0
        return PlaceAllocation.query.filter(
            PlaceAllocation.zone_id == zone_id,
            PlaceAllocation.participant_id.in_(participant_ids),
        ).delete(synchronize_session='fetch')

    @staticmethod
    def assign_owner(zone_id: int, je_id: int) -> ZoneReservation:
        """Attribue la zone à la JE dans un seul commit.

        Si la JE tenait déjà une autre zone, la ligne d'attribution est déplacée
        (jamais dupliquée) et les places de l'ancienne zone sont libérées.

        Raises:
            IntegrityError: si la zone a été prise entre-temps (contrainte unique)
        """
        reservation = ZoneReservation.query.filter_by(je_id=je_id).first()
        try:
            if reservation:
                if reservation.zone_id != zone_id:
                    ZoneRepository._release_places(reservation.zone_id, je_id)
                    reservation.zone_id = zone_id
                    reservation.reserved_at = datetime.utcnow()
            else:
                reservation = ZoneReservation(zone_id=zone_id, je_id=je_id)
                db.session.add(reservation)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise
        return reservation

    @staticmethod
    def release(je_id: int) -> Optional[int]:
        """Libère la zone de la JE et ses places. Retourne l'ID de la zone libérée."""
        reservation = ZoneReservation.query.filter_by(je_id=je_id).first()
        if not reservation:
            return None
        zone_id = reservation.zone_id
        ZoneRepository._release_places(zone_id, je_id)
        db.session.delete(reservation)
        db.session.commit()
        return zone_id

    @staticmethod
    def placement_rows() -> List[Tuple[str, str, str, int, str]]:
        """Lignes (prénom, nom, zone, numéro, JE) des participants ayant une place."""
        return db.session.query(
            Participant.first_name,
            Participant.last_name,
            Zone.name,
            PlaceAllocation.number,
            JE.name,
        ).join(PlaceAllocation, PlaceAllocation.participant_id == Participant.id)\
            .join(Zone, Zone.id == PlaceAllocation.zone_id)\
            .outerjoin(JE, JE.id == Participant.je_id)\
            .order_by(Zone.name.asc(), PlaceAllocation.number.asc())\
            .all()
