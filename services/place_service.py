"""Place Service - Logique métier des places.

Responsabilité (SRP) : Placement des participants dans la zone de leur JE.
- Une place "{zone}_{numéro}" = au plus un participant
- Numéro borné par le nombre de participants payés de la JE
- Réservation réservée aux participants ayant au moins un premier paiement
- Premier arrivé, premier servi : pas de liste d'attente
"""
import logging
from typing import Dict, Any
from sqlalchemy.exc import IntegrityError
from errors import NotFound, Conflict, Forbidden, InvalidArgument
from models import PAYMENT_STATUSES, format_place_name
from repositories.participant_repository import ParticipantRepository
from repositories.je_repository import JERepository
from repositories.zone_repository import ZoneRepository


class PlaceService:
    """Service pour la gestion métier des places.

    Pattern: Service Layer
    SOLID:
        - SRP (logique métier places uniquement)
        - DIP (dépend des repositories, pas de SQLAlchemy)
    """

    def __init__(self, participant_repository: ParticipantRepository = None,
                 je_repository: JERepository = None,
                 zone_repository: ZoneRepository = None):
        self.participant_repo = participant_repository or ParticipantRepository()
        self.je_repo = je_repository or JERepository()
        self.zone_repo = zone_repository or ZoneRepository()
        self.logger = logging.getLogger(__name__)

    def _get_participant(self, participant_id: int):
        participant = self.participant_repo.find_by_id(participant_id)
        if not participant:
            raise NotFound('Participant not found')
        return participant

    def _get_participant_for_user(self, user_id: int):
        participant = self.participant_repo.find_by_user(user_id)
        if not participant:
            raise NotFound('Participant not found')
        return participant

    def reserve_place(self, participant_id: int, place_number: int) -> Dict[str, Any]:
        """Réserve la place `place_number` dans la zone de la JE du participant.

        Un participant déjà placé est déplacé (son ancienne place est libérée).

        Raises:
            NotFound: participant introuvable
            Forbidden: pas de JE, JE sans zone, ou aucun paiement enregistré
            InvalidArgument: numéro hors de [1, nombre de payés]
            Conflict: place déjà prise par un autre participant
        """
        participant = self._get_participant(participant_id)
        if participant.je_id is None:
            raise Forbidden('Participant does not belong to a JE')

        reservation = self.zone_repo.find_reservation_by_je(participant.je_id)
        if not reservation:
            raise Forbidden('JE has not reserved a zone yet')
        zone = reservation.zone

        if not participant.has_paid_something:
            self.logger.warning(f"Participant {participant.id} refused place: no payment recorded")
            raise Forbidden('You must pay to reserve a place')

        # JSON numbers such as 2.0 are valid integers
        if isinstance(place_number, float) and place_number.is_integer():
            place_number = int(place_number)
        if isinstance(place_number, bool) or not isinstance(place_number, int):
            raise InvalidArgument('Place number must be an integer')

        paid_count = self.je_repo.count_paid_participants(participant.je_id)
        if place_number < 1 or place_number > paid_count:
            raise InvalidArgument(f'Invalid place number. Must be between 1 and {paid_count}')

        place_name = format_place_name(zone.name, place_number)
        current = participant.place
        if current and current.zone_id == zone.id and current.number == place_number:
            return participant.to_dict()

        holder = self.participant_repo.find_allocation(zone.id, place_number)
        if holder and holder.participant_id != participant.id:
            self.logger.warning(f"Participant {participant.id} refused place {place_name}: taken")
            raise Conflict(f'Place {place_name} is already taken')

        try:
            self.participant_repo.allocate_place(participant.id, zone.id, place_number)
        except IntegrityError:
            self.logger.warning(f"Participant {participant.id} lost the race for place {place_name}")
            raise Conflict(f'Place {place_name} is already taken')

        self.logger.info(f"Participant {participant.id} reserved place {place_name}")
        return participant.to_dict()

    def reserve_place_for_user(self, user_id: int, place_number: int) -> Dict[str, Any]:
        """Réservation self-service depuis un compte participant."""
        participant = self._get_participant_for_user(user_id)
        return self.reserve_place(participant.id, place_number)

    def release_place(self, participant_id: int) -> Dict[str, Any]:
        """Libère la place du participant (sans effet s'il n'en a pas)."""
        participant = self._get_participant(participant_id)
        if self.participant_repo.release_place(participant.id):
            self.logger.info(f"Participant {participant.id} released their place")
        return participant.to_dict()

    def get_je_place_stats(self, je_id: int) -> Dict[str, Any]:
        """Statistiques de placement d'une JE.

        Returns:
            {has_je, je_id, reserved_zone, paid_count, reserved_places}
            reserved_places ne contient que des noms de places, jamais
            l'identité des participants qui les occupent.
        """
        je = self.je_repo.find_by_id(je_id)
        if not je:
            raise NotFound('JE not found')
        reservation = self.zone_repo.find_reservation_by_je(je.id)
        return {
            'has_je': True,
            'je_id': je.id,
            'reserved_zone': reservation.zone.name if reservation else None,
            'paid_count': self.je_repo.count_paid_participants(je.id),
            'reserved_places': self.je_repo.reserved_place_names(je.id),
        }

    def get_participant_place_stats(self, user_id: int) -> Dict[str, Any]:
        """Statistiques de placement de la JE du participant connecté."""
        participant = self._get_participant_for_user(user_id)
        if participant.je_id is None:
            return {'has_je': False}
        return self.get_je_place_stats(participant.je_id)

    def record_payment(self, participant_id: int, status: str) -> Dict[str, Any]:
        """Enregistre le statut de paiement d'un participant (admin).

        Une baisse de statut libère les places qui ne respectent plus les
        règles : celle du participant s'il n'a plus aucun paiement, et toute
        place de sa JE au-delà du nouveau nombre de payés.

        Raises:
            InvalidArgument: statut inconnu
        """
        if status not in PAYMENT_STATUSES:
            raise InvalidArgument(f"Invalid payment status. Must be one of {', '.join(PAYMENT_STATUSES)}")
        participant = self._get_participant(participant_id)
        released = self.participant_repo.set_payment(participant, status)
        self.logger.info(f"Participant {participant.id} payment status set to {status}")
        if released:
            self.logger.warning(f"Places released after payment change of participant {participant.id}: {released}")
        return participant.to_dict()
