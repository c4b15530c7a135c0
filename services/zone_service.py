"""Zone Service - Logique métier des zones.

Responsabilité (SRP) : Attribution des zones aux JE.
- Génération des zones (A, A', B, B', ...)
- Réservation self-service par une JE, attribution forcée par un admin
- Une zone = au plus une JE, une JE = au plus une zone
- Export CSV du placement
- PAS d'accès direct DB (utilise ZoneRepository / JERepository)
"""
import logging
import string
from typing import Dict, Any, List
from sqlalchemy.exc import IntegrityError
from errors import NotFound, Conflict, InvalidArgument
from models import format_place_name
from repositories.zone_repository import ZoneRepository
from repositories.je_repository import JERepository

# Zones are generated in pairs: a letter and its "prime" ("A", "A'")
ZONE_PAIR_SIZE = 2
MAX_GENERATED_ZONES = len(string.ascii_uppercase) * ZONE_PAIR_SIZE

CSV_HEADER = ['First Name', 'Last Name', 'Place', 'JE', 'Zone']


def zone_names(count: int) -> List[str]:
    """Noms déterministes des `count` premières zones : A, A', B, B', ..."""
    names = []
    for i in range(count):
        letter = string.ascii_uppercase[i // ZONE_PAIR_SIZE]
        names.append(f"{letter}'" if i % ZONE_PAIR_SIZE else letter)
    return names


class ZoneService:
    """Service pour la gestion métier des zones.

    Pattern: Service Layer
    SOLID:
        - SRP (logique métier zones uniquement)
        - DIP (dépend des repositories, pas de SQLAlchemy)
    """

    def __init__(self, zone_repository: ZoneRepository = None,
                 je_repository: JERepository = None):
        """Initialise le service avec dependency injection.

        Args:
            zone_repository: Repository pour accès données zones (DIP)
            je_repository: Repository pour accès données JE
        """
        self.zone_repo = zone_repository or ZoneRepository()
        self.je_repo = je_repository or JERepository()
        self.logger = logging.getLogger(__name__)

    def _get_zone(self, zone_id: int):
        zone = self.zone_repo.find_by_id(zone_id)
        if not zone:
            raise NotFound('Zone not found')
        return zone

    def _get_je(self, je_id: int):
        je = self.je_repo.find_by_id(je_id)
        if not je:
            raise NotFound('JE not found')
        return je

    # ------------------------------------------------------------------ read

    def list_zones(self) -> List[Dict[str, Any]]:
        """Toutes les zones avec leur JE propriétaire."""
        return [zone.to_dict() for zone in self.zone_repo.find_all()]

    def get_zone(self, zone_id: int) -> Dict[str, Any]:
        """Une zone avec la liste des participants de sa JE propriétaire."""
        return self._get_zone(zone_id).to_dict(include_roster=True)

    # ---------------------------------------------------------------- create

    def create_zone(self, name: str) -> Dict[str, Any]:
        """Crée une zone isolée (admin).

        Raises:
            InvalidArgument: nom vide
            Conflict: nom déjà utilisé
        """
        name = (name or '').strip()
        if not name:
            raise InvalidArgument('Zone name is required')
        if self.zone_repo.existing_names([name]):
            raise Conflict(f'Zone {name} already exists')
        try:
            zone = self.zone_repo.create_many([name])[0]
        except IntegrityError:
            raise Conflict(f'Zone {name} already exists')
        self.logger.info(f"Created zone {zone.id} ({zone.name})")
        return zone.to_dict()

    def generate_zones(self, count: int) -> List[Dict[str, Any]]:
        """Génère les `count` premières zones (A, A', B, B', ...).

        Les noms déjà existants sont ignorés ; seules les zones créées sont
        retournées.

        Raises:
            InvalidArgument: count non multiple positif de 2, ou au-delà de Z'
        """
        if isinstance(count, float) and count.is_integer():
            count = int(count)
        if isinstance(count, bool) or not isinstance(count, int):
            raise InvalidArgument('Zone count must be an integer')
        if count <= 0 or count % ZONE_PAIR_SIZE:
            raise InvalidArgument(f'Zone count must be a positive multiple of {ZONE_PAIR_SIZE}')
        if count > MAX_GENERATED_ZONES:
            raise InvalidArgument(f'Zone count cannot exceed {MAX_GENERATED_ZONES}')

        names = zone_names(count)
        existing = self.zone_repo.existing_names(names)
        to_create = [name for name in names if name not in existing]
        if not to_create:
            return []
        try:
            zones = self.zone_repo.create_many(to_create)
        except IntegrityError:
            raise Conflict('Zones were generated concurrently, please retry')
        self.logger.info(f"Generated {len(zones)} zones ({', '.join(to_create)})")
        return [zone.to_dict() for zone in zones]

    # ------------------------------------------------------------- ownership

    def _assign(self, zone, je) -> Dict[str, Any]:
        reservation = self.zone_repo.find_reservation_by_zone(zone.id)
        if reservation and reservation.je_id != je.id:
            self.logger.warning(f"JE {je.id} refused zone {zone.name}: owned by JE {reservation.je_id}")
            raise Conflict('Zone is already reserved by another JE')
        if reservation:
            self.logger.info(f"JE {je.id} already owns zone {zone.name}")
            return zone.to_dict()

        previous = self.zone_repo.find_reservation_by_je(je.id)
        previous_zone_id = previous.zone_id if previous else None
        try:
            self.zone_repo.assign_owner(zone.id, je.id)
        except IntegrityError:
            self.logger.warning(f"JE {je.id} lost the race for zone {zone.name}")
            raise Conflict('Zone is already reserved by another JE')

        if previous_zone_id:
            self.logger.info(f"JE {je.id} moved from zone {previous_zone_id} to zone {zone.name}")
        else:
            self.logger.info(f"JE {je.id} reserved zone {zone.name}")
        return zone.to_dict()

    def reserve_zone(self, je_id: int, zone_id: int) -> Dict[str, Any]:
        """Réserve une zone pour une JE (une seule zone par JE).

        Si la JE tenait une autre zone, celle-ci est libérée dans le même commit.
        Réserver la zone déjà tenue est sans effet.

        Raises:
            NotFound: zone ou JE introuvable
            Conflict: zone tenue par une autre JE
        """
        zone = self._get_zone(zone_id)
        je = self._get_je(je_id)
        return self._assign(zone, je)

    def reserve_zone_for_user(self, user_id: int, zone_id: int) -> Dict[str, Any]:
        """Réservation self-service depuis un compte JE."""
        je = self.je_repo.find_by_user(user_id)
        if not je:
            raise NotFound('JE profile not found')
        return self.reserve_zone(je.id, zone_id)

    def assign_je(self, zone_id: int, je_id: int) -> Dict[str, Any]:
        """Attribution par un admin : même règle d'exclusivité que reserve_zone."""
        zone = self._get_zone(zone_id)
        je = self._get_je(je_id)
        return self._assign(zone, je)

    def unassign_je(self, je_id: int) -> Dict[str, Any]:
        """Libère la zone d'une JE (admin). Sans effet si elle n'en a pas."""
        je = self._get_je(je_id)
        released = self.zone_repo.release(je.id)
        if released:
            self.logger.info(f"Released zone {released} from JE {je.id}")
        return je.to_dict()

    # ---------------------------------------------------------------- export

    def export_placements_csv(self) -> str:
        """Export CSV du placement : une ligne par participant placé.

        Les valeurs ne sont pas échappées : une virgule dans un nom décale les
        colonnes.
        """
        lines = [','.join(CSV_HEADER)]
        for first_name, last_name, zone_name, number, je_name in self.zone_repo.placement_rows():
            lines.append(','.join([
                first_name or '',
                last_name or '',
                format_place_name(zone_name, number),
                je_name or '',
                zone_name or '',
            ]))
        return '\n'.join(lines)
