"""Activity Service - Logique métier des activités et du programme.

Responsabilité (SRP) : Sélection des activités par les participants.
- Capacité des activités
- Corrélations REQUIRES / EXCLUDES / ALL, éventuellement limitées à un rôle
- Activités obligatoires (flag, rôle, corrélation)
- Remplacement d'une activité choisie sur le même créneau
- PAS d'accès direct DB (utilise ActivityRepository / ParticipantRepository)
"""
import logging
from datetime import datetime
from typing import Dict, Any, List, Iterable, Optional
from sqlalchemy.exc import IntegrityError
import eligibility
from errors import NotFound, Conflict, Forbidden, InvalidArgument, ConfigurationError
from models import CORRELATION_RULES, PARTICIPANT_ROLES
from repositories.activity_repository import ActivityRepository
from repositories.participant_repository import ParticipantRepository


class ActivityService:
    """Service pour la gestion métier des activités.

    Pattern: Service Layer
    SOLID:
        - SRP (logique métier activités uniquement)
        - DIP (dépend des repositories, règles pures dans eligibility)
    """

    def __init__(self, activity_repository: ActivityRepository = None,
                 participant_repository: ParticipantRepository = None):
        self.activity_repo = activity_repository or ActivityRepository()
        self.participant_repo = participant_repository or ParticipantRepository()
        self.logger = logging.getLogger(__name__)

    # --------------------------------------------------------------- helpers

    def _get_participant(self, participant_id: int):
        participant = self.participant_repo.find_by_id(participant_id)
        if not participant:
            raise NotFound('Participant not found')
        return participant

    def participant_id_for_user(self, user_id: int) -> int:
        participant = self.participant_repo.find_by_user(user_id)
        if not participant:
            raise NotFound('Participant not found')
        return participant.id

    def _get_activity(self, activity_id: int, for_update: bool = False):
        if for_update:
            activity = self.activity_repo.find_by_id_for_update(activity_id)
        else:
            activity = self.activity_repo.find_by_id(activity_id)
        if not activity:
            raise NotFound('Activity not found')
        return activity

    def _mandatory_ids(self, participant_role: str) -> set:
        return eligibility.mandatory_source_ids(self.activity_repo.find_mandatory_correlations(), participant_role)

    def _check_selectable(self, participant, activity, selected: Dict[int, Any],
                          mandatory_ids: set) -> List[int]:
        """Vérifie qu'une activité peut rejoindre la sélection `selected`.

        Args:
            participant: le participant
            activity: l'activité candidate (verrouillée si possible)
            selected: {activity_id: Activity} sélection de travail
            mandatory_ids: activités obligatoires par corrélation

        Returns:
            IDs des activités du même créneau à remplacer

        Raises:
            Conflict: doublon, exclusion, capacité atteinte, créneau d'une activité obligatoire
            Forbidden: activité exclue pour le rôle du participant
        """
        if activity.id in selected:
            raise Conflict('Activity already selected')

        correlations = self.activity_repo.find_correlations_for([activity.id])
        if eligibility.find_role_exclusion(activity.id, correlations, participant.role):
            raise Forbidden('This activity is excluded for your role')

        exclusion = eligibility.find_exclusion(activity.id, set(selected), correlations, participant.role)
        if exclusion:
            self.logger.warning(
                f"Participant {participant.id} refused activity {activity.id}: "
                f"excluded by correlation {exclusion.id}")
            raise Conflict('Selection conflicts with existing activity (exclusion rule)')

        if activity.capacity is not None:
            taken = self.activity_repo.count_selections(activity.id)
            if taken >= activity.capacity:
                self.logger.warning(f"Participant {participant.id} refused activity {activity.id}: full")
                raise Conflict(f'Activity {activity.name} is full')

        replaced = eligibility.overlapping(activity, selected.values())
        for old in replaced:
            if eligibility.is_mandatory(old, participant.role, mandatory_ids):
                raise Conflict(f'Time slot conflicts with required activity {old.name}')
        return [old.id for old in replaced]

    def _pending_required(self, participant, activity_id: int, selected_ids: set) -> List[Dict[str, Any]]:
        correlations = self.activity_repo.find_correlations_for([activity_id])
        target_ids = eligibility.required_targets(activity_id, selected_ids, correlations, participant.role)
        targets = self.activity_repo.find_by_ids(target_ids)
        return [targets[i].to_dict() for i in target_ids if i in targets]

    def _apply(self, participant, add_ids: Iterable[int], remove_ids: Iterable[int]):
        try:
            return self.activity_repo.apply_selection_changes(participant.id, add_ids, remove_ids)
        except IntegrityError:
            raise Conflict('Activity already selected')

    # ------------------------------------------------------------ selection

    def select_activity(self, participant_id: int, activity_id: int) -> Dict[str, Any]:
        """Ajoute une activité au programme du participant.

        Les cibles REQUIRES de l'activité sont signalées dans
        `pending_required` mais jamais sélectionnées automatiquement.

        Returns:
            {selection, pending_required: [activité], replaced: [activity_id]}
        """
        participant = self._get_participant(participant_id)
        activity = self._get_activity(activity_id, for_update=True)
        selected = {s.activity_id: s.activity for s in self.activity_repo.find_selections(participant.id)}
        mandatory_ids = self._mandatory_ids(participant.role)

        replaced = self._check_selectable(participant, activity, selected, mandatory_ids)
        selection = self._apply(participant, [activity.id], replaced)[0]

        remaining = (set(selected) - set(replaced)) | {activity.id}
        pending = self._pending_required(participant, activity.id, remaining)
        self.logger.info(
            f"Participant {participant.id} selected activity {activity.id}"
            + (f" (replacing {replaced})" if replaced else ""))
        return {
            'selection': selection.to_dict(include_activity=True),
            'pending_required': pending,
            'replaced': replaced,
        }

    def _check_removable(self, participant, activity, mandatory_ids: set) -> None:
        if activity.is_required_for(participant.role):
            raise Forbidden(f'Cannot deselect required activity: {activity.name}')
        if activity.id in mandatory_ids:
            raise Forbidden(f'Cannot deselect required activity: {activity.name} (enforced by rule)')

    def deselect_activity(self, participant_id: int, activity_id: int) -> Dict[str, Any]:
        """Retire une activité du programme.

        Sans effet (removed=False) si l'activité n'était pas sélectionnée.

        Raises:
            NotFound: participant ou activité introuvable
            Forbidden: activité obligatoire pour le participant
        """
        participant = self._get_participant(participant_id)
        activity = self._get_activity(activity_id)
        self._check_removable(participant, activity, self._mandatory_ids(participant.role))

        if not self.activity_repo.find_selection(participant.id, activity.id):
            return {'ok': True, 'removed': False}
        self._apply(participant, [], [activity.id])
        self.logger.info(f"Participant {participant.id} deselected activity {activity.id}")
        return {'ok': True, 'removed': True}

    def ensure_required(self, participant_id: int) -> Dict[str, Any]:
        """Sélectionne toutes les activités obligatoires pour le participant.

        Tout ou rien : si une activité obligatoire est pleine, rien n'est
        enregistré et l'erreur de configuration est remontée.

        Returns:
            {added: [activity_id]}
        """
        participant = self._get_participant(participant_id)
        selected_ids = {s.activity_id for s in self.activity_repo.find_selections(participant.id)}
        mandatory_ids = self._mandatory_ids(participant.role)

        required = [a for a in self.activity_repo.find_all()
                    if eligibility.is_mandatory(a, participant.role, mandatory_ids)]
        to_add = []
        for activity in required:
            if activity.id in selected_ids:
                continue
            if activity.capacity is not None and self.activity_repo.count_selections(activity.id) >= activity.capacity:
                self.logger.error(
                    f"Required activity {activity.id} ({activity.name}) is full, "
                    f"cannot enroll participant {participant.id}")
                raise ConfigurationError(f'Required activity {activity.name} is full')
            to_add.append(activity.id)

        if to_add:
            self._apply(participant, to_add, [])
            self.logger.info(f"Participant {participant.id} enrolled in required activities {to_add}")
        return {'added': to_add}

    def get_program(self, participant_id: int) -> List[Dict[str, Any]]:
        """Programme du participant (sélections avec leur activité)."""
        participant = self._get_participant(participant_id)
        return [s.to_dict(include_activity=True) for s in self.activity_repo.find_selections(participant.id)]

    def update_program(self, participant_id: int, activity_ids: List[int]) -> List[Dict[str, Any]]:
        """Remplace le programme par `activity_ids`, tout ou rien.

        Les activités absentes de la liste sont retirées ; si l'une d'elles est
        obligatoire pour le participant, Forbidden est levé et rien ne change.
        Les nouvelles sont ajoutées dans l'ordre donné avec les mêmes règles
        que select_activity.
        """
        participant = self._get_participant(participant_id)
        selected = {s.activity_id: s.activity for s in self.activity_repo.find_selections(participant.id)}
        mandatory_ids = self._mandatory_ids(participant.role)
        wanted = list(dict.fromkeys(activity_ids))

        to_remove = [aid for aid in selected if aid not in wanted]
        for aid in to_remove:
            self._check_removable(participant, selected[aid], mandatory_ids)

        working = {aid: a for aid, a in selected.items() if aid not in to_remove}
        to_add = []
        for aid in wanted:
            if aid in working:
                continue
            activity = self._get_activity(aid, for_update=True)
            replaced = self._check_selectable(participant, activity, working, mandatory_ids)
            for rid in replaced:
                working.pop(rid)
                if rid in to_add:
                    to_add.remove(rid)
                else:
                    to_remove.append(rid)
            working[activity.id] = activity
            to_add.append(activity.id)

        if to_add or to_remove:
            self._apply(participant, to_add, to_remove)
            self.logger.info(
                f"Participant {participant.id} program updated: +{to_add} -{to_remove}")
        return self.get_program(participant.id)

    # ---------------------------------------------------------- activities

    def list_activities(self) -> List[Dict[str, Any]]:
        """Toutes les activités avec leur nombre de places restantes."""
        counts = self.activity_repo.selection_counts()
        return [a.to_dict(selected_count=counts.get(a.id, 0)) for a in self.activity_repo.find_all()]

    @staticmethod
    def _parse_datetime(value: Any, field: str) -> datetime:
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError):
            raise InvalidArgument(f'{field} must be an ISO 8601 datetime')

    def _normalize_activity_fields(self, data: Dict[str, Any], current=None) -> Dict[str, Any]:
        fields = dict(data)
        for key in ('start_time', 'end_time'):
            if key in fields:
                fields[key] = self._parse_datetime(fields[key], key)
        start = fields.get('start_time', current.start_time if current else None)
        end = fields.get('end_time', current.end_time if current else None)
        if start and end and end <= start:
            raise InvalidArgument('end_time must be after start_time')
        unknown_roles = set(fields.get('required_for_roles') or []) - set(PARTICIPANT_ROLES)
        if unknown_roles:
            raise InvalidArgument(f"Unknown roles: {', '.join(sorted(unknown_roles))}")
        if 'salle_id' in fields and not self.activity_repo.find_salle(fields['salle_id']):
            raise NotFound('Salle not found')
        if 'activity_type_id' in fields and not self.activity_repo.find_activity_type(fields['activity_type_id']):
            raise NotFound('Activity type not found')
        return fields

    def create_activity(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Crée une activité (admin)."""
        fields = self._normalize_activity_fields(data)
        activity = self.activity_repo.create(**fields)
        self.logger.info(f"Created activity {activity.id} ({activity.name})")
        return activity.to_dict()

    def update_activity(self, activity_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Met à jour une activité (admin)."""
        activity = self._get_activity(activity_id)
        fields = self._normalize_activity_fields(data, current=activity)
        self.activity_repo.update(activity, **fields)
        self.logger.info(f"Updated activity {activity.id}")
        return activity.to_dict()

    def delete_activity(self, activity_id: int) -> None:
        """Supprime une activité, ses corrélations et les sélections associées (admin)."""
        activity = self._get_activity(activity_id)
        self.activity_repo.delete(activity)
        self.logger.info(f"Deleted activity {activity_id}")

    # -------------------------------------------------------- correlations

    def add_correlation(self, source_id: int, target_id: Optional[int], rule: str,
                        role: Optional[str] = None, description: str = None) -> Dict[str, Any]:
        """Crée une corrélation entre deux activités (admin).

        role None ou 'ALL' = tous les rôles.

        Raises:
            InvalidArgument: source == cible, règle/rôle inconnu, ni cible ni rôle
            NotFound: activité source ou cible introuvable
        """
        if rule not in CORRELATION_RULES:
            raise InvalidArgument(f"Invalid rule. Must be one of {', '.join(CORRELATION_RULES)}")
        if role == 'ALL':
            role = None
        if role is not None and role not in PARTICIPANT_ROLES:
            raise InvalidArgument(f'Unknown role: {role}')
        if target_id is not None and source_id == target_id:
            raise InvalidArgument('An activity cannot be correlated with itself')
        if target_id is None and role is None and rule != 'ALL':
            raise InvalidArgument('Either target activity or role must be specified')

        self._get_activity(source_id)
        if target_id is not None:
            self._get_activity(target_id)

        correlation = self.activity_repo.create_correlation(source_id, target_id, rule, role, description)
        self.logger.info(
            f"Added correlation {correlation.id}: {source_id} {rule} {target_id} (role={role or 'ALL'})")
        return correlation.to_dict(include_activities=True)

    def remove_correlation(self, correlation_id: int) -> None:
        """Supprime une corrélation (admin)."""
        correlation = self.activity_repo.find_correlation(correlation_id)
        if not correlation:
            raise NotFound('Correlation not found')
        self.activity_repo.delete_correlation(correlation)
        self.logger.info(f"Removed correlation {correlation_id}")

    def list_correlations(self) -> List[Dict[str, Any]]:
        """Toutes les corrélations, avec les activités source et cible."""
        return [c.to_dict(include_activities=True) for c in self.activity_repo.find_correlations()]
