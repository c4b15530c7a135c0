"""Règles d'éligibilité des activités pour JOBS 2K26.

Fonctions pures, sans accès base de données : elles reçoivent les activités et
corrélations déjà chargées par le service et décident si une sélection est
possible.

Règles de corrélation :
- EXCLUDES (source, cible) : les deux activités ne peuvent pas être choisies
  ensemble, dans un sens comme dans l'autre
- EXCLUDES (source, sans cible, rôle) : la source est interdite pour ce rôle
- REQUIRES (source, cible) : choisir la source appelle la cible (indicatif,
  jamais sélectionnée automatiquement)
- REQUIRES (source, sans cible, rôle) / ALL : la source est obligatoire
"""
from typing import Iterable, List, Optional, Set

from models import Activity, ActivityCorrelation


def role_matches(correlation: ActivityCorrelation, participant_role: str) -> bool:
    """Vrai si la portée de rôle de la corrélation couvre le participant."""
    return correlation.role is None or correlation.role == participant_role


def find_role_exclusion(activity_id: int, correlations: Iterable[ActivityCorrelation],
                        participant_role: str) -> Optional[ActivityCorrelation]:
    """Cherche une corrélation EXCLUDES sans cible qui interdit l'activité au rôle."""
    for c in correlations:
        if (c.rule == 'EXCLUDES' and c.source_activity_id == activity_id
                and c.target_activity_id is None and c.role == participant_role):
            return c
    return None


def find_exclusion(activity_id: int, selected_ids: Set[int],
                   correlations: Iterable[ActivityCorrelation],
                   participant_role: str) -> Optional[ActivityCorrelation]:
    """Cherche une exclusion entre `activity_id` et une activité déjà choisie.

    Vérifie les deux sens : (a, x, EXCLUDES) et (x, a, EXCLUDES).
    """
    for c in correlations:
        if c.rule != 'EXCLUDES' or c.target_activity_id is None:
            continue
        if not role_matches(c, participant_role):
            continue
        if c.source_activity_id == activity_id and c.target_activity_id in selected_ids:
            return c
        if c.target_activity_id == activity_id and c.source_activity_id in selected_ids:
            return c
    return None


def required_targets(activity_id: int, selected_ids: Set[int],
                     correlations: Iterable[ActivityCorrelation],
                     participant_role: str) -> List[int]:
    """IDs des cibles REQUIRES de l'activité encore absentes de la sélection."""
    targets = []
    for c in correlations:
        if c.rule != 'REQUIRES' or c.source_activity_id != activity_id:
            continue
        if c.target_activity_id is None or c.target_activity_id == activity_id:
            continue
        if not role_matches(c, participant_role):
            continue
        if c.target_activity_id not in selected_ids and c.target_activity_id not in targets:
            targets.append(c.target_activity_id)
    return targets


def mandatory_source_ids(correlations: Iterable[ActivityCorrelation], participant_role: str) -> Set[int]:
    """Activités rendues obligatoires par corrélation (ALL ou REQUIRES sans cible)."""
    ids = set()
    for c in correlations:
        if c.rule == 'ALL' and role_matches(c, participant_role):
            ids.add(c.source_activity_id)
        elif c.rule == 'REQUIRES' and c.target_activity_id is None and c.role == participant_role:
            ids.add(c.source_activity_id)
    return ids


def is_mandatory(activity: Activity, participant_role: str, mandatory_ids: Set[int]) -> bool:
    """Une activité est obligatoire si elle l'est par flag, par rôle ou par corrélation."""
    return activity.is_required_for(participant_role) or activity.id in mandatory_ids


def overlapping(activity: Activity, selected: Iterable[Activity]) -> List[Activity]:
    """Activités déjà choisies dont le créneau chevauche celui de `activity`."""
    return [a for a in selected if a.id != activity.id and a.overlaps(activity)]
