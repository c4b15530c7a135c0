"""Activity Repository - Gestion de la persistence des activités.

Responsabilité (SRP) : Accès aux données des activités uniquement.
- CRUD sur Activity et ActivityCorrelation
- Sélections des participants (programme)
- Pas de logique métier, pas de validation
"""
from typing import Optional, List, Dict, Iterable
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from models import db, Activity, ActivityType, ActivityCorrelation, ActivitySelection, Salle


class ActivityRepository:
    """Repository pour la gestion de la persistence des activités.

    Pattern: Repository Pattern
    SOLID: SRP (une seule responsabilité - accès données activités)
    """

    # ------------------------------------------------------------ activities

    @staticmethod
    def find_by_id(activity_id: int) -> Optional[Activity]:
        """Trouve une activité par son ID."""
        return db.session.get(Activity, activity_id)

    @staticmethod
    def find_by_id_for_update(activity_id: int) -> Optional[Activity]:
        """Trouve une activité en verrouillant sa ligne (SELECT ... FOR UPDATE).

        Sérialise les vérifications de capacité concurrentes sur les bases qui
        supportent le verrou (PostgreSQL, MySQL) ; sans effet sur SQLite.
        """
        return Activity.query.filter_by(id=activity_id).with_for_update().first()

    @staticmethod
    def find_by_ids(activity_ids: Iterable[int]) -> Dict[int, Activity]:
        ids = list(set(activity_ids))
        if not ids:
            return {}
        return {a.id: a for a in Activity.query.filter(Activity.id.in_(ids)).all()}

    @staticmethod
    def find_all() -> List[Activity]:
        """Toutes les activités, triées par jour, heure du type puis début."""
        return Activity.query.join(ActivityType, ActivityType.id == Activity.activity_type_id)\
            .order_by(ActivityType.day.asc(), ActivityType.earliest_time.asc(), Activity.start_time.asc())\
            .all()

    @staticmethod
    def find_salle(salle_id: int) -> Optional[Salle]:
        return db.session.get(Salle, salle_id)

    @staticmethod
    def find_activity_type(activity_type_id: int) -> Optional[ActivityType]:
        return db.session.get(ActivityType, activity_type_id)

    @staticmethod
    def create(**fields) -> Activity:
        """Crée une activité."""
        activity = Activity(**fields)
        db.session.add(activity)
        db.session.commit()
        return activity

    @staticmethod
    def update(activity: Activity, **fields) -> Activity:
        """Met à jour les champs donnés d'une activité."""
        for key, value in fields.items():
            setattr(activity, key, value)
        db.session.commit()
        return activity

    @staticmethod
    def delete(activity: Activity) -> None:
        """Supprime une activité avec ses corrélations et sélections."""
        ActivityCorrelation.query.filter(or_(
            ActivityCorrelation.source_activity_id == activity.id,
            ActivityCorrelation.target_activity_id == activity.id,
        )).delete(synchronize_session='fetch')
        db.session.delete(activity)
        db.session.commit()

    # ---------------------------------------------------------- correlations

    @staticmethod
    def find_correlation(correlation_id: int) -> Optional[ActivityCorrelation]:
        return db.session.get(ActivityCorrelation, correlation_id)

    @staticmethod
    def find_correlations() -> List[ActivityCorrelation]:
        """Toutes les corrélations."""
        return ActivityCorrelation.query.order_by(ActivityCorrelation.id.asc()).all()

    @staticmethod
    def find_correlations_for(activity_ids: Iterable[int]) -> List[ActivityCorrelation]:
        """Corrélations dont la source ou la cible fait partie de `activity_ids`."""
        ids = list(set(activity_ids))
        if not ids:
            return []
        return ActivityCorrelation.query.filter(or_(
            ActivityCorrelation.source_activity_id.in_(ids),
            ActivityCorrelation.target_activity_id.in_(ids),
        )).all()

    @staticmethod
    def find_mandatory_correlations() -> List[ActivityCorrelation]:
        """Corrélations pouvant rendre une activité obligatoire (ALL, REQUIRES sans cible)."""
        return ActivityCorrelation.query.filter(or_(
            ActivityCorrelation.rule == 'ALL',
            (ActivityCorrelation.rule == 'REQUIRES') & (ActivityCorrelation.target_activity_id.is_(None)),
        )).all()

    @staticmethod
    def create_correlation(source_id: int, target_id: Optional[int], rule: str,
                           role: Optional[str] = None, description: str = None) -> ActivityCorrelation:
        """Crée une corrélation."""
        correlation = ActivityCorrelation(
            source_activity_id=source_id,
            target_activity_id=target_id,
            rule=rule,
            role=role,
            description=description,
        )
        db.session.add(correlation)
        db.session.commit()
        return correlation

    @staticmethod
    def delete_correlation(correlation: ActivityCorrelation) -> None:
        db.session.delete(correlation)
        db.session.commit()

    # ------------------------------------------------------------ selections

    @staticmethod
    def find_selection(participant_id: int, activity_id: int) -> Optional[ActivitySelection]:
        return ActivitySelection.query.filter_by(participant_id=participant_id, activity_id=activity_id).first()

    @staticmethod
    def find_selections(participant_id: int) -> List[ActivitySelection]:
        """Programme du participant, dans l'ordre d'inscription."""
        return ActivitySelection.query.filter_by(participant_id=participant_id)\
            .order_by(ActivitySelection.enrolled_at.asc(), ActivitySelection.id.asc())\
            .all()

    @staticmethod
    def count_selections(activity_id: int) -> int:
        """Nombre de participants ayant choisi l'activité."""
        return ActivitySelection.query.filter_by(activity_id=activity_id).count()

    @staticmethod
    def selection_counts() -> Dict[int, int]:
        """Nombre de sélections par activité."""
        rows = db.session.query(ActivitySelection.activity_id, func.count(ActivitySelection.id))\
            .group_by(ActivitySelection.activity_id).all()
        return {activity_id: count for activity_id, count in rows}

    @staticmethod
    def apply_selection_changes(participant_id: int, add_ids: Iterable[int] = (),
                                remove_ids: Iterable[int] = ()) -> List[ActivitySelection]:
        """Retire puis ajoute des sélections dans un seul commit.

        Returns:
            Les sélections créées, dans l'ordre de `add_ids`

        Raises:
            IntegrityError: si une sélection existe déjà (contrainte unique)
        """
        remove_ids = list(remove_ids)
        created = []
        try:
            if remove_ids:
                ActivitySelection.query.filter(
                    ActivitySelection.participant_id == participant_id,
                    ActivitySelection.activity_id.in_(remove_ids),
                ).delete(synchronize_session='fetch')
            for activity_id in add_ids:
                selection = ActivitySelection(participant_id=participant_id, activity_id=activity_id)
                db.session.add(selection)
                created.append(selection)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise
        return created
