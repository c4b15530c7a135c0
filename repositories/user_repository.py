"""User Repository - Gestion de la persistence des comptes.

Responsabilité (SRP) : Accès aux données des utilisateurs uniquement.
"""
from typing import Optional
from models import db, User


class UserRepository:
    """Repository pour la gestion de la persistence des utilisateurs.

    Pattern: Repository Pattern
    SOLID: SRP (une seule responsabilité - accès données utilisateurs)
    """

    @staticmethod
    def find_by_id(user_id: int) -> Optional[User]:
        """Trouve un utilisateur par son ID."""
        return db.session.get(User, user_id)

    @staticmethod
    def find_by_email(email: str) -> Optional[User]:
        """Trouve un utilisateur par son email."""
        return User.query.filter_by(email=email).first()

    @staticmethod
    def create(email: str, password: str, role: str = 'PARTICIPANT') -> User:
        """Crée un nouvel utilisateur avec mot de passe hashé."""
        user = User(email=email, role=role)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
