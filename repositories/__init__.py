"""Repository layer - Data Access Objects (DAO) pattern.

Ce package contient les repositories qui gèrent l'accès aux données.
Responsabilité : requêtes SQLAlchemy, persistence, commit/rollback.
Ne contient PAS de logique métier : les contraintes d'unicité violées sont
remontées telles quelles (IntegrityError) au service, qui les traduit.
"""
