"""Service layer - Business Logic.

Ce package contient les services qui gèrent la logique métier.
Responsabilité : Validation, orchestration, règles métier.
Dépend de repositories (DIP), pas d'app.py. Les refus sont levés sous forme
d'erreurs de errors.py, traduites en codes HTTP par la couche API.
"""
