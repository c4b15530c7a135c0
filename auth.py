"""Authentication utilities for JOBS 2K26."""
from functools import wraps
from flask import jsonify
from flask_jwt_extended import create_access_token, get_jwt_identity, verify_jwt_in_request
from datetime import timedelta
from repositories.user_repository import UserRepository


def login_user(email, password, expires_hours=24):
    """Authenticate a user and generate an access token.

    Returns:
        tuple: (tokens_dict, error_message)
    """
    user = UserRepository.find_by_email(email)

    if not user or not user.check_password(password):
        return None, "Invalid email or password"

    # Identity must be a string; the role travels as an extra claim
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={'role': user.role},
        expires_delta=timedelta(hours=expires_hours)
    )

    return {
        'access_token': access_token,
        'user': user.to_dict()
    }, None


def get_current_user():
    """Get the current authenticated user from JWT token.

    Returns:
        User object or None
    """
    user_id = get_jwt_identity()
    if not user_id:
        return None
    try:
        return UserRepository.find_by_id(int(user_id))
    except (TypeError, ValueError):
        return None


def roles_required(*roles):
    """Require a valid token whose user has one of `roles`.

    The role is read from the database rather than the token claim, so a role
    change takes effect immediately.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user = get_current_user()
            if not user:
                return jsonify({'error': 'User not found'}), 404
            if roles and user.role not in roles:
                return jsonify({'error': 'Access denied for role ' + user.role}), 403
            return view_func(*args, **kwargs)
        return wrapper
    return decorator
