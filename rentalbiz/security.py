# rentalbiz/security.py
from functools import wraps

from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from .errors import ForbiddenError, error_response
from .extensions import jwt


def roles_required(*allowed):
    """Usage: @roles_required("landlord")"""
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            claims = get_jwt()  # access token claims
            if claims.get("role") not in allowed:
                raise ForbiddenError()
            return fn(*args, **kwargs)
        return wrapper
    return deco


def current_user_id():
    return get_jwt_identity()


@jwt.unauthorized_loader
def _missing_token(reason):
    return error_response(reason, 401, "NO_TOKEN")


@jwt.invalid_token_loader
def _invalid_token(reason):
    return error_response(reason, 401, "INVALID_TOKEN")


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return error_response("Token has expired", 401, "TOKEN_EXPIRED")
