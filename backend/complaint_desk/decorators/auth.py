from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request
from complaint_desk.errors import ForbiddenError
from complaint_desk.services.policy import current_actor


def require_actor(*roles: str):
    """Verify the JWT and expose the caller as ``g.actor``.

    With roles given, callers outside them are rejected before the view runs.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            actor = current_actor()
            if roles and actor.role not in roles:
                raise ForbiddenError('Missing role')
            g.actor = actor
            return fn(*args, **kwargs)
        return wrapper
    return outer
