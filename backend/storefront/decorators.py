# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, g

from .services.actor import make_actor


def with_actor(f):
    """
    Resolve the acting identity for the request.

    The authentication gateway in front of this service forwards the caller as
    X-Actor-Id / X-Actor-Kind. Sets g.actor; falls back to the system actor
    when no identity is supplied.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.actor = make_actor(
            request.headers.get("X-Actor-Id"),
            request.headers.get("X-Actor-Kind"),
        )
        return f(*args, **kwargs)

    return decorated_function
