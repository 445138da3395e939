from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from pos_rbac.services.policy import current_context


def require_permissions(*names: str):
    """Caller must hold every permission in ``names`` (super admins always pass)."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            ctx = current_context()
            if not all(ctx.can(n) for n in names):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_any_permission(*names: str, allow_admin: bool = True):
    """Caller must hold at least one of ``names``, or pass the admin bypass."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            ctx = current_context()
            if not ((allow_admin and ctx.is_admin) or ctx.can_any(*names)):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_login(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        current_context()
        return fn(*args, **kwargs)
    return wrapper
