from functools import wraps

from flask import current_app, g, jsonify, request
from flask_login import current_user, login_required

from services.errors import Forbidden, Unauthenticated


def get_service(name):
    return current_app.extensions["scan"][name]


def json_body():
    return request.get_json(force=True, silent=True) or {}


def load_user_from_request(req):
    """Flask-Login request loader: Authorization: Bearer <session token>."""
    scheme, _, token = req.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        g.auth_error = Unauthenticated("No token provided")
        return None

    try:
        return get_service("sessions").validate_session(token.strip())
    except Unauthenticated as exc:
        g.auth_error = exc
        return None


def unauthorized():
    error = g.get("auth_error") or Unauthenticated()
    return jsonify(error.to_dict()), error.status_code


def role_required(*roles):
    """
    login_required plus a role check. Volunteers must also be approved:
    approval is a second gate on top of a valid session.
    """
    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role not in roles:
                raise Forbidden("Insufficient permissions")
            if current_user.role == "volunteer" and not current_user.is_approved:
                raise Forbidden("Account pending admin approval", pendingApproval=True)
            return view(*args, **kwargs)
        return wrapped
    return decorator
