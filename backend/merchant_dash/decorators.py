# Overview: Request decorators and error-to-response mapping for the dashboard API.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import (
    AuthenticationRequired,
    ConflictError,
    NotFoundError,
    TransientNetworkError,
    ValidationError,
    user_message,
)


EXTENSION_KEY = "merchant_dash"


def get_runtime():
    return current_app.extensions[EXTENSION_KEY]


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def error_status(exc: BaseException | None) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, AuthenticationRequired):
        return 401
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, TransientNetworkError):
        return 503
    return 500


def error_response(exc: BaseException):
    return jsonify({"error": user_message(exc)}), error_status(exc)


def require_auth(f):
    """
    Require a signed-in user.

    Sets g.current_user from the bearer token. Returns 401 when the token
    is missing or does not belong to the current session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        runtime = get_runtime()
        if runtime.auth is None:
            return jsonify({"error": "Authentication required"}), 401
        try:
            g.current_user = runtime.auth.authenticate(_bearer_token())
        except AuthenticationRequired as e:
            return jsonify({"error": str(e)}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_session(f):
    """
    Require a signed-in merchant and an open dashboard session.

    Sets g.current_user, g.merchant and g.dashboard (the DashboardSession).
    The session is opened on first use and reused afterwards.
    """
    @wraps(f)
    @require_auth
    def decorated_function(*args, **kwargs):
        runtime = get_runtime()
        try:
            g.merchant = runtime.call(runtime.merchant_for(g.current_user))
            g.dashboard = runtime.call(runtime.session_for(g.merchant["merchant_id"]))
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 403
        except (TransientNetworkError, ConflictError) as e:
            return error_response(e)
        return f(*args, **kwargs)

    return decorated_function
