# Overview: Flask API routes for dashboard registration, sign-in and sign-out.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, get_runtime, require_auth
from ..errors import AuthenticationRequired, ConflictError, RemoteError, TransientNetworkError, ValidationError
from ..services import merchant_service
from ..validation import require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Sign in with email and password.

    Signing in replaces any previous session; dashboard sessions opened
    for the previous user are closed.
    """
    runtime = get_runtime()
    if runtime.auth is None:
        return jsonify({"error": "Authentication is not configured"}), 503

    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    try:
        token = runtime.auth.sign_in(email, password)
    except AuthenticationRequired as e:
        return jsonify({"error": str(e)}), 401

    return jsonify({"token": token, "user": runtime.auth.current_user().to_dict()}), 200


@auth_bp.post("/register")
def register_route():
    """
    Create an account and the merchant it operates.

    Body: email, password, merchant_name and optionally merchant_phone and
    merchant_location. The account is removed again when the merchant
    cannot be created. Sign in afterwards with /login.
    """
    runtime = get_runtime()
    if runtime.auth is None:
        return jsonify({"error": "Authentication is not configured"}), 503

    data = request.get_json(silent=True) or {}
    try:
        require_fields(data, ("email", "password", "merchant_name"))
        user = runtime.auth.register(data["email"], data["password"])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    try:
        merchant = runtime.call(merchant_service.register_merchant(runtime.remote, {
            "user_id": user.id,
            "merchant_name": data["merchant_name"],
            "merchant_email": user.email,
            "merchant_phone": data.get("merchant_phone"),
            "merchant_location": data.get("merchant_location"),
        }))
    except (ValidationError, ConflictError, TransientNetworkError, RemoteError) as e:
        runtime.auth.remove(user.id)
        return error_response(e)

    return jsonify({"user": user.to_dict(), "merchant": merchant}), 201


@auth_bp.post("/logout")
@require_auth
def logout_route():
    get_runtime().auth.sign_out()
    return jsonify({"message": "Signed out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
