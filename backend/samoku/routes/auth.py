# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration
- Session management with token-based auth
- Admin accounts can only be created from the CLI
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..models.auth import ROLE_CUSTOMER, ROLE_VENDOR
from ..services import auth_service, session_service
from ..validation import ValidationError, parse_optional_str, require_fields, require_json_object

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

SELF_SERVICE_ROLES = (ROLE_CUSTOMER, ROLE_VENDOR)


@auth_bp.post("/register")
def register_route():
    """
    Register a customer or vendor account.

    Admin accounts are created with `flask users create-admin`.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "email", "password")

        role = data.get("role") or ROLE_CUSTOMER
        if role not in SELF_SERVICE_ROLES:
            raise ValidationError("role must be customer or vendor", {"valid_roles": list(SELF_SERVICE_ROLES)})

        user = auth_service.create_user(
            email=data["email"],
            password=data["password"],
            full_name=parse_optional_str(data.get("full_name"), "full_name"),
            role=role,
        )
        _, token = session_service.create_session(user.id)

        return jsonify({"user": user.to_dict(), "token": token}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "email", "password")

        user = auth_service.authenticate(data["email"], data["password"])
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user.id)

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.expires_at.isoformat(),
        }), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    session_service.revoke_session(g.session_token, reason="User logout")
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
