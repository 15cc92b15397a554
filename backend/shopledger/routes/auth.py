# Overview: Login and logout; issues and revokes bearer tokens.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import ok, server_error
from ..services import auth_service, session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token goes in the Authorization header of every other request:
    Authorization: Bearer <token>
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not username or not password:
        return {"success": False, "error": "username and password required"}, 400

    try:
        user = auth_service.authenticate(username, password)
        if not user:
            return {"success": False, "error": "Invalid credentials"}, 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except Exception:
        return server_error("Login")

    return ok(
        {"user": user.to_dict(), "token": token, "expires_at": session.to_dict()["expires_at"]},
        message="Logged in",
    )


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok(g.current_user.to_dict())
