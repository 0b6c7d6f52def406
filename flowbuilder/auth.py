from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, session

from flowbuilder.application.auth_service import AuthService
from flowbuilder.context import SESSION_USER_KEY, current_context, load_request_context
from flowbuilder.db import get_db
from flowbuilder.domain.inputs import parse_login_input, parse_register_input
from flowbuilder.errors import AuthRequiredError


auth_bp = Blueprint("auth", __name__)

PUBLIC_PATHS = {"/api/auth/login", "/api/auth/register", "/health"}

_AUTH_SERVICE = AuthService()


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _load_context():
        g.request_context = None
        if session.get(SESSION_USER_KEY):
            g.request_context = load_request_context(get_db())

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None
        path = request.path or "/"
        if path in PUBLIC_PATHS or not path.startswith("/api/"):
            return None
        if g.get("request_context") is None:
            raise AuthRequiredError()
        return None


def _sign_in(user: dict) -> None:
    session.clear()
    session[SESSION_USER_KEY] = user["id"]


@auth_bp.route("/api/auth/login", methods=["POST"])
def login():
    db = get_db()
    auth_input = parse_login_input(request.get_json(silent=True) or {})
    user = _AUTH_SERVICE.login(db, auth_input)
    _sign_in(user)
    current_app.logger.info("auth_login", extra={"user_id": user["id"], "company_id": user["company_id"]})
    return jsonify({"user": user})


@auth_bp.route("/api/auth/register", methods=["POST"])
def register():
    db = get_db()
    auth_input = parse_register_input(request.get_json(silent=True) or {})
    user = _AUTH_SERVICE.register(db, auth_input)
    _sign_in(user)
    return jsonify({"user": user}), 201


@auth_bp.route("/api/auth/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"logged_out": True})


@auth_bp.route("/api/auth/me", methods=["GET"])
def me():
    ctx = current_context()
    return jsonify({"user": _AUTH_SERVICE.current_user(get_db(), ctx.user_id)})
