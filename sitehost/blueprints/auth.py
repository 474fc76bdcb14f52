"""Auth blueprint — /api/auth/*

Account registration and login for API clients. Both return a bearer
token; every other blueprint authenticates with `Authorization: Bearer`.

Route Map:
  POST /api/auth/register  — create account, issue token
  POST /api/auth/login     — check credentials, issue token
  GET  /api/auth/me        — current account
  POST /api/auth/tokens    — issue an additional named token
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from sitehost.extensions import limiter
from sitehost.services import auth_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

logger = logging.getLogger(__name__)


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    """Self-service signup. Accounts always start on the free plan; only
    admins change plans."""
    data = request.get_json(silent=True) or {}

    user = auth_service.register_user(
        data.get("username"),
        data.get("email"),
        data.get("password"),
    )
    api_token = auth_service.issue_token(user, "default")

    return jsonify({
        "message": "User registered successfully",
        "token": api_token.token,
        "user": user.to_dict(),
    }), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = request.get_json(silent=True) or {}

    user = auth_service.check_credentials(data.get("email"), data.get("password"))
    if user is None:
        logger.info(f"Failed login for {data.get('email')!r}")
        return jsonify({"error": "Invalid credentials"}), 401

    api_token = auth_service.issue_token(user, "login")
    return jsonify({
        "message": "Login successful",
        "token": api_token.token,
        "user": user.to_dict(),
    })


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})


@auth_bp.route("/tokens", methods=["POST"])
@login_required
def create_token():
    """Issue a named API key for scripts and CI deploys."""
    data = request.get_json(silent=True) or {}
    api_token = auth_service.issue_token(current_user, data.get("name") or "api")
    return jsonify({
        "name": api_token.name,
        "token": api_token.token,
        "createdAt": api_token.created_at.isoformat() if api_token.created_at else None,
    }), 201
