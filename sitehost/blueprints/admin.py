"""Admin blueprint — /api/admin/*

All routes require role == "admin" (see decorators.admin_required).
Admins are ordinary accounts carrying the admin role; there is no
separate admin login.

Route Map:
  GET    /api/admin/dashboard              — platform counts + recent activity
  GET    /api/admin/users                  — paginated user list (?page, limit, search)
  POST   /api/admin/users                  — create user
  GET    /api/admin/users/<id>             — user detail + site stats
  PUT    /api/admin/users/<id>             — update user (role is not editable)
  DELETE /api/admin/users/<id>             — delete user and all their sites
  GET    /api/admin/sites                  — paginated site list (?page, limit, search)
  POST   /api/admin/sites/<id>/status      — activate / deactivate {active}
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from sitehost.decorators import admin_required
from sitehost.services import admin_service

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════
#  DASHBOARD
# ══════════════════════════════════════════════

@admin_bp.route("/dashboard", methods=["GET"])
@admin_required
def dashboard():
    return jsonify(admin_service.dashboard_stats())


# ══════════════════════════════════════════════
#  USERS
# ══════════════════════════════════════════════

@admin_bp.route("/users", methods=["GET"])
@admin_required
def users():
    return jsonify(admin_service.list_users(
        page=request.args.get("page", 1),
        limit=request.args.get("limit", admin_service.DEFAULT_PAGE_SIZE),
        search=request.args.get("search", "").strip(),
    ))


@admin_bp.route("/users", methods=["POST"])
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}
    user = admin_service.create_user(
        data.get("username"),
        data.get("email"),
        data.get("password"),
        plan=data.get("plan"),
    )
    logger.info(f"Admin {current_user.id} created user {user.id}")
    return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201


@admin_bp.route("/users/<user_id>", methods=["GET"])
@admin_required
def user_detail(user_id):
    return jsonify(admin_service.user_detail(user_id))


@admin_bp.route("/users/<user_id>", methods=["PUT"])
@admin_required
def update_user(user_id):
    user = admin_service.update_user(user_id, request.get_json(silent=True) or {})
    return jsonify({"message": "User updated successfully", "user": user.to_dict()})


@admin_bp.route("/users/<user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    if user_id == current_user.id:
        return jsonify({"error": "You cannot delete your own account"}), 400

    deleted_sites = admin_service.delete_user(user_id)
    return jsonify({
        "message": "User and all associated sites deleted successfully",
        "deletedSitesCount": deleted_sites,
    })


# ══════════════════════════════════════════════
#  SITES
# ══════════════════════════════════════════════

@admin_bp.route("/sites", methods=["GET"])
@admin_required
def sites():
    return jsonify(admin_service.list_all_sites(
        page=request.args.get("page", 1),
        limit=request.args.get("limit", admin_service.DEFAULT_PAGE_SIZE),
        search=request.args.get("search", "").strip(),
    ))


@admin_bp.route("/sites/<site_id>/status", methods=["POST"])
@admin_required
def site_status(site_id):
    data = request.get_json(silent=True) or {}
    if "active" not in data:
        return jsonify({"error": "active is required"}), 400

    site = admin_service.set_site_active(site_id, data["active"])
    return jsonify({"message": "Site status updated", "site": site.to_dict()})
