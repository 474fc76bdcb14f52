"""Sites blueprint — /api/sites/*

Every route acts on the caller's own sites; another account's site id is
indistinguishable from a missing one (404).

Route Map:
  GET    /api/sites              — list my sites
  POST   /api/sites              — create a site (name, subdomain)
  GET    /api/sites/<id>         — site detail
  PUT    /api/sites/<id>         — update name / settings
  DELETE /api/sites/<id>         — delete site and its files
  GET    /api/sites/<id>/files   — list files at the site root
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from sitehost.services import file_service, site_service

sites_bp = Blueprint("sites", __name__, url_prefix="/api/sites")


@sites_bp.route("", methods=["GET"])
@login_required
def list_sites():
    sites = site_service.list_sites(current_user)
    return jsonify({"sites": [site.to_dict() for site in sites]})


@sites_bp.route("", methods=["POST"])
@login_required
def create_site():
    data = request.get_json(silent=True) or {}
    site = site_service.create_site(current_user, data.get("name"), data.get("subdomain"))
    return jsonify({"message": "Site created successfully", "site": site.to_dict()}), 201


@sites_bp.route("/<site_id>", methods=["GET"])
@login_required
def get_site(site_id):
    site = site_service.get_owned_site(current_user, site_id)
    return jsonify({"site": site.to_dict()})


@sites_bp.route("/<site_id>", methods=["PUT"])
@login_required
def update_site(site_id):
    site = site_service.get_owned_site(current_user, site_id)
    data = request.get_json(silent=True) or {}

    site = site_service.update_site(
        site,
        name=data.get("name"),
        settings=data.get("settings"),
    )
    return jsonify({"message": "Site updated successfully", "site": site.to_dict()})


@sites_bp.route("/<site_id>", methods=["DELETE"])
@login_required
def delete_site(site_id):
    site = site_service.get_owned_site(current_user, site_id)
    site_service.delete_site(site)
    return jsonify({"message": "Site deleted successfully"})


@sites_bp.route("/<site_id>/files", methods=["GET"])
@login_required
def list_files(site_id):
    site = site_service.get_owned_site(current_user, site_id)
    return jsonify({"files": file_service.list_files(site)})
