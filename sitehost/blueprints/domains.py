"""Domains blueprint — /api/domains/*

Route Map:
  GET    /api/domains/supported                      — platform base domains
  GET    /api/domains/check/<domain>/<subdomain>     — subdomain availability
  POST   /api/domains/custom/<site_id>               — attach custom domain {domain}
  DELETE /api/domains/custom/<site_id>/<domain>      — detach custom domain
  POST   /api/domains/verify/<site_id>/<domain>      — verify DNS for custom domain
  GET    /api/domains/dns/<domain>/<subdomain>       — DNS records to configure
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from sitehost.services import domain_service, site_service

domains_bp = Blueprint("domains", __name__, url_prefix="/api/domains")


@domains_bp.route("/supported", methods=["GET"])
@login_required
def supported():
    return jsonify({"domains": domain_service.supported_domains()})


@domains_bp.route("/check/<domain>/<subdomain>", methods=["GET"])
@login_required
def check(domain, subdomain):
    if not domain_service.is_supported_domain(domain):
        return jsonify({"error": "Domain not supported"}), 400
    return jsonify(domain_service.check_subdomain(domain, subdomain))


@domains_bp.route("/custom/<site_id>", methods=["POST"])
@login_required
def add_custom(site_id):
    site = site_service.get_owned_site(current_user, site_id)
    data = request.get_json(silent=True) or {}

    custom_domain, instructions = domain_service.add_custom_domain(site, data.get("domain"))
    return jsonify({
        "message": "Custom domain added successfully",
        "domain": custom_domain.to_dict(),
        "dnsInstructions": instructions,
    })


@domains_bp.route("/custom/<site_id>/<domain>", methods=["DELETE"])
@login_required
def remove_custom(site_id, domain):
    site = site_service.get_owned_site(current_user, site_id)
    domain_service.remove_custom_domain(site, domain)
    return jsonify({"message": "Custom domain removed successfully"})


@domains_bp.route("/verify/<site_id>/<domain>", methods=["POST"])
@login_required
def verify(site_id, domain):
    site = site_service.get_owned_site(current_user, site_id)

    custom_domain, error = domain_service.verify_custom_domain(site, domain)
    if error:
        return jsonify({"error": error, "domain": custom_domain.to_dict()}), 400
    return jsonify({
        "message": "Domain verified successfully",
        "domain": custom_domain.to_dict(),
    })


@domains_bp.route("/dns/<domain>/<subdomain>", methods=["GET"])
@login_required
def dns(domain, subdomain):
    if not domain_service.is_supported_domain(domain):
        return jsonify({"error": "Domain not supported"}), 400
    return jsonify({"dnsConfig": domain_service.dns_config(domain, subdomain)})
