"""Domain service — platform subdomain checks and custom domain lifecycle.

Custom domain verification has two modes (DOMAIN_VERIFICATION_MODE):

- "dns":  query a DNS-over-HTTPS resolver (DNS_RESOLVER_URL, JSON API) and
          require an A record equal to PLATFORM_IP or a CNAME to
          PLATFORM_HOSTNAME.
- "stub": mark the domain verified without looking anything up. Domains
          verified this way are NOT proven to point at us; use only in
          development.

A custom domain string belongs to at most one site; the unique index on
custom_domains.domain enforces it.
"""

import logging
import re
from datetime import datetime, timezone

import requests
from flask import current_app
from sqlalchemy.exc import IntegrityError

from sitehost.errors import Conflict, NotFound, ValidationError, field_error
from sitehost.extensions import db
from sitehost.models.site import CustomDomain
from sitehost.services import site_service

logger = logging.getLogger(__name__)

FQDN_RE = re.compile(
    r"^(?=.{3,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)


def normalize_domain(domain):
    return (domain or "").strip().lower().rstrip(".")


# ──────────────────────────────────────────────
# Platform domains
# ──────────────────────────────────────────────

def supported_domains():
    return [
        {"domain": d, "available": True}
        for d in current_app.config.get("PLATFORM_DOMAINS", [])
    ]


def is_supported_domain(domain):
    return normalize_domain(domain) in current_app.config.get("PLATFORM_DOMAINS", [])


def check_subdomain(domain, subdomain):
    """Availability of `subdomain` under platform domain `domain`.

    A name is unavailable while any site record holds it, active or not,
    or when it is not a valid subdomain at all.
    """
    domain = normalize_domain(domain)
    subdomain, error = site_service.validate_subdomain(subdomain)
    available = error is None and site_service.is_subdomain_available(subdomain)
    return {
        "available": available,
        "subdomain": subdomain,
        "domain": domain,
        "fullDomain": f"{subdomain}.{domain}",
    }


def dns_config(domain, subdomain):
    """DNS records a user should create to point `subdomain.domain` at us."""
    domain = normalize_domain(domain)
    full_domain = f"{site_service.normalize_subdomain(subdomain)}.{domain}"
    return {
        "domain": full_domain,
        "records": {
            "A": {"host": "@", "value": current_app.config["PLATFORM_IP"], "ttl": 300},
            "CNAME": {
                "host": "www",
                "value": current_app.config["PLATFORM_HOSTNAME"],
                "ttl": 300,
            },
            "MX": {
                "host": "@",
                "value": f"mail.{full_domain}",
                "priority": 10,
                "ttl": 300,
            },
        },
        "nameservers": [f"ns1.{domain}", f"ns2.{domain}"],
    }


# ──────────────────────────────────────────────
# Custom domains
# ──────────────────────────────────────────────

def _find(site, domain):
    for custom_domain in site.custom_domains:
        if custom_domain.domain == domain:
            return custom_domain
    return None


def add_custom_domain(site, domain):
    """Attach `domain` to `site`, unverified.

    Returns:
        tuple: (CustomDomain, dns_instructions dict)

    Raises:
        ValidationError: not a hostname, or one of the platform's own.
        Conflict: already on this site, or claimed by another site.
    """
    raw = domain
    domain = normalize_domain(domain)
    if not FQDN_RE.match(domain):
        raise ValidationError([field_error("domain", "Invalid domain name", raw)])

    for platform_domain in current_app.config.get("PLATFORM_DOMAINS", []):
        if domain == platform_domain or domain.endswith(f".{platform_domain}"):
            raise ValidationError(
                [field_error("domain", "Platform domains cannot be added as custom domains", raw)]
            )

    if _find(site, domain):
        raise Conflict(public_message="Domain already added to this site")

    if CustomDomain.query.filter_by(domain=domain).first():
        raise Conflict(public_message="Domain already in use by another site")

    custom_domain = CustomDomain(
        site_id=site.id,
        domain=domain,
        verified=False,
        ssl_enabled=False,
        dns_records={"A": [current_app.config["PLATFORM_IP"]], "CNAME": [], "TXT": []},
    )
    db.session.add(custom_domain)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict(public_message="Domain already in use by another site") from e

    logger.info(f"Custom domain added: {domain} -> site {site.id}")

    instructions = {
        "A Record": f"Point {domain} to {current_app.config['PLATFORM_IP']}",
        "CNAME": f"Alternatively, set CNAME to {current_app.config['PLATFORM_HOSTNAME']}",
    }
    return custom_domain, instructions


def remove_custom_domain(site, domain):
    domain = normalize_domain(domain)
    custom_domain = _find(site, domain)
    if custom_domain is None:
        raise NotFound(public_message="Domain not found for this site")

    site.custom_domains.remove(custom_domain)
    db.session.commit()
    logger.info(f"Custom domain removed: {domain} from site {site.id}")


def verify_custom_domain(site, domain):
    """Try to verify a custom domain.

    Returns:
        tuple: (CustomDomain, error) — error is None on success.

    Raises:
        NotFound: the domain is not attached to this site.
    """
    domain = normalize_domain(domain)
    custom_domain = _find(site, domain)
    if custom_domain is None:
        raise NotFound(public_message="Domain not found for this site")

    mode = current_app.config.get("DOMAIN_VERIFICATION_MODE", "dns")
    if mode == "stub":
        logger.warning(f"Custom domain {domain} marked verified without a DNS check (stub mode)")
    else:
        points_here = _dns_points_here(domain)
        if points_here is None:
            return custom_domain, (
                "We couldn't check DNS for this domain right now. Please try again in a moment."
            )
        if not points_here:
            return custom_domain, "DNS records for this domain do not point to the platform yet."

    custom_domain.verified = True
    custom_domain.ssl_enabled = True
    custom_domain.verified_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info(f"Custom domain verified: {domain} (site {site.id}, mode={mode})")
    return custom_domain, None


# ──────────────────────────────────────────────
# DNS-over-HTTPS
# ──────────────────────────────────────────────

def _dns_answers(name, record_type):
    """Query the DoH resolver. Returns a list of answer strings, or None on failure."""
    try:
        resp = requests.get(
            current_app.config["DNS_RESOLVER_URL"],
            params={"name": name, "type": record_type},
            headers={"Accept": "application/dns-json"},
            timeout=8,
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.exceptions.Timeout:
        logger.warning(f"DNS {record_type} lookup timed out for {name}")
        return None
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning(f"DNS {record_type} lookup failed for {name}: {e}")
        return None

    return [
        str(answer.get("data", "")).rstrip(".").lower()
        for answer in data.get("Answer", []) or []
    ]


def _dns_points_here(domain):
    """True/False if DNS does/doesn't point at the platform; None if unknown."""
    a_records = _dns_answers(domain, "A")
    cname_records = _dns_answers(domain, "CNAME")

    if a_records is None and cname_records is None:
        return None

    platform_ip = current_app.config["PLATFORM_IP"]
    platform_host = current_app.config["PLATFORM_HOSTNAME"].lower().rstrip(".")
    return platform_ip in (a_records or []) or platform_host in (cname_records or [])
