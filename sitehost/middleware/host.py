"""Host middleware — maps the request Host header to a hosted site.

Runs before every request and makes exactly one decision:

    platform   — API path, a platform base domain (or www. of one), a dev
                 alias such as localhost, or a platform deployment host.
                 Falls through to normal Flask routing.
    site       — an active site whose subdomain is the leftmost label, or
                 that owns a verified custom domain equal to the host.
                 Its index.html is returned directly.
    landing    — anything else, including a matched site with no
                 index.html. The platform landing page is returned.

Sets g.host and g.hosted_site.
"""

import logging

from flask import current_app, g, make_response, render_template, request

from sitehost.services import site_service, storage_service

logger = logging.getLogger(__name__)


def normalize_host(raw_host):
    """Lowercase the host and strip any port (IPv6 literals included)."""
    host = (raw_host or "").strip().lower()
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else host
    if host.count(":") == 1:
        host = host.rsplit(":", 1)[0]
    return host.rstrip(".")


def is_platform_host(host):
    """True if `host` is the platform itself rather than a hosted site."""
    config = current_app.config

    if host in config.get("DEV_HOST_ALIASES", []):
        return True
    if any(marker in host for marker in config.get("PLATFORM_HOST_MARKERS", [])):
        return True
    for base in config.get("PLATFORM_DOMAINS", []):
        if host in (base, f"www.{base}"):
            return True
    return False


def landing_page():
    return make_response(render_template("landing.html"), 200)


def serve_site(site):
    """Return the site's index.html, or the landing page if it has none."""
    body = storage_service.read_index(site)
    if body is None:
        logger.info(f"Site {site.subdomain} has no index document; serving landing page")
        return landing_page()

    site_service.record_visit(site, len(body))

    response = make_response(body, 200)
    response.headers["Content-Type"] = "text/html; charset=utf-8"
    if not (site.settings or {}).get("indexing", True):
        response.headers["X-Robots-Tag"] = "noindex"
    return response


def resolve_host():
    """Before-request hook. Returns a response only for non-platform hosts."""
    host = normalize_host(request.host)
    g.host = host
    g.hosted_site = None

    if request.path.startswith(current_app.config.get("API_PREFIX", "/api/")):
        return None
    if not host or is_platform_host(host):
        return None

    label = host.split(".", 1)[0]
    site = site_service.find_active_site_for_host(label, host)
    if site is None:
        return landing_page()

    g.hosted_site = site
    return serve_site(site)


def init_host_middleware(app):
    """Register the host resolver as a before_request hook."""
    app.before_request(resolve_host)
