"""Site service — site records, the subdomain registry, and storage stats.

Subdomain uniqueness is enforced by the unique index on sites.subdomain;
the pre-check in create_site() only gives a friendlier early answer. Two
concurrent creates for one name both reach the INSERT and exactly one
flush succeeds; the loser's IntegrityError becomes Conflict.

Stats (storage_bytes, visits, bandwidth) change only through single
UPDATE statements that compute the new value in SQL, so concurrent
requests never overwrite each other's increments.

Mutating functions commit.
"""

import logging
import re
from datetime import datetime, timezone

import bleach
from flask import current_app, render_template
from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from werkzeug.security import generate_password_hash

from sitehost.errors import (
    Conflict,
    NotFound,
    QuotaExceeded,
    ValidationError,
    field_error,
)
from sitehost.extensions import db
from sitehost.models.site import CustomDomain, Site, default_settings
from sitehost.models.user import User
from sitehost.services import quota_service, storage_service

logger = logging.getLogger(__name__)

SUBDOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,18}[a-z0-9]$")
NAME_MAX_LENGTH = 100

SETTINGS_KEYS = {"custom404", "customError", "passwordProtection", "analytics", "indexing"}


# ──────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────

def normalize_subdomain(subdomain):
    return (subdomain or "").strip().lower()


def clean_name(name):
    """Strip HTML and surrounding whitespace from a display name."""
    if name is None:
        return ""
    return bleach.clean(str(name), tags=[], strip=True).strip()


def validate_name(name):
    cleaned = clean_name(name)
    if not 1 <= len(cleaned) <= NAME_MAX_LENGTH:
        return cleaned, field_error(
            "name", f"Name must be 1-{NAME_MAX_LENGTH} characters", name
        )
    return cleaned, None


def validate_subdomain(subdomain):
    normalized = normalize_subdomain(subdomain)
    if not 3 <= len(normalized) <= 20 or not SUBDOMAIN_RE.match(normalized):
        return normalized, field_error(
            "subdomain",
            "Subdomain must be 3-20 characters of a-z, 0-9 and '-', "
            "and may not start or end with '-'",
            subdomain,
        )
    return normalized, None


# ──────────────────────────────────────────────
# Subdomain registry
# ──────────────────────────────────────────────

def is_subdomain_available(subdomain):
    """True if no site record (active or not) claims `subdomain`."""
    subdomain = normalize_subdomain(subdomain)
    return not db.session.query(
        Site.query.filter_by(subdomain=subdomain).exists()
    ).scalar()


def reserve_subdomain(site):
    """Insert `site`, claiming its subdomain at the database.

    Raises:
        Conflict: another record already holds the name. The session has
            been rolled back, so nothing from this attempt survives.
    """
    db.session.add(site)
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        logger.info(f"Subdomain reservation lost for {site.subdomain!r}: {e.orig}")
        raise Conflict(
            f"subdomain {site.subdomain!r} taken",
            public_message="Subdomain already taken",
        ) from e


# ──────────────────────────────────────────────
# Lookup
# ──────────────────────────────────────────────

def get_owned_site(account, site_id):
    """Load a site owned by `account`, or raise NotFound."""
    site = Site.query.filter_by(id=site_id, owner_id=account.id).first()
    if site is None:
        raise NotFound(f"site {site_id} for {account.id}", public_message="Site not found")
    return site


def list_sites(account):
    return (
        Site.query
        .filter_by(owner_id=account.id)
        .order_by(Site.created_at.desc())
        .all()
    )


def find_active_site_for_host(label, host):
    """Find the active site a request host points at.

    A site matches when its subdomain equals `label` (the leftmost label of
    the host) or when it owns a verified custom domain equal to `host`.
    A custom-domain match wins over a subdomain match.
    """
    domain_match = and_(CustomDomain.domain == host, CustomDomain.verified.is_(True))
    return (
        Site.query
        .outerjoin(CustomDomain, CustomDomain.site_id == Site.id)
        .filter(Site.active.is_(True))
        .filter(or_(Site.subdomain == label, domain_match))
        .order_by(case((domain_match, 0), else_=1))
        .first()
    )


# ──────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────

def create_site(account, name, subdomain):
    """Create a site, its storage root and a default index.html.

    Order: validate → site-count quota → reserve subdomain → write root.
    If anything fails after the reservation, the session is rolled back
    (freeing the name) and any partially created root is removed.

    Raises:
        ValidationError, QuotaExceeded, Conflict, StorageBackendError
    """
    name, name_error = validate_name(name)
    subdomain, subdomain_error = validate_subdomain(subdomain)
    errors = [e for e in (name_error, subdomain_error) if e]
    if errors:
        raise ValidationError(errors)

    site_count = Site.query.filter_by(owner_id=account.id).count()
    quota_service.check_site_quota(account, site_count)

    if not is_subdomain_available(subdomain):
        raise Conflict(
            f"subdomain {subdomain!r} taken",
            public_message="Subdomain already taken",
        )

    site = Site(
        owner_id=account.id,
        name=name,
        subdomain=subdomain,
        settings=default_settings(),
        active=True,
        build_status="success",
        visits=0,
        bandwidth=0,
        storage_bytes=0,
    )
    reserve_subdomain(site)
    root = storage_service.root_for(site)

    try:
        storage_service.ensure_root(site)
        index_html = render_template(
            "sites/default_index.html",
            name=name,
            full_domain=f"{subdomain}.{primary_domain()}",
        )
        size = storage_service.write(
            site, current_app.config["DEFAULT_DOCUMENT"], index_html
        )
        site.storage_bytes = size
        site.last_deployed_at = datetime.now(timezone.utc)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Site creation failed after reserving {subdomain!r}; rolled back")
        storage_service.remove_root_path(root)
        raise

    logger.info(f"Site created: {subdomain} ({site.id}) for user {account.id}")
    return site


def delete_site(site):
    """Delete the site's files, then its record.

    Files go first so a failure leaves the record in place for a retry;
    an already-missing root counts as deleted.
    """
    site_id, subdomain = site.id, site.subdomain
    storage_service.remove_root(site)
    db.session.delete(site)
    db.session.commit()
    logger.info(f"Site deleted: {subdomain} ({site_id})")


def cascade_delete_for_account(account):
    """Delete every site `account` owns. Returns the number removed."""
    sites = Site.query.filter_by(owner_id=account.id).all()
    for site in sites:
        delete_site(site)
    return len(sites)


def update_site(site, name=None, settings=None):
    """Apply a name change and/or a settings patch."""
    if name is not None:
        cleaned, error = validate_name(name)
        if error:
            raise ValidationError([error])
        site.name = cleaned
    if settings is not None:
        _merge_settings(site, settings)
    db.session.commit()
    return site


def update_settings(site, patch):
    """Merge `patch` into site.settings. Subdomain and stats are untouched."""
    _merge_settings(site, patch)
    db.session.commit()
    return site


def _merge_settings(site, patch):
    if not isinstance(patch, dict):
        raise ValidationError([field_error("settings", "Settings must be an object")])

    unknown = set(patch) - SETTINGS_KEYS
    if unknown:
        raise ValidationError([
            field_error("settings", f"Unknown setting '{key}'") for key in sorted(unknown)
        ])

    merged = dict(default_settings())
    merged.update(site.settings or {})

    for key, value in patch.items():
        if key == "passwordProtection":
            if not isinstance(value, dict):
                raise ValidationError(
                    [field_error("settings.passwordProtection", "Must be an object")]
                )
            protection = dict(merged.get("passwordProtection") or {})
            if "enabled" in value:
                protection["enabled"] = bool(value["enabled"])
            if value.get("password"):
                protection["passwordHash"] = generate_password_hash(value["password"])
            merged["passwordProtection"] = protection
        elif key in ("analytics", "indexing"):
            merged[key] = bool(value)
        else:
            merged[key] = value

    # Reassign so SQLAlchemy sees the JSON column change.
    site.settings = merged


def set_active(site, active):
    site.active = bool(active)
    db.session.commit()
    logger.info(f"Site {site.subdomain} active={site.active}")
    return site


# ──────────────────────────────────────────────
# Stats
# ──────────────────────────────────────────────

def owner_storage_bytes(owner_id):
    """Current total storage across all of an owner's sites, read from the DB."""
    return db.session.execute(
        select(func.coalesce(func.sum(Site.storage_bytes), 0))
        .where(Site.owner_id == owner_id)
    ).scalar_one()


def record_upload(site, total_bytes, enforce_quota=True):
    """Add `total_bytes` to the site's storage and stamp last_deployed_at.

    Plan limits and current usage are both read fresh from the database,
    and the increment itself only applies while the owner's total stays
    within the limit, so two concurrent uploads cannot both squeeze in.

    Raises:
        QuotaExceeded: the owner's total would go over max_storage_bytes.
            Nothing is recorded.
    """
    if total_bytes <= 0:
        return site

    stmt = (
        update(Site)
        .where(Site.id == site.id)
        .values(
            storage_bytes=Site.storage_bytes + total_bytes,
            last_deployed_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )

    if enforce_quota:
        owner = db.session.execute(
            select(User.id, User.role, User.plan).where(User.id == site.owner_id)
        ).one()
        quota_service.check_storage_quota(
            owner, owner_storage_bytes(site.owner_id), total_bytes
        )

        max_bytes = quota_service.limits(owner).max_storage_bytes
        conditional = max_bytes != float("inf")
        if conditional:
            sibling = aliased(Site)
            owner_total = (
                select(func.coalesce(func.sum(sibling.storage_bytes), 0))
                .where(sibling.owner_id == site.owner_id)
                .scalar_subquery()
            )
            stmt = stmt.where(owner_total + total_bytes <= max_bytes)
    else:
        conditional = False

    result = db.session.execute(stmt)
    if conditional and result.rowcount == 0:
        db.session.rollback()
        raise QuotaExceeded(
            f"site {site.id} storage +{total_bytes} rejected by conditional update",
            public_message="Storage limit reached for your plan",
        )
    db.session.commit()
    db.session.refresh(site)
    return site


def record_deletion(site, freed_bytes):
    """Subtract `freed_bytes` from the site's storage, never going below zero."""
    if freed_bytes <= 0:
        return site

    db.session.execute(
        update(Site)
        .where(Site.id == site.id)
        .values(
            storage_bytes=case(
                (Site.storage_bytes > freed_bytes, Site.storage_bytes - freed_bytes),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(site)
    return site


def record_visit(site, bytes_served):
    """Count one visit and its bandwidth, if the site has analytics on."""
    if not (site.settings or {}).get("analytics", True):
        return

    db.session.execute(
        update(Site)
        .where(Site.id == site.id)
        .values(
            visits=Site.visits + 1,
            bandwidth=Site.bandwidth + bytes_served,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def primary_domain():
    domains = current_app.config.get("PLATFORM_DOMAINS") or ["localhost"]
    return domains[0]
