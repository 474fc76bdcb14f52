"""Admin service — dashboard rollups and account management.

Rollups are read-only aggregate queries over users and sites. Account
deletion cascades through site_service so every owned site's files and
record go before the account row.
"""

import logging

from sqlalchemy import func, or_
from werkzeug.security import generate_password_hash

from sitehost.errors import Conflict, NotFound, ValidationError
from sitehost.extensions import db
from sitehost.models.site import Site
from sitehost.models.user import User
from sitehost.services import auth_service, site_service

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _page_args(page, limit):
    try:
        page = max(int(page or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    return page, limit


def _pagination(page, limit, total):
    return {
        "current": page,
        "total": (total + limit - 1) // limit,
        "count": total,
    }


# ══════════════════════════════════════════════
#  ROLLUPS
# ══════════════════════════════════════════════

def dashboard_stats():
    """Platform-wide counts for the admin dashboard."""
    total_users = User.query.count()
    total_sites = Site.query.count()
    active_sites = Site.query.filter_by(active=True).count()
    total_storage = db.session.query(
        func.coalesce(func.sum(Site.storage_bytes), 0)
    ).scalar()

    plan_rows = (
        db.session.query(User.plan, func.count(User.id))
        .group_by(User.plan)
        .order_by(User.plan)
        .all()
    )

    recent_users = User.query.order_by(User.created_at.desc()).limit(5).all()
    recent_sites = Site.query.order_by(Site.created_at.desc()).limit(5).all()

    return {
        "stats": {
            "totalUsers": total_users,
            "totalSites": total_sites,
            "activeSites": active_sites,
            "totalStorage": int(total_storage or 0),
            "planStats": [{"_id": plan, "count": count} for plan, count in plan_rows],
        },
        "recentUsers": [
            {
                "id": u.id,
                "username": u.username,
                "email": u.email,
                "createdAt": u.created_at.isoformat() if u.created_at else None,
            }
            for u in recent_users
        ],
        "recentSites": [
            {
                "id": s.id,
                "name": s.name,
                "subdomain": s.subdomain,
                "owner": {"id": s.owner_id, "username": s.owner.username},
                "createdAt": s.created_at.isoformat() if s.created_at else None,
            }
            for s in recent_sites
        ],
    }


def user_rollups(user_ids):
    """Map user id → (site_count, storage_bytes) in one grouped query."""
    if not user_ids:
        return {}
    rows = (
        db.session.query(
            Site.owner_id,
            func.count(Site.id),
            func.coalesce(func.sum(Site.storage_bytes), 0),
        )
        .filter(Site.owner_id.in_(user_ids))
        .group_by(Site.owner_id)
        .all()
    )
    return {owner_id: (count, int(storage)) for owner_id, count, storage in rows}


def list_users(page=1, limit=DEFAULT_PAGE_SIZE, search=""):
    page, limit = _page_args(page, limit)
    query = User.query.filter(User.role == "user")
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.username.ilike(pattern), User.email.ilike(pattern)))

    total = query.count()
    users = (
        query.order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    rollups = user_rollups([u.id for u in users])

    results = []
    for user in users:
        site_count, storage = rollups.get(user.id, (0, 0))
        data = user.to_dict()
        data["siteCount"] = site_count
        data["storageUsed"] = storage
        results.append(data)

    return {"users": results, "pagination": _pagination(page, limit, total)}


def list_all_sites(page=1, limit=DEFAULT_PAGE_SIZE, search=""):
    page, limit = _page_args(page, limit)
    query = Site.query
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Site.name.ilike(pattern), Site.subdomain.ilike(pattern)))

    total = query.count()
    sites = (
        query.order_by(Site.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    results = []
    for site in sites:
        data = site.to_dict()
        data["owner"] = {
            "id": site.owner.id,
            "username": site.owner.username,
            "email": site.owner.email,
        }
        results.append(data)

    return {"sites": results, "pagination": _pagination(page, limit, total)}


def user_detail(user_id):
    user = get_user(user_id)
    sites = (
        Site.query.filter_by(owner_id=user.id)
        .order_by(Site.created_at.desc())
        .all()
    )
    return {
        "user": user.to_dict(),
        "statistics": {
            "totalSites": len(sites),
            "totalStorage": sum(s.storage_bytes or 0 for s in sites),
            "totalVisits": sum(s.visits or 0 for s in sites),
            "activeSites": sum(1 for s in sites if s.active),
        },
        "sites": [s.to_dict() for s in sites],
    }


# ══════════════════════════════════════════════
#  ACCOUNT MANAGEMENT
# ══════════════════════════════════════════════

def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"user {user_id}", public_message="User not found")
    return user


def create_user(username, email, password, plan="free"):
    return auth_service.register_user(username, email, password, plan=plan or "free")


def update_user(user_id, updates):
    """Apply admin edits to an account. Role is never changed here."""
    user = get_user(user_id)
    updates = {k: v for k, v in (updates or {}).items() if k != "role"}

    username = updates.get("username")
    email = updates.get("email")
    email = email.lower().strip() if isinstance(email, str) else email

    errors = auth_service.validate_account_fields(
        username=username,
        email=email,
        password=updates.get("password"),
        plan=updates.get("plan"),
        partial=True,
    )
    if errors:
        raise ValidationError(errors)

    if username and username != user.username:
        if User.query.filter_by(username=username).first():
            raise Conflict(public_message="Username already exists")
        user.username = username
    if email and email != user.email:
        if User.query.filter_by(email=email).first():
            raise Conflict(public_message="Email already exists")
        user.email = email
    if updates.get("plan"):
        user.plan = updates["plan"]
    if updates.get("password"):
        user.password_hash = generate_password_hash(updates["password"])
    if "isActive" in updates:
        user.is_active = bool(updates["isActive"])

    db.session.commit()
    logger.info(f"Admin updated user {user.id}: {sorted(updates)}")
    return user


def delete_user(user_id):
    """Delete an account and everything it owns. Returns sites removed."""
    user = get_user(user_id)
    deleted_sites = site_service.cascade_delete_for_account(user)
    username = user.username
    db.session.delete(user)
    db.session.commit()
    logger.info(f"Admin deleted user {username} ({user_id}) and {deleted_sites} sites")
    return deleted_sites


def set_site_active(site_id, active):
    site = db.session.get(Site, site_id)
    if site is None:
        raise NotFound(f"site {site_id}", public_message="Site not found")
    return site_service.set_active(site, active)
