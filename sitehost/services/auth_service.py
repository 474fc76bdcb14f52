"""Auth service — account registration, credential checks, API tokens.

Token issuance is deliberately simple: opaque random strings stored in
api_tokens. Everything else in the app depends only on authenticate()
and User.is_admin.
"""

import logging
import re
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from sitehost.errors import Conflict, ValidationError, field_error
from sitehost.extensions import db
from sitehost.models.api_token import ApiToken
from sitehost.models.user import User

logger = logging.getLogger(__name__)

# Simple email regex — not exhaustive, just sanity-check
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")
MIN_PASSWORD_LENGTH = 6


def authenticate(token):
    """Return the active User owning `token`, or None."""
    if not token:
        return None

    api_token = ApiToken.query.filter_by(token=token).first()
    if api_token is None:
        return None

    user = api_token.user
    if user is None or not user.is_active:
        return None

    api_token.last_used_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


def is_admin(user):
    return bool(user) and user.is_admin


def issue_token(user, name="default"):
    """Create and persist a new API token for `user`."""
    api_token = ApiToken(user_id=user.id, name=(name or "default")[:100])
    db.session.add(api_token)
    db.session.commit()
    return api_token


def validate_account_fields(username=None, email=None, password=None, plan=None, partial=False):
    """Collect field errors for account input. `partial` skips absent fields."""
    errors = []

    if username is not None or not partial:
        if not username or not USERNAME_RE.match(username):
            errors.append(field_error(
                "username", "Username must be 3-30 letters, digits, '.', '_' or '-'", username
            ))
    if email is not None or not partial:
        if not email or not EMAIL_RE.match(email):
            errors.append(field_error("email", "A valid email is required", email))
    if password is not None or not partial:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            errors.append(field_error(
                "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            ))
    if plan is not None and plan not in ("free", "pro", "enterprise"):
        errors.append(field_error("plan", "Plan must be free, pro or enterprise", plan))

    return errors


def register_user(username, email, password, plan="free", role="user"):
    """Create an account.

    Raises:
        ValidationError: malformed fields.
        Conflict: username or email already in use.
    """
    username = (username or "").strip()
    email = (email or "").lower().strip()

    errors = validate_account_fields(username, email, password, plan if role != "admin" else None)
    if errors:
        raise ValidationError(errors)

    if User.query.filter(
        (User.username == username) | (User.email == email)
    ).first():
        raise Conflict(f"user {username}/{email} exists", public_message="User already exists")

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        plan=plan,
        role=role,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict(f"user {username}/{email} exists", public_message="User already exists") from e

    logger.info(f"User registered: {username} ({user.id}) plan={plan} role={role}")
    return user


def check_credentials(email, password):
    """Return the User for a valid email/password pair, else None."""
    email = (email or "").lower().strip()
    user = User.query.filter_by(email=email).first()

    if user is None or not check_password_hash(user.password_hash, password or ""):
        return None
    if not user.is_active:
        return None

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user
