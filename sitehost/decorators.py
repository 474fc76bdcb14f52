"""
Custom route decorators for access control.

- admin_required: ensures the caller is authenticated (session or bearer
  token) AND has the admin role.
"""

from functools import wraps

from flask import abort
from flask_login import current_user, login_required


def admin_required(f):
    """Require login + role == "admin"."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated
