"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit — we apply per-route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID from session. Imports lazily to avoid circular deps."""
    from sitehost.models.user import User

    return db.session.get(User, user_id)


@login_manager.request_loader
def load_user_from_request(request):
    """Authenticate API calls carrying `Authorization: Bearer <token>`."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None

    from sitehost.services.auth_service import authenticate

    return authenticate(header[len("Bearer "):].strip())


@login_manager.unauthorized_handler
def unauthorized():
    """API clients get JSON, not a redirect to a login page."""
    return jsonify({"error": "Authentication required"}), 401
