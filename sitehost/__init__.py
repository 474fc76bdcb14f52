import os
import logging
from datetime import datetime, timezone
from pathlib import Path

import click
from flask import Flask, g, jsonify, render_template, request
from werkzeug.security import generate_password_hash

from sitehost.config import config_by_name
from sitehost.errors import HostingError, StorageBackendError
from sitehost.extensions import db, migrate, login_manager, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from sitehost import models  # noqa: F401

    # --- Host middleware (hosted sites are served before routing) ---
    from sitehost.middleware.host import init_host_middleware
    init_host_middleware(app)

    # --- Register blueprints ---
    from sitehost.blueprints.auth import auth_bp
    from sitehost.blueprints.sites import sites_bp
    from sitehost.blueprints.files import files_bp
    from sitehost.blueprints.domains import domains_bp
    from sitehost.blueprints.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(sites_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(domains_bp)
    app.register_blueprint(admin_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        """Platform landing page."""
        return render_template("landing.html")

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # --- Error handlers ---
    @app.errorhandler(HostingError)
    def hosting_error(e):
        if isinstance(e, StorageBackendError):
            app.logger.error(f"Storage failure on {request.method} {request.path}: {e}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": "Access denied"}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Route not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": "Upload too large"}), 413

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Something went wrong"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=()"
        )

        # Hosted sites bring their own scripts, styles and framing rules.
        if getattr(g, "hosted_site", None) is None:
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline'; "
                "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com; "
                "img-src 'self' data:; "
                "font-src 'self' https://fonts.gstatic.com; "
                "connect-src 'self'; "
                "base-uri 'self'; "
                "form-action 'self'; "
                "frame-ancestors 'none';"
            )

        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@sitehost.local", help="Admin email")
    @click.option("--username", default="admin", help="Admin username")
    @click.option("--password", default="admin123", help="Admin password")
    def seed_admin(email, username, password):
        """Create an admin account, or promote an existing one.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from sitehost.models.user import User

        email = email.lower().strip()
        admin = User.query.filter_by(email=email).first()
        if admin:
            admin.role = "admin"
            admin.is_active = True
            click.echo(f"Promoted existing user to admin: {email}")
        else:
            admin = User(
                username=username,
                email=email,
                password_hash=generate_password_hash(password),
                plan="enterprise",
                role="admin",
            )
            db.session.add(admin)
            click.echo(f"Created admin user: {email}")

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo(f"  Admin:  {admin.username} <{email}>")
        click.echo(f"  Id:     {admin.id}")
        click.echo("=" * 60)

    @app.cli.command("purge-orphan-roots")
    @click.option("--dry-run", is_flag=True, help="List orphaned roots without deleting them.")
    def purge_orphan_roots(dry_run):
        """Remove site directories under SITES_ROOT that have no site record.

        Usage:
            flask purge-orphan-roots
            flask purge-orphan-roots --dry-run
        """
        from sitehost.models.site import Site
        from sitehost.services import storage_service

        base = Path(app.config["SITES_ROOT"])
        if not base.is_dir():
            click.echo(f"No storage at {base}")
            return

        known = {(owner_id, site_id) for site_id, owner_id in db.session.query(Site.id, Site.owner_id)}

        removed = 0
        for owner_dir in sorted(p for p in base.iterdir() if p.is_dir()):
            for site_dir in sorted(p for p in owner_dir.iterdir() if p.is_dir()):
                if (owner_dir.name, site_dir.name) in known:
                    continue
                removed += 1
                if dry_run:
                    click.echo(f"  would remove {site_dir}")
                else:
                    storage_service.remove_root_path(site_dir)
                    click.echo(f"  removed {site_dir}")

        verb = "Found" if dry_run else "Removed"
        click.echo(f"{verb} {removed} orphaned site root(s)")
