import os


def _csv(name, default=""):
    """Split a comma-separated env var into a lowercase list."""
    raw = os.environ.get(name, default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Render, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Hosted site storage ---
    # Each site lives at SITES_ROOT/<owner_id>/<site_id>/
    SITES_ROOT = os.environ.get(
        "SITES_ROOT", os.path.join(os.getcwd(), "hosted-sites")
    )
    DEFAULT_DOCUMENT = "index.html"

    # Whole-request ceiling for uploads; per-file limits come from the plan.
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", 100 * 1024 * 1024))

    # --- Host resolution ---
    # Platform base domains. "<sub>.<base>" is a hosted site, "<base>" is us.
    PLATFORM_DOMAINS = _csv(
        "PLATFORM_DOMAINS",
        "ntando.app,ntando.cloud,ntando.zw,ntl.cloud,ntl.ai,ntl.zw",
    )
    # Hosts that always route to the application itself.
    DEV_HOST_ALIASES = _csv("DEV_HOST_ALIASES", "localhost,127.0.0.1,0.0.0.0")
    # Substrings identifying the platform's own deployment hostnames.
    PLATFORM_HOST_MARKERS = _csv("PLATFORM_HOST_MARKERS", "onrender.com")
    API_PREFIX = os.environ.get("API_PREFIX", "/api/")

    # --- Custom domains ---
    PLATFORM_IP = os.environ.get("PLATFORM_IP", "127.0.0.1")
    PLATFORM_HOSTNAME = os.environ.get("PLATFORM_HOSTNAME", "sitehost.onrender.com")
    # "dns" performs a real lookup; "stub" marks domains verified unconditionally.
    DOMAIN_VERIFICATION_MODE = os.environ.get("DOMAIN_VERIFICATION_MODE", "dns")
    DNS_RESOLVER_URL = os.environ.get(
        "DNS_RESOLVER_URL", "https://cloudflare-dns.com/dns-query"
    )

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "PLATFORM_DOMAINS",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    DOMAIN_VERIFICATION_MODE = os.environ.get("DOMAIN_VERIFICATION_MODE", "stub")


class TestConfig(Config):
    """Testing — in-memory SQLite, rate limits off, stubbed DNS."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    PLATFORM_DOMAINS = ["ntando.app", "ntl.cloud"]
    DEV_HOST_ALIASES = ["localhost", "127.0.0.1"]
    PLATFORM_HOST_MARKERS = ["onrender.com"]
    PLATFORM_IP = "203.0.113.10"
    PLATFORM_HOSTNAME = "sitehost.onrender.com"
    DOMAIN_VERIFICATION_MODE = "stub"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production on Render."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
