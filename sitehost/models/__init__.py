# Models package — import all models here so Alembic can discover them.

from sitehost.models.user import User  # noqa: F401
from sitehost.models.api_token import ApiToken  # noqa: F401
from sitehost.models.site import Site, CustomDomain  # noqa: F401
