"""Error taxonomy for the hosting core.

Services raise these; a single Flask error handler (registered in
create_app()) turns them into JSON. `public_message` is what the caller
sees; the exception's own message may carry internal detail for logs.
"""


class HostingError(Exception):
    status_code = 500
    public_message = "Something went wrong"

    def __init__(self, message=None, public_message=None):
        super().__init__(message or public_message or self.public_message)
        if public_message is not None:
            self.public_message = public_message

    def to_dict(self):
        return {"error": self.public_message}


class ValidationError(HostingError):
    """Malformed input. Never reaches storage."""

    status_code = 400
    public_message = "Validation failed"

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [{"msg": errors}]
        self.errors = errors
        super().__init__("; ".join(e.get("msg", "") for e in errors))

    def to_dict(self):
        return {"errors": self.errors}


class Conflict(HostingError):
    """A uniqueness constraint (subdomain, custom domain, path) is violated."""

    status_code = 400
    public_message = "Already exists"


class NotFound(HostingError):
    status_code = 404
    public_message = "Not found"


class TraversalError(NotFound):
    """A path tried to leave its site root.

    Surfaces to the caller exactly like a missing file.
    """

    public_message = "File not found"


class QuotaExceeded(HostingError):
    status_code = 403
    public_message = "Plan limit reached"


class StorageBackendError(HostingError):
    status_code = 500
    public_message = "Storage operation failed"


def field_error(field, msg, value=None):
    """Build one entry of a ValidationError's `errors` list."""
    entry = {"param": field, "msg": msg}
    if value is not None:
        entry["value"] = value
    return entry
