class ServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthorized(ServiceError):
    status_code = 401
    default_detail = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_detail = "Not found"


class Conflict(ServiceError):
    status_code = 409
    default_detail = "Conflicting state"


class InvalidInput(ServiceError):
    status_code = 422
    default_detail = "Invalid input"


# The listing exists but is not in a claimable state
class InvalidState(ServiceError):
    status_code = 422
    default_detail = "Invalid state"


class Unavailable(ServiceError):
    status_code = 503
    default_detail = "Database unavailable"


class Internal(ServiceError):
    pass
