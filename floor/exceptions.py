class FloorError(Exception):
    """
    Base class for errors raised by the order and table engine.

    Each error carries a stable code that clients switch on; the HTTP
    status is decided by the error category.
    """

    status_code = 400
    default_code = 'INVALID_REQUEST'

    def __init__(self, code=None):
        self.code = code or self.default_code
        super().__init__(self.code)


class InvalidRequest(FloorError):
    status_code = 400


class Forbidden(FloorError):
    status_code = 403
    default_code = 'FORBIDDEN'


class NotFound(FloorError):
    status_code = 404
    default_code = 'NOT_FOUND'


class StateConflict(FloorError):
    """Precondition on the current derived state of an order or table not met"""

    status_code = 409


class DomainRuleViolation(FloorError):
    status_code = 422
