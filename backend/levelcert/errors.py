"""Domain exceptions raised by services and rendered by `main`.

Each exception carries the HTTP status it maps to and a user-facing
(localized) message. The FastAPI handler in `main` turns them into the
`{"error": message}` envelope shared by every endpoint.
"""

MISSING_PARAMS = '缺少必要参数'
INVALID_EMPLOYEE_ID = '工号必须是7位数字'
INVALID_USER = '用户无效'


class ServiceError(Exception):
    """Base class for expected, client-visible failures."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(ServiceError):
    """Missing or malformed request parameters."""
    status_code = 400


class InvalidUser(ServiceError):
    """The (userId, employeeId) pair does not resolve to a user."""
    status_code = 401

    def __init__(self, message: str = INVALID_USER):
        super().__init__(message)


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409
