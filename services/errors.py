"""
Service error taxonomy
Each error carries the HTTP status the blueprints answer with
"""


class ServiceError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None, **extra):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.extra = extra

    def to_dict(self):
        payload = {"success": False, "message": self.message}
        payload.update(self.extra)
        return payload


class ValidationFailed(ServiceError):
    status_code = 400
    default_message = "Invalid input"


class Unauthenticated(ServiceError):
    status_code = 401
    default_message = "Authentication required"


class InvalidRefreshToken(Unauthenticated):
    default_message = "Invalid refresh token"


class AccountBanned(ServiceError):
    status_code = 403
    default_message = "Account suspended"

    def __init__(self, message=None, **extra):
        extra.setdefault("isBanned", True)
        super().__init__(message, **extra)


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class NoActiveRequest(NotFound):
    default_message = "No active help request found"


class Conflict(ServiceError):
    status_code = 409
    default_message = "Conflict"


class EmailAlreadyRegistered(Conflict):
    default_message = "User already exists"


class AlreadyAssigned(Conflict):
    default_message = "This help request has already been accepted by another volunteer"


class NoVolunteerAssigned(Conflict):
    default_message = "No volunteer assigned to this request"


class InvalidCode(Conflict):
    default_message = "Invalid completion code"


class CancelWindowClosed(Conflict):
    default_message = (
        "You can only cancel the request up to 2 hours before the "
        "requested time after a volunteer is assigned."
    )
