"""Error taxonomy for the dispatch core.

Every error carries a stable ``code`` and a user-facing ``message``; the HTTP
layer renders them as ``{"success": false, "error": {"code", "message"}}``.
"""


class DispatchError(Exception):
    """Base class for all failures raised by the dispatch core."""
    code = "DISPATCH_ERROR"
    status_code = 500
    default_message = "Dispatch operation failed"

    def __init__(self, message: str = None, code: str = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self):
        return {"code": self.code, "message": self.message}


# ===================== Validation =====================

class ValidationError(DispatchError):
    """Malformed or missing input. Never retried automatically."""
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request"


class InvalidOtpError(ValidationError):
    code = "INVALID_OTP"
    default_message = "OTP does not match this ride"


# ===================== Not found =====================

class NotFoundError(DispatchError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class RideNotFoundError(NotFoundError):
    code = "RIDE_NOT_FOUND"
    default_message = "Ride not found"


class DriverNotFoundError(NotFoundError):
    code = "DRIVER_NOT_FOUND"
    default_message = "Driver not found"


class RiderNotFoundError(NotFoundError):
    code = "RIDER_NOT_FOUND"
    default_message = "Rider not found"


# ===================== Conflicts =====================

class ConflictError(DispatchError):
    """State changed underneath the caller; refresh or try the next candidate."""
    code = "CONFLICT"
    status_code = 409
    default_message = "Conflicting state change"


class RideAlreadyAssignedError(ConflictError):
    code = "RIDE_ALREADY_ASSIGNED"
    default_message = "Ride is already assigned to another driver"


class RideNotAvailableError(ConflictError):
    code = "RIDE_NOT_AVAILABLE"
    default_message = "This ride was already handled or cancelled"


class ActiveRideExistsError(ConflictError):
    code = "ACTIVE_RIDE_EXISTS"
    default_message = "Rider already has an active ride"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"
    default_message = "Ride cannot move to the requested status"


class RideNotActiveError(ConflictError):
    code = "RIDE_NOT_ACTIVE"
    default_message = "Ride is not active"


# ===================== Eligibility =====================

class IneligibleError(DispatchError):
    code = "INELIGIBLE"
    status_code = 400
    default_message = "Driver is not eligible for this ride"


class DriverNotAvailableError(IneligibleError):
    code = "DRIVER_NOT_AVAILABLE"
    default_message = "Driver is not available for rides"


class DriverTooFarError(IneligibleError):
    code = "DRIVER_TOO_FAR"
    default_message = "Driver is too far from the pickup location"


class UnauthorizedDriverError(IneligibleError):
    code = "UNAUTHORIZED_DRIVER"
    status_code = 403
    default_message = "Driver not authorized for this ride"


# ===================== Infrastructure =====================

class UpstreamError(DispatchError):
    code = "UPSTREAM_ERROR"
    status_code = 502
    default_message = "Upstream service failed"


class RoutingError(UpstreamError):
    code = "ROUTING_ERROR"
    default_message = "Could not calculate a valid route for the given locations."


class PersistenceError(DispatchError):
    code = "PERSISTENCE_ERROR"
    status_code = 503
    default_message = "Data store unavailable, please retry"
