"""Error taxonomy shared by the booking core and the HTTP layer.

Booking errors are synchronous: they are raised before any write and reach
the caller verbatim. Lock gateway errors are best-effort: the credential
service records and logs them and never lets them undo a committed booking.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidRequest(BookingError, ValueError):
    """Bad duration, malformed time, or a broken business rule."""
    status_code = 400


class SlotUnavailable(BookingError):
    """The requested window conflicts with a booking or a blocked slot."""
    status_code = 409


class NotFound(BookingError):
    status_code = 404


class PermissionDenied(BookingError):
    status_code = 403


class LockGatewayError(Exception):
    retryable = True
    kind = 'error'

    def __init__(self, message, errcode=None):
        super().__init__(message)
        self.message = message
        self.errcode = errcode


class CredentialProvisioningFailed(LockGatewayError):
    """Transient failure: network error, timeout, rate limit, vendor hiccup."""
    kind = 'transient'


class LockOffline(CredentialProvisioningFailed):
    """The lock or its gateway is unreachable. Retried like any transient error."""
    kind = 'offline'


class CredentialPermissionDenied(LockGatewayError):
    """Permanent vendor configuration error, e.g. the account is not lock admin."""
    retryable = False
    kind = 'permission'
