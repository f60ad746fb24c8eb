"""Domain errors raised by the service layer.

Each error knows the HTTP status it maps to and a short machine-readable
code; ``main`` registers one handler that renders them for clients.
"""


class CampusVibeError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, detail=None, **context):
        self.detail = detail or self.default_detail
        self.context = context
        super().__init__(self.detail)

    default_detail = "Request failed"

    def to_dict(self):
        body = {"detail": self.detail, "code": self.code}
        body.update(self.context)
        return body


# Validation

class ValidationError(CampusVibeError):
    status_code = 400
    code = "validation_error"
    default_detail = "Invalid request"


class TierNotAllowedError(ValidationError):
    code = "tier_not_allowed"
    default_detail = "Selected ticket tier is not available for this event"


class InvalidCodeError(ValidationError):
    code = "invalid_code"
    default_detail = "Invalid QR code"


class SignatureError(ValidationError):
    code = "signature_verification_failed"
    default_detail = "Signature verification failed"


# Authorization

class AuthorizationError(CampusVibeError):
    status_code = 403
    code = "not_authorized"
    default_detail = "Not authorized to perform this action"


# Not found

class NotFoundError(CampusVibeError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class EventNotFoundError(NotFoundError):
    code = "event_not_found"
    default_detail = "Event not found"


class TicketNotFoundError(NotFoundError):
    code = "ticket_not_found"
    default_detail = "Ticket not found"


# State conflicts

class StateConflictError(CampusVibeError):
    status_code = 409
    code = "state_conflict"
    default_detail = "Request conflicts with current state"


class EventFullError(StateConflictError):
    code = "event_full"
    default_detail = "Event is full"

    def __init__(self, detail=None, **context):
        context.setdefault("waitlist_available", True)
        super().__init__(detail, **context)


class TicketNotPaidError(StateConflictError):
    code = "ticket_not_paid"
    default_detail = "Ticket is not paid"


class TicketMismatchError(StateConflictError):
    code = "ticket_mismatch"
    default_detail = "QR code does not match ticket records"


class PaymentStateError(StateConflictError):
    code = "payment_state_conflict"
    default_detail = "Ticket payment state does not allow this action"


class EventClosedError(StateConflictError):
    code = "event_not_open"
    default_detail = "Event is not open for registration"
