"""
Domain errors for the queue payment engine.

Routers never build HTTP errors for these themselves; main.py maps each class
to a status code through exception handlers. The webhook path catches them and
still acknowledges the gateway with a 200.
"""
from typing import List, Optional


class MabarError(Exception):
    """Base exception for queue/payment/session operations"""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(MabarError):
    """Bad registration or operator input. Nothing was persisted."""

    status_code = 400
    code = "validation_error"


class SessionValidationError(ValidationError):
    """Raised when selected entries are unpaid or no longer available"""

    code = "session_validation_error"

    def __init__(self, message: str, player_names: Optional[List[str]] = None):
        super().__init__(message)
        self.player_names = list(player_names or [])


class NotFoundError(MabarError):
    status_code = 404
    code = "not_found"


class InvalidStateError(MabarError):
    """Lifecycle transition not allowed from the current state"""

    status_code = 409
    code = "invalid_state"


class GatewayError(MabarError):
    """Payment gateway create/status call failed"""

    status_code = 502
    code = "gateway_error"

    def __init__(self, message: str, gateway_status_code: Optional[str] = None):
        super().__init__(message)
        self.gateway_status_code = gateway_status_code


class AuthenticityError(MabarError):
    """Notification signature did not verify"""

    status_code = 401
    code = "invalid_signature"


class ConsistencyConflict(MabarError):
    """A concurrent writer won a compare-and-set race"""

    status_code = 409
    code = "conflict"


class CapacityError(ConsistencyConflict):
    """Allocation retries exhausted"""

    status_code = 503
    code = "capacity_exhausted"


class StaleNotification(MabarError):
    """A status that would move a payment backwards. Dropped, not a failure."""

    status_code = 200
    code = "stale_notification"

    def __init__(self, message: str, current_status: str, proposed_status: str):
        super().__init__(message)
        self.current_status = current_status
        self.proposed_status = proposed_status
