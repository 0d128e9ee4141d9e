"""Error taxonomy of the ticketing core.

Every error carries the HTTP status it is rendered with by the API layer,
so services raise them without knowing about FastAPI.
"""

from fastapi import status


class TicketingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(TicketingError):
    default_message = "Invalid input"


class InvalidEvent(TicketingError):
    default_message = "Invalid event"


class PaymentGatewayUnavailable(TicketingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment gateway unavailable"


class NotFound(TicketingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class InvalidOperation(TicketingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current ticket state"


class AlreadyRefunded(TicketingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Ticket already refunded"


class Forbidden(TicketingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"
