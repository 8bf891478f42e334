"""Domain error taxonomy shared by the ticket and kanban services.

Every error carries a stable ``code`` so callers (and the UI) can tell
the kinds apart, plus the HTTP status the API layer renders it with.
"""

from uuid import UUID


class TicketflowError(Exception):
    """Base exception for domain errors."""

    code = "ERR_INTERNAL"
    status_code = 500

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotFoundError(TicketflowError):
    """Resource not found."""

    code = "ERR_NOT_FOUND"
    status_code = 404


class LimitReachedError(TicketflowError):
    """Lane card limit reached."""

    code = "ERR_LIMIT_REACHED"
    status_code = 409


class InvalidPositionError(TicketflowError):
    """Position is out of range."""

    code = "ERR_INVALID_POSITION"
    status_code = 422


class SetMismatchError(TicketflowError):
    """Reorder set does not match the existing siblings."""

    code = "ERR_SET_MISMATCH"
    status_code = 422


class AccessDeniedError(TicketflowError):
    """Access denied."""

    code = "ERR_ACCESS_DENIED"
    status_code = 403


class ConflictingTicketError(TicketflowError):
    """Contact already has an active ticket on this channel."""

    code = "ERR_CONFLICTING_TICKET"
    status_code = 409

    def __init__(
        self,
        message: str | None = None,
        *,
        ticket_id: UUID | None = None,
        agent_name: str | None = None,
    ):
        super().__init__(message)
        self.ticket_id = ticket_id
        self.agent_name = agent_name

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["ticket_id"] = str(self.ticket_id) if self.ticket_id else None
        data["agent_name"] = self.agent_name
        return data


class DomainValidationError(TicketflowError):
    """Invalid input."""

    code = "ERR_VALIDATION"
    status_code = 422


class InternalError(TicketflowError):
    """Internal error."""
