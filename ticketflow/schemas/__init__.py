"""Pydantic schemas for API request/response models."""

from ticketflow.schemas.auth import TokenPayload, UserSession
from ticketflow.schemas.ticketing import TicketUpdateData

__all__ = ["TicketUpdateData", "TokenPayload", "UserSession"]
