"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from ticketflow.db.enums import Profile


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    company_id: UUID
    profile: str
    token_version: int


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency; ``company_id`` here is
    the only tenant scope services accept.
    """
    user_id: UUID
    company_id: UUID
    profile: Profile
    name: str

    @property
    def is_admin(self) -> bool:
        return self.profile == Profile.ADMIN
