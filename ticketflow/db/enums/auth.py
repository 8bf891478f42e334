"""Auth-related enums."""

from enum import Enum


class Profile(str, Enum):
    """
    User profiles.

    - ADMIN: bypasses queue membership, channel binding and conflict checks
    - USER: regular agent
    """

    ADMIN = "admin"
    USER = "user"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid profile."""
        return value in cls._value2member_map_
