"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - ADMIN: sees every schedule, manages schedule permissions
    - USER: standard user, sees own schedule plus granted targets
    - CALLER: works call lists, sees own schedule plus granted targets
    """

    ADMIN = "admin"
    USER = "user"
    CALLER = "caller"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
