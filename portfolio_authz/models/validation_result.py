"""Result types returned by every security guard and composite validator."""

from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Literal


class SecurityErrorCode(str, PyEnum):
    """
    Stable, machine-checkable reasons for a denied operation.

    INVALID_ROLE_CHANGE marks malformed input (an unrecognized role or
    permission) and maps to a 400-class response; every other code is a
    403-class authorization denial.
    """

    SELF_PROMOTION_DENIED = "SELF_PROMOTION_DENIED"
    OWNER_PROTECTION = "OWNER_PROTECTION"
    INSUFFICIENT_PRIVILEGES = "INSUFFICIENT_PRIVILEGES"
    ROLE_ESCALATION_DENIED = "ROLE_ESCALATION_DENIED"
    PROPERTY_ACCESS_EXCEEDS_ROLE = "PROPERTY_ACCESS_EXCEEDS_ROLE"
    ONLY_OWNER_CAN_CHANGE_ROLES = "ONLY_OWNER_CAN_CHANGE_ROLES"
    INVALID_ROLE_CHANGE = "INVALID_ROLE_CHANGE"


@dataclass(frozen=True)
class Allowed:
    """The operation passed every check."""

    allowed: Literal[True] = True

    def to_dict(self) -> dict:
        return {"allowed": True}


@dataclass(frozen=True)
class Denied:
    """
    The operation was rejected by a guard.

    Attributes:
        error_code: Which rule was violated
        error: Human-readable explanation, a static template that never
            echoes property identifiers
    """

    error_code: SecurityErrorCode
    error: str
    allowed: Literal[False] = False

    def to_dict(self) -> dict:
        return {
            "allowed": False,
            "errorCode": self.error_code.value,
            "error": self.error,
        }


SecurityValidationResult = Allowed | Denied

ALLOWED = Allowed()
