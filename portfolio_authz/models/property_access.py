"""Validated property-level access override attached to a membership."""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from portfolio_authz.core.exceptions import ValidationException
from portfolio_authz.models.role import PropertyPermission
from portfolio_authz.models.validation_result import SecurityErrorCode

PermissionLike = PropertyPermission | str
RawPropertyAccess = Mapping[str, Iterable[PermissionLike]]

# Presentation order for serialized permission lists
_PERMISSION_ORDER = {permission: index for index, permission in enumerate(PropertyPermission)}


def is_valid_property_permission(value: Any) -> bool:
    """Check if a value names a known property permission."""
    try:
        PropertyPermission(value)
    except ValueError:
        return False
    return True


def sort_permissions(permissions: Iterable[PropertyPermission]) -> list[PropertyPermission]:
    """Order permissions view < edit < manage < delete."""
    return sorted(permissions, key=_PERMISSION_ORDER.__getitem__)


def _parse_permission(value: Any) -> PropertyPermission:
    try:
        return PropertyPermission(value)
    except ValueError:
        raise ValidationException(
            "Property access contains an unknown permission",
            error_code=SecurityErrorCode.INVALID_ROLE_CHANGE,
        )


class PropertyAccess(Mapping[str, frozenset[PropertyPermission]]):
    """
    Immutable map of property id -> granted property permissions.

    A membership without an override (None) has full access at its role's
    default permissions. A PropertyAccess, even an empty one, restricts the
    member to the listed properties only.

    Construction rejects unknown permission tokens. Whether the listed
    permissions fit inside a role's ceiling is a separate check performed by
    validate_property_access_within_role, because the same override can be
    valid for one role and invalid for another.

    Example:
        PropertyAccess({"prop-1": ["view", "edit"], "prop-2": ["view"]})
    """

    __slots__ = ("_grants",)

    def __init__(self, grants: RawPropertyAccess | None = None):
        parsed: dict[str, frozenset[PropertyPermission]] = {}
        for property_id, permissions in (grants or {}).items():
            if not isinstance(property_id, str) or not property_id:
                raise ValidationException(
                    "Property access keys must be non-empty property ids",
                    error_code=SecurityErrorCode.INVALID_ROLE_CHANGE,
                )
            if isinstance(permissions, (str, bytes)) or not isinstance(permissions, Iterable):
                raise ValidationException(
                    "Property access values must be lists of permissions",
                    error_code=SecurityErrorCode.INVALID_ROLE_CHANGE,
                )
            parsed[property_id] = frozenset(_parse_permission(p) for p in permissions)
        self._grants = parsed

    @classmethod
    def from_raw(cls, raw: Any) -> "PropertyAccess | None":
        """
        Parse a loosely typed JSON payload into a PropertyAccess.

        Args:
            raw: None, or a JSON object of property id -> list of permissions

        Returns:
            None for full access, otherwise the validated override

        Raises:
            ValidationException: If the payload shape or any token is invalid
        """
        if raw is None:
            return None
        if isinstance(raw, PropertyAccess):
            return raw
        if not isinstance(raw, Mapping):
            raise ValidationException(
                "Property access must be an object of property ids to permission lists",
                error_code=SecurityErrorCode.INVALID_ROLE_CHANGE,
            )
        return cls(raw)

    def __getitem__(self, property_id: str) -> frozenset[PropertyPermission]:
        return self._grants[property_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._grants)

    def __len__(self) -> int:
        return len(self._grants)

    def __hash__(self) -> int:
        # Consistent with Mapping.__eq__, so frozen snapshots holding one stay hashable
        return hash(frozenset(self._grants.items()))

    def __repr__(self) -> str:
        return f"<PropertyAccess({self.to_json()})>"

    def to_json(self) -> dict[str, list[str]]:
        """Serialize for storage in a JSON column or an API response."""
        return {
            property_id: [p.value for p in sort_permissions(permissions)]
            for property_id, permissions in self._grants.items()
        }


def is_valid_property_access(raw: Any) -> bool:
    """Check whether a raw payload would parse into a property access override."""
    try:
        PropertyAccess.from_raw(raw)
    except ValidationException:
        return False
    return True


def serialize_property_access(property_access: RawPropertyAccess | None) -> dict[str, list[str]] | None:
    """JSON-ready form of an override, preserving None as full access."""
    if property_access is None:
        return None
    if isinstance(property_access, PropertyAccess):
        return property_access.to_json()
    return {key: [getattr(p, "value", p) for p in value] for key, value in property_access.items()}
