import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from portfolio_authz.models.role import PermissionAuditAction, PortfolioRole, PropertyPermission


class _CamelModel(BaseModel):
    """Permission payloads use the camelCase keys of the engine's to_dict()"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PermissionContextResponse(_CamelModel):
    user_id: str
    portfolio_id: str
    role: PortfolioRole
    property_access: dict[str, list[PropertyPermission]] | None

    can_view_portfolio: bool
    can_edit_portfolio: bool
    can_delete_portfolio: bool
    can_invite_members: bool
    can_remove_members: bool
    can_change_roles: bool
    can_add_properties: bool
    can_view_audit_log: bool
    can_manage_billing: bool

    can_view: bool
    can_edit: bool
    can_admin: bool

    assignable_roles: list[PortfolioRole]
    has_full_property_access: bool
    accessible_property_ids: list[str] | None


class PropertyPermissionResponse(_CamelModel):
    property_id: str
    can_view: bool
    can_edit: bool
    can_manage: bool
    can_delete: bool
    permissions: list[PropertyPermission]


class AccessiblePropertiesResponse(_CamelModel):
    has_full_property_access: bool
    property_ids: list[str]


class AuditLogEntryResponse(BaseModel):
    """One entry of a portfolio's permission audit trail"""

    id: str
    sequence: int
    action: PermissionAuditAction
    user_id: str | None
    old_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    changed_by: str | None
    recorded_at: datetime
    entry_hash: str

    model_config = {"from_attributes": True}

    @field_validator("old_value", "new_value", mode="before")
    @classmethod
    def parse_json_value(cls, value):
        # Stored as JSON text so the hash covers the exact bytes written
        if isinstance(value, str):
            return json.loads(value)
        return value


class AuditLogResponse(BaseModel):
    portfolio_id: str
    chain_valid: bool
    entries: list[AuditLogEntryResponse]
