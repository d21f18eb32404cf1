from pydantic import BaseModel, Field
from datetime import datetime
from portfolio_authz.models.role import InvitationStatus, PortfolioRole

# Raw override payload; token and ceiling checks happen in the validators
PropertyAccessPayload = dict[str, list[str]]


class PortfolioCreate(BaseModel):
    """Create a portfolio owned by the caller"""

    name: str = Field(..., min_length=1, max_length=255)


class PortfolioUpdate(BaseModel):
    """Rename a portfolio (ADMIN or OWNER)"""

    name: str = Field(..., min_length=1, max_length=255)


class PortfolioResponse(BaseModel):
    """Portfolio details response"""

    id: str
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PropertyCreate(BaseModel):
    """Add a property to a portfolio (MEMBER or higher)"""

    name: str = Field(..., min_length=1, max_length=255)


class PropertyResponse(BaseModel):
    id: str
    portfolio_id: str
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    """Portfolio member with role and property-level override"""

    id: int
    user_id: str
    role: PortfolioRole
    property_access: PropertyAccessPayload | None = None
    invited_by: str | None = None
    invited_at: datetime | None = None
    accepted_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationResponse(MemberResponse):
    """
    Invitation as seen by the members who manage it.

    token is returned to the inviter for delivery to the invitee.
    """

    status: InvitationStatus = Field(validation_alias="invitation_status")
    token: str | None = Field(default=None, validation_alias="invitation_token")


class MemberInviteRequest(BaseModel):
    """
    Invite a user to the portfolio.

    role is accepted as a plain string so an unrecognized role is reported
    with the INVALID_ROLE_CHANGE error code rather than a schema error.
    """

    user_id: str = Field(..., description="Upstream user ID to invite", min_length=1)
    role: str = Field(default=PortfolioRole.MEMBER.value, description="Role to assign (default: member)")
    property_access: PropertyAccessPayload | None = Field(
        default=None,
        description="Property id -> permissions; omit or null for full access at the role default",
    )
    email: str | None = Field(default=None, description="Recorded in the audit trail only")


class InvitationAcceptRequest(BaseModel):
    token: str = Field(..., min_length=1)


class InvitationValidationResponse(BaseModel):
    """Result of checking an invitation token; unusable tokens carry the reason in error"""

    valid: bool
    status: InvitationStatus | None = None
    error: str | None = None
    portfolio_id: str | None = None
    role: PortfolioRole | None = None
    expires_at: datetime | None = None


class InvitationRevokeResponse(BaseModel):
    message: str
    invitation_id: int


class MemberRoleUpdate(BaseModel):
    """
    Change a member's role (OWNER only).

    Leaving property_access out keeps the stored override; sending null
    clears it back to full access.
    """

    role: str = Field(..., description="New role to assign")
    property_access: PropertyAccessPayload | None = None


class PropertyAccessUpdate(BaseModel):
    """Replace a member's property-level override (OWNER only); null means full access"""

    property_access: PropertyAccessPayload | None


class MemberRemoveResponse(BaseModel):
    """Response after removing or leaving"""

    message: str
    removed_user_id: str


class UserPortfolioResponse(BaseModel):
    """A portfolio the caller belongs to, with the caller's role"""

    portfolio_id: str
    role: PortfolioRole
    accepted_at: datetime | None = None

    model_config = {"from_attributes": True}
