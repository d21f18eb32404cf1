from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from portfolio_authz.database import get_db
from portfolio_authz.dependencies import get_current_user_id, get_permission_context, require_portfolio_action
from portfolio_authz.models.permission_context import PermissionContext
from portfolio_authz.models.role import PortfolioAction
from portfolio_authz.services.portfolio_member_service import UNSET, PortfolioMemberService
from portfolio_authz.schemas.portfolio_schemas import (
    InvitationAcceptRequest,
    InvitationResponse,
    InvitationRevokeResponse,
    InvitationValidationResponse,
    MemberInviteRequest,
    MemberRemoveResponse,
    MemberResponse,
    MemberRoleUpdate,
    PropertyAccessUpdate,
)

router = APIRouter()


@router.get("/invitations/validate", response_model=InvitationValidationResponse)
async def validate_invitation_token(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """
    Check an invitation token without accepting it.

    Needs no authentication, so an invitation page can be shown before
    sign-in. Unusable tokens return valid=false with the reason.
    """
    service = PortfolioMemberService(db)
    return service.validate_invitation_token(token)


@router.post("/invitations/accept", response_model=MemberResponse)
async def accept_invitation_by_token(
    accept_request: InvitationAcceptRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Accept the invitation a token was issued for; the caller must be the invitee."""
    service = PortfolioMemberService(db)
    return service.accept_invitation_by_token(user_id, accept_request.token)


@router.get("/{portfolio_id}/members", response_model=list[MemberResponse])
async def list_members(
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    List all members of the portfolio, owner first.

    Available to every member. Pending invitations are listed with accepted_at unset.
    """
    service = PortfolioMemberService(db)
    return service.list_members(context)


@router.post(
    "/{portfolio_id}/members",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    invite_request: MemberInviteRequest,
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    Invite a user to the portfolio.

    - **Requires ADMIN or OWNER permissions**
    - Default role: member
    - Can only invite roles below your own; nobody can invite an owner
    - property_access must fit inside the invited role
    """
    service = PortfolioMemberService(db)
    return service.invite_member(
        context,
        invite_request.user_id,
        invite_request.role,
        invite_request.property_access,
        email=invite_request.email,
    )


@router.get("/{portfolio_id}/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    context: PermissionContext = Depends(require_portfolio_action(PortfolioAction.INVITE_MEMBERS)),
    db: Session = Depends(get_db),
):
    """
    List invitations that were never accepted, with their status.

    - **Requires ADMIN or OWNER permissions**
    """
    service = PortfolioMemberService(db)
    return service.list_invitations(context)


@router.delete("/{portfolio_id}/invitations/{invitation_id}", response_model=InvitationRevokeResponse)
async def revoke_invitation(
    invitation_id: int,
    context: PermissionContext = Depends(require_portfolio_action(PortfolioAction.INVITE_MEMBERS)),
    db: Session = Depends(get_db),
):
    """
    Revoke a pending invitation.

    - **Requires ADMIN or OWNER permissions**
    - Can only revoke invitations for roles below your own
    """
    service = PortfolioMemberService(db)
    service.revoke_invitation(context, invitation_id)
    return {"message": "Invitation revoked successfully", "invitation_id": invitation_id}


@router.post("/{portfolio_id}/invitations/{invitation_id}/resend", response_model=InvitationResponse)
async def resend_invitation(
    invitation_id: int,
    context: PermissionContext = Depends(require_portfolio_action(PortfolioAction.INVITE_MEMBERS)),
    db: Session = Depends(get_db),
):
    """
    Reissue a pending invitation with a new token and expiry.

    - **Requires ADMIN or OWNER permissions**
    - The previous token stops working
    """
    service = PortfolioMemberService(db)
    return service.resend_invitation(context, invitation_id)


@router.post("/{portfolio_id}/members/accept", response_model=MemberResponse)
async def accept_invitation(
    portfolio_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Accept the caller's pending invitation to the portfolio."""
    service = PortfolioMemberService(db)
    return service.accept_invitation(user_id, portfolio_id)


@router.patch("/{portfolio_id}/members/{member_id}/role", response_model=MemberResponse)
async def update_member_role(
    member_id: str,
    role_update: MemberRoleUpdate,
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    Update a member's role.

    - **Requires OWNER permissions**
    - Cannot change your own role
    - Cannot change the owner's role or promote anyone to owner
    """
    property_access = (
        role_update.property_access if "property_access" in role_update.model_fields_set else UNSET
    )
    service = PortfolioMemberService(db)
    return service.update_member_role(context, member_id, role_update.role, property_access)


@router.put("/{portfolio_id}/members/{member_id}/property-access", response_model=MemberResponse)
async def update_property_access(
    member_id: str,
    access_update: PropertyAccessUpdate,
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    Replace a member's property-level access.

    - **Requires OWNER permissions**
    - null restores full access at the role default
    - Listed permissions must fit inside the member's role
    """
    service = PortfolioMemberService(db)
    return service.update_property_access(context, member_id, access_update.property_access)


@router.delete(
    "/{portfolio_id}/members/{member_id}",
    response_model=MemberRemoveResponse,
    status_code=status.HTTP_200_OK,
)
async def remove_member(
    member_id: str,
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    Remove a member from the portfolio.

    - **Requires ADMIN or OWNER permissions**
    - Can only remove roles below your own
    - Cannot remove yourself (use leave) or the owner
    """
    service = PortfolioMemberService(db)
    service.remove_member(context, member_id)
    return {"message": "Member removed successfully", "removed_user_id": member_id}


@router.post("/{portfolio_id}/leave", response_model=MemberRemoveResponse)
async def leave_portfolio(
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    Leave the portfolio.

    The owner cannot leave; ownership transfer is not supported.
    """
    service = PortfolioMemberService(db)
    service.leave_portfolio(context)
    return {"message": "Left portfolio successfully", "removed_user_id": context.user_id}
