from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from portfolio_authz.database import get_db
from portfolio_authz.dependencies import (
    get_current_user_id,
    get_permission_context,
    require_portfolio_action,
    require_property_permission,
)
from portfolio_authz.models.permission_context import PermissionContext, PropertyPermissionContext
from portfolio_authz.models.role import PortfolioAction, PropertyPermission
from portfolio_authz.services.audit_service import PermissionAuditService
from portfolio_authz.services.portfolio_member_service import PortfolioMemberService
from portfolio_authz.schemas.portfolio_schemas import (
    PortfolioCreate,
    PortfolioResponse,
    PortfolioUpdate,
    PropertyCreate,
    PropertyResponse,
    UserPortfolioResponse,
)
from portfolio_authz.schemas.permission_schemas import (
    AccessiblePropertiesResponse,
    AuditLogResponse,
    PermissionContextResponse,
    PropertyPermissionResponse,
)

router = APIRouter()


@router.post("", response_model=PortfolioResponse, status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    portfolio_data: PortfolioCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Create a new portfolio.

    The caller becomes its OWNER.
    """
    service = PortfolioMemberService(db)
    return service.create_portfolio(portfolio_data.name, user_id)


@router.get("", response_model=list[UserPortfolioResponse])
async def list_user_portfolios(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    List all portfolios the authenticated user belongs to.

    Pending invitations are included with accepted_at unset, so clients can
    offer to accept them.
    """
    service = PortfolioMemberService(db)
    return service.list_user_portfolios(user_id)


@router.get("/{portfolio_id}", response_model=PortfolioResponse)
async def get_portfolio(
    context: PermissionContext = Depends(require_portfolio_action(PortfolioAction.VIEW_PORTFOLIO)),
    db: Session = Depends(get_db),
):
    service = PortfolioMemberService(db)
    return service.get_portfolio(context)


@router.put("/{portfolio_id}", response_model=PortfolioResponse)
async def update_portfolio(
    portfolio_data: PortfolioUpdate,
    context: PermissionContext = Depends(require_portfolio_action(PortfolioAction.EDIT_PORTFOLIO)),
    db: Session = Depends(get_db),
):
    """
    Update portfolio details.

    - **Requires ADMIN or OWNER permissions**
    """
    service = PortfolioMemberService(db)
    return service.update_portfolio(context, portfolio_data.name)


@router.delete("/{portfolio_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_portfolio(
    context: PermissionContext = Depends(require_portfolio_action(PortfolioAction.DELETE_PORTFOLIO)),
    db: Session = Depends(get_db),
):
    """
    Delete the portfolio, its properties and all memberships.

    - **Requires OWNER permissions**
    - The permission audit trail is kept
    """
    service = PortfolioMemberService(db)
    service.delete_portfolio(context)


@router.get("/{portfolio_id}/permissions", response_model=PermissionContextResponse)
async def get_permissions(context: PermissionContext = Depends(get_permission_context)):
    """
    Get the caller's permission context for a portfolio.

    Clients use it to show or hide actions; every mutation is still
    validated server-side.
    """
    return PermissionContextResponse.model_validate(context.to_dict())


@router.post(
    "/{portfolio_id}/properties",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_property(
    property_data: PropertyCreate,
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """
    Add a property to the portfolio.

    - **Requires MEMBER role or higher**
    """
    service = PortfolioMemberService(db)
    return service.add_property(context, property_data.name)


@router.get("/{portfolio_id}/properties", response_model=AccessiblePropertiesResponse)
async def list_accessible_properties(
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """List the property ids of this portfolio the caller can reach."""
    service = PortfolioMemberService(db)
    return AccessiblePropertiesResponse(
        has_full_property_access=context.has_full_property_access,
        property_ids=service.list_accessible_property_ids(context),
    )


@router.get("/{portfolio_id}/properties/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: str,
    context: PermissionContext = Depends(get_permission_context),
    _: PropertyPermissionContext = Depends(require_property_permission(PropertyPermission.VIEW)),
    db: Session = Depends(get_db),
):
    """
    Get a property.

    - **Requires view permission on the property**
    """
    service = PortfolioMemberService(db)
    return service.get_property(context, property_id)


@router.get(
    "/{portfolio_id}/properties/{property_id}/permissions",
    response_model=PropertyPermissionResponse,
)
async def get_property_permissions(
    property_id: str,
    context: PermissionContext = Depends(get_permission_context),
    db: Session = Depends(get_db),
):
    """Get the caller's resolved permissions on one property."""
    service = PortfolioMemberService(db)
    property_context = service.get_property_permissions(context, property_id)
    return PropertyPermissionResponse.model_validate(property_context.to_dict())


@router.get("/{portfolio_id}/audit-log", response_model=AuditLogResponse)
async def get_audit_log(
    portfolio_id: str,
    _: PermissionContext = Depends(require_portfolio_action(PortfolioAction.VIEW_AUDIT_LOG)),
    db: Session = Depends(get_db),
):
    """
    Get the permission audit trail of the portfolio, oldest first.

    - **Requires ADMIN or OWNER permissions**
    - chain_valid is False if any stored entry was altered or removed
    """
    audit = PermissionAuditService(db)
    return {
        "portfolio_id": portfolio_id,
        "chain_valid": audit.verify_chain(portfolio_id),
        "entries": audit.list_entries(portfolio_id),
    }
