from fastapi import Depends, Path
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from portfolio_authz.core.exceptions import ForbiddenException, UnauthorizedException
from portfolio_authz.core.permission_tables import can_perform_portfolio_action
from portfolio_authz.core.roles import is_role_at_least
from portfolio_authz.database import get_db
from portfolio_authz.models.permission_context import PermissionContext, PropertyPermissionContext
from portfolio_authz.models.role import PortfolioAction, PortfolioRole, PropertyPermission
from portfolio_authz.models.validation_result import SecurityErrorCode
from portfolio_authz.services.portfolio_member_service import PortfolioMemberService

security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """
    FastAPI dependency returning the caller's user id.

    Authentication happens upstream; the gateway forwards the verified,
    opaque user id as `Authorization: Bearer <user id>`. This service never
    inspects or validates the credential itself.

    Raises:
        UnauthorizedException: If the header is missing or empty
    """
    if credentials is None or not credentials.credentials.strip():
        raise UnauthorizedException("Unauthorized")
    return credentials.credentials.strip()


async def get_permission_context(
    portfolio_id: str = Path(..., description="Portfolio ID"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PermissionContext:
    """
    FastAPI dependency to build the caller's permission context for a portfolio.

    Flow:
    1. Get the authenticated user id (from get_current_user_id)
    2. Read portfolio_id from the path
    3. Look up the caller's accepted membership
    4. Return the precomputed PermissionContext

    Raises:
        ForbiddenException: If the caller is not a member of the portfolio
    """
    service = PortfolioMemberService(db)
    return service.get_permission_context(user_id, portfolio_id)


def require_minimum_role(minimum_role: PortfolioRole | str):
    """
    Dependency factory to require at least a given role.

    Usage:
        @router.patch("/{portfolio_id}", dependencies=[Depends(require_minimum_role(PortfolioRole.ADMIN))])
    """
    minimum_role = PortfolioRole(minimum_role)

    async def role_checker(
        context: PermissionContext = Depends(get_permission_context),
    ) -> PermissionContext:
        if not is_role_at_least(context.role, minimum_role):
            raise ForbiddenException(
                f"This action requires at least {minimum_role.value} role",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        return context

    return role_checker


def require_portfolio_action(action: PortfolioAction | str):
    """Dependency factory to require a portfolio-level action."""
    action = PortfolioAction(action)

    async def action_checker(
        context: PermissionContext = Depends(get_permission_context),
    ) -> PermissionContext:
        if not can_perform_portfolio_action(context.role, action):
            raise ForbiddenException(
                "You don't have permission to perform this action",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        return context

    return action_checker


def require_property_permission(permission: PropertyPermission | str):
    """
    Dependency factory to require a permission on the property named in the path.

    The property must belong to the portfolio in the same path; a property
    of another portfolio is reported as not found.
    """
    permission = PropertyPermission(permission)

    async def property_checker(
        property_id: str = Path(..., description="Property ID"),
        context: PermissionContext = Depends(get_permission_context),
        db: Session = Depends(get_db),
    ) -> PropertyPermissionContext:
        service = PortfolioMemberService(db)
        return service.check_property_permission(context, property_id, permission)

    return property_checker
