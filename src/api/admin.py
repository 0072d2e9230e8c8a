"""Admin API endpoints for viewing accounts and managing roles."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from src.api.dependencies import require_admin
from src.models.auth import RoleRequest
from src.models.user import AdminUserView, Role, User
from src.services.role_service import RoleService
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users")
async def list_users(
    admin: User = Depends(require_admin),
) -> dict[str, list[AdminUserView]]:
    """List every account with its token balance (admin only)."""
    user_service = UserService()
    users = await user_service.list_users_with_profiles()
    logger.info("admin_listed_users", admin_id=str(admin.id), count=len(users))
    return {"users": users}


@router.post("/users/{user_id}/roles", status_code=status.HTTP_201_CREATED)
async def grant_role(
    user_id: UUID,
    request: RoleRequest,
    admin: User = Depends(require_admin),
) -> dict[str, list[Role]]:
    """Grant a role to an account (admin only).

    Raises:
        HTTPException 404: If the account does not exist
    """
    user_service = UserService()
    role_service = RoleService()

    if await user_service.get_by_id(user_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    await role_service.assign_role(user_id, request.role)
    logger.info(
        "admin_granted_role",
        admin_id=str(admin.id),
        target_user_id=str(user_id),
        role=request.role.value,
    )
    return {"roles": await role_service.list_roles(user_id)}


@router.delete("/users/{user_id}/roles/{role}")
async def revoke_role(
    user_id: UUID,
    role: Role,
    admin: User = Depends(require_admin),
) -> dict[str, list[Role]]:
    """Remove a role from an account (admin only).

    Raises:
        HTTPException 400: If an admin tries to drop their own admin role
        HTTPException 404: If the account does not have the role
    """
    if user_id == admin.id and role == Role.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot remove your own admin role",
        )

    role_service = RoleService()
    if not await role_service.revoke_role(user_id, role):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Role assignment not found",
        )

    logger.info(
        "admin_revoked_role",
        admin_id=str(admin.id),
        target_user_id=str(user_id),
        role=role.value,
    )
    return {"roles": await role_service.list_roles(user_id)}
