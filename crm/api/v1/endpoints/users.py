"""
User endpoints:
  GET    /users/{id}         – Profile (the user themself, managers or admins)
  PATCH  /users/{id}/role    – Change a user's role (Admin only)

A role change reaches the user's tokens on their next refresh, since rotation
re-reads the role from the users table.
"""
from fastapi import APIRouter, Depends
import logging

from crm.core.dependencies import (
    db_dependency,
    get_current_identity,
    require_admin,
    require_owner_or_role,
)
from crm.models.token import Identity
from crm.models.user import UserRole
from crm.schemas.token import ErrorResponse
from crm.schemas.user import RoleUpdate, UserResponse
from crm.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

ERRORS = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get a user profile (self, manager or admin)",
    responses=ERRORS,
)
def get_user(
    user_id: int,
    conn=Depends(db_dependency),
    identity: Identity = Depends(get_current_identity),
):
    require_owner_or_role(
        identity, user_id, privileged_roles=(UserRole.ADMIN.value, UserRole.MANAGER.value)
    )
    return UserService(conn).get_user(user_id)


@router.patch(
    "/{user_id}/role",
    response_model=UserResponse,
    summary="Change a user's role (Admin only)",
    responses=ERRORS,
)
def update_role(
    user_id: int,
    data: RoleUpdate,
    conn=Depends(db_dependency),
    identity: Identity = Depends(require_admin),
):
    logger.info("User id=%s sets role of user id=%s to %s", identity.owner_id, user_id, data.role.value)
    return UserService(conn).update_role(user_id, data.role)
