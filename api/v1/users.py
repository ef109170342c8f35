"""
User management endpoints.

Users can read and update their own profile; admins can list every user,
update any profile and activate or deactivate accounts. Deactivation is a
soft delete that ends every session of the user.
"""

import logging
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from identity.errors import AuthError
from ..deps import (
    ServicesDep,
    CurrentUser,
    AdminUser,
    ensure_self_or_admin,
    http_error,
    raise_for_result,
)
from .auth import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/Response models

class UpdateUserRequest(BaseModel):
    """Profile update. Omitted fields are left unchanged."""
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    phone: Optional[str] = Field(None, description="Phone number in E.164 (must be verified again)")
    is_active: Optional[bool] = Field(None, description="Activate or deactivate (admin only)")


class UsersListResponse(BaseModel):
    """Page of users."""
    users: List[UserResponse]
    page: int
    limit: int
    count: int


class UserDetailResponse(UserResponse):
    """User with account timestamps."""
    created_at: Optional[str] = None
    last_login: Optional[str] = None


def _detail(user) -> UserDetailResponse:
    return UserDetailResponse(
        **UserResponse.from_user(user).model_dump(),
        created_at=user.created_at,
        last_login=user.last_login
    )


# Endpoints

@router.get("", response_model=UsersListResponse)
def list_users(
    services: ServicesDep,
    admin: AdminUser,
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: int = Query(10, ge=1, le=100, description="Users per page")
):
    """
    List users, oldest first.

    Requires the admin role.
    """
    try:
        users = services.credentials.list_users(limit=limit, offset=(page - 1) * limit)
    except AuthError as e:
        raise http_error(e)

    return UsersListResponse(
        users=[UserResponse.from_user(u) for u in users],
        page=page,
        limit=limit,
        count=len(users)
    )


@router.get("/{user_id}", response_model=UserDetailResponse)
def get_user(user_id: str, services: ServicesDep, current_user: CurrentUser):
    """
    Get a user.

    Users can read their own record; admins can read any.
    """
    ensure_self_or_admin(current_user, user_id)

    result = raise_for_result(services.gateway.get_user(user_id))
    return _detail(result.user)


@router.put("/{user_id}", response_model=UserDetailResponse)
def update_user(
    user_id: str,
    request: UpdateUserRequest,
    services: ServicesDep,
    current_user: CurrentUser
):
    """
    Update a user's profile.

    Changing `is_active` requires the admin role; deactivation revokes
    every refresh token of the user.
    """
    ensure_self_or_admin(current_user, user_id)

    if request.is_active is not None and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Only admins can change is_active"}
        )

    result = raise_for_result(services.gateway.update_profile(
        user_id,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone
    ))

    if request.is_active is not None and request.is_active != result.user.is_active:
        result = raise_for_result(services.gateway.set_active(user_id, request.is_active))
        logger.info(f"Admin {current_user.user_id} set is_active={request.is_active} for {user_id}")

    return _detail(result.user)


@router.delete("/{user_id}", response_model=UserDetailResponse)
def deactivate_user(user_id: str, services: ServicesDep, admin: AdminUser):
    """
    Deactivate a user.

    The record is kept; the account can no longer log in and every
    session is revoked. Requires the admin role.
    """
    result = raise_for_result(services.gateway.set_active(user_id, False))
    logger.info(f"Admin {admin.user_id} deactivated user {user_id}")
    return _detail(result.user)
