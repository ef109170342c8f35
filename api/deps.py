"""
API dependencies.

Provides dependency injection for the shared service context, bearer
authentication and the mapping of authentication errors to HTTP responses.
"""

import logging
from typing import Optional, Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from identity.auth import TokenPayload
from identity.errors import AuthError, ErrorKind, RateLimited
from identity.models import User
from identity.services import ServiceContext, AuthResult, get_context

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

STATUS_BY_KIND = {
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.TOKEN_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.TOKEN_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.TOKEN_REUSED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INACTIVE: status.HTTP_403_FORBIDDEN,
    ErrorKind.CODE_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CODE_EXPIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CODE_ALREADY_USED: status.HTTP_409_CONFLICT,
    ErrorKind.DUPLICATE_EMAIL: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INVALID_REQUEST: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STORAGE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

TOKEN_KINDS = (ErrorKind.TOKEN_INVALID, ErrorKind.TOKEN_EXPIRED, ErrorKind.TOKEN_REUSED)


def http_error(error: AuthError) -> HTTPException:
    """
    Translate an AuthError into an HTTPException.

    Body: {"detail": {"error": kind, "message": text}}
    """
    status_code = STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST)

    headers = None
    if isinstance(error, RateLimited):
        headers = {"Retry-After": str(error.retry_after)}
    elif error.kind in TOKEN_KINDS:
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(
        status_code=status_code,
        detail={"error": error.kind.value, "message": error.message},
        headers=headers
    )


def raise_for_result(result: AuthResult) -> AuthResult:
    """Raise the mapped HTTPException for a failed AuthResult."""
    if not result.success:
        raise http_error(result.error)
    return result


# Dependency for getting services
def services_dep() -> ServiceContext:
    """FastAPI dependency for the shared service context."""
    return get_context()


ServicesDep = Annotated[ServiceContext, Depends(services_dep)]


# Authentication dependencies

def get_authenticated(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    services: ServicesDep
) -> AuthResult:
    """
    Authenticate the bearer access token (required).

    Raises 401 if no valid token is provided, 403 if the account is inactive.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": ErrorKind.TOKEN_INVALID.value, "message": "Not authenticated"},
            headers={"WWW-Authenticate": "Bearer"}
        )

    result = services.gateway.authenticate(credentials.credentials)

    if not result.success and result.error.kind == ErrorKind.NOT_FOUND:
        # Token for a user that no longer exists
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": ErrorKind.TOKEN_INVALID.value, "message": "User not found"},
            headers={"WWW-Authenticate": "Bearer"}
        )

    return raise_for_result(result)


Authenticated = Annotated[AuthResult, Depends(get_authenticated)]


def get_current_user(auth: Authenticated) -> User:
    """Get the active user behind the bearer token."""
    return auth.user


def get_token_payload(auth: Authenticated) -> TokenPayload:
    """Get the verified claims of the bearer token."""
    return auth.claims


# Type aliases for dependencies
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentTokenPayload = Annotated[TokenPayload, Depends(get_token_payload)]


def require_admin(current_user: CurrentUser) -> User:
    """
    Get the current user if it has the admin role.

    Raises 403 for any other role.
    """
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Admin role required"}
        )
    return current_user


def ensure_self_or_admin(current_user: User, user_id: str):
    """Raise 403 unless the current user is the target user or an admin."""
    if current_user.user_id != user_id and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Not allowed to access this user"}
        )


AdminUser = Annotated[User, Depends(require_admin)]
