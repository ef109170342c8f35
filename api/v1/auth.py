"""
Authentication endpoints.

Handles registration, login, verification codes, token refresh and logout.
Route functions are plain `def` so FastAPI runs them (and bcrypt) in its
thread pool.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from identity.models import User, TokenPair
from identity.services import AuthResult, PendingVerification, ServiceContext
from ..deps import ServicesDep, CurrentUser, CurrentTokenPayload, raise_for_result

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/Response models

class RegisterRequest(BaseModel):
    """User registration request."""
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="Password (8 to 72 bytes, upper, lower and digit)")
    phone: Optional[str] = Field(None, description="Phone number in E.164 (e.g., +5511999999999)")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")


class LoginRequest(BaseModel):
    """Login request."""
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="Password")


class VerifyRequest(BaseModel):
    """Verification code submission."""
    user_id: str = Field(..., description="User ID from the pending login")
    channel: str = Field("email", description="email, sms or chat")
    code: str = Field(..., description="One-time code")


class VerificationCodeRequest(BaseModel):
    """Request a new verification code."""
    user_id: str = Field(..., description="User ID")
    channel: str = Field("email", description="email, sms or chat")


class RefreshRequest(BaseModel):
    """Token refresh request."""
    refresh_token: str = Field(..., description="Valid refresh token")


class LogoutRequest(BaseModel):
    """Logout request."""
    refresh_token: str = Field(..., description="Refresh token to revoke")


class ChangePasswordRequest(BaseModel):
    """Password change request."""
    current_password: str
    new_password: str


class TokenResponse(BaseModel):
    """Token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 900
    access_expires_at: int
    refresh_expires_at: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(**pair.to_dict())


class UserResponse(BaseModel):
    """User info response."""
    user_id: str
    email: str
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    email_verified: bool
    phone_verified: bool
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.user_id,
            email=user.email,
            phone=user.phone,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            is_active=user.is_active
        )


class PendingResponse(BaseModel):
    """Verification required before tokens are issued."""
    user_id: str
    channel: str
    expires_at: int
    delivered: bool = False
    destination: Optional[str] = None


class AuthResponse(BaseModel):
    """Authentication response with tokens, user info or a pending verification."""
    success: bool
    state: str
    tokens: Optional[TokenResponse] = None
    user: Optional[UserResponse] = None
    pending: Optional[PendingResponse] = None


class TokenValidationResponse(BaseModel):
    """Access token validation response."""
    valid: bool
    user_id: str
    role: str
    exp: int
    iat: int
    jti: str


class MessageResponse(BaseModel):
    success: bool
    message: str


def _deliver(services: ServiceContext, pending: PendingVerification) -> PendingResponse:
    """Send the pending code out of band and describe the outcome."""
    outcome = services.delivery.deliver(pending.handle)
    return PendingResponse(
        user_id=pending.user_id,
        channel=pending.channel,
        expires_at=int(pending.expires_at),
        delivered=outcome["delivered"],
        destination=outcome["destination"]
    )


def _auth_response(services: ServiceContext, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        success=True,
        state=result.state,
        tokens=TokenResponse.from_pair(result.tokens) if result.tokens else None,
        user=UserResponse.from_user(result.user) if result.user else None,
        pending=_deliver(services, result.pending) if result.pending else None
    )


# Endpoints

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, services: ServicesDep):
    """
    Register a new user.

    Returns JWT tokens, or a pending verification when codes are required
    before token issuance.
    """
    result = raise_for_result(services.gateway.register(
        email=request.email,
        password=request.password,
        phone=request.phone,
        first_name=request.first_name,
        last_name=request.last_name
    ))
    return _auth_response(services, result)


@router.post("/login", response_model=AuthResponse)
def login(request: LoginRequest, response: Response, services: ServicesDep):
    """
    Login with email and password.

    Returns 200 with JWT tokens, or 202 with a pending verification after
    sending a code to the configured channel.
    """
    result = raise_for_result(services.gateway.login(
        email=request.email,
        password=request.password
    ))

    if result.pending:
        response.status_code = status.HTTP_202_ACCEPTED

    return _auth_response(services, result)


@router.post("/verify", response_model=AuthResponse)
def verify(request: VerifyRequest, services: ServicesDep):
    """
    Submit a verification code.

    Marks the channel verified and returns JWT tokens.
    """
    result = raise_for_result(services.gateway.submit_verification(
        user_id=request.user_id,
        channel=request.channel,
        code=request.code
    ))
    return _auth_response(services, result)


@router.post("/verify/request", response_model=PendingResponse, status_code=status.HTTP_202_ACCEPTED)
def request_code(request: VerificationCodeRequest, services: ServicesDep):
    """
    Request a new verification code (e.g. after the previous one expired).

    Returns 429 with Retry-After when too many codes were requested.
    """
    result = raise_for_result(services.gateway.request_verification(
        user_id=request.user_id,
        channel=request.channel
    ))
    return _deliver(services, result.pending)


@router.post("/refresh", response_model=AuthResponse)
def refresh_token(request: RefreshRequest, services: ServicesDep):
    """
    Refresh an access token.

    The presented refresh token is rotated; presenting it again revokes
    the whole session.
    """
    result = raise_for_result(services.gateway.refresh(request.refresh_token))
    return _auth_response(services, result)


@router.post("/logout", response_model=MessageResponse)
def logout(request: LogoutRequest, services: ServicesDep):
    """Revoke a refresh token. Unknown tokens are accepted silently."""
    raise_for_result(services.gateway.logout(refresh_token=request.refresh_token))
    return MessageResponse(success=True, message="Logged out")


@router.post("/logout/all", response_model=MessageResponse)
def logout_all(current_user: CurrentUser, services: ServicesDep):
    """
    Revoke every refresh token of the current user.

    Requires valid access token.
    """
    raise_for_result(services.gateway.logout(user_id=current_user.user_id))
    return MessageResponse(success=True, message="All sessions revoked")


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: CurrentUser):
    """
    Get current authenticated user info.

    Requires valid access token.
    """
    return UserResponse.from_user(current_user)


@router.get("/validate", response_model=TokenValidationResponse)
def validate_token(payload: CurrentTokenPayload):
    """Validate the bearer access token and return its claims."""
    return TokenValidationResponse(
        valid=True,
        user_id=payload.user_id,
        role=payload.role,
        exp=payload.exp,
        iat=payload.iat,
        jti=payload.jti
    )


@router.post("/password", response_model=MessageResponse)
def change_password(request: ChangePasswordRequest, current_user: CurrentUser, services: ServicesDep):
    """
    Change the current user's password.

    Every refresh token of the user is revoked.
    """
    raise_for_result(services.gateway.change_password(
        user_id=current_user.user_id,
        current_password=request.current_password,
        new_password=request.new_password
    ))
    return MessageResponse(success=True, message="Password changed")
