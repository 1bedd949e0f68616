"""Authentication API endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from todoauth.api.deps import CurrentUser, get_auth_service, get_current_user
from todoauth.core.request_utils import get_bearer_token, get_client_ip, get_device_info
from todoauth.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    EmailAvailabilityResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    UpdateProfileRequest,
    UsernameAvailabilityResponse,
    UserResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from todoauth.services.auth import AuthResult, AuthService, ClientInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_info(request: Request) -> ClientInfo:
    return ClientInfo(ip_address=get_client_ip(request), device_info=get_device_info(request))


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        user=UserResponse.model_validate(result.user),
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    data: RegisterRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create an account and return its first token pair.

    Returns 409 Conflict if the username or email is already registered.
    """
    result = await auth_service.register(
        username=data.username,
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        client=_client_info(request),
    )
    return _auth_response(result)


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate by username or email and get JWT tokens.

    Repeated failures lock the account (423) for the configured duration.
    """
    result = await auth_service.login(
        identifier=data.username_or_email,
        password=data.password,
        client=_client_info(request),
    )
    return _auth_response(result)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    data: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Get a new access token. The refresh token is returned unchanged."""
    result = await auth_service.refresh(data.refresh_token)
    return _auth_response(result)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    data: LogoutRequest | None = None,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Log out.

    Blacklists the bearer access token (if any) for the rest of its
    lifetime and revokes the refresh token given in the body (if any).
    """
    await auth_service.logout(
        access_token=get_bearer_token(request),
        refresh_token=data.refresh_token if data else None,
    )
    return MessageResponse(message="Successfully logged out")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke every refresh token of the caller."""
    await auth_service.logout_all(current_user.username)
    return MessageResponse(message="Successfully logged out from all devices")


@router.get("/profile", response_model=UserResponse)
async def get_profile(
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    user = await auth_service.get_profile(current_user.username)
    return UserResponse.model_validate(user)


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    data: UpdateProfileRequest,
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    user = await auth_service.update_profile(
        current_user.username, data.first_name, data.last_name
    )
    return UserResponse.model_validate(user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the caller's password.

    All refresh tokens are revoked; the user must log in again.
    """
    await auth_service.change_password(
        username=current_user.username,
        current_password=data.current_password,
        new_password=data.new_password,
    )
    return MessageResponse(message="Password changed successfully. Please log in again.")


@router.post("/validate", response_model=ValidateTokenResponse)
async def validate_token(
    data: ValidateTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ValidateTokenResponse:
    """Report whether a token is currently usable."""
    if await auth_service.validate_token(data.token):
        return ValidateTokenResponse(valid=True)
    return ValidateTokenResponse(valid=False, error="Invalid or expired token")


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> list[SessionResponse]:
    """List the caller's active sessions, most recent first."""
    sessions = await auth_service.list_sessions(current_user.username)
    return [SessionResponse.model_validate(s) for s in sessions]


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_session(
    session_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.revoke_session(current_user.username, session_id)
    return MessageResponse(message="Session revoked successfully")


@router.get("/check-username", response_model=UsernameAvailabilityResponse)
async def check_username(
    username: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service),
) -> UsernameAvailabilityResponse:
    available = await auth_service.username_available(username)
    return UsernameAvailabilityResponse(username=username, available=available)


@router.get("/check-email", response_model=EmailAvailabilityResponse)
async def check_email(
    email: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service),
) -> EmailAvailabilityResponse:
    available = await auth_service.email_available(email)
    return EmailAvailabilityResponse(email=email, available=available)
