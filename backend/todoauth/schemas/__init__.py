# Todo Auth Schemas
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

__all__ = [
    "AuthResponse",
    "ChangePasswordRequest",
    "EmailAvailabilityResponse",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "RefreshRequest",
    "RegisterRequest",
    "SessionResponse",
    "UpdateProfileRequest",
    "UsernameAvailabilityResponse",
    "UserResponse",
    "ValidateTokenRequest",
    "ValidateTokenResponse",
]
