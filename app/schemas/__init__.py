"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AccountResponse,
    CurrentUser,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UsersListResponse,
)
from app.schemas.health import HealthResponse

__all__ = [
    "AccountResponse",
    "CurrentUser",
    "ForgotPasswordRequest",
    "HealthResponse",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "ResetPasswordRequest",
    "TokenResponse",
    "UsersListResponse",
]
