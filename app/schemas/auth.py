"""Request/response schemas for auth endpoints."""

from pydantic import BaseModel, EmailStr, Field, model_validator

from app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN

NAME_MIN_LEN = 3
NAME_MAX_LEN = 25


class RegisterRequest(BaseModel):
    """New account: email, password, optional confirmation and display name."""

    model_config = {"populate_by_name": True}

    email: EmailStr = Field(..., description="Email (unique)")
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    confirm_password: str | None = Field(
        default=None,
        alias="confirmPassword",
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
    )
    name: str | None = Field(
        default=None,
        min_length=NAME_MIN_LEN,
        max_length=NAME_MAX_LEN,
        description="Display name; defaults to the email",
    )

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.confirm_password is not None and self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """Credentials for login."""

    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """New password and its confirmation; the token travels in the path."""

    model_config = {"populate_by_name": True}

    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    confirm_password: str = Field(
        ...,
        alias="confirmPassword",
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
    )

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class TokenResponse(BaseModel):
    """JWT access token returned after successful login (also set as a cookie)."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Token lifetime in seconds")


class AccountResponse(BaseModel):
    """Account as returned to clients. Never carries the password hash or reset token."""

    model_config = {"from_attributes": True}

    id: str
    email: str
    name: str | None = None
    role: str
    active: bool


class MessageResponse(BaseModel):
    message: str


class CurrentUser(BaseModel):
    """Authenticated user (id, email, role) for dependency injection."""

    model_config = {"from_attributes": True}

    id: str
    email: str
    role: str


class UsersListResponse(BaseModel):
    """Response for GET /auth/users (admin only)."""

    users: list[AccountResponse]
