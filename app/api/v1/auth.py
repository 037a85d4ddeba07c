"""Auth routes (register, login, logout, forgot/reset password) and auth dependencies."""

import html
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import HTMLResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.cookies import SessionCookieAdapter
from app.core.database import get_db
from app.core.security import TokenError, TokenIssuer
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
from app.services.credentials import CredentialService
from app.services.errors import CredentialError, MailError, PersistenceError
from app.services.mailer import Mailer, SmtpMailer
from app.services.user_store import SqlAlchemyUserStore

logger = logging.getLogger(__name__)
router = APIRouter()
security = HTTPBearer(auto_error=False)

GENERIC_SERVER_ERROR = "The request could not be completed. Please try again later."


def get_mailer(settings: Annotated[Settings, Depends(get_settings)]) -> Mailer:
    return SmtpMailer.from_settings(settings)


def get_cookie_adapter(settings: Annotated[Settings, Depends(get_settings)]) -> SessionCookieAdapter:
    return SessionCookieAdapter.from_settings(settings)


def get_credential_service(
    db: Annotated[Session, Depends(get_db)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CredentialService:
    """Dependency: one CredentialService per request, bound to the request's DB session."""
    return CredentialService.from_settings(settings, SqlAlchemyUserStore(db), mailer)


def _to_http_error(error: CredentialError, settings: Settings) -> HTTPException:
    """Map a credential failure to its HTTP status; hide collaborator internals in prod."""
    detail = error.message
    if isinstance(error, (PersistenceError, MailError)):
        logger.error("%s: %s", error.code, error.message)
        if settings.is_production:
            detail = GENERIC_SERVER_ERROR
    return HTTPException(status_code=error.status_code, detail=detail)


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    service: Annotated[CredentialService, Depends(get_credential_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AccountResponse:
    """Create an account with role USER. The response never includes the password hash."""
    try:
        user = service.register(
            email=body.email,
            password=body.password,
            name=body.name,
            confirm_password=body.confirm_password,
        )
    except CredentialError as e:
        raise _to_http_error(e, settings)
    return AccountResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    response: Response,
    service: Annotated[CredentialService, Depends(get_credential_service)],
    cookies: Annotated[SessionCookieAdapter, Depends(get_cookie_adapter)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenResponse:
    """
    Authenticate with email and password; returns a JWT and sets it as an httpOnly cookie.
    The token may also be sent in the Authorization header as: Bearer <access_token>
    """
    try:
        result = service.login(body.email, body.password)
    except CredentialError as e:
        raise _to_http_error(e, settings)
    cookies.attach(response, result.token)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(
        access_token=result.token,
        token_type="bearer",
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
    )


@router.api_route("/logout", methods=["GET", "POST"], response_model=MessageResponse)
def logout(
    response: Response,
    cookies: Annotated[SessionCookieAdapter, Depends(get_cookie_adapter)],
) -> MessageResponse:
    """Clear the session cookie. The token itself stays valid until it expires."""
    cookies.clear(response)
    return MessageResponse(message="Logged out")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    service: Annotated[CredentialService, Depends(get_credential_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Mail a single-use reset link to the account's address."""
    try:
        service.forgot_password(body.email)
    except CredentialError as e:
        raise _to_http_error(e, settings)
    return MessageResponse(message="Email sent successfully")


@router.get("/reset-password-form/{token}", response_class=HTMLResponse)
def reset_password_form(token: str, settings: Annotated[Settings, Depends(get_settings)]) -> str:
    """Minimal HTML form that posts the new password to /reset-password/{token}."""
    action = html.escape(f"{settings.API_V1_PREFIX}/auth/reset-password/{token}", quote=True)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Reset password</title></head>
<body>
<form id="reset-form" data-action="{action}">
  <label>New password <input type="password" name="password" minlength="6" maxlength="50" required></label>
  <label>Confirm password <input type="password" name="confirmPassword" minlength="6" maxlength="50" required></label>
  <button type="submit">Change password</button>
</form>
<p id="result"></p>
<script>
document.getElementById("reset-form").addEventListener("submit", async (event) => {{
  event.preventDefault();
  const form = event.target;
  const res = await fetch(form.dataset.action, {{
    method: "POST",
    headers: {{"Content-Type": "application/json"}},
    body: JSON.stringify({{password: form.password.value, confirmPassword: form.confirmPassword.value}}),
  }});
  const data = await res.json();
  document.getElementById("result").textContent = data.message || JSON.stringify(data.detail);
}});
</script>
</body>
</html>"""


@router.post("/reset-password/{token}", response_model=MessageResponse)
def reset_password(
    token: str,
    body: ResetPasswordRequest,
    service: Annotated[CredentialService, Depends(get_credential_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Redeem a reset token (single use) and set the new password."""
    try:
        service.reset_password(token, body.password, body.confirm_password)
    except CredentialError as e:
        raise _to_http_error(e, settings)
    return MessageResponse(message="Password changed successfully")


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    cookies: Annotated[SessionCookieAdapter, Depends(get_cookie_adapter)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CurrentUser:
    """Dependency: require a valid session token (Bearer header or cookie). Raises 401 otherwise."""
    token = credentials.credentials if credentials is not None else cookies.read(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = TokenIssuer.from_settings(settings).verify(token)
    except TokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = SqlAlchemyUserStore(db).find_by_id(payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser.model_validate(user)


def require_roles(*roles: str):
    """Dependency factory: allow only users whose role is one of roles. Raises 403 otherwise."""

    def check_role(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role",
            )
        return current_user

    return check_role


require_admin = require_roles("ADMIN")


@router.get("/me", response_model=CurrentUser)
def me(current_user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
    """Identity of the caller, resolved from the session token."""
    return current_user


@router.get("/users", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List all accounts (admin only)."""
    users = SqlAlchemyUserStore(db).list_users()
    return UsersListResponse(users=[AccountResponse.model_validate(u) for u in users])
