"""Session cookie: carries the JWT between browser and API."""

from typing import TYPE_CHECKING

from fastapi import Request, Response

if TYPE_CHECKING:
    from app.core.config import Settings


class SessionCookieAdapter:
    """
    Maps an issued session token to an httpOnly, SameSite=strict cookie.

    Clearing the cookie does not revoke the token: a copy of it stays valid
    until its exp claim passes.
    """

    def __init__(self, name: str = "access_token", secure: bool = False, max_age: int = 3600) -> None:
        self.name = name
        self.secure = secure
        self.max_age = max_age

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SessionCookieAdapter":
        return cls(
            name=settings.SESSION_COOKIE_NAME,
            secure=settings.is_production,
            max_age=settings.JWT_EXPIRE_MINUTES * 60,
        )

    def attach(self, response: Response, token: str) -> None:
        response.set_cookie(
            self.name,
            value=token,
            max_age=self.max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="strict",
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            self.name,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="strict",
        )

    def read(self, request: Request) -> str | None:
        return request.cookies.get(self.name) or None
