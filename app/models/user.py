"""ORM model for user accounts (credentials, role, reset token)."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, false, func

from app.models.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Account used for password login and session tokens.

    role: one of the configured role names (see roles table), default 'USER'.
    reset_token / reset_token_issued_at: both set by a forgot-password request
    and both cleared when the token is redeemed; None otherwise.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        String(32),
        ForeignKey("roles.name"),
        nullable=False,
        default="USER",
        server_default="USER",
    )
    active = Column(Boolean, nullable=False, default=False, server_default=false())
    authenticated = Column(Boolean, nullable=False, default=False, server_default=false())
    reset_token = Column(String(255), nullable=True, unique=True, index=True)
    reset_token_issued_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
