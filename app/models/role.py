"""ORM model for the role lookup table referenced by users.role."""

import uuid

from sqlalchemy import Column, DateTime, String, func

from app.models.base import Base


class Role(Base):
    """Allowed role name (e.g. ADMIN, USER, GUEST). Seeded from APP_ROLES."""

    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(32), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
