"""Role lookup seeding: make sure every configured role name exists."""

import logging

from sqlalchemy.orm import Session

from app.models.role import Role

logger = logging.getLogger(__name__)


def ensure_roles(session: Session, roles: list[str]) -> list[str]:
    """
    Insert the role names missing from the roles table; return the inserted names.

    Idempotent: safe to run on every deploy.
    """
    existing = {name for (name,) in session.query(Role.name).all()}
    missing = [r for r in roles if r not in existing]
    if not missing:
        logger.info("All %s configured roles present", len(roles))
        return []

    session.add_all([Role(name=name) for name in missing])
    session.commit()
    logger.info("Inserted missing roles: %s", ", ".join(missing))
    return missing
