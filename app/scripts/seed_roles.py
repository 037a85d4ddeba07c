"""
Insert any role named in APP_ROLES that is missing from the roles table:

  python -m app.scripts.seed_roles
"""

import logging
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.logging import configure_logging
from app.services.roles import ensure_roles

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    configure_logging(settings)
    db = SessionLocal()
    try:
        inserted = ensure_roles(db, settings.roles)
        logger.info("Role seeding completed: inserted=%s", len(inserted))
        return 0
    except Exception as e:
        logger.exception("Role seeding failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
