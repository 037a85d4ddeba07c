"""User persistence behind a small interface so credential logic never touches the ORM directly."""

import logging
from typing import Any, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.user import User
from app.services.errors import ConflictError, PersistenceError

logger = logging.getLogger(__name__)


class UserStore(Protocol):
    """Storage operations consumed by the credential services."""

    def find_by_email(self, email: str) -> User | None: ...

    def find_by_id(self, account_id: str) -> User | None: ...

    def find_by_reset_token(self, token: str) -> User | None: ...

    def create(self, fields: dict[str, Any]) -> User: ...

    def save(self, user: User) -> None: ...

    def consume_reset_token(self, account_id: str, token: str, password_hash: str) -> bool: ...

    def clear_reset_token(self, account_id: str, token: str) -> bool: ...

    def list_users(self) -> list[User]: ...


class SqlAlchemyUserStore:
    """UserStore backed by a SQLAlchemy session. Each write commits its own transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_email(self, email: str) -> User | None:
        return self._query(lambda: self.db.query(User).filter(User.email == email).first())

    def find_by_id(self, account_id: str) -> User | None:
        return self._query(lambda: self.db.query(User).filter(User.id == account_id).first())

    def find_by_reset_token(self, token: str) -> User | None:
        if not token:
            return None
        return self._query(
            lambda: self.db.query(User).filter(User.reset_token == token).first()
        )

    def list_users(self) -> list[User]:
        return self._query(lambda: self.db.query(User).order_by(User.email).all())

    def create(self, fields: dict[str, Any]) -> User:
        """Insert a new user. A duplicate email surfaces as ConflictError."""
        user = User(**fields)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # The unique index on email resolves concurrent registrations
            if self.find_by_email(fields.get("email", "")) is not None:
                raise ConflictError("User already exists") from e
            raise PersistenceError(str(e.orig)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(str(e)) from e
        self.db.refresh(user)
        return user

    def save(self, user: User) -> None:
        self.db.add(user)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(str(e)) from e

    def consume_reset_token(self, account_id: str, token: str, password_hash: str) -> bool:
        """
        Set a new password hash and clear the reset token in one conditional UPDATE.

        Only matches while the token is still attached, so of two concurrent
        redemptions exactly one sees rowcount 1. Returns False for the loser.
        """
        return self._update_if_token(account_id, token, password_hash=password_hash)

    def clear_reset_token(self, account_id: str, token: str) -> bool:
        """Clear the reset token only while it is still the given one. True if it was cleared."""
        return self._update_if_token(account_id, token)

    def _update_if_token(self, account_id: str, token: str, **values: Any) -> bool:
        stmt = (
            update(User)
            .where(User.id == account_id, User.reset_token == token)
            .values(reset_token=None, reset_token_issued_at=None, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(str(e)) from e
        return result.rowcount == 1

    def _query(self, run):
        try:
            return run()
        except SQLAlchemyError as e:
            logger.error("User store query failed: %s", e)
            raise PersistenceError(str(e)) from e
