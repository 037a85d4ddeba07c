"""
Create an account directly (e.g. the first admin). Run from project root:
  python -m app.scripts.create_user EMAIL PASSWORD [role] [--name NAME] [--active]
Example:
  python -m app.scripts.create_user admin@example.com your-secure-password ADMIN --active
"""
import argparse
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN, PasswordHasher
from app.services.errors import CredentialError
from app.services.roles import ensure_roles
from app.services.user_store import SqlAlchemyUserStore


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Create a Keystone account.")
    parser.add_argument("email", help="Email address (unique)")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("role", nargs="?", default="USER", choices=settings.roles)
    parser.add_argument("--name", default=None, help="Display name (defaults to the email)")
    parser.add_argument("--active", action="store_true", help="Mark the account active")
    args = parser.parse_args(argv)

    email = args.email.strip()
    if not email or "@" not in email or len(email) > 255:
        print("Invalid email.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(
            f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.",
            file=sys.stderr,
        )
        return 1

    db = SessionLocal()
    try:
        ensure_roles(db, settings.roles)
        store = SqlAlchemyUserStore(db)
        if store.find_by_email(email) is not None:
            print(f"User '{email}' already exists.", file=sys.stderr)
            return 1
        hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
        user = store.create(
            {
                "email": email,
                "name": args.name or email,
                "password_hash": hasher.hash(args.password),
                "role": args.role,
                "active": args.active,
            }
        )
        print(f"Created user '{email}' (id {user.id}) with role '{args.role}'.")
        return 0
    except CredentialError as e:
        print(f"Could not create user: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
