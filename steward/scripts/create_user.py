"""
Create a user with an explicit role (e.g. the first super admin). Run from project root:
  python -m steward.scripts.create_user EMAIL PASSWORD FIRST_NAME LAST_NAME [role]
Example:
  python -m steward.scripts.create_user admin@example.org 'S3cure-pass' Ada Admin super_admin
"""
import argparse
import logging
import sys

from steward.core.config import get_settings
from steward.core.database import SessionLocal
from steward.core.errors import AuthError
from steward.core.roles import UserRole
from steward.repositories.user_store import SqlAlchemyUserStore
from steward.services.user_admin import create_user_record, validate_password_policy

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Steward user with an explicit role.")
    parser.add_argument("email", help="Email address (unique, case-insensitive)")
    parser.add_argument("password", help="Password (8-128 chars, mixed case, digit or symbol)")
    parser.add_argument("first_name")
    parser.add_argument("last_name")
    parser.add_argument(
        "role",
        nargs="?",
        default=UserRole.MEMBER.value,
        choices=[role.value for role in UserRole],
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )

    db = SessionLocal()
    try:
        validate_password_policy(args.password)
        user = create_user_record(
            SqlAlchemyUserStore(db),
            settings,
            email=args.email,
            password=args.password,
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.role,
        )
        print(f"Created user '{user.email}' with role '{user.role}'.")
        return 0
    except AuthError as e:
        print(e.message, file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("User creation failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
