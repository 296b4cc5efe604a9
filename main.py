#!/usr/bin/env python3
"""
DeptConnect -- operator command line.

The public API can only create pending lecturer and student accounts. The
first admin (and any later one) is seeded from here.

Usage:
  python main.py create-admin --email admin@uni.edu --password s3cretpw
  python main.py create-admin --email admin@uni.edu --password s3cretpw --first-name Ada --last-name Obi

Environment variables:
  BCRYPT_ROUNDS   Work factor for the stored hash (default 12).
"""

import argparse
import re
import sys

from sqlalchemy.exc import IntegrityError

from api.models import PASSWORD_PATTERN
from auth.hashing import BcryptHasher
from auth.models import AccountStatus, Role, User
from auth.store import UserStore
from core.config import get_settings


def create_admin(store: UserStore, hasher: BcryptHasher, email: str, password: str, first_name: str, last_name: str) -> int:
    """Insert an approved admin account and return its id.

    Raises ValueError for a password outside the portal's password policy and
    sqlalchemy.exc.IntegrityError if the email is taken.
    """
    if not re.fullmatch(PASSWORD_PATTERN, password):
        raise ValueError("Password must be 6-20 letters or digits.")
    return store.create_user(
        User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=Role.admin.value,
            hashed_password=hasher.hash(password),
            status=AccountStatus.approved.value,
        )
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="deptconnect",
        description="DeptConnect operator commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    admin = commands.add_parser("create-admin", help="Seed an approved admin account")
    admin.add_argument("--email", required=True, help="Login email for the new admin")
    admin.add_argument("--password", required=True, help="6-20 letters or digits")
    admin.add_argument("--first-name", default="Department", help="Default: Department")
    admin.add_argument("--last-name", default="Admin", help="Default: Admin")

    args = parser.parse_args(argv)

    settings = get_settings()
    store = UserStore()
    try:
        user_id = create_admin(
            store,
            BcryptHasher(rounds=settings.bcrypt_rounds),
            args.email,
            args.password,
            args.first_name,
            args.last_name,
        )
    except ValueError as e:
        print(f"  [!] {e}")
        return 2
    except IntegrityError:
        print(f"  [!] An account with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    print(f"Admin account {user_id} created for {args.email.lower()}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
