"""Command line entry-point to create an operator account."""

from __future__ import annotations

import argparse
import getpass
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from .. import models
from ..database import session_scope
from ..security import generate_password_hash

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an administrator or building manager.")
    parser.add_argument("username", help="Login name (stored lowercase).")
    parser.add_argument("--full-name", required=True, help="Display name of the operator.")
    parser.add_argument(
        "--role",
        choices=[role.value for role in models.UserRole],
        default=models.UserRole.MANAGER.value,
        help="Authorization role (default: manager).",
    )
    parser.add_argument("--email", default=None)
    parser.add_argument("--phone", default=None)
    parser.add_argument(
        "--password",
        default=None,
        help="Password; prompted for when omitted.",
    )
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def create_user(
    db,
    *,
    username: str,
    password: str,
    full_name: str,
    role: models.UserRole = models.UserRole.MANAGER,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> models.User:
    user = models.User(
        username=username.strip().lower(),
        password_hash=generate_password_hash(password),
        role=role,
        full_name=full_name,
        email=email,
        phone=phone,
    )
    db.add(user)
    db.flush()
    return user


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    password = args.password or getpass.getpass("Password: ")
    if not password:
        LOGGER.error("A password is required")
        return 1

    try:
        with session_scope() as db:
            user = create_user(
                db,
                username=args.username,
                password=password,
                full_name=args.full_name,
                role=models.UserRole(args.role),
                email=args.email,
                phone=args.phone,
            )
            LOGGER.info("Created %s account %s", user.role.value, user.username)
    except IntegrityError:
        LOGGER.error("Username %s already exists", args.username)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
