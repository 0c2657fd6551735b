"""
CLI management commands for certauth.

Usage:
    python -m certauth.cli.commands init-db
    python -m certauth.cli.commands create-admin --username alice --email alice@example.com
"""
from __future__ import annotations

import argparse
import getpass
import logging
import sys

from certauth.auth.registry import SessionRegistry
from certauth.auth.service import AccountExistsError, AuthService
from certauth.db.engine import SessionLocal, engine
from certauth.models import Base

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def cmd_init_db() -> None:
    """Create the admin account tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def cmd_create_admin(username: str, email: str, password: str | None) -> None:
    """Create an admin account, prompting for the password if not given."""
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirm password: "):
            logger.error("Passwords do not match")
            sys.exit(1)

    if len(password) < MIN_PASSWORD_LENGTH:
        logger.error(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        sys.exit(1)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        admin = AuthService(db, SessionRegistry()).register_admin(username, email, password)
        logger.info(f"Created admin {admin.username} (id {admin.owner_id})")

    except AccountExistsError as e:
        logger.error(f"Could not create admin: {e}")
        sys.exit(1)

    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="certauth management commands",
        prog="python -m certauth.cli.commands"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    create_admin = subparsers.add_parser("create-admin", help="Create an admin account")
    create_admin.add_argument("--username", required=True)
    create_admin.add_argument("--email", required=True)
    create_admin.add_argument(
        "--password",
        help="Admin password (prompted for when omitted)",
    )

    args = parser.parse_args(argv)

    if args.command == "init-db":
        cmd_init_db()
    elif args.command == "create-admin":
        cmd_create_admin(args.username, args.email, args.password)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
