"""Bootstrap an admin account.

Usage:
    winprod-create-admin --email admin@winprod.ai
    winprod-create-admin --email ops@winprod.ai --full-name "Ops" --password-stdin

The password comes from --password-stdin, WINPROD_ADMIN_PASSWORD, or an
interactive prompt. It is never echoed or logged.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys

from winprod import config
from winprod.db.client import get_supabase
from winprod.db.store import BillingStore
from winprod.errors import WinProdError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _read_password(args: argparse.Namespace) -> str:
    if args.password_stdin:
        return sys.stdin.readline().rstrip("\n")
    from_env = os.environ.get("WINPROD_ADMIN_PASSWORD")
    if from_env:
        return from_env
    first = getpass.getpass("Admin password: ")
    if getpass.getpass("Repeat password: ") != first:
        raise ValueError("Passwords do not match")
    return first


def create_admin(email: str, password: str, full_name: str | None = None, client=None) -> str:
    """Create an auth user plus an active admin customer row.

    Returns:
        The new user's id.

    Raises:
        WinProdError: Supabase refused the user or the customer row.
    """
    client = client or get_supabase()
    store = BillingStore(client)

    try:
        response = client.auth.admin.create_user(
            {
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": {"full_name": full_name} if full_name else {},
            }
        )
    except Exception as e:
        raise WinProdError(f"Could not create auth user {email}: {e}") from e

    user = getattr(response, "user", None)
    if user is None:
        raise WinProdError("No user data returned")

    store.create_customer(user.id, email, status="active", tier="admin", full_name=full_name)
    return str(user.id)


def cmd_create(args: argparse.Namespace) -> int:
    try:
        password = _read_password(args)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"ERROR: password must be at least {MIN_PASSWORD_LENGTH} characters", file=sys.stderr)
        return 1

    try:
        user_id = create_admin(args.email, password, args.full_name)
    except WinProdError as e:
        logger.error("Error creating admin user: %s", e)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print("Admin user created successfully!")
    print(f"  Email:   {args.email}")
    print(f"  User id: {user_id}")
    print("You can now log in at /admin/login")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="winprod-create-admin",
        description="Create a WinProd admin account in Supabase",
    )
    parser.add_argument("--email", required=True, help="Admin email address")
    parser.add_argument("--full-name", help="Display name")
    parser.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin",
    )
    args = parser.parse_args(argv)

    config.configure_logging()
    return cmd_create(args)


if __name__ == "__main__":
    sys.exit(main())
