"""User administration script for CrowdVine.

Commands:
    add       Add a new member (or admin) account
    list      List all accounts
    disable   Disable an account
    enable    Enable an account
    remove    Remove an account and its membership
    passwd    Change an account's password
    promote   Change an account's role (user, producer or admin)
"""

import argparse
import asyncio
import sys
from getpass import getpass

from beanie import PydanticObjectId

from crowdvine.database import close_db, init_db
from crowdvine.models.base import utcnow
from crowdvine.models.membership import Membership, MembershipLevel
from crowdvine.models.producer import Producer
from crowdvine.models.user import User, UserRole
from crowdvine.services.auth import get_password_hash, get_user_by_email, normalize_email
from crowdvine.services.membership import get_or_create_membership

MIN_PASSWORD_LENGTH = 8


class CommandError(Exception):
    """A command that cannot be carried out; the message is shown to the operator."""


async def _require_user(email: str) -> User:
    user = await get_user_by_email(email)
    if user is None:
        raise CommandError(f"User '{email}' not found.")
    return user


async def add_user(email: str, password: str, full_name: str | None = None, is_admin: bool = False) -> None:
    email = normalize_email(email)
    if await get_user_by_email(email) is not None:
        raise CommandError(f"User '{email}' already exists.")

    now = utcnow()
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        is_verified=True,
        is_superuser=is_admin,
        role=UserRole.ADMIN if is_admin else UserRole.USER,
        access_granted_at=now,
    )
    await user.insert()
    await get_or_create_membership(
        user.id, level=MembershipLevel.ADMIN if is_admin else MembershipLevel.BASIC
    )
    print(f"User '{email}' created as {user.role.value}.")


async def list_users() -> None:
    users = await User.find_all().sort(+User.email).to_list()
    if not users:
        print("No users found.")
        return

    levels = {m.user_id: m.level.value for m in await Membership.find_all().to_list()}
    print(f"{'Email':<36} {'Role':<9} {'Level':<10} {'Active':<7} {'Last Login':<16}")
    print("-" * 82)
    for user in users:
        last_login = user.last_login.strftime("%Y-%m-%d %H:%M") if user.last_login else "Never"
        print(
            f"{user.email:<36} {user.role.value:<9} {levels.get(user.id, '-'):<10} "
            f"{'Yes' if user.is_active else 'No':<7} {last_login:<16}"
        )


async def set_active(email: str, active: bool) -> None:
    user = await _require_user(email)
    state = "enabled" if active else "disabled"
    if user.is_active == active:
        print(f"User '{user.email}' is already {state}.")
        return
    user.is_active = active
    user.updated_at = utcnow()
    await user.save()
    print(f"User '{user.email}' has been {state}.")


async def remove_user(email: str, force: bool = False) -> None:
    user = await _require_user(email)
    if not force:
        confirm = input(f"Remove user '{user.email}' and their membership? [y/N]: ")
        if confirm.lower() != "y":
            print("Aborted.")
            return
    await Membership.find(Membership.user_id == user.id).delete()
    await user.delete()
    print(f"User '{user.email}' has been removed.")


async def change_password(email: str, password: str) -> None:
    user = await _require_user(email)
    user.hashed_password = get_password_hash(password)
    user.updated_at = utcnow()
    await user.save()
    print(f"Password for '{user.email}' has been updated.")


async def promote_user(email: str, role: str, producer_id: str | None = None) -> None:
    """Set a role; producer accounts are linked to an existing producer."""
    user = await _require_user(email)
    new_role = UserRole(role)
    producer = None
    if new_role == UserRole.PRODUCER:
        if not producer_id:
            raise CommandError("--producer-id is required for the producer role.")
        producer = await Producer.get(PydanticObjectId(producer_id))
        if producer is None:
            raise CommandError(f"Producer {producer_id} not found.")

    user.role = new_role
    user.is_superuser = new_role == UserRole.ADMIN
    user.producer_id = producer.id if producer else None
    user.updated_at = utcnow()
    await user.save()
    linked = f" (producer {producer.name})" if producer else ""
    print(f"User '{user.email}' is now {new_role.value}{linked}.")


def get_password_interactive(confirm: bool = True) -> str:
    password = getpass("Password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"Error: Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        sys.exit(1)
    if confirm and getpass("Confirm password: ") != password:
        print("Error: Passwords do not match.")
        sys.exit(1)
    return password


async def _run(args: argparse.Namespace, password: str | None) -> None:
    await init_db()
    try:
        if args.command == "add":
            await add_user(args.email, password, args.name, args.admin)
        elif args.command == "list":
            await list_users()
        elif args.command in ("disable", "enable"):
            await set_active(args.email, args.command == "enable")
        elif args.command == "remove":
            await remove_user(args.email, args.force)
        elif args.command == "passwd":
            await change_password(args.email, password)
        elif args.command == "promote":
            await promote_user(args.email, args.role, args.producer_id)
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="User administration for CrowdVine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_parser = subparsers.add_parser("add", help="Add a new account")
    add_parser.add_argument("email", help="Email address of the new account")
    add_parser.add_argument("--name", "-n", help="Full name")
    add_parser.add_argument("--admin", "-a", action="store_true", help="Create an admin account")
    add_parser.add_argument("--password", "-p", help="Password (will prompt if not provided)")

    subparsers.add_parser("list", help="List all accounts")

    for command, help_text in (("disable", "Disable an account"), ("enable", "Enable an account")):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("email")

    remove_parser = subparsers.add_parser("remove", help="Remove an account")
    remove_parser.add_argument("email")
    remove_parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation")

    passwd_parser = subparsers.add_parser("passwd", help="Change an account's password")
    passwd_parser.add_argument("email")
    passwd_parser.add_argument("--password", "-p", help="New password (will prompt if not provided)")

    promote_parser = subparsers.add_parser("promote", help="Change an account's role")
    promote_parser.add_argument("email")
    promote_parser.add_argument("role", choices=[r.value for r in UserRole])
    promote_parser.add_argument("--producer-id", help="Producer to link (producer role)")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return 1

    password = None
    if args.command in ("add", "passwd"):
        password = args.password or get_password_interactive()

    try:
        asyncio.run(_run(args, password))
    except CommandError as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nAborted.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
