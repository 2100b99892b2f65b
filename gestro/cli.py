"""
Admin Command Line

    gestro-admin check-env
    gestro-admin list-admins
    gestro-admin create-admin --email chef@example.com --name "Head Chef"
    gestro-admin ping --base-url http://localhost:8000

Every command returns 0 on success and 1 on missing configuration or
an unrecoverable error.

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError

from gestro.core.config import get_settings
from gestro.database import async_session_maker
from gestro.models import UserRole
from gestro.services.context import ServiceContext
from gestro.services.profiles import ProfileRepository
from gestro.services.realtime import get_change_feed

logger = logging.getLogger(__name__)

PING_ROUTES = ("/", "/health", "/api/categories", "/api/mcp")


def check_env() -> int:
    settings = get_settings()
    print("=" * 60)
    print(f"🔧 {settings.app_name} v{settings.app_version}")
    print(f"   Environment: {settings.env_mode.value}")
    print(f"   Database:    {settings.database_url.split('@')[-1]}")
    print(f"   Redis:       {settings.redis_url}")
    print("=" * 60)

    missing = settings.validate_production_config()
    if missing:
        print("❌ Missing configuration:")
        for key in missing:
            print(f"   - {key}")
        return 1

    print("✅ Configuration complete")
    return 0


async def list_admins() -> int:
    async with async_session_maker() as session:
        ctx = ServiceContext(session=session, feed=get_change_feed(), settings=get_settings())
        admins = await ProfileRepository(ctx).list_by_role(UserRole.ADMIN)

    if not admins:
        print("No admin accounts found")
        return 0

    for profile in admins:
        print(f"{profile.id}  {profile.email or '-':<30}  {profile.name or ''}")
    return 0


async def create_admin(email: str, name: str, user_id: Optional[str] = None) -> int:
    async with async_session_maker() as session:
        ctx = ServiceContext(session=session, feed=get_change_feed(), settings=get_settings())
        profile = await ProfileRepository(ctx).create_admin(email, name, user_id=user_id)

    if profile is None:
        print(f"❌ Could not create admin {email}")
        return 1
    print(f"✅ {profile.email} is now an admin (id {profile.id})")
    return 0


def ping(base_url: str, transport: Optional[httpx.BaseTransport] = None) -> int:
    """Probe the public routes of a running server."""
    timeout = get_settings().connectivity_timeout
    failures = 0
    with httpx.Client(base_url=base_url, timeout=timeout, transport=transport) as client:
        for route in PING_ROUTES:
            try:
                response = client.get(route)
            except httpx.HTTPError as e:
                print(f"❌ {route}: {e}")
                failures += 1
                continue

            if response.is_success:
                print(f"✅ {route}: {response.status_code}")
            else:
                print(f"❌ {route}: {response.status_code}")
                failures += 1

    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gestro-admin", description="Gestro administration commands")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("check-env", help="Validate required environment variables")
    commands.add_parser("list-admins", help="List admin accounts")

    create = commands.add_parser("create-admin", help="Create or promote an admin account")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--user-id", default=None, help="Auth provider user id")

    ping_cmd = commands.add_parser("ping", help="Probe a running server")
    ping_cmd.add_argument("--base-url", default=get_settings().app_base_url)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.command == "check-env":
            return check_env()
        if args.command == "list-admins":
            return asyncio.run(list_admins())
        if args.command == "create-admin":
            return asyncio.run(create_admin(args.email, args.name, args.user_id))
        return ping(args.base_url)
    except SQLAlchemyError as e:
        print(f"❌ Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
