"""
Print a user's roles and effective permissions.

Usage:
    python -m vems.scripts.check_user_permissions <username-or-email>
"""

import argparse
import asyncio
import sys
from vems.app.db.session import AsyncSessionLocal
from vems.app.api.v1.endpoints.auth import find_by_login
from vems.app.services.permissions import get_user_role_names, get_effective_permissions


async def check_user_permissions(login: str) -> int:
    async with AsyncSessionLocal() as db:
        user = await find_by_login(db, login)
        if user is None:
            print(f"❌ No user found for '{login}'")
            return 1

        roles = await get_user_role_names(db, user.id)
        permissions = sorted(await get_effective_permissions(db, user.id))

    print(f"User: {user.name} (id={user.id}, username={user.username}, email={user.email})")
    print(f"Superuser: {'yes' if user.is_superuser else 'no'}")
    print(f"Roles: {', '.join(roles) if roles else '-'}")
    print(f"Permissions ({len(permissions)}):")
    for name in permissions:
        print(f"  - {name}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Show the roles and effective permissions of a user")
    parser.add_argument("login", help="Username or email of the user")
    args = parser.parse_args()
    sys.exit(asyncio.run(check_user_permissions(args.login)))


if __name__ == "__main__":
    main()
