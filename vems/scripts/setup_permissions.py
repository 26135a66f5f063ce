"""
Create the default permissions and roles.

Safe to run repeatedly: missing permissions and roles are created and
default grants added; nothing is removed.

Usage:
    python -m vems.scripts.setup_permissions
"""

import asyncio
import logging
from vems.app.core.logging_config import configure_logging
from vems.app.db.session import AsyncSessionLocal
from vems.app.services.permissions import ensure_default_permissions, DEFAULT_PERMISSIONS, DEFAULT_ROLE_GRANTS

logger = logging.getLogger("vems.scripts.setup_permissions")


async def setup_permissions():
    async with AsyncSessionLocal() as db:
        roles = await ensure_default_permissions(db)

    logger.info("Permission catalogue holds %d permissions", len(DEFAULT_PERMISSIONS))
    for name, role_id in sorted(roles.items()):
        grants = len(DEFAULT_ROLE_GRANTS.get(name, []))
        print(f"  {name:<20} id={role_id:<4} default grants={grants}")
    print("✅ Roles and permissions are set up")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(setup_permissions())
