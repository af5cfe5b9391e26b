"""
Seed script to populate default permissions, roles and positions.

Run this script after database initialization to create:
- Default permissions under the default guard
- Default roles with their permissions
- Default positions with their roles

Existing rows are left alone, so the script can be rerun safely.

Usage:
    uv run python -m scripts.seed_positions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.core import config
from pbac.core.database.engine import get_db, init_db
from pbac.features.permissions.models import Permission, Role
from pbac.features.positions.models import Position
from pbac.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    ("invoices.create", "Create invoices"),
    ("invoices.read", "View invoices"),
    ("approve-invoice", "Approve invoices for payment"),
    ("reports.read", "View reports"),
    ("reports.export", "Export reports"),
    ("users.read", "View user information"),
    ("users.manage_positions", "Assign and remove user positions"),
]


DEFAULT_ROLES = {
    "approver": {
        "description": "Signs off on invoices",
        "permissions": ["invoices.read", "approve-invoice"],
    },
    "clerk": {
        "description": "Day-to-day invoice handling",
        "permissions": ["invoices.create", "invoices.read"],
    },
    "auditor": {
        "description": "Read-only access to records and reports",
        "permissions": ["invoices.read", "reports.read", "reports.export"],
    },
    "people_admin": {
        "description": "Manages who holds which position",
        "permissions": ["users.read", "users.manage_positions"],
    },
}


DEFAULT_POSITIONS = {
    "Manager": {
        "description": "Team manager",
        "roles": ["approver", "people_admin"],
    },
    "Accounts Clerk": {
        "description": "Accounts payable clerk",
        "roles": ["clerk"],
    },
    "Auditor": {
        "description": "Internal auditor",
        "roles": ["auditor"],
    },
}


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping permission names to Permission objects
    """
    log.info("Creating default permissions...")
    permissions_map = {}

    for name, description in DEFAULT_PERMISSIONS:
        stmt = select(Permission).where(
            Permission.name == name, Permission.guard_name == config.DEFAULT_GUARD
        )
        existing = (await db.execute(stmt)).scalars().first()

        if existing:
            log.debug("Permission '%s' already exists, skipping", name)
            permissions_map[name] = existing
            continue

        permission = Permission(name=name, description=description)
        db.add(permission)
        permissions_map[name] = permission
        log.info("Created permission: %s", name)

    await db.commit()
    log.info("Seeded %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]) -> dict[str, Role]:
    """Create default roles and grant their permissions."""
    log.info("Creating default roles...")
    roles_map = {}

    for role_name, role_config in DEFAULT_ROLES.items():
        stmt = select(Role).where(Role.name == role_name, Role.guard_name == config.DEFAULT_GUARD)
        existing = (await db.execute(stmt)).scalars().first()

        if existing:
            log.debug("Role '%s' already exists, skipping", role_name)
            roles_map[role_name] = existing
            continue

        role = Role(
            name=role_name,
            description=role_config["description"],
            permissions=[permissions_map[name] for name in role_config["permissions"]],
        )
        db.add(role)
        roles_map[role_name] = role
        log.info("Created role '%s' with %d permissions", role_name, len(role.permissions))

    await db.commit()
    return roles_map


async def seed_positions(db: AsyncSession, roles_map: dict[str, Role]):
    """Create default positions and attach their roles."""
    log.info("Creating default positions...")

    for position_name, position_config in DEFAULT_POSITIONS.items():
        stmt = select(Position).where(Position.name == position_name)
        existing = (await db.execute(stmt)).scalars().first()

        if existing:
            log.debug("Position '%s' already exists, skipping", position_name)
            continue

        position = Position(
            name=position_name,
            description=position_config["description"],
            roles=[roles_map[name] for name in position_config["roles"]],
        )
        db.add(position)
        log.info("Created position '%s' with roles %s", position_name, position_config["roles"])

    await db.commit()


async def main():
    """Main function to seed permissions, roles and positions."""
    log.info("Starting position seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            permissions_map = await seed_permissions(db)
            roles_map = await seed_roles(db, permissions_map)
            await seed_positions(db, roles_map)

            log.info("Position seeding completed successfully!")
            for position_name, position_config in DEFAULT_POSITIONS.items():
                log.info("  - %s: %s", position_name, ", ".join(position_config["roles"]))

        except Exception as e:
            log.error("Error seeding positions: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
