"""Application / permission / role catalog.

The catalog is global reference data shared by every tenant:
  - seed_catalog()      idempotent upsert used by `python -m orthoplan.cli seed`
  - list_permissions()  cached read for the portal's role editor
  - list_roles()        cached read
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, selectinload

from orthoplan.models.access import Application, Permission, Role
from orthoplan.schemas.admin import PermissionOut, RoleOut
from orthoplan.utils.cache import cached

logger = logging.getLogger(__name__)

PORTAL = "portal"
PLANNER = "planner"
ADMIN_ROLE = "ADMIN"

APPLICATIONS: list[dict] = [
    {
        "name": PORTAL,
        "display_name": "Administrative Portal",
        "description": "Central management of clinics and users",
        "icon": "LayoutDashboard",
    },
    {
        "name": PLANNER,
        "display_name": "Orthodontic Planner",
        "description": "AI-assisted treatment planning",
        "icon": "ClipboardList",
    },
]

# (action, resource, description, application)
PERMISSIONS: list[tuple[str, str, str, str]] = [
    # Portal
    ("manage", "user", "Manage users", PORTAL),
    ("manage", "role", "Manage roles and permissions", PORTAL),
    ("read", "clinic", "View clinic data", PORTAL),
    ("manage", "clinic", "Manage clinic settings", PORTAL),
    ("manage", "all", "Full access", PORTAL),
    # Planner
    ("read", "patient", "View patients", PLANNER),
    ("write", "patient", "Create and edit patients", PLANNER),
    ("delete", "patient", "Delete patients", PLANNER),
    ("manage", "patient", "See and edit every patient of the clinic", PLANNER),
    ("read", "planning", "View plannings", PLANNER),
    ("write", "planning", "Create and edit plannings", PLANNER),
    ("delete", "planning", "Delete plannings", PLANNER),
    ("manage", "planning", "See and edit every planning of the clinic", PLANNER),
    ("read", "contract", "View contracts", PLANNER),
    ("write", "contract", "Generate contracts", PLANNER),
    ("delete", "contract", "Delete contracts", PLANNER),
]


# ── Seeding ─────────────────────────────────────────────────

def seed_catalog(db: Session) -> dict[str, int]:
    """Upsert applications, permissions and the ADMIN role. Safe to re-run."""
    apps: dict[str, Application] = {}
    for data in APPLICATIONS:
        app = db.execute(
            select(Application).where(Application.name == data["name"])
        ).scalar_one_or_none()
        if app is None:
            app = Application(**data)
            db.add(app)
        apps[data["name"]] = app
    db.flush()

    permissions: list[Permission] = []
    for action, resource, description, app_name in PERMISSIONS:
        perm = db.execute(
            select(Permission).where(
                Permission.action == action, Permission.resource == resource
            )
        ).scalar_one_or_none()
        if perm is None:
            perm = Permission(action=action, resource=resource)
            db.add(perm)
        perm.description = description
        perm.application_id = apps[app_name].id
        permissions.append(perm)
    db.flush()

    admin = db.execute(
        select(Role).where(Role.name == ADMIN_ROLE).options(selectinload(Role.permissions))
    ).scalar_one_or_none()
    if admin is None:
        admin = Role(name=ADMIN_ROLE, description="Full access to every application")
        db.add(admin)
    full_access = next(p for p in permissions if (p.action, p.resource) == ("manage", "all"))
    if full_access not in admin.permissions:
        admin.permissions.append(full_access)
    db.flush()

    logger.info("Catalog seeded: %d applications, %d permissions", len(apps), len(permissions))
    return {"applications": len(apps), "permissions": len(permissions), "roles": 1}


# ── Cached reads ────────────────────────────────────────────

def permission_out(perm: Permission) -> PermissionOut:
    return PermissionOut(
        id=perm.id,
        action=perm.action,
        resource=perm.resource,
        description=perm.description,
        application=perm.application.name if perm.application else None,
    )


def role_out(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        permissions=[permission_out(p) for p in role.permissions],
    )


@cached(prefix="catalog")
async def list_permissions(db: AsyncSession) -> list[PermissionOut]:
    result = await db.execute(
        select(Permission)
        .options(selectinload(Permission.application))
        .order_by(Permission.resource, Permission.action)
    )
    return [permission_out(p) for p in result.scalars().all()]


@cached(prefix="catalog")
async def list_roles(db: AsyncSession) -> list[RoleOut]:
    result = await db.execute(
        select(Role)
        .options(selectinload(Role.permissions).selectinload(Permission.application))
        .order_by(Role.name)
    )
    return [role_out(r) for r in result.scalars().all()]
