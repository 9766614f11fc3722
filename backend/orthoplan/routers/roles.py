"""Permission catalog and role management (portal).

GET /permissions is open to any portal user; role CRUD needs manage:role.
Listings are cached under "catalog:*" and invalidated on every mutation.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orthoplan.auth.deps import require_app_access, require_permission
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.middleware.exceptions import ConflictError
from orthoplan.models.access import Permission, Role, UserAppAccess
from orthoplan.schemas.admin import PermissionOut, RoleCreate, RoleOut, RoleUpdate
from orthoplan.services.catalog import ADMIN_ROLE, PORTAL, list_permissions, list_roles, role_out
from orthoplan.utils.cache import invalidate_cache

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_app_access(PORTAL))])

manage_roles = [Depends(require_permission(Action.MANAGE, Resource.ROLE))]


async def _load_permissions(db: AsyncSession, permission_ids: list[str]) -> list[Permission]:
    if not permission_ids:
        return []
    result = await db.execute(
        select(Permission)
        .where(Permission.id.in_(permission_ids))
        .options(selectinload(Permission.application))
    )
    permissions = list(result.scalars().all())
    if len(permissions) != len(set(permission_ids)):
        raise HTTPException(status_code=400, detail="Unknown permission id")
    return permissions


async def _get_role(db: AsyncSession, role_id: str) -> Role:
    result = await db.execute(
        select(Role)
        .where(Role.id == role_id)
        .options(selectinload(Role.permissions).selectinload(Permission.application))
    )
    role = result.scalar_one_or_none()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: str | None = None):
    stmt = select(Role.id).where(Role.name == name)
    if exclude_id:
        stmt = stmt.where(Role.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"Role '{name}' already exists", error_code="ROLE_EXISTS")


# ── Catalog ──────────────────────────────────────────────────

@router.get("/permissions", response_model=list[PermissionOut])
async def get_permissions(db: AsyncSession = Depends(get_db)):
    return await list_permissions(db)


@router.get("/roles", response_model=list[RoleOut], dependencies=manage_roles)
async def get_roles(db: AsyncSession = Depends(get_db)):
    return await list_roles(db)


# ── Mutations ────────────────────────────────────────────────

@router.post("/roles", response_model=RoleOut, status_code=201, dependencies=manage_roles)
async def create_role(body: RoleCreate, db: AsyncSession = Depends(get_db)):
    await _ensure_unique_name(db, body.name)

    role = Role(name=body.name, description=body.description)
    role.permissions = await _load_permissions(db, body.permission_ids)
    db.add(role)
    await db.flush()

    await invalidate_cache("catalog:*")
    logger.info("Role %s created with %d permissions", role.name, len(role.permissions))
    return role_out(role)


@router.put("/roles/{role_id}", response_model=RoleOut, dependencies=manage_roles)
async def update_role(role_id: str, body: RoleUpdate, db: AsyncSession = Depends(get_db)):
    role = await _get_role(db, role_id)

    if body.name is not None and body.name != role.name:
        await _ensure_unique_name(db, body.name, exclude_id=role.id)
        role.name = body.name
    if "description" in body.model_fields_set:
        role.description = body.description
    if body.permission_ids is not None:
        role.permissions = await _load_permissions(db, body.permission_ids)

    await db.flush()
    await invalidate_cache("catalog:*")
    return role_out(role)


@router.delete("/roles/{role_id}", status_code=204, dependencies=manage_roles)
async def delete_role(role_id: str, db: AsyncSession = Depends(get_db)):
    role = await _get_role(db, role_id)
    if role.name == ADMIN_ROLE:
        raise HTTPException(status_code=400, detail="The ADMIN role cannot be deleted")

    # Revokes every grant using this role
    await db.execute(delete(UserAppAccess).where(UserAppAccess.role_id == role.id))
    await db.delete(role)
    await db.flush()

    await invalidate_cache("catalog:*")
    logger.info("Role %s deleted", role.name)
