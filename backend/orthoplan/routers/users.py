"""User management within the caller's tenant (portal).

Updates sync two things besides plain fields:
  - clinic memberships (clinic_ids replaces the set; clinics must be in-tenant)
  - the planner role grant (empty role_id removes it)

A removed grant is gone on the user's next request; principals are never
cached.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orthoplan.auth.context import RequestContext
from orthoplan.auth.deps import get_request_context, require_app_access, require_permission
from orthoplan.auth.password import hash_password
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.middleware.exceptions import ConflictError, Forbidden
from orthoplan.models.access import Application, Role, UserAppAccess
from orthoplan.models.clinic import Clinic, UserClinic
from orthoplan.models.patient import Patient
from orthoplan.models.user import User
from orthoplan.schemas.admin import CreateUserRequest, UserSummary, UserUpdate
from orthoplan.services.catalog import PLANNER, PORTAL

logger = logging.getLogger(__name__)

router = APIRouter(
    dependencies=[
        Depends(require_app_access(PORTAL)),
        Depends(require_permission(Action.MANAGE, Resource.USER)),
    ]
)


# ── Helpers ──────────────────────────────────────────────────

def _user_query():
    return select(User).options(
        selectinload(User.app_access).selectinload(UserAppAccess.application),
        selectinload(User.clinic_memberships),
    )


async def _get_tenant_user(db: AsyncSession, ctx: RequestContext, user_id: str) -> User:
    result = await db.execute(
        _user_query()
        .where(User.id == user_id, User.tenant_id == ctx.tenant_id)
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _to_summary(user: User) -> UserSummary:
    planner_access = next(
        (a for a in user.app_access if a.application and a.application.name == PLANNER),
        None,
    )
    return UserSummary(
        id=user.id,
        email=user.email,
        name=user.name,
        nickname=user.nickname,
        tenant_id=user.tenant_id,
        is_super_admin=bool(user.is_super_admin),
        can_transfer_patient=bool(user.can_transfer_patient),
        role_id=planner_access.role_id if planner_access else None,
        clinic_ids=sorted(m.clinic_id for m in user.clinic_memberships),
        created_at=user.created_at,
    )


async def _validate_clinic_ids(db: AsyncSession, ctx: RequestContext, clinic_ids: list[str]):
    if not clinic_ids:
        return
    result = await db.execute(
        select(Clinic.id).where(Clinic.id.in_(clinic_ids), Clinic.tenant_id == ctx.tenant_id)
    )
    found = {row[0] for row in result.all()}
    if found != set(clinic_ids):
        raise HTTPException(status_code=400, detail="Clinic not found in this tenant")


async def _planner_application(db: AsyncSession) -> Application:
    result = await db.execute(select(Application).where(Application.name == PLANNER))
    app = result.scalar_one_or_none()
    if not app:
        raise HTTPException(status_code=400, detail="Planner application is not configured")
    return app


async def _validate_role(db: AsyncSession, role_id: str):
    if (await db.execute(select(Role.id).where(Role.id == role_id))).first() is None:
        raise HTTPException(status_code=400, detail="Role not found")


def _guard_super_admin(ctx: RequestContext, target: User | None = None, promotes: bool = False):
    """Only super-admins may grant the flag or modify an existing super-admin."""
    if ctx.principal.is_super_admin:
        return
    if promotes:
        logger.warning("User %s tried to grant super admin", ctx.principal.id)
        raise Forbidden("Only a super admin can grant super admin")
    if target is not None and target.is_super_admin:
        logger.warning("User %s tried to modify super admin %s", ctx.principal.id, target.id)
        raise Forbidden("Only a super admin can modify a super admin")


def _sync_memberships(user: User, clinic_ids: list[str]):
    wanted = set(clinic_ids)
    for membership in list(user.clinic_memberships):
        if membership.clinic_id not in wanted:
            user.clinic_memberships.remove(membership)
    existing = {m.clinic_id for m in user.clinic_memberships}
    for clinic_id in sorted(wanted - existing):
        user.clinic_memberships.append(UserClinic(clinic_id=clinic_id))


async def _sync_planner_role(db: AsyncSession, user: User, role_id: str | None):
    planner = await _planner_application(db)
    access = next((a for a in user.app_access if a.application_id == planner.id), None)

    if not role_id:
        if access is not None:
            user.app_access.remove(access)
            logger.info("Planner access revoked for user %s", user.id)
        return

    await _validate_role(db, role_id)
    if access is None:
        user.app_access.append(UserAppAccess(application_id=planner.id, role_id=role_id))
    else:
        access.role_id = role_id


# ── Routes ───────────────────────────────────────────────────

@router.get("/", response_model=list[UserSummary])
async def list_users(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    result = await db.execute(
        _user_query().where(User.tenant_id == ctx.tenant_id).order_by(User.name)
    )
    return [_to_summary(u) for u in result.scalars().all()]


@router.post("/", response_model=UserSummary, status_code=201)
async def create_user(
    body: CreateUserRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    _guard_super_admin(ctx, promotes=body.is_super_admin)

    existing = await db.execute(select(User.id).where(User.email == body.email))
    if existing.first() is not None:
        raise HTTPException(status_code=400, detail="Email already registered")

    await _validate_clinic_ids(db, ctx, body.clinic_ids)

    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        name=body.name,
        nickname=body.nickname,
        tenant_id=ctx.tenant_id,
        is_super_admin=body.is_super_admin,
        can_transfer_patient=body.can_transfer_patient,
        app_access=[],
        clinic_memberships=[UserClinic(clinic_id=c) for c in set(body.clinic_ids)],
    )
    if body.role_id:
        await _sync_planner_role(db, user, body.role_id)

    db.add(user)
    await db.flush()

    logger.info("User %s created by %s", user.id, ctx.principal.id)
    return _to_summary(await _get_tenant_user(db, ctx, user.id))


@router.put("/{user_id}", response_model=UserSummary)
async def update_user(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    user = await _get_tenant_user(db, ctx, user_id)
    updates = body.model_dump(exclude_unset=True)
    _guard_super_admin(ctx, user, promotes=bool(updates.get("is_super_admin")))

    if "email" in updates and updates["email"] != user.email:
        taken = await db.execute(select(User.id).where(User.email == updates["email"]))
        if taken.first() is not None:
            raise HTTPException(status_code=400, detail="Email already registered")

    for field in ("name", "email", "nickname", "is_super_admin", "can_transfer_patient"):
        if field in updates and updates[field] is not None:
            setattr(user, field, updates[field])

    if updates.get("clinic_ids") is not None:
        await _validate_clinic_ids(db, ctx, updates["clinic_ids"])
        _sync_memberships(user, updates["clinic_ids"])

    if "role_id" in updates:
        await _sync_planner_role(db, user, updates["role_id"])

    await db.flush()
    return _to_summary(await _get_tenant_user(db, ctx, user.id))


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if user_id == ctx.principal.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    user = await _get_tenant_user(db, ctx, user_id)
    _guard_super_admin(ctx, user)

    owned = await db.scalar(select(func.count(Patient.id)).where(Patient.user_id == user.id))
    if owned:
        raise ConflictError(
            "User still owns patients; transfer them first", error_code="USER_OWNS_PATIENTS"
        )

    await db.delete(user)
    await db.flush()
    logger.info("User %s deleted by %s", user_id, ctx.principal.id)
