"""Auth routes: register, login, current profile.

Route overview:
  POST /register  self-registration; the first user ever becomes super-admin
  POST /login     email + password login
  GET  /me        current principal with its application grants
  GET  /clinics   clinics the caller may select
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orthoplan.auth.context import RequestContext, load_principal
from orthoplan.auth.deps import get_request_context
from orthoplan.auth.jwt import create_access_token
from orthoplan.auth.password import hash_password, verify_password
from orthoplan.auth.principal import Principal
from orthoplan.database import get_db
from orthoplan.models.access import Application, Role, UserAppAccess
from orthoplan.models.tenant import Tenant
from orthoplan.models.user import User
from orthoplan.schemas.admin import ClinicOut
from orthoplan.schemas.auth import (
    GrantOut,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserOut,
)
from orthoplan.services.catalog import ADMIN_ROLE, PLANNER, PORTAL
from orthoplan.services.scoping import list_selectable_clinics

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_TENANT_NAME = "Main Clinic"


# ── Helpers ──────────────────────────────────────────────────

def _build_user_out(principal: Principal) -> UserOut:
    return UserOut(
        id=principal.id,
        email=principal.email,
        name=principal.name,
        tenant_id=principal.tenant_id,
        is_super_admin=principal.is_super_admin,
        can_transfer_patient=principal.can_transfer_patient,
        applications=sorted(principal.applications),
        grants=[
            GrantOut(
                application=g.application,
                role=g.role,
                permissions=sorted(str(c) for c in g.capabilities),
            )
            for g in principal.grants
        ],
    )


def _build_token_response(principal: Principal) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(
            user_id=principal.id,
            tenant_id=principal.tenant_id,
        ),
        user=_build_user_out(principal),
    )


async def _grant_initial_admin_roles(db: AsyncSession, user: User) -> None:
    """Give the first user the ADMIN role on portal and planner, when seeded."""
    role = (
        await db.execute(select(Role).where(Role.name == ADMIN_ROLE))
    ).scalar_one_or_none()
    if role is None:
        logger.info("ADMIN role not seeded; first user relies on super-admin flag only")
        return

    apps = (
        await db.execute(select(Application).where(Application.name.in_([PORTAL, PLANNER])))
    ).scalars().all()
    for app in apps:
        db.add(UserAppAccess(user_id=user.id, application_id=app.id, role_id=role.id))


# ── POST /register ──────────────────────────────────────────

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    existing = await db.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    tenant = (
        await db.execute(select(Tenant).order_by(Tenant.created_at).limit(1))
    ).scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(name=body.tenant_name or DEFAULT_TENANT_NAME)
        db.add(tenant)
        await db.flush()

    is_first_user = (await db.scalar(select(func.count(User.id)))) == 0

    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        name=body.name,
        tenant_id=tenant.id,
        is_super_admin=is_first_user,
    )
    db.add(user)
    await db.flush()

    if is_first_user:
        await _grant_initial_admin_roles(db, user)
        await db.flush()
        logger.info("First user %s registered as super-admin", user.id)

    principal = await load_principal(db, user.id)
    return _build_token_response(principal)


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        logger.warning("Failed login for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    principal = await load_principal(db, user.id)
    return _build_token_response(principal)


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=UserOut)
async def me(ctx: RequestContext = Depends(get_request_context)):
    return _build_user_out(ctx.principal)


# ── GET /clinics ─────────────────────────────────────────────

@router.get("/clinics", response_model=list[ClinicOut])
async def my_clinics(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Clinics the caller can select as active, for any application."""
    return await list_selectable_clinics(db, ctx.principal)
