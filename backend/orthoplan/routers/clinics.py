"""Clinic management within the caller's tenant (portal)."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orthoplan.auth.context import RequestContext
from orthoplan.auth.deps import get_request_context, require_app_access, require_permission
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.middleware.exceptions import ConflictError
from orthoplan.models.clinic import Clinic
from orthoplan.models.patient import Patient
from orthoplan.schemas.admin import ClinicCreate, ClinicOut, ClinicUpdate
from orthoplan.services.catalog import PORTAL
from orthoplan.services.scoping import list_selectable_clinics

router = APIRouter(dependencies=[Depends(require_app_access(PORTAL))])

manage_clinics = [Depends(require_permission(Action.MANAGE, Resource.CLINIC))]


async def _get_tenant_clinic(db: AsyncSession, ctx: RequestContext, clinic_id: str, *options):
    result = await db.execute(
        select(Clinic)
        .where(Clinic.id == clinic_id, Clinic.tenant_id == ctx.tenant_id)
        .options(*options)
    )
    clinic = result.scalar_one_or_none()
    if not clinic:
        raise HTTPException(status_code=404, detail="Clinic not found")
    return clinic


@router.get("/", response_model=list[ClinicOut])
async def list_clinics(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await list_selectable_clinics(db, ctx.principal)


@router.post("/", response_model=ClinicOut, status_code=201, dependencies=manage_clinics)
async def create_clinic(
    body: ClinicCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    clinic = Clinic(**body.model_dump(), tenant_id=ctx.tenant_id)
    db.add(clinic)
    await db.flush()
    await db.refresh(clinic)
    return clinic


@router.put("/{clinic_id}", response_model=ClinicOut, dependencies=manage_clinics)
async def update_clinic(
    clinic_id: str,
    body: ClinicUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    clinic = await _get_tenant_clinic(db, ctx, clinic_id)

    updates = body.model_dump(exclude_unset=True)
    if "name" in updates and not updates["name"]:
        raise HTTPException(status_code=400, detail="Clinic name cannot be empty")
    for field, value in updates.items():
        setattr(clinic, field, value)

    await db.flush()
    await db.refresh(clinic)
    return clinic


@router.delete("/{clinic_id}", status_code=204, dependencies=manage_clinics)
async def delete_clinic(
    clinic_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    clinic = await _get_tenant_clinic(db, ctx, clinic_id, selectinload(Clinic.memberships))

    patient_count = await db.scalar(
        select(func.count(Patient.id)).where(Patient.clinic_id == clinic.id)
    )
    if patient_count:
        raise ConflictError("Clinic still has patients", error_code="CLINIC_IN_USE")

    await db.delete(clinic)
    await db.flush()
