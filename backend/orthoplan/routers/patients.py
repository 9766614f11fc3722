"""Patient CRUD, find-or-create and ownership transfer.

Every query goes through scoped_patients(scope): tenant and active clinic
always, plus owner unless the caller may manage patients.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orthoplan.auth.context import RequestContext
from orthoplan.auth.deps import (
    get_request_context,
    require_app_access,
    require_permission,
    require_scope,
)
from orthoplan.auth.permissions import ScopeFilter
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.middleware.exceptions import Forbidden
from orthoplan.models.contract import Contract
from orthoplan.models.patient import Patient
from orthoplan.models.planning import Planning
from orthoplan.models.user import User
from orthoplan.schemas.patient import (
    FindOrCreateResponse,
    PatientCreate,
    PatientDetail,
    PatientOut,
    PatientSummary,
    PatientUpdate,
    TransferRequest,
)
from orthoplan.services.catalog import PLANNER
from orthoplan.services.scoping import is_clinic_member, scoped_patients

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_app_access(PLANNER))])

patient_scope = require_scope(Resource.PATIENT)


async def _get_scoped_patient(db: AsyncSession, scope: ScopeFilter, patient_id: str, *options):
    result = await db.execute(
        scoped_patients(scope).where(Patient.id == patient_id).options(*options)
    )
    patient = result.scalar_one_or_none()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


async def _next_patient_number(db: AsyncSession, clinic_id: str) -> int:
    current = await db.scalar(
        select(func.max(Patient.patient_number)).where(Patient.clinic_id == clinic_id)
    )
    return (current or 0) + 1


# ── List ─────────────────────────────────────────────────────

@router.get(
    "/",
    response_model=list[PatientSummary],
    dependencies=[Depends(require_permission(Action.READ, Resource.PATIENT))],
)
async def list_patients(
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(patient_scope),
):
    planning_count = (
        select(func.count(Planning.id))
        .where(Planning.patient_id == Patient.id)
        .correlate(Patient)
        .scalar_subquery()
    )
    contract_count = (
        select(func.count(Contract.id))
        .where(Contract.patient_id == Patient.id)
        .correlate(Patient)
        .scalar_subquery()
    )
    result = await db.execute(
        scoped_patients(scope)
        .add_columns(planning_count.label("planning_count"), contract_count.label("contract_count"))
        .order_by(Patient.created_at.desc())
    )

    summaries = []
    for patient, plannings, contracts in result.all():
        summary = PatientSummary.model_validate(patient)
        summary.planning_count = plannings
        summary.contract_count = contracts
        summaries.append(summary)
    return summaries


# ── Create ───────────────────────────────────────────────────

@router.post(
    "/",
    response_model=PatientOut,
    status_code=201,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PATIENT))],
)
async def create_patient(
    body: PatientCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    scope: ScopeFilter = Depends(patient_scope),
):
    patient = Patient(
        **body.model_dump(),
        patient_number=await _next_patient_number(db, scope.clinic_id),
        tenant_id=scope.tenant_id,
        clinic_id=scope.clinic_id,
        user_id=ctx.principal.id,
    )
    db.add(patient)
    await db.flush()
    await db.refresh(patient)
    return patient


@router.post(
    "/find-or-create",
    response_model=FindOrCreateResponse,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PATIENT))],
)
async def find_or_create_patient(
    body: PatientCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    scope: ScopeFilter = Depends(patient_scope),
):
    """Match on name plus phone/birth date within the caller's scope."""
    name = body.name.strip()
    stmt = scoped_patients(scope).where(func.lower(Patient.name) == name.lower())
    if body.phone:
        stmt = stmt.where(Patient.phone == body.phone)
    if body.birth_date:
        stmt = stmt.where(Patient.birth_date == body.birth_date)

    existing = (await db.execute(stmt.limit(1))).scalar_one_or_none()
    if existing:
        return FindOrCreateResponse(patient=PatientOut.model_validate(existing), is_new=False)

    patient = Patient(
        **body.model_dump(exclude={"name"}),
        name=name,
        patient_number=await _next_patient_number(db, scope.clinic_id),
        tenant_id=scope.tenant_id,
        clinic_id=scope.clinic_id,
        user_id=ctx.principal.id,
    )
    db.add(patient)
    await db.flush()
    await db.refresh(patient)
    return FindOrCreateResponse(patient=PatientOut.model_validate(patient), is_new=True)


# ── Read ─────────────────────────────────────────────────────

@router.get(
    "/{patient_id}",
    response_model=PatientDetail,
    dependencies=[Depends(require_permission(Action.READ, Resource.PATIENT))],
)
async def get_patient(
    patient_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(patient_scope),
):
    return await _get_scoped_patient(
        db, scope, patient_id,
        selectinload(Patient.plannings),
        selectinload(Patient.contracts),
    )


# ── Update ───────────────────────────────────────────────────

@router.put(
    "/{patient_id}",
    response_model=PatientOut,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PATIENT))],
)
async def update_patient(
    patient_id: str,
    body: PatientUpdate,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(patient_scope),
):
    patient = await _get_scoped_patient(db, scope, patient_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(patient, field, value)

    await db.flush()
    await db.refresh(patient)
    return patient


# ── Delete ───────────────────────────────────────────────────

@router.delete(
    "/{patient_id}",
    status_code=204,
    dependencies=[Depends(require_permission(Action.DELETE, Resource.PATIENT))],
)
async def delete_patient(
    patient_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(patient_scope),
):
    # Children are loaded so the ORM cascade removes them
    patient = await _get_scoped_patient(
        db, scope, patient_id,
        selectinload(Patient.plannings).selectinload(Planning.treatment),
        selectinload(Patient.contracts),
    )
    await db.delete(patient)
    await db.flush()


# ── Transfer ─────────────────────────────────────────────────

@router.post(
    "/{patient_id}/transfer",
    response_model=PatientOut,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PATIENT))],
)
async def transfer_patient(
    patient_id: str,
    body: TransferRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    scope: ScopeFilter = Depends(patient_scope),
):
    principal = ctx.principal
    if not (principal.is_super_admin or principal.can_transfer_patient):
        raise Forbidden("Patient transfer not allowed")

    patient = await _get_scoped_patient(db, scope, patient_id)

    result = await db.execute(
        select(User).where(
            User.email == body.target_email,
            User.tenant_id == principal.tenant_id,
        )
    )
    target = result.scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="Target user not found")

    if not target.is_super_admin and not await is_clinic_member(db, target.id, patient.clinic_id):
        raise HTTPException(
            status_code=400, detail="Target user is not a member of this clinic"
        )

    patient.user_id = target.id
    await db.flush()
    await db.refresh(patient)

    logger.info("Patient %s transferred from %s to %s", patient.id, principal.id, target.id)
    return patient
