"""Treatment tracking, one per planning.

A treatment is part of the planning workflow: it is guarded by planning
permissions and scoped like a planning.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orthoplan.auth.deps import require_app_access, require_permission, require_scope
from orthoplan.auth.permissions import ScopeFilter
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.middleware.exceptions import ConflictError
from orthoplan.models.planning import Planning, Treatment
from orthoplan.schemas.planning import TreatmentCreate, TreatmentOut, TreatmentUpdate
from orthoplan.services.catalog import PLANNER
from orthoplan.services.scoping import scoped_plannings, scoped_treatments

router = APIRouter(dependencies=[Depends(require_app_access(PLANNER))])

treatment_scope = require_scope(Resource.PLANNING)


async def _get_scoped_treatment(db: AsyncSession, scope: ScopeFilter, treatment_id: str):
    result = await db.execute(scoped_treatments(scope).where(Treatment.id == treatment_id))
    treatment = result.scalar_one_or_none()
    if not treatment:
        raise HTTPException(status_code=404, detail="Treatment not found")
    return treatment


@router.get(
    "/",
    response_model=list[TreatmentOut],
    dependencies=[Depends(require_permission(Action.READ, Resource.PLANNING))],
)
async def list_treatments(
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(treatment_scope),
):
    result = await db.execute(
        scoped_treatments(scope).order_by(Treatment.next_appointment, Treatment.created_at)
    )
    return result.scalars().all()


@router.get(
    "/by-planning/{planning_id}",
    response_model=TreatmentOut,
    dependencies=[Depends(require_permission(Action.READ, Resource.PLANNING))],
)
async def get_treatment_by_planning(
    planning_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(treatment_scope),
):
    result = await db.execute(
        scoped_treatments(scope).where(Treatment.planning_id == planning_id)
    )
    treatment = result.scalar_one_or_none()
    if not treatment:
        raise HTTPException(status_code=404, detail="Treatment not found")
    return treatment


@router.post(
    "/",
    response_model=TreatmentOut,
    status_code=201,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PLANNING))],
)
async def create_treatment(
    body: TreatmentCreate,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(treatment_scope),
):
    result = await db.execute(scoped_plannings(scope).where(Planning.id == body.planning_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Planning not found")

    existing = await db.execute(
        select(Treatment.id).where(Treatment.planning_id == body.planning_id)
    )
    if existing.first() is not None:
        raise ConflictError("Planning already has a treatment", error_code="TREATMENT_EXISTS")

    treatment = Treatment(**body.model_dump())
    db.add(treatment)
    await db.flush()
    await db.refresh(treatment)
    return treatment


@router.patch(
    "/{treatment_id}",
    response_model=TreatmentOut,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PLANNING))],
)
async def update_treatment(
    treatment_id: str,
    body: TreatmentUpdate,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(treatment_scope),
):
    treatment = await _get_scoped_treatment(db, scope, treatment_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(treatment, field, value)

    await db.flush()
    await db.refresh(treatment)
    return treatment


@router.delete(
    "/{treatment_id}",
    status_code=204,
    dependencies=[Depends(require_permission(Action.DELETE, Resource.PLANNING))],
)
async def delete_treatment(
    treatment_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(treatment_scope),
):
    treatment = await _get_scoped_treatment(db, scope, treatment_id)
    await db.delete(treatment)
    await db.flush()
