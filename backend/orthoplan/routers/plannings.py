"""Treatment plannings.

Plannings carry no scope columns; reads and writes join back to Patient
through scoped_plannings / scoped_patients.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orthoplan.auth.deps import require_app_access, require_permission, require_scope
from orthoplan.auth.permissions import ScopeFilter
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.models.patient import Patient
from orthoplan.models.planning import Planning
from orthoplan.schemas.planning import (
    PlanningCreate,
    PlanningListItem,
    PlanningOut,
    PlanningUpdate,
)
from orthoplan.services.catalog import PLANNER
from orthoplan.services.scoping import scoped_patients, scoped_plannings

router = APIRouter(dependencies=[Depends(require_app_access(PLANNER))])

planning_scope = require_scope(Resource.PLANNING)


async def _get_scoped_planning(db: AsyncSession, scope: ScopeFilter, planning_id: str, *options):
    result = await db.execute(
        scoped_plannings(scope).where(Planning.id == planning_id).options(*options)
    )
    planning = result.scalar_one_or_none()
    if not planning:
        raise HTTPException(status_code=404, detail="Planning not found")
    return planning


@router.get(
    "/patients/{patient_id}/plannings",
    response_model=list[PlanningOut],
    dependencies=[Depends(require_permission(Action.READ, Resource.PLANNING))],
)
async def list_patient_plannings(
    patient_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(planning_scope),
):
    result = await db.execute(
        scoped_plannings(scope)
        .where(Planning.patient_id == patient_id)
        .order_by(Planning.created_at.desc())
    )
    return result.scalars().all()


@router.get(
    "/plannings",
    response_model=list[PlanningListItem],
    dependencies=[Depends(require_permission(Action.READ, Resource.PLANNING))],
)
async def list_plannings(
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(planning_scope),
):
    result = await db.execute(
        scoped_plannings(scope)
        .add_columns(Patient.name)
        .order_by(Planning.created_at.desc())
    )
    return [
        PlanningListItem(**PlanningOut.model_validate(planning).model_dump(), patient_name=name)
        for planning, name in result.all()
    ]


@router.post(
    "/plannings",
    response_model=PlanningOut,
    status_code=201,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PLANNING))],
)
async def create_planning(
    body: PlanningCreate,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(planning_scope),
):
    # The patient must be visible under the same scope
    result = await db.execute(scoped_patients(scope).where(Patient.id == body.patient_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Patient not found")

    planning = Planning(**body.model_dump(), status="DRAFT")
    db.add(planning)
    await db.flush()
    await db.refresh(planning)
    return planning


@router.put(
    "/plannings/{planning_id}",
    response_model=PlanningOut,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.PLANNING))],
)
async def update_planning(
    planning_id: str,
    body: PlanningUpdate,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(planning_scope),
):
    planning = await _get_scoped_planning(db, scope, planning_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(planning, field, value)

    await db.flush()
    await db.refresh(planning)
    return planning


@router.delete(
    "/plannings/{planning_id}",
    status_code=204,
    dependencies=[Depends(require_permission(Action.DELETE, Resource.PLANNING))],
)
async def delete_planning(
    planning_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(planning_scope),
):
    planning = await _get_scoped_planning(
        db, scope, planning_id, selectinload(Planning.treatment)
    )
    await db.delete(planning)
    await db.flush()
