"""Treatment contracts generated for a patient."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from orthoplan.auth.deps import require_app_access, require_permission, require_scope
from orthoplan.auth.permissions import ScopeFilter
from orthoplan.auth.principal import Action, Resource
from orthoplan.database import get_db
from orthoplan.models.contract import Contract
from orthoplan.models.patient import Patient
from orthoplan.schemas.contract import ContractCreate, ContractListItem, ContractOut
from orthoplan.services.catalog import PLANNER
from orthoplan.services.scoping import scoped_contracts, scoped_patients

router = APIRouter(dependencies=[Depends(require_app_access(PLANNER))])

contract_scope = require_scope(Resource.CONTRACT)


async def _get_scoped_contract(db: AsyncSession, scope: ScopeFilter, contract_id: str):
    result = await db.execute(scoped_contracts(scope).where(Contract.id == contract_id))
    contract = result.scalar_one_or_none()
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract


@router.post(
    "/contracts",
    response_model=ContractOut,
    status_code=201,
    dependencies=[Depends(require_permission(Action.WRITE, Resource.CONTRACT))],
)
async def create_contract(
    body: ContractCreate,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(contract_scope),
):
    result = await db.execute(scoped_patients(scope).where(Patient.id == body.patient_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Patient not found")

    contract = Contract(**body.model_dump())
    db.add(contract)
    await db.flush()
    await db.refresh(contract)
    return contract


@router.get(
    "/contracts",
    response_model=list[ContractListItem],
    dependencies=[Depends(require_permission(Action.READ, Resource.CONTRACT))],
)
async def list_contracts(
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(contract_scope),
):
    result = await db.execute(
        scoped_contracts(scope)
        .add_columns(Patient.name)
        .order_by(Contract.created_at.desc())
    )
    return [
        ContractListItem(**ContractOut.model_validate(contract).model_dump(), patient_name=name)
        for contract, name in result.all()
    ]


@router.get(
    "/patients/{patient_id}/contracts",
    response_model=list[ContractOut],
    dependencies=[Depends(require_permission(Action.READ, Resource.CONTRACT))],
)
async def list_patient_contracts(
    patient_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(contract_scope),
):
    result = await db.execute(
        scoped_contracts(scope)
        .where(Contract.patient_id == patient_id)
        .order_by(Contract.created_at.desc())
    )
    return result.scalars().all()


@router.get(
    "/contracts/{contract_id}",
    response_model=ContractOut,
    dependencies=[Depends(require_permission(Action.READ, Resource.CONTRACT))],
)
async def get_contract(
    contract_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(contract_scope),
):
    return await _get_scoped_contract(db, scope, contract_id)


@router.delete(
    "/contracts/{contract_id}",
    status_code=204,
    dependencies=[Depends(require_permission(Action.DELETE, Resource.CONTRACT))],
)
async def delete_contract(
    contract_id: str,
    db: AsyncSession = Depends(get_db),
    scope: ScopeFilter = Depends(contract_scope),
):
    contract = await _get_scoped_contract(db, scope, contract_id)
    await db.delete(contract)
    await db.flush()
