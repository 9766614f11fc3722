"""Query scoping for Patient-derived data.

Every query for a Patient, or for a record hanging off a Patient
(Planning, Treatment, Contract), goes through these helpers so the
tenant / clinic / owner predicate is never forgotten. Child records are
always joined back to Patient; they carry no scope columns of their own.
"""

from __future__ import annotations

import logging

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from orthoplan.auth.permissions import ScopeFilter
from orthoplan.auth.principal import Principal
from orthoplan.middleware.exceptions import Forbidden
from orthoplan.models.clinic import Clinic, UserClinic
from orthoplan.models.contract import Contract
from orthoplan.models.patient import Patient
from orthoplan.models.planning import Planning, Treatment

logger = logging.getLogger(__name__)


# ── Clinic selection ────────────────────────────────────────

async def is_clinic_member(db: AsyncSession, user_id: str, clinic_id: str) -> bool:
    result = await db.execute(
        select(UserClinic.id).where(
            UserClinic.user_id == user_id,
            UserClinic.clinic_id == clinic_id,
        )
    )
    return result.first() is not None


async def validate_active_clinic(
    db: AsyncSession,
    principal: Principal,
    clinic_id: str,
) -> None:
    """Check the client-selected clinic against the principal.

    The clinic must exist inside the principal's tenant. Non-super-admins
    must also be members of it. Raises Forbidden otherwise.
    """
    result = await db.execute(
        select(Clinic.id).where(
            Clinic.id == clinic_id,
            Clinic.tenant_id == principal.tenant_id,
        )
    )
    if result.first() is None:
        logger.info(
            "Principal %s selected clinic %s outside tenant %s",
            principal.id, clinic_id, principal.tenant_id,
        )
        raise Forbidden("Selected clinic is not available")

    if principal.is_super_admin:
        return

    if not await is_clinic_member(db, principal.id, clinic_id):
        logger.info("Principal %s is not a member of clinic %s", principal.id, clinic_id)
        raise Forbidden("Selected clinic is not available")


# ── Scoped selects ──────────────────────────────────────────

def _patient_clauses(scope: ScopeFilter) -> list:
    clauses = [
        Patient.tenant_id == scope.tenant_id,
        Patient.clinic_id == scope.clinic_id,
    ]
    if scope.owner_id is not None:
        clauses.append(Patient.user_id == scope.owner_id)
    return clauses


def scoped_patients(scope: ScopeFilter) -> Select:
    return select(Patient).where(*_patient_clauses(scope))


def scoped_plannings(scope: ScopeFilter) -> Select:
    return (
        select(Planning)
        .join(Patient, Planning.patient_id == Patient.id)
        .where(*_patient_clauses(scope))
    )


def scoped_treatments(scope: ScopeFilter) -> Select:
    return (
        select(Treatment)
        .join(Planning, Treatment.planning_id == Planning.id)
        .join(Patient, Planning.patient_id == Patient.id)
        .where(*_patient_clauses(scope))
    )


def scoped_contracts(scope: ScopeFilter) -> Select:
    return (
        select(Contract)
        .join(Patient, Contract.patient_id == Patient.id)
        .where(*_patient_clauses(scope))
    )


async def list_selectable_clinics(db: AsyncSession, principal: Principal) -> list[Clinic]:
    """Clinics the principal may pick as active: every tenant clinic for
    super-admins, otherwise only its memberships."""
    stmt = select(Clinic).where(Clinic.tenant_id == principal.tenant_id)
    if not principal.is_super_admin:
        stmt = stmt.join(UserClinic, UserClinic.clinic_id == Clinic.id).where(
            UserClinic.user_id == principal.id
        )
    result = await db.execute(stmt.order_by(Clinic.name))
    return list(result.scalars().all())
