from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from orthoplan.schemas.contract import ContractOut
from orthoplan.schemas.planning import PlanningOut


class PatientCreate(BaseModel):
    """Clinic, tenant and owner come from the request scope, never the body."""
    name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    birth_date: date | None = None
    external_id: str | None = None


class PatientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    birth_date: date | None = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: str | None) -> str:
        if v is None:
            raise ValueError("name cannot be null")
        return v


class PatientOut(BaseModel):
    id: str
    patient_number: int | None = None
    external_id: str | None = None
    name: str
    email: str | None
    phone: str | None
    birth_date: date | None
    tenant_id: str
    clinic_id: str
    user_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PatientSummary(PatientOut):
    planning_count: int = 0
    contract_count: int = 0


class PatientDetail(PatientOut):
    plannings: list[PlanningOut] = []
    contracts: list[ContractOut] = []


class FindOrCreateResponse(BaseModel):
    patient: PatientOut
    is_new: bool


class TransferRequest(BaseModel):
    target_email: str
