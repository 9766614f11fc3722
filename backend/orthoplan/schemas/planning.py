from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator


# ── Planning ─────────────────────────────────────────────────

class PlanningCreate(BaseModel):
    patient_id: str
    title: str = Field(min_length=1, max_length=255)
    original_report: str | None = None


class PlanningUpdate(BaseModel):
    status: str | None = None
    ai_response: str | None = None
    structured_plan: dict | None = None

    @field_validator("status")
    @classmethod
    def status_not_null(cls, v: str | None) -> str:
        if v is None:
            raise ValueError("status cannot be null")
        return v


class PlanningOut(BaseModel):
    id: str
    patient_id: str
    title: str
    status: str
    original_report: str | None = None
    ai_response: str | None = None
    structured_plan: dict | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PlanningListItem(PlanningOut):
    patient_name: str


# ── Treatment ────────────────────────────────────────────────

class TreatmentCreate(BaseModel):
    planning_id: str
    start_date: date
    deadline: date | None = None
    end_date: date | None = None
    last_appointment: date | None = None
    next_appointment: date | None = None
    notes: str | None = None
    status: str = "IN_PROGRESS"


class TreatmentUpdate(BaseModel):
    """Partial update: only fields present in the payload are applied."""
    start_date: date | None = None
    deadline: date | None = None
    end_date: date | None = None
    last_appointment: date | None = None
    next_appointment: date | None = None
    notes: str | None = None
    status: str | None = None

    @field_validator("start_date", "status")
    @classmethod
    def required_not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class TreatmentOut(BaseModel):
    id: str
    planning_id: str
    start_date: date
    deadline: date | None
    end_date: date | None
    last_appointment: date | None
    next_appointment: date | None
    notes: str | None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
