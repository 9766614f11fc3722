from datetime import datetime

from pydantic import BaseModel, Field


class ContractCreate(BaseModel):
    patient_id: str
    content: str = Field(min_length=1)
    logo_url: str | None = None


class ContractOut(BaseModel):
    id: str
    patient_id: str
    content: str
    logo_url: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ContractListItem(ContractOut):
    patient_name: str
