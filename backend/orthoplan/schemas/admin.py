"""Pydantic schemas for the portal: clinics, roles, permissions, users, AI keys."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


# ── Clinics ───────────────────────────────────────────────────

class ClinicBase(BaseModel):
    name: str | None = None
    nickname: str | None = None
    cro: str | None = None
    logo_url: str | None = None
    website: str | None = None
    zip_code: str | None = None
    street: str | None = None
    number: str | None = None
    complement: str | None = None
    district: str | None = None
    city: str | None = None
    state: str | None = None


class ClinicCreate(ClinicBase):
    name: str = Field(min_length=1, max_length=255)


class ClinicUpdate(ClinicBase):
    pass


class ClinicOut(ClinicBase):
    id: str
    tenant_id: str
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Permission catalog / roles ───────────────────────────────

class PermissionOut(BaseModel):
    id: str
    action: str
    resource: str
    description: str | None = None
    application: str | None = None


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    permission_ids: list[str] = []


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    permission_ids: list[str] | None = None


class RoleOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    permissions: list[PermissionOut]


# ── Users ────────────────────────────────────────────────────

class UserSummary(BaseModel):
    id: str
    email: str
    name: str
    nickname: str | None = None
    tenant_id: str
    is_super_admin: bool
    can_transfer_patient: bool
    role_id: str | None = None   # planner role
    clinic_ids: list[str]
    created_at: datetime


class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    name: str
    nickname: str | None = None
    is_super_admin: bool = False
    can_transfer_patient: bool = False
    clinic_ids: list[str] = []
    role_id: str | None = None


class UserUpdate(BaseModel):
    """Omitted fields are left untouched.

    role_id: "" or null removes the planner grant; clinic_ids replaces all
    memberships.
    """
    name: str | None = None
    email: EmailStr | None = None
    nickname: str | None = None
    is_super_admin: bool | None = None
    can_transfer_patient: bool | None = None
    clinic_ids: list[str] | None = None
    role_id: str | None = None


# ── AI provider keys ─────────────────────────────────────────

class AiKeyCreate(BaseModel):
    provider: str = Field(min_length=1)
    key: str = Field(min_length=1)


class AiKeyUpdate(BaseModel):
    key: str | None = None
    is_active: bool | None = None


class AiKeyOut(BaseModel):
    id: str
    provider: str
    masked_key: str
    is_active: bool
    created_at: datetime
