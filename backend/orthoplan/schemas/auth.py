from pydantic import BaseModel, EmailStr, Field


# ── Self-registration ───────────────────────────────────────

class RegisterRequest(BaseModel):
    """First user of an installation becomes super-admin."""
    email: EmailStr
    password: str = Field(min_length=8)
    name: str = Field(min_length=1)
    tenant_name: str | None = None


# ── Login ────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class GrantOut(BaseModel):
    application: str
    role: str
    permissions: list[str]


class UserOut(BaseModel):
    id: str
    email: str
    name: str
    tenant_id: str
    is_super_admin: bool
    can_transfer_patient: bool
    applications: list[str]
    grants: list[GrantOut]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
