"""Aggregate model imports for Alembic auto-detection."""

from orthoplan.models.tenant import Tenant  # noqa: F401
from orthoplan.models.clinic import Clinic, UserClinic  # noqa: F401
from orthoplan.models.user import User  # noqa: F401
from orthoplan.models.access import (  # noqa: F401
    Application,
    Permission,
    Role,
    UserAppAccess,
    role_permissions,
)

# Patient-derived records
from orthoplan.models.patient import Patient  # noqa: F401
from orthoplan.models.planning import Planning, Treatment  # noqa: F401
from orthoplan.models.contract import Contract  # noqa: F401

from orthoplan.models.ai_key import AiApiKey  # noqa: F401
