"""Initial schema: tenancy, access control catalog, planner records.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18

Run with:
    alembic upgrade head
    python -m orthoplan.cli seed
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Tenancy ──────────────────────────────────────────────

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "clinics",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("nickname", sa.String(100)),
        sa.Column("cro", sa.String(50)),
        sa.Column("logo_url", sa.String(500)),
        sa.Column("website", sa.String(255)),
        sa.Column("zip_code", sa.String(20)),
        sa.Column("street", sa.String(255)),
        sa.Column("number", sa.String(20)),
        sa.Column("complement", sa.String(100)),
        sa.Column("district", sa.String(100)),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.String(50)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_clinics_tenant_id", "clinics", ["tenant_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("nickname", sa.String(100)),
        sa.Column("avatar_url", sa.String(500)),
        sa.Column("tenant_id", sa.String(36), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("is_super_admin", sa.Boolean(), server_default="false"),
        sa.Column("can_transfer_patient", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    op.create_table(
        "user_clinics",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "clinic_id", sa.String(36),
            sa.ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.UniqueConstraint("user_id", "clinic_id"),
    )
    op.create_index("ix_user_clinics_user_id", "user_clinics", ["user_id"])
    op.create_index("ix_user_clinics_clinic_id", "user_clinics", ["clinic_id"])

    # ── Access control catalog ───────────────────────────────

    op.create_table(
        "applications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(500)),
        sa.Column("icon", sa.String(50)),
        sa.Column("url", sa.String(255)),
    )

    op.create_table(
        "permissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource", sa.String(50), nullable=False),
        sa.Column("description", sa.String(255)),
        sa.Column("application_id", sa.String(36), sa.ForeignKey("applications.id")),
        sa.UniqueConstraint("action", "resource"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "role_permissions",
        sa.Column(
            "role_id", sa.String(36),
            sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "permission_id", sa.String(36),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True,
        ),
    )

    op.create_table(
        "user_app_access",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "application_id", sa.String(36),
            sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "role_id", sa.String(36),
            sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.UniqueConstraint("user_id", "application_id"),
    )
    op.create_index("ix_user_app_access_user_id", "user_app_access", ["user_id"])

    # ── Planner records ──────────────────────────────────────

    op.create_table(
        "patients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("patient_number", sa.Integer()),
        sa.Column("external_id", sa.String(100)),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("birth_date", sa.Date()),
        sa.Column("tenant_id", sa.String(36), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("clinic_id", sa.String(36), sa.ForeignKey("clinics.id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_patients_tenant_id", "patients", ["tenant_id"])
    op.create_index("ix_patients_clinic_id", "patients", ["clinic_id"])
    op.create_index("ix_patients_user_id", "patients", ["user_id"])

    op.create_table(
        "plannings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "patient_id", sa.String(36),
            sa.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(30), server_default="DRAFT"),
        sa.Column("original_report", sa.Text()),
        sa.Column("ai_response", sa.Text()),
        sa.Column("structured_plan", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_plannings_patient_id", "plannings", ["patient_id"])

    op.create_table(
        "treatments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "planning_id", sa.String(36),
            sa.ForeignKey("plannings.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("deadline", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("last_appointment", sa.Date()),
        sa.Column("next_appointment", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(30), server_default="IN_PROGRESS"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "contracts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "patient_id", sa.String(36),
            sa.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("logo_url", sa.String(500)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_contracts_patient_id", "contracts", ["patient_id"])

    # ── AI provider keys ─────────────────────────────────────

    op.create_table(
        "ai_api_keys",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade() -> None:
    for table in (
        "ai_api_keys",
        "contracts",
        "treatments",
        "plannings",
        "patients",
        "user_app_access",
        "role_permissions",
        "roles",
        "permissions",
        "applications",
        "user_clinics",
        "users",
        "clinics",
        "tenants",
    ):
        op.drop_table(table)
