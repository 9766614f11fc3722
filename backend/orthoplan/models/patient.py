import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orthoplan.database import Base


class Patient(Base):
    """Owned by one user (the dentist who created it) inside one clinic.

    tenant_id and clinic_id always come from the creator's request scope,
    so the clinic is guaranteed to belong to the same tenant.
    """

    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    patient_number: Mapped[int | None] = mapped_column(Integer)
    external_id: Mapped[str | None] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(30))
    birth_date: Mapped[date | None] = mapped_column(Date)

    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    clinic_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clinics.id"), nullable=False, index=True
    )
    # Owner
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    owner = relationship("User")
    plannings = relationship(
        "Planning",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="Planning.created_at.desc()",
    )
    contracts = relationship(
        "Contract",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="Contract.created_at.desc()",
    )
