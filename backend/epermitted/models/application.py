"""
E-Permitted Backend — Application & ReferenceCounter Models
============================================================

What:  Permit applications and the per-(prefix, year) counters that number them.
How:   `Application.reference` has a unique constraint; `ReferenceCounter`
       rows are incremented atomically by the reference allocator.

Lifecycle of an Application:
    1. Created on submission (status SUBMITTED, reference allocated)
    2. `ai_analysis` written later by the analysis queue (success or error)
    3. Status moved by staff through the allowed transitions
    4. Never deleted in normal operation

Query Patterns:
    - Get by id: primary key lookup
    - Reference seeding: WHERE reference LIKE 'KCDC-2024-%'
      → unique index on reference serves the prefix scan
    - Staff listing: filter by council/status ORDER BY submitted_at DESC
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from epermitted.database import Base
from epermitted.models.council import Council, PermitType
from epermitted.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApplicationStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class Application(Base):
    """A permit application submitted by a user to a council."""

    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Format: <COUNCIL_CODE>-<YYYY>-<5-digit sequence>, e.g. KCDC-2024-00001
    reference: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        comment="Human-readable unique reference",
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status", native_enum=False, length=32),
        nullable=False,
        default=ApplicationStatus.SUBMITTED,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    council_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("councils.id"), nullable=False, index=True
    )
    permit_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("permit_types.id"), nullable=False
    )

    # Applicant-supplied document; shape depends on the permit type
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )

    # {analysis, analyzedAt, model} on success, {error, analyzedAt} on failure.
    # NULL until the analysis queue has processed the application.
    ai_analysis: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    user: Mapped[User] = relationship(back_populates="applications", lazy="selectin")
    council: Mapped[Council] = relationship(lazy="selectin")
    permit_type: Mapped[PermitType] = relationship(lazy="selectin")

    __table_args__ = (
        Index("idx_applications_submitted_at", submitted_at.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<Application(reference='{self.reference}', "
            f"status='{self.status.value}')>"
        )


class ReferenceCounter(Base):
    """
    Last issued sequence number for one (prefix, year) pair.

    The allocator increments `last_sequence` with a single
    UPDATE ... RETURNING, so concurrent submissions for the same council and
    year are serialized on this row until their transactions finish.
    """

    __tablename__ = "reference_counters"
    __table_args__ = (
        UniqueConstraint("prefix", "year", name="uq_reference_counters_prefix_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ReferenceCounter({self.prefix}-{self.year}: {self.last_sequence})>"
