"""
E-Permitted Backend — Council & PermitType Models
==================================================

What:  Councils (the permitting authorities) and the permit types they offer.
How:   `Council.code` doubles as the prefix of every application reference
       issued for that council, so it is restricted to upper-case letters.
       `PermitType.requirements` and `PermitType.fees` are opaque JSON.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from epermitted.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Council(Base):
    """A local government council that issues permits."""

    __tablename__ = "councils"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        unique=True,
        comment="Upper-case letters; prefix of application references (e.g. KCDC)",
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="NZ")
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    # Small, always needed together with the council
    permit_types: Mapped[List["PermitType"]] = relationship(
        back_populates="council",
        lazy="selectin",
        order_by="PermitType.name",
    )

    @property
    def active_permit_types(self) -> List["PermitType"]:
        return [pt for pt in self.permit_types if pt.is_active]

    def __repr__(self) -> str:
        return f"<Council(code='{self.code}', name='{self.name}')>"


class PermitType(Base):
    """A category of consent offered by a council."""

    __tablename__ = "permit_types"
    __table_args__ = (
        UniqueConstraint("council_id", "code", name="uq_permit_types_council_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    council_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("councils.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requirements: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    fees: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    council: Mapped[Council] = relationship(back_populates="permit_types", lazy="selectin")

    def __repr__(self) -> str:
        return f"<PermitType(code='{self.code}', council_id={self.council_id})>"
