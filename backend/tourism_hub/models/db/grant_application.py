"""GrantApplication and GrantStatusEntry ORM models.

Maps to the ``grant_applications`` and ``grant_status_history`` tables.
Applications move through the status machine in
:mod:`tourism_hub.services.application_service`; every transition appends
one ``GrantStatusEntry`` in the same flush as the status update.

The three disbursement columns can only be assigned through
:class:`tourism_hub.services.disbursement.DisbursementLedger`, which marks
the instance before writing; any other assignment raises
:class:`~tourism_hub.errors.LedgerViolation`.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tourism_hub.errors import LedgerViolation
from tourism_hub.models.db.base import Base, JSONType, utcnow

__all__ = ["GrantApplication", "GrantStatusEntry", "LEDGER_FIELDS"]

LEDGER_FIELDS = (
    "amount_approved",
    "initial_disbursement_amount",
    "final_disbursement_amount",
)


class GrantApplication(Base):
    __tablename__ = "grant_applications"

    # Human-readable id, GA-<yyyymm>-<nnnn>
    id: Mapped[str] = mapped_column(Text, primary_key=True)

    # Applicant
    applicant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    applicant_name: Mapped[str] = mapped_column(Text, nullable=False)
    organization_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Request
    project_name: Mapped[str] = mapped_column(Text, nullable=False)
    project_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    grant_category_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amount_requested: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True
    )

    # Status
    status: Mapped[str] = mapped_column(Text, nullable=False, default="Pending")
    submission_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_update_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Disbursement ledger
    amount_approved: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True
    )
    initial_disbursement_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True
    )
    final_disbursement_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True
    )

    # Reports: list of {path, file_name, submitted_at}
    early_report_files: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list
    )
    final_report_files: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list
    )
    early_report_rejection_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    final_report_rejection_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    # Resubmission chain
    resubmitted_from_id: Mapped[Optional[str]] = mapped_column(
        Text, ForeignKey("grant_applications.id"), nullable=True
    )
    resubmission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status_history: Mapped[list["GrantStatusEntry"]] = relationship(
        back_populates="application",
        order_by="GrantStatusEntry.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @validates(*LEDGER_FIELDS)
    def _guard_ledger(self, key, value):
        if getattr(self, "_ledger_authorized", None) != key:
            raise LedgerViolation(
                f"{key} can only be recorded by its designated transition"
            )
        if getattr(self, key) is not None:
            raise LedgerViolation(f"{key} has already been recorded")
        return value


class GrantStatusEntry(Base):
    """One append-only entry in an application's status history."""

    __tablename__ = "grant_status_history"
    __table_args__ = (
        UniqueConstraint("application_id", "position", name="uq_status_history_pos"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("grant_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by: Mapped[str] = mapped_column(Text, nullable=False)
    changed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    application: Mapped[GrantApplication] = relationship(
        back_populates="status_history"
    )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "notes": self.notes,
            "changed_by": self.changed_by,
        }


@event.listens_for(GrantStatusEntry, "before_update")
def _history_is_append_only(mapper, connection, target) -> None:
    raise RuntimeError("grant status history entries cannot be modified")
