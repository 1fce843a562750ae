"""Bills, their payment occurrences, and approval decisions"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, ForeignKey, Index, Integer, Numeric,
    String, Text, UniqueConstraint, text,
)
from sqlalchemy.dialects.postgresql import UUID, ENUM, JSONB
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, OrgScopedMixin
from app.models.enums import BillStatus, OccurrenceState, ApprovalDecision


class Vendor(BaseModel, OrgScopedMixin):
    __tablename__ = "vendors"

    name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Vendor {self.name}>"


class Project(BaseModel, OrgScopedMixin):
    __tablename__ = "projects"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Project {self.name}>"


class Bill(BaseModel, OrgScopedMixin):
    """
    A tracked payment obligation.
    recurring_rule is an embedded JSON value; when NULL the bill is one-off.
    """
    __tablename__ = "bills"

    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount_total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="CAD")
    due_date = Column(Date, nullable=True)
    recurring_rule = Column(JSONB, nullable=True)
    installments_total = Column(Integer, nullable=True)
    auto_approve = Column(Boolean, nullable=False, default=False, server_default="false")
    status = Column(
        ENUM(BillStatus, name="bill_status", values_callable=lambda x: [e.value for e in x]),
        default=BillStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    created_by = Column(UUID(as_uuid=True), nullable=True)

    organization = relationship("Organization", back_populates="bills")
    vendor = relationship("Vendor")
    project = relationship("Project")
    occurrences = relationship(
        "BillOccurrence",
        back_populates="bill",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BillOccurrence.sequence",
    )

    def __repr__(self) -> str:
        return f"<Bill {self.title} {self.amount_total}>"


class BillOccurrence(BaseModel, OrgScopedMixin):
    """One expected payment event for a bill. (bill_id, sequence) is unique."""
    __tablename__ = "bill_occurrences"
    __table_args__ = (
        UniqueConstraint("bill_id", "sequence", name="uq_bill_occurrences_bill_sequence"),
        CheckConstraint("sequence >= 1", name="ck_bill_occurrences_sequence_positive"),
        CheckConstraint("suggested_submission_date <= due_date", name="ck_bill_occurrences_submission_before_due"),
        Index(
            "ix_bill_occurrences_sweep",
            "due_date",
            postgresql_where=text("state = 'scheduled'"),
        ),
    )

    bill_id = Column(UUID(as_uuid=True), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    sequence = Column(Integer, nullable=False)
    amount_due = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    suggested_submission_date = Column(Date, nullable=False)
    state = Column(
        ENUM(OccurrenceState, name="occurrence_state", values_callable=lambda x: [e.value for e in x]),
        default=OccurrenceState.SCHEDULED,
        nullable=False,
        index=True,
    )

    bill = relationship("Bill", back_populates="occurrences")
    approvals = relationship("Approval", back_populates="occurrence", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<BillOccurrence {self.bill_id}#{self.sequence} {self.state}>"


class Approval(BaseModel, OrgScopedMixin):
    """An approver's decision on one occurrence. One row per (occurrence, approver)."""
    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("bill_occurrence_id", "approver_id", name="uq_approvals_occurrence_approver"),
    )

    bill_occurrence_id = Column(
        UUID(as_uuid=True), ForeignKey("bill_occurrences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approver_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    decision = Column(
        ENUM(ApprovalDecision, name="approval_decision", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    comment = Column(Text, nullable=True)

    occurrence = relationship("BillOccurrence", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<Approval {self.bill_occurrence_id} {self.decision}>"
