from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal

from app.models.enums import (
    ApprovalDecision, BillStatus, Frequency, OccurrenceState,
)


class RecurringRule(BaseModel):
    """Recurrence settings stored as JSON on a bill."""
    frequency: Frequency
    interval: int = Field(1, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    by_month_day: Optional[int] = Field(None, ge=1, le=31)
    horizon_months: Optional[int] = Field(None, ge=1, le=120)

    @model_validator(mode="after")
    def check_bounds(self) -> "RecurringRule":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.by_month_day is not None and self.frequency != Frequency.MONTHLY:
            raise ValueError("by_month_day only applies to monthly rules")
        return self


# Vendors & projects

class VendorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    contact_email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class VendorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class VendorResponse(VendorCreate):
    id: UUID
    org_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectResponse(ProjectCreate):
    id: UUID
    org_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Bills

class BillBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    amount_total: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: str = Field("CAD", min_length=3, max_length=3)
    due_date: Optional[date] = None
    recurring_rule: Optional[RecurringRule] = None
    installments_total: Optional[int] = Field(None, ge=1, le=200)
    auto_approve: bool = False
    vendor_id: Optional[UUID] = None
    project_id: Optional[UUID] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class BillCreate(BillBase):
    status: BillStatus = BillStatus.ACTIVE


class BillUpdate(BaseModel):
    """Partial update. Send recurring_rule=null to make a bill one-off."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    amount_total: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    due_date: Optional[date] = None
    recurring_rule: Optional[RecurringRule] = None
    installments_total: Optional[int] = Field(None, ge=1, le=200)
    auto_approve: Optional[bool] = None
    vendor_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    status: Optional[BillStatus] = None


class BillResponse(BaseModel):
    id: UUID
    org_id: UUID
    title: str
    description: Optional[str] = None
    amount_total: Decimal
    currency: str
    due_date: Optional[date] = None
    recurring_rule: Optional[dict] = None
    installments_total: Optional[int] = None
    auto_approve: bool
    status: BillStatus
    vendor_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Occurrences

class OccurrenceResponse(BaseModel):
    id: UUID
    bill_id: UUID
    org_id: UUID
    vendor_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    sequence: int
    amount_due: Decimal
    due_date: date
    suggested_submission_date: date
    state: OccurrenceState

    model_config = ConfigDict(from_attributes=True)


class BillDetailResponse(BillResponse):
    occurrences: List[OccurrenceResponse] = []


class OccurrenceStateUpdate(BaseModel):
    state: OccurrenceState


class GenerationResult(BaseModel):
    bill_id: UUID
    count: int
    pruned: int
    max_sequence: int


class SweepResult(BaseModel):
    as_of: date
    processed: int = 0
    auto_approved: int = 0
    pending_approval: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# Approvals

class ApprovalCreate(BaseModel):
    bill_occurrence_id: UUID
    decision: ApprovalDecision
    comment: Optional[str] = Field(None, max_length=2000)


class ApprovalResponse(BaseModel):
    id: UUID
    org_id: UUID
    bill_occurrence_id: UUID
    approver_id: UUID
    decision: ApprovalDecision
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
