"""Pydantic request/response schemas for grant applications."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tourism_hub.models._common import stringify_uuid

ReportKind = Literal["early", "final"]


class ApplicationCreate(BaseModel):
    """Applicant-supplied request data for a new (or re-) application."""

    project_name: str = Field(..., min_length=1, max_length=300)
    project_description: Optional[str] = Field(None, max_length=20000)
    grant_category_id: Optional[str] = Field(None, max_length=100)
    amount_requested: Optional[Decimal] = Field(None, ge=0)
    organization_name: Optional[str] = Field(None, max_length=300)
    contact_email: Optional[str] = Field(None, max_length=254)
    contact_phone: Optional[str] = Field(None, max_length=50)

    @field_validator("project_name")
    @classmethod
    def strip_project_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("project_name cannot be blank")
        return v


class ReviewNotes(BaseModel):
    """Body for transitions that only record reviewer notes."""

    notes: Optional[str] = Field(None, max_length=5000)


class AmountDecision(BaseModel):
    """Body for transitions that record a ledger amount."""

    amount: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=5000)


class ReportFile(BaseModel):
    path: str
    file_name: str
    submitted_at: datetime


class StatusHistoryEntry(BaseModel):
    status: str
    timestamp: datetime
    notes: Optional[str] = None
    changed_by: str

    class Config:
        from_attributes = True


class ApplicationResponse(BaseModel):
    """Full grant application (mirrors the DB row plus its history)."""

    id: str
    applicant_id: str
    applicant_name: str
    organization_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    project_name: str
    project_description: Optional[str] = None
    grant_category_id: Optional[str] = None
    amount_requested: Optional[float] = None
    status: str
    submission_timestamp: datetime
    last_update_timestamp: datetime
    amount_approved: Optional[float] = None
    initial_disbursement_amount: Optional[float] = None
    final_disbursement_amount: Optional[float] = None
    early_report_files: List[ReportFile] = Field(default_factory=list)
    final_report_files: List[ReportFile] = Field(default_factory=list)
    early_report_rejection_count: int = 0
    final_report_rejection_count: int = 0
    resubmitted_from_id: Optional[str] = None
    resubmission_count: int = 0
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)

    ids_to_str = field_validator("applicant_id", mode="before")(stringify_uuid)

    class Config:
        from_attributes = True


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationResponse]
    total: int


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int


class GrantAnalyticsResponse(BaseModel):
    """Aggregates for the grant analytics dashboard."""

    total_applications: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)
    total_requested: float = 0.0
    total_approved: float = 0.0
    total_disbursed: float = 0.0
