"""Pydantic schemas for API request/response validation."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ── Session ───────────────────────────────────────────────────────────────────


class CurrentUser(BaseModel):
    """The signed-in principal, built from refreshed session claims."""

    id: uuid.UUID | None = None
    email: str | None = None
    name: str | None = None
    role: str = "CLIENT"
    claims: dict[str, Any] = {}


class SessionUpdate(BaseModel):
    """Values onboarding pages may push into the session. Roles only come from the database."""

    name: str | None = None
    tosAccepted: bool | None = None
    profileDone: bool | None = None
    questionnaireCompleted: bool | None = None
    needsPassword: bool | None = None
    emailVerified: bool | None = None


# ── Billing ───────────────────────────────────────────────────────────────────


class TierUpdateRequest(BaseModel):
    tier: str | None = None


class HourPackCheckoutRequest(BaseModel):
    packId: str = Field(..., min_length=1)


class LogHoursRequest(BaseModel):
    hours: float = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    performed_by: str | None = None


# ── Leads ─────────────────────────────────────────────────────────────────────


class LeadStatusUpdate(BaseModel):
    status: str = Field(
        ..., pattern="^(NEW|CONTACTED|QUALIFIED|PROPOSAL_SENT|CONVERTED|LOST)$"
    )
    notes: str | None = None


class LeadResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    company: str | None
    status: str
    service_type: str | None
    source: str | None
    score: int | None
    created_at: datetime
    converted_at: datetime | None

    model_config = {"from_attributes": True}


# ── Projects & requests ───────────────────────────────────────────────────────


class ProjectResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID | None
    name: str
    description: str | None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectRequestResponse(BaseModel):
    id: uuid.UUID
    title: str
    status: str
    contact_email: str | None
    services: list[str] | None
    estimated_hours: float | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ChangeRequestCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    priority: str = Field("normal", pattern="^(low|normal|high|urgent)$")
    estimated_hours: float | None = Field(None, ge=0)


class ChangeRequestResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    description: str | None
    status: str
    priority: str
    estimated_hours: float | None
    actual_hours: float | None
    requires_approval: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ClientTaskResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    description: str | None
    status: str
    due_date: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class ProjectRequestApproval(BaseModel):
    estimated_hours: float | None = Field(None, ge=0)
    project_name: str | None = None


# ── Invoices ──────────────────────────────────────────────────────────────────


class InvoiceCreate(BaseModel):
    organization_id: uuid.UUID
    project_id: uuid.UUID | None = None
    title: str = Field(..., min_length=1, max_length=255)
    amount: int = Field(..., gt=0, description="Amount in cents")
    due_date: datetime | None = None


class InvoiceResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    project_id: uuid.UUID | None
    number: str
    title: str
    amount: int
    status: str
    due_date: datetime | None
    paid_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Chat ──────────────────────────────────────────────────────────────────────


class ChatTurn(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class LeadInfo(BaseModel):
    name: str | None = None
    email: str | None = None
    company: str | None = None


class ChatRequest(BaseModel):
    message: str = ""
    conversationId: str | None = None
    sessionId: str | None = None
    history: list[ChatTurn] = []
    leadInfo: LeadInfo | None = None


# ── Nonprofit ─────────────────────────────────────────────────────────────────


class DUIRegistrationCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    classId: uuid.UUID | None = None
    firstName: str | None = None
    lastName: str | None = None
    email: EmailStr | None = None
    phone: str | None = None


class DonationResponse(BaseModel):
    id: uuid.UUID
    campaign_id: uuid.UUID | None
    donor_name: str | None
    donor_email: str | None
    amount: int
    recurring: bool
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MeetingResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID | None
    title: str
    starts_at: datetime
    status: str

    model_config = {"from_attributes": True}
