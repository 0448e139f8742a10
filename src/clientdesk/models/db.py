"""SQLAlchemy ORM models for the ClientDesk platform."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")


# ── Status vocabularies ───────────────────────────────────────────────────────

USER_ROLES = (
    "CEO", "CFO", "ADMIN", "STAFF", "FRONTEND", "BACKEND", "OUTREACH",
    "BOARD", "ALUMNI", "COMMUNITY", "CLIENT",
)
MEMBER_ROLES = ("OWNER", "ADMIN", "MEMBER")
PROJECT_STATUSES = (
    "LEAD", "PLANNING", "ACTIVE", "IN_PROGRESS", "REVIEW", "MAINTENANCE",
    "COMPLETED", "CANCELLED",
)
CLOSED_PROJECT_STATUSES = ("COMPLETED", "CANCELLED")
LEAD_STATUSES = ("NEW", "CONTACTED", "QUALIFIED", "PROPOSAL_SENT", "CONVERTED", "LOST")
REQUEST_STATUSES = (
    "DRAFT", "SUBMITTED", "REVIEWING", "NEEDS_INFO", "APPROVED", "REJECTED", "ARCHIVED",
)
ACTIVE_REQUEST_STATUSES = ("DRAFT", "SUBMITTED", "REVIEWING", "NEEDS_INFO")
PLAN_STATUSES = ("ACTIVE", "PAUSED", "CANCELLED", "PAST_DUE")
CHANGE_REQUEST_STATUSES = ("pending", "approved", "in_progress", "completed", "rejected")
INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED")
TASK_STATUSES = ("TODO", "IN_PROGRESS", "DONE")
REGISTRATION_STATUSES = ("PENDING", "CONFIRMED", "CANCELLED", "ATTENDED")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ── Identity ──────────────────────────────────────────────────────────────────


class User(Base):
    """A person who can sign in: staff, board member or client."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(32), nullable=False, default="CLIENT")
    password_hash = Column(String(255), nullable=True)
    tos_accepted_at = Column(UTCDateTime, nullable=True)
    profile_done_at = Column(UTCDateTime, nullable=True)
    questionnaire_completed_at = Column(UTCDateTime, nullable=True)
    email_verified_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship(
        "OrganizationMember", back_populates="user", cascade="all, delete-orphan"
    )


class Account(Base):
    """An OAuth provider identity linked to a user."""

    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("provider", "provider_account_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(50), nullable=False)
    provider_account_id = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    user = relationship("User", back_populates="accounts")


# ── Organizations & projects ──────────────────────────────────────────────────


class Organization(Base):
    """A client organization (usually a nonprofit)."""

    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    email = Column(String(320), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    members = relationship(
        "OrganizationMember", back_populates="organization", cascade="all, delete-orphan"
    )
    projects = relationship("Project", back_populates="organization")


class OrganizationMember(Base):
    __tablename__ = "organization_members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, default="MEMBER")
    created_at = Column(UTCDateTime, default=utcnow)

    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships")


class Lead(Base):
    """An inbound contact prior to becoming a project."""

    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    company = Column(String(255), nullable=True)
    message = Column(Text, default="")
    source = Column(String(100), nullable=True)
    status = Column(String(32), nullable=False, default="NEW")
    service_type = Column(String(50), nullable=True)
    timeline = Column(String(100), nullable=True)
    budget = Column(String(100), nullable=True)
    website_url = Column(String(500), nullable=True)
    website_quality = Column(String(20), nullable=True)
    annual_revenue = Column(Integer, nullable=True)
    category = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    score = Column(Integer, default=0)
    metadata_ = Column("metadata", JSONType, default=dict)
    converted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Project(Base):
    """A client project; owns invoices and at most one maintenance plan."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True, index=True)
    lead_id = Column(Uuid, ForeignKey("leads.id"), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    status = Column(String(32), nullable=False, default="LEAD")
    budget = Column(Integer, nullable=True)  # cents
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    maintenance_status = Column(String(32), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="projects")
    maintenance_plan = relationship(
        "MaintenancePlan", back_populates="project", uselist=False, cascade="all, delete-orphan"
    )
    invoices = relationship("Invoice", back_populates="project")
    change_requests = relationship(
        "ChangeRequest", back_populates="project", cascade="all, delete-orphan"
    )


class ProjectRequest(Base):
    """A structured intake submission that may be approved into a project."""

    __tablename__ = "project_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    contact_email = Column(String(320), nullable=True)
    company = Column(String(255), nullable=True)
    budget = Column(String(100), nullable=True)
    timeline = Column(String(100), nullable=True)
    services = Column(JSONType, default=list)
    status = Column(String(32), nullable=False, default="DRAFT")
    estimated_hours = Column(Float, nullable=True)
    hours_deducted = Column(Float, nullable=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


# ── Maintenance billing ───────────────────────────────────────────────────────


class MaintenancePlan(Base):
    """Recurring subscription granting monthly support hours to a project."""

    __tablename__ = "maintenance_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, unique=True)
    tier = Column(String(20), nullable=False, default="ESSENTIALS")
    monthly_price = Column(Integer, nullable=False, default=0)  # cents
    support_hours_included = Column(Float, nullable=False, default=0)
    change_requests_included = Column(Integer, nullable=False, default=0)
    support_hours_used = Column(Float, nullable=False, default=0)
    change_requests_used = Column(Integer, nullable=False, default=0)
    rollover_enabled = Column(Boolean, nullable=False, default=True)
    rollover_cap = Column(Float, nullable=False, default=0)
    rollover_hours = Column(Float, nullable=False, default=0)
    on_demand_enabled = Column(Boolean, nullable=False, default=False)
    grace_period_used = Column(Boolean, nullable=False, default=False)
    daily_request_limit = Column(Integer, nullable=False, default=3)
    requests_today = Column(Integer, nullable=False, default=0)
    last_request_date = Column(UTCDateTime, nullable=True)
    status = Column(String(20), nullable=False, default="PAUSED")
    stripe_subscription_id = Column(String(255), nullable=True)
    stripe_checkout_session_id = Column(String(255), nullable=True)
    current_period_start = Column(UTCDateTime, nullable=True)
    current_period_end = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="maintenance_plan")
    hour_packs = relationship("HourPack", back_populates="plan", cascade="all, delete-orphan")
    rollover_records = relationship(
        "RolloverRecord", back_populates="plan", cascade="all, delete-orphan"
    )
    logs = relationship("MaintenanceLog", back_populates="plan", cascade="all, delete-orphan")


class MaintenanceLog(Base):
    """A unit of support work performed against a plan."""

    __tablename__ = "maintenance_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id = Column(Uuid, ForeignKey("maintenance_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    hours_spent = Column(Float, nullable=False)
    description = Column(Text, default="")
    performed_by = Column(String(255), nullable=True)
    source = Column(String(20), nullable=True)  # rollover | monthly | pack | overage
    billable = Column(Boolean, nullable=False, default=True)
    overage = Column(Boolean, nullable=False, default=False)
    performed_at = Column(UTCDateTime, default=utcnow, index=True)

    plan = relationship("MaintenancePlan", back_populates="logs")


class HourPack(Base):
    """A one-time block of purchased support hours."""

    __tablename__ = "hour_packs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id = Column(Uuid, ForeignKey("maintenance_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    pack_type = Column(String(20), nullable=False)
    hours = Column(Float, nullable=False)
    hours_remaining = Column(Float, nullable=False)
    cost = Column(Integer, nullable=False, default=0)  # cents
    purchased_at = Column(UTCDateTime, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=True)
    never_expires = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    used_at = Column(UTCDateTime, nullable=True)
    stripe_payment_id = Column(String(255), nullable=True, unique=True)

    plan = relationship("MaintenancePlan", back_populates="hour_packs")


class RolloverRecord(Base):
    """Unused monthly hours carried into later billing periods."""

    __tablename__ = "rollover_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id = Column(Uuid, ForeignKey("maintenance_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    hours = Column(Float, nullable=False)
    hours_remaining = Column(Float, nullable=False)
    source_month = Column(String(7), nullable=False)  # YYYY-MM
    expires_at = Column(UTCDateTime, nullable=False)
    is_expired = Column(Boolean, nullable=False, default=False)
    used_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    plan = relationship("MaintenancePlan", back_populates="rollover_records")


class ChangeRequest(Base):
    __tablename__ = "change_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(20), nullable=False, default="normal")
    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=True)
    hours_deducted = Column(Float, nullable=True)
    requires_approval = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="change_requests")


# ── Invoicing & tasks ─────────────────────────────────────────────────────────


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=True)
    number = Column(String(50), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    amount = Column(Integer, nullable=False)  # cents
    status = Column(String(20), nullable=False, default="DRAFT")
    due_date = Column(UTCDateTime, nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    paid_at = Column(UTCDateTime, nullable=True)
    stripe_invoice_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="invoices")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=True)
    amount = Column(Integer, nullable=False)  # cents
    currency = Column(String(3), default="usd")
    status = Column(String(20), nullable=False, default="COMPLETED")
    stripe_payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class ClientTask(Base):
    __tablename__ = "client_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    status = Column(String(20), nullable=False, default="TODO")
    due_date = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class Activity(Base):
    """Audit trail entry shown on admin dashboards."""

    __tablename__ = "activities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    metadata_ = Column("metadata", JSONType, default=dict)
    created_at = Column(UTCDateTime, default=utcnow, index=True)


# ── Chat assistant ────────────────────────────────────────────────────────────


class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(String(100), nullable=False, index=True)
    visitor_name = Column(String(255), nullable=True)
    visitor_email = Column(String(320), nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE")
    intent = Column(String(50), nullable=True)
    source = Column(String(50), default="chat_widget")
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    messages = relationship("AIMessage", back_populates="conversation", cascade="all, delete-orphan")


class AIMessage(Base):
    __tablename__ = "ai_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("ai_conversations.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    model_used = Column(String(100), nullable=True)
    tokens = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    conversation = relationship("AIConversation", back_populates="messages")


# ── Nonprofit administration ──────────────────────────────────────────────────


class BoardCampaign(Base):
    __tablename__ = "board_campaigns"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    goal_amount = Column(Integer, nullable=False, default=0)  # cents
    starts_at = Column(UTCDateTime, nullable=True)
    ends_at = Column(UTCDateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utcnow)


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    campaign_id = Column(Uuid, ForeignKey("board_campaigns.id"), nullable=True, index=True)
    donor_name = Column(String(255), nullable=True)
    donor_email = Column(String(320), nullable=True)
    amount = Column(Integer, nullable=False)  # cents
    recurring = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="COMPLETED")
    created_at = Column(UTCDateTime, default=utcnow)


class DUIClass(Base):
    __tablename__ = "dui_classes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    date = Column(UTCDateTime, nullable=False)
    location = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=False, default=20)
    price = Column(Integer, nullable=False, default=0)  # cents
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utcnow)

    registrations = relationship("DUIRegistration", back_populates="dui_class", cascade="all, delete-orphan")


class DUIRegistration(Base):
    __tablename__ = "dui_registrations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("dui_classes.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(320), nullable=False)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    created_at = Column(UTCDateTime, default=utcnow)

    dui_class = relationship("DUIClass", back_populates="registrations")


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    title = Column(String(255), nullable=False)
    starts_at = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, default="SCHEDULED")
    created_at = Column(UTCDateTime, default=utcnow)
