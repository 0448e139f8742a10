"""initial schema

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-18 12:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7e2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _ts(name: str, nullable: bool = True, index: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, index=index)


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True)


def upgrade() -> None:
    # Identity
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        _ts("tos_accepted_at"),
        _ts("profile_done_at"),
        _ts("questionnaire_completed_at"),
        _ts("email_verified_at"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "accounts",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("provider_account_id", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.Integer(), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("provider", "provider_account_id"),
    )

    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "organization_members",
        _id(),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("organization_id", "user_id"),
    )

    # CRM
    op.create_table(
        "leads",
        _id(),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, index=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("source", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("service_type", sa.String(length=50), nullable=True),
        sa.Column("timeline", sa.String(length=100), nullable=True),
        sa.Column("budget", sa.String(length=100), nullable=True),
        sa.Column("website_url", sa.String(length=500), nullable=True),
        sa.Column("website_quality", sa.String(length=20), nullable=True),
        sa.Column("annual_revenue", sa.Integer(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=50), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("metadata", JSON, nullable=True),
        _ts("converted_at"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "projects",
        _id(),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=True, index=True),
        sa.Column("lead_id", sa.Uuid(), sa.ForeignKey("leads.id"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("budget", sa.Integer(), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(length=255), nullable=True),
        sa.Column("maintenance_status", sa.String(length=32), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "project_requests",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True, index=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.String(length=320), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("budget", sa.String(length=100), nullable=True),
        sa.Column("timeline", sa.String(length=100), nullable=True),
        sa.Column("services", JSON, nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("hours_deducted", sa.Float(), nullable=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    # Maintenance billing
    op.create_table(
        "maintenance_plans",
        _id(),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=False, unique=True),
        sa.Column("tier", sa.String(length=20), nullable=False),
        sa.Column("monthly_price", sa.Integer(), nullable=False),
        sa.Column("support_hours_included", sa.Float(), nullable=False),
        sa.Column("change_requests_included", sa.Integer(), nullable=False),
        sa.Column("support_hours_used", sa.Float(), nullable=False),
        sa.Column("change_requests_used", sa.Integer(), nullable=False),
        sa.Column("rollover_enabled", sa.Boolean(), nullable=False),
        sa.Column("rollover_cap", sa.Float(), nullable=False),
        sa.Column("rollover_hours", sa.Float(), nullable=False),
        sa.Column("on_demand_enabled", sa.Boolean(), nullable=False),
        sa.Column("grace_period_used", sa.Boolean(), nullable=False),
        sa.Column("daily_request_limit", sa.Integer(), nullable=False),
        sa.Column("requests_today", sa.Integer(), nullable=False),
        _ts("last_request_date"),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("stripe_subscription_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_checkout_session_id", sa.String(length=255), nullable=True),
        _ts("current_period_start"),
        _ts("current_period_end"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "maintenance_logs",
        _id(),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("maintenance_plans.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("hours_spent", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(length=255), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        sa.Column("billable", sa.Boolean(), nullable=False),
        sa.Column("overage", sa.Boolean(), nullable=False),
        _ts("performed_at", index=True),
    )

    op.create_table(
        "hour_packs",
        _id(),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("maintenance_plans.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("pack_type", sa.String(length=20), nullable=False),
        sa.Column("hours", sa.Float(), nullable=False),
        sa.Column("hours_remaining", sa.Float(), nullable=False),
        sa.Column("cost", sa.Integer(), nullable=False),
        _ts("purchased_at"),
        _ts("expires_at"),
        sa.Column("never_expires", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("used_at"),
        sa.Column("stripe_payment_id", sa.String(length=255), nullable=True, unique=True),
    )

    op.create_table(
        "rollover_records",
        _id(),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("maintenance_plans.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("hours", sa.Float(), nullable=False),
        sa.Column("hours_remaining", sa.Float(), nullable=False),
        sa.Column("source_month", sa.String(length=7), nullable=False),
        _ts("expires_at", nullable=False),
        sa.Column("is_expired", sa.Boolean(), nullable=False),
        _ts("used_at"),
        _ts("created_at"),
    )

    op.create_table(
        "change_requests",
        _id(),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=True),
        sa.Column("hours_deducted", sa.Float(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )

    # Finance
    op.create_table(
        "invoices",
        _id(),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=False, index=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        _ts("due_date"),
        _ts("sent_at"),
        _ts("paid_at"),
        sa.Column("stripe_invoice_id", sa.String(length=255), nullable=True, unique=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "payments",
        _id(),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id"), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "client_tasks",
        _id(),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        _ts("due_date"),
        _ts("completed_at"),
        _ts("created_at"),
    )

    op.create_table(
        "activities",
        _id(),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("metadata", JSON, nullable=True),
        _ts("created_at", index=True),
    )

    # Chat
    op.create_table(
        "ai_conversations",
        _id(),
        sa.Column("session_id", sa.String(length=100), nullable=False, index=True),
        sa.Column("visitor_name", sa.String(length=255), nullable=True),
        sa.Column("visitor_email", sa.String(length=320), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("intent", sa.String(length=50), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "ai_messages",
        _id(),
        sa.Column("conversation_id", sa.Uuid(), sa.ForeignKey("ai_conversations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("model_used", sa.String(length=100), nullable=True),
        sa.Column("tokens", sa.Integer(), nullable=True),
        _ts("created_at"),
    )

    # Nonprofit
    op.create_table(
        "board_campaigns",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("goal_amount", sa.Integer(), nullable=False),
        _ts("starts_at"),
        _ts("ends_at"),
        sa.Column("active", sa.Boolean(), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "donations",
        _id(),
        sa.Column("campaign_id", sa.Uuid(), sa.ForeignKey("board_campaigns.id"), nullable=True, index=True),
        sa.Column("donor_name", sa.String(length=255), nullable=True),
        sa.Column("donor_email", sa.String(length=320), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("recurring", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "dui_classes",
        _id(),
        sa.Column("title", sa.String(length=255), nullable=False),
        _ts("date", nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "dui_registrations",
        _id(),
        sa.Column("class_id", sa.Uuid(), sa.ForeignKey("dui_classes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "meetings",
        _id(),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        _ts("starts_at", nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        _ts("created_at"),
    )


def downgrade() -> None:
    for table in (
        "meetings",
        "dui_registrations",
        "dui_classes",
        "donations",
        "board_campaigns",
        "ai_messages",
        "ai_conversations",
        "activities",
        "client_tasks",
        "payments",
        "invoices",
        "change_requests",
        "rollover_records",
        "hour_packs",
        "maintenance_logs",
        "maintenance_plans",
        "project_requests",
        "projects",
        "leads",
        "organization_members",
        "organizations",
        "accounts",
    ):
        op.drop_table(table)
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
