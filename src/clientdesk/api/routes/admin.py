"""Admin pipeline routes: clients, invoices, maintenance and finances."""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_db, require_admin, require_staff
from clientdesk.api.errors import APIError
from clientdesk.billing.tiers import get_tier
from clientdesk.billing.tracker import deduct_hours, get_hours_balance
from clientdesk.models.db import (
    Activity,
    HourPack,
    Invoice,
    MaintenancePlan,
    Organization,
    OrganizationMember,
    Payment,
    Project,
    ProjectRequest,
    User,
)
from clientdesk.models.schemas import (
    CurrentUser,
    InvoiceCreate,
    InvoiceResponse,
    LogHoursRequest,
    ProjectRequestApproval,
    ProjectRequestResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


# ── Clients ───────────────────────────────────────────────────────────────────


@router.get("/clients")
async def list_clients(
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_staff),
):
    """Organizations with project counts and their maintenance tier."""
    project_counts = (
        select(Project.organization_id, func.count(Project.id).label("projects"))
        .group_by(Project.organization_id)
        .subquery()
    )
    result = await session.execute(
        select(Organization, func.coalesce(project_counts.c.projects, 0))
        .outerjoin(project_counts, project_counts.c.organization_id == Organization.id)
        .order_by(Organization.name)
    )
    rows = result.all()

    tiers_result = await session.execute(
        select(Project.organization_id, MaintenancePlan.tier, MaintenancePlan.status).join(
            MaintenancePlan, MaintenancePlan.project_id == Project.id
        )
    )
    plans = {org_id: (tier, status) for org_id, tier, status in tiers_result.all()}

    return {
        "clients": [
            {
                "id": str(org.id),
                "name": org.name,
                "slug": org.slug,
                "email": org.email,
                "projects": count,
                "tier": plans.get(org.id, (None, None))[0],
                "planStatus": plans.get(org.id, (None, None))[1],
                "createdAt": org.created_at.isoformat() if org.created_at else None,
            }
            for org, count in rows
        ],
        "total": len(rows),
    }


# ── Invoices ──────────────────────────────────────────────────────────────────


def _invoice_number(now: datetime) -> str:
    return f"INV-{now:%Y%m}-{secrets.token_hex(3).upper()}"


@router.get("/invoices")
async def list_invoices(
    status: str | None = None,
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    query = select(Invoice).order_by(Invoice.created_at.desc())
    if status:
        query = query.where(Invoice.status == status)
    result = await session.execute(query)
    invoices = result.scalars().all()
    return {
        "invoices": [InvoiceResponse.model_validate(i).model_dump(mode="json") for i in invoices],
        "total": len(invoices),
    }


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_admin),
):
    organization = await session.get(Organization, data.organization_id)
    if organization is None:
        raise APIError(404, "Organization not found")

    now = datetime.now(timezone.utc)
    invoice = Invoice(
        organization_id=data.organization_id,
        project_id=data.project_id,
        number=_invoice_number(now),
        title=data.title,
        amount=data.amount,
        status="DRAFT",
        due_date=data.due_date,
    )
    session.add(invoice)
    await session.flush()
    session.add(
        Activity(
            type="INVOICE_CREATED",
            title="Invoice created",
            description=f"{invoice.number} for {organization.name}",
            user_id=user.id,
            metadata_={"invoiceId": str(invoice.id), "amount": invoice.amount},
        )
    )
    await session.flush()
    await session.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    """Record an out-of-band payment for an invoice."""
    invoice = await session.get(Invoice, invoice_id)
    if invoice is None:
        raise APIError(404, "Invoice not found")
    if invoice.status == "PAID":
        raise APIError(400, "Invoice is already paid")

    invoice.status = "PAID"
    invoice.paid_at = datetime.now(timezone.utc)
    session.add(Payment(invoice_id=invoice.id, amount=invoice.amount, status="COMPLETED"))
    await session.flush()
    await session.refresh(invoice)
    return invoice


# ── Maintenance ───────────────────────────────────────────────────────────────


@router.get("/maintenance")
async def list_maintenance_plans(
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_staff),
):
    """All plans with their current hours balance."""
    result = await session.execute(
        select(MaintenancePlan, Project)
        .join(Project, Project.id == MaintenancePlan.project_id)
        .order_by(Project.name)
    )
    plans = []
    for plan, project in result.all():
        tier = get_tier(plan.tier)
        balance = await get_hours_balance(session, plan)
        plans.append(
            {
                "id": str(plan.id),
                "projectId": str(project.id),
                "projectName": project.name,
                "tier": plan.tier,
                "tierName": tier.name if tier else plan.tier,
                "status": plan.status,
                "monthlyIncluded": balance.monthly_included,
                "monthlyUsed": balance.monthly_used,
                "totalAvailable": balance.total_available,
                "atLimit": balance.at_limit,
                "periodEnd": plan.current_period_end.isoformat() if plan.current_period_end else None,
            }
        )
    return {"plans": plans, "total": len(plans)}


@router.post("/maintenance/{plan_id}/log-hours")
async def log_hours(
    plan_id: uuid.UUID,
    data: LogHoursRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Record support work and deduct it from the plan's balance."""
    plan = await session.get(MaintenancePlan, plan_id)
    if plan is None:
        raise APIError(404, "Maintenance plan not found")

    result = await deduct_hours(
        session,
        plan,
        data.hours,
        data.description,
        performed_by=data.performed_by or user.email,
    )
    if not result.success:
        raise APIError(400, result.error or "Unable to deduct hours", overageHours=result.overage_hours)
    return {
        "success": True,
        "hoursDeducted": result.hours_deducted,
        "fromRollover": result.from_rollover,
        "fromMonthly": result.from_monthly,
        "fromPacks": result.from_packs,
        "overageHours": result.overage_hours,
        "usedGracePeriod": result.used_grace_period,
    }


# ── Finances ──────────────────────────────────────────────────────────────────


@router.get("/finances")
async def finances_summary(
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    """Revenue, receivables and recurring revenue in cents."""
    by_status = await session.execute(
        select(Invoice.status, func.coalesce(func.sum(Invoice.amount), 0)).group_by(Invoice.status)
    )
    totals = {status: int(amount) for status, amount in by_status.all()}

    mrr = await session.execute(
        select(func.coalesce(func.sum(MaintenancePlan.monthly_price), 0)).where(
            MaintenancePlan.status == "ACTIVE"
        )
    )
    pack_revenue = await session.execute(select(func.coalesce(func.sum(HourPack.cost), 0)))
    active_plans = await session.execute(
        select(func.count(MaintenancePlan.id)).where(MaintenancePlan.status == "ACTIVE")
    )

    return {
        "paidRevenue": totals.get("PAID", 0),
        "outstanding": totals.get("SENT", 0) + totals.get("OVERDUE", 0),
        "overdue": totals.get("OVERDUE", 0),
        "draft": totals.get("DRAFT", 0),
        "monthlyRecurringRevenue": int(mrr.scalar_one()),
        "hourPackRevenue": int(pack_revenue.scalar_one()),
        "activeSubscriptions": int(active_plans.scalar_one()),
    }


# ── Project requests ──────────────────────────────────────────────────────────


@router.get("/project-requests")
async def list_project_requests(
    status: str | None = None,
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_staff),
):
    query = select(ProjectRequest).order_by(ProjectRequest.created_at.desc())
    if status:
        query = query.where(ProjectRequest.status == status)
    result = await session.execute(query)
    requests = result.scalars().all()
    return {
        "requests": [
            ProjectRequestResponse.model_validate(r).model_dump(mode="json") for r in requests
        ],
        "total": len(requests),
    }


@router.post("/project-requests/{request_id}/approve")
async def approve_project_request(
    request_id: uuid.UUID,
    data: ProjectRequestApproval,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Approve a request, creating its project if it has none yet."""
    request = await session.get(ProjectRequest, request_id)
    if request is None:
        raise APIError(404, "Project request not found")
    if request.status in ("REJECTED", "ARCHIVED"):
        raise APIError(400, f"Cannot approve a {request.status.lower()} request")

    if data.estimated_hours is not None:
        request.estimated_hours = data.estimated_hours

    if request.project_id is None:
        organization_id = None
        if request.user_id is not None:
            result = await session.execute(
                select(OrganizationMember.organization_id)
                .where(OrganizationMember.user_id == request.user_id)
                .limit(1)
            )
            organization_id = result.scalar_one_or_none()
        if organization_id is None:
            raise APIError(400, "Requesting user has no organization")

        owner = await session.get(User, request.user_id)
        project = Project(
            name=data.project_name or request.title,
            description=request.description or "",
            status="PLANNING",
            organization_id=organization_id,
        )
        session.add(project)
        await session.flush()
        request.project_id = project.id
        logger.info(
            "Approved request %s into project %s for %s",
            request.id,
            project.id,
            owner.email if owner else "unknown user",
        )

    request.status = "APPROVED"
    session.add(
        Activity(
            type="REQUEST_APPROVED",
            title="Project request approved",
            description=request.title,
            user_id=user.id,
            metadata_={"requestId": str(request.id), "projectId": str(request.project_id)},
        )
    )
    await session.flush()
    return {"success": True, "requestId": str(request.id), "projectId": str(request.project_id)}
