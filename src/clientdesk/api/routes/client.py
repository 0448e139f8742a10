"""Client dashboard routes: overview, projects, change requests, tasks, invoices."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_db, require_user
from clientdesk.api.errors import APIError
from clientdesk.auth.access import AccessContext, accessible_projects_clause, get_access_context
from clientdesk.billing.tracker import (
    can_submit_change_request,
    get_hours_balance,
    record_change_request,
)
from clientdesk.models.db import (
    ChangeRequest,
    ClientTask,
    Invoice,
    MaintenancePlan,
    Project,
    ProjectRequest,
)
from clientdesk.models.schemas import (
    ChangeRequestCreate,
    ChangeRequestResponse,
    ClientTaskResponse,
    CurrentUser,
    InvoiceResponse,
    ProjectRequestResponse,
    ProjectResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/client")


async def _projects(session: AsyncSession, ctx: AccessContext) -> list[Project]:
    if ctx.is_empty:
        return []
    result = await session.execute(
        select(Project).where(accessible_projects_clause(ctx)).order_by(Project.updated_at.desc())
    )
    return list(result.scalars().all())


@router.get("/overview")
async def overview(
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    """Summary counts for the client dashboard."""
    ctx = await get_access_context(session, user.id, user.email)
    projects = await _projects(session, ctx)
    project_ids = [p.id for p in projects]

    open_tasks = 0
    unpaid_invoices = 0
    if project_ids:
        tasks = await session.execute(
            select(ClientTask).where(
                ClientTask.project_id.in_(project_ids), ClientTask.status != "DONE"
            )
        )
        open_tasks = len(tasks.scalars().all())
    if ctx.organization_ids:
        invoices = await session.execute(
            select(Invoice).where(
                Invoice.organization_id.in_(ctx.organization_ids),
                Invoice.status.in_(("SENT", "OVERDUE")),
            )
        )
        unpaid_invoices = len(invoices.scalars().all())

    requests = await session.execute(
        select(ProjectRequest)
        .where(ProjectRequest.user_id == user.id)
        .order_by(ProjectRequest.created_at.desc())
    )

    return {
        "projects": [ProjectResponse.model_validate(p).model_dump(mode="json") for p in projects],
        "requests": [
            ProjectRequestResponse.model_validate(r).model_dump(mode="json")
            for r in requests.scalars().all()
        ],
        "openTasks": open_tasks,
        "unpaidInvoices": unpaid_invoices,
    }


@router.get("/projects")
async def list_projects(
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    ctx = await get_access_context(session, user.id, user.email)
    projects = await _projects(session, ctx)
    return {
        "projects": [ProjectResponse.model_validate(p).model_dump(mode="json") for p in projects],
        "total": len(projects),
    }


@router.get("/tasks")
async def list_tasks(
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    ctx = await get_access_context(session, user.id, user.email)
    project_ids = [p.id for p in await _projects(session, ctx)]
    if not project_ids:
        return {"tasks": [], "total": 0}
    result = await session.execute(
        select(ClientTask)
        .where(ClientTask.project_id.in_(project_ids))
        .order_by(ClientTask.due_date.asc())
    )
    tasks = result.scalars().all()
    return {
        "tasks": [ClientTaskResponse.model_validate(t).model_dump(mode="json") for t in tasks],
        "total": len(tasks),
    }


@router.get("/invoices")
async def list_invoices(
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    ctx = await get_access_context(session, user.id, user.email)
    if not ctx.organization_ids:
        return {"invoices": [], "total": 0}
    result = await session.execute(
        select(Invoice)
        .where(Invoice.organization_id.in_(ctx.organization_ids), Invoice.status != "DRAFT")
        .order_by(Invoice.created_at.desc())
    )
    invoices = result.scalars().all()
    return {
        "invoices": [InvoiceResponse.model_validate(i).model_dump(mode="json") for i in invoices],
        "total": len(invoices),
    }


@router.get("/change-requests")
async def list_change_requests(
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    ctx = await get_access_context(session, user.id, user.email)
    project_ids = [p.id for p in await _projects(session, ctx)]
    if not project_ids:
        return {"changeRequests": [], "total": 0}
    result = await session.execute(
        select(ChangeRequest)
        .where(ChangeRequest.project_id.in_(project_ids))
        .order_by(ChangeRequest.created_at.desc())
    )
    items = result.scalars().all()
    return {
        "changeRequests": [
            ChangeRequestResponse.model_validate(cr).model_dump(mode="json") for cr in items
        ],
        "total": len(items),
    }


@router.post("/change-requests", status_code=201)
async def create_change_request(
    data: ChangeRequestCreate,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    """Open a change request, subject to the plan's quota and hours."""
    ctx = await get_access_context(session, user.id, user.email)
    if data.project_id not in {p.id for p in await _projects(session, ctx)}:
        raise APIError(404, "Project not found")

    result = await session.execute(
        select(MaintenancePlan).where(MaintenancePlan.project_id == data.project_id)
    )
    plan = result.scalar_one_or_none()

    requires_approval = False
    if plan is not None:
        balance = await get_hours_balance(session, plan, user_id=user.id)
        check = can_submit_change_request(plan, balance)
        if not check.allowed:
            raise APIError(
                400,
                check.reason or "Change request not allowed",
                requiresPayment=check.requires_payment,
            )
        requires_approval = check.requires_approval
        record_change_request(plan)

    change_request = ChangeRequest(
        project_id=data.project_id,
        title=data.title,
        description=data.description,
        priority=data.priority,
        estimated_hours=data.estimated_hours,
        requires_approval=requires_approval,
    )
    session.add(change_request)
    await session.flush()
    await session.refresh(change_request)
    logger.info("Change request %s opened on project %s", change_request.id, data.project_id)
    return ChangeRequestResponse.model_validate(change_request).model_dump(mode="json")
