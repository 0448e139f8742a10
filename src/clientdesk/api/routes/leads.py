"""Lead intake and lead pipeline routes."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_current_user, get_db, require_staff
from clientdesk.api.errors import APIError
from clientdesk.leads.intake import LeadSubmission, submit_lead
from clientdesk.leads.scoring import score_label
from clientdesk.models.db import Activity, Lead, Project
from clientdesk.models.schemas import CurrentUser, LeadResponse, LeadStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/leads/submit")
async def submit(
    form: LeadSubmission,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser | None = Depends(get_current_user),
):
    """Submit a service request from the signed-in client."""
    return await submit_lead(session, user, form)


@router.get("/admin/leads")
async def list_leads(
    status: str | None = None,
    skip: int = 0,
    limit: int = 50,
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_staff),
):
    """List leads, highest score first."""
    query = select(Lead)
    count_query = select(func.count(Lead.id))
    if status:
        query = query.where(Lead.status == status)
        count_query = count_query.where(Lead.status == status)

    result = await session.execute(
        query.order_by(Lead.score.desc(), Lead.created_at.desc()).offset(skip).limit(limit)
    )
    leads = result.scalars().all()
    total = (await session.execute(count_query)).scalar_one()
    return {
        "leads": [
            {**LeadResponse.model_validate(lead).model_dump(mode="json"), "scoreLabel": score_label(lead.score or 0)}
            for lead in leads
        ],
        "total": total,
    }


async def _get_lead(session: AsyncSession, lead_id: uuid.UUID) -> Lead:
    lead = await session.get(Lead, lead_id)
    if lead is None:
        raise APIError(404, "Lead not found")
    return lead


@router.patch("/leads/{lead_id}", response_model=LeadResponse)
async def update_lead_status(
    lead_id: uuid.UUID,
    data: LeadStatusUpdate,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Move a lead through the pipeline."""
    lead = await _get_lead(session, lead_id)
    previous = lead.status
    lead.status = data.status
    if data.status == "CONVERTED" and lead.converted_at is None:
        lead.converted_at = datetime.now(timezone.utc)
        lead.score = 0
    if data.notes:
        lead.metadata_ = {**(lead.metadata_ or {}), "notes": data.notes}

    session.add(
        Activity(
            type="LEAD_UPDATED",
            title="Lead status changed",
            description=f"{lead.name}: {previous} -> {data.status}",
            user_id=user.id,
            metadata_={"leadId": str(lead.id), "from": previous, "to": data.status},
        )
    )
    await session.flush()
    await session.refresh(lead)
    return lead


@router.post("/admin/leads/{lead_id}/convert")
async def convert_lead(
    lead_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Convert a lead into a project under its organization."""
    lead = await _get_lead(session, lead_id)
    if lead.status == "CONVERTED":
        raise APIError(400, "Lead is already converted")
    if lead.organization_id is None:
        raise APIError(400, "Lead has no organization")

    project = Project(
        name=f"{lead.company or lead.name} Project",
        description=lead.message or "",
        status="PLANNING",
        organization_id=lead.organization_id,
        lead_id=lead.id,
    )
    session.add(project)
    lead.status = "CONVERTED"
    lead.converted_at = datetime.now(timezone.utc)
    lead.score = 0
    await session.flush()

    session.add(
        Activity(
            type="LEAD_CONVERTED",
            title="Lead converted",
            description=f"{lead.name} converted to project {project.name}",
            user_id=user.id,
            metadata_={"leadId": str(lead.id), "projectId": str(project.id)},
        )
    )
    logger.info("Lead %s converted to project %s", lead.id, project.id)
    return {"success": True, "projectId": str(project.id), "leadId": str(lead.id)}
