"""Nonprofit administration: donations, campaigns, DUI classes and meetings."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_db, require_admin, require_board
from clientdesk.api.errors import APIError
from clientdesk.models.db import BoardCampaign, Donation, DUIClass, DUIRegistration, Meeting
from clientdesk.models.schemas import (
    CurrentUser,
    DonationResponse,
    DUIRegistrationCreate,
    MeetingResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/admin/donations")
async def list_donations(
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    """Donations with totals by status and recurring flag."""
    result = await session.execute(select(Donation).order_by(Donation.created_at.desc()))
    donations = result.scalars().all()

    by_status: dict[str, int] = {}
    recurring_total = 0
    one_time_total = 0
    for d in donations:
        by_status[d.status] = by_status.get(d.status, 0) + d.amount
        if d.status == "COMPLETED":
            if d.recurring:
                recurring_total += d.amount
            else:
                one_time_total += d.amount

    return {
        "donations": [DonationResponse.model_validate(d).model_dump(mode="json") for d in donations],
        "totals": {
            "byStatus": by_status,
            "recurring": recurring_total,
            "oneTime": one_time_total,
        },
        "total": len(donations),
    }


@router.get("/admin/campaigns")
async def list_campaigns(
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_board),
):
    """Board campaigns with the amount raised from completed donations."""
    raised = (
        select(Donation.campaign_id, func.sum(Donation.amount).label("raised"))
        .where(Donation.status == "COMPLETED")
        .group_by(Donation.campaign_id)
        .subquery()
    )
    result = await session.execute(
        select(BoardCampaign, func.coalesce(raised.c.raised, 0))
        .outerjoin(raised, raised.c.campaign_id == BoardCampaign.id)
        .order_by(BoardCampaign.created_at.desc())
    )
    campaigns = []
    for campaign, amount in result.all():
        goal = campaign.goal_amount or 0
        campaigns.append(
            {
                "id": str(campaign.id),
                "name": campaign.name,
                "goalAmount": goal,
                "raised": int(amount),
                "progress": round(int(amount) / goal * 100, 1) if goal else 0,
                "active": campaign.active,
                "startsAt": campaign.starts_at.isoformat() if campaign.starts_at else None,
                "endsAt": campaign.ends_at.isoformat() if campaign.ends_at else None,
            }
        )
    return {"campaigns": campaigns, "total": len(campaigns)}


@router.get("/admin/dui-classes")
async def list_dui_classes(
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    seats = (
        select(DUIRegistration.class_id, func.count(DUIRegistration.id).label("taken"))
        .where(DUIRegistration.status != "CANCELLED")
        .group_by(DUIRegistration.class_id)
        .subquery()
    )
    result = await session.execute(
        select(DUIClass, func.coalesce(seats.c.taken, 0))
        .outerjoin(seats, seats.c.class_id == DUIClass.id)
        .order_by(DUIClass.date.asc())
    )
    return {
        "classes": [
            {
                "id": str(c.id),
                "title": c.title,
                "date": c.date.isoformat(),
                "location": c.location,
                "capacity": c.capacity,
                "registered": int(taken),
                "spotsLeft": max(0, c.capacity - int(taken)),
                "price": c.price,
                "active": c.active,
            }
            for c, taken in result.all()
        ]
    }


@router.post("/dui-classes/register", status_code=201)
async def register_for_dui_class(
    data: DUIRegistrationCreate,
    session: AsyncSession = Depends(get_db),
):
    """Public sign-up for a DUI education class."""
    if not (data.classId and data.firstName and data.lastName and data.email):
        raise APIError(400, "Missing required fields")

    dui_class = await session.get(DUIClass, data.classId)
    if dui_class is None:
        raise APIError(404, "Class not found")
    if not dui_class.active:
        raise APIError(400, "Class is no longer available")
    if dui_class.date < datetime.now(timezone.utc):
        raise APIError(400, "Class date has passed")

    taken = await session.execute(
        select(func.count(DUIRegistration.id)).where(
            DUIRegistration.class_id == dui_class.id,
            DUIRegistration.status != "CANCELLED",
        )
    )
    if taken.scalar_one() >= dui_class.capacity:
        raise APIError(400, "Class is full")

    email = data.email.lower()
    existing = await session.execute(
        select(DUIRegistration.id).where(
            DUIRegistration.class_id == dui_class.id,
            DUIRegistration.email == email,
            DUIRegistration.status != "CANCELLED",
        )
    )
    if existing.first() is not None:
        raise APIError(400, "You're already registered for this class")

    registration = DUIRegistration(
        class_id=dui_class.id,
        first_name=data.firstName,
        last_name=data.lastName,
        email=email,
        phone=data.phone,
        status="PENDING",
    )
    session.add(registration)
    await session.flush()
    logger.info("DUI registration %s for class %s", registration.id, dui_class.id)
    return {"success": True, "registrationId": str(registration.id), "status": registration.status}


@router.get("/admin/meetings")
async def list_meetings(
    upcoming: bool = False,
    session: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_board),
):
    query = select(Meeting).order_by(Meeting.starts_at.asc())
    if upcoming:
        query = query.where(Meeting.starts_at >= datetime.now(timezone.utc))
    result = await session.execute(query)
    meetings = result.scalars().all()
    return {
        "meetings": [MeetingResponse.model_validate(m).model_dump(mode="json") for m in meetings],
        "total": len(meetings),
    }
