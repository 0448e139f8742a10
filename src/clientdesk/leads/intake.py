"""Lead intake: turns a service-request form into lead, request and project rows."""

from __future__ import annotations

import logging
import random
import re
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.errors import APIError
from clientdesk.leads.scoring import LeadForScoring, calculate_lead_score
from clientdesk.models.db import (
    ACTIVE_REQUEST_STATUSES,
    Activity,
    Lead,
    Organization,
    OrganizationMember,
    Project,
    ProjectRequest,
    User,
)
from clientdesk.models.schemas import CurrentUser

logger = logging.getLogger(__name__)

# Fields of the retired questionnaire flow.
LEGACY_FIELDS = ("qid", "packageId", "selectedFeatures", "answers", "package")

SERVICE_TYPE_MAP = {
    "Website": "WEBSITE",
    "Web App": "WEB_APP",
    "Mobile App": "MOBILE",
    "Branding": "BRANDING",
    "Dashboard": "WEB_APP",
    "AI Integration": "AI_DATA",
    "Other": "OTHER",
}


class LeadSubmission(BaseModel):
    """Service-request form body. Unknown keys are tolerated."""

    model_config = ConfigDict(extra="allow")

    serviceType: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    referralSource: str | None = None
    stage: str | None = None
    outreachProgram: str | None = None
    projectType: str | list[str] | None = None
    projectGoals: str | None = None
    timeline: str | None = None
    specialRequirements: str | None = None
    nonprofitStatus: str | None = None
    nonprofitEIN: str | None = None

    # Legacy questionnaire fields; present only to be rejected.
    qid: Any = None
    packageId: Any = None
    selectedFeatures: Any = None
    answers: Any = None
    package: Any = None

    def legacy_fields(self) -> list[str]:
        return [f for f in LEGACY_FIELDS if getattr(self, f) is not None]


def map_service_types(project_type: str | list[str] | None) -> list[str]:
    if not project_type:
        return []
    types = project_type if isinstance(project_type, list) else [project_type]
    return [SERVICE_TYPE_MAP.get(t, "OTHER") for t in types]


def compose_message(form: LeadSubmission) -> str:
    parts = [
        f"Project Goals: {form.projectGoals or 'Not specified'}",
        f"Timeline: {form.timeline or 'Not specified'}",
        f"Special Requirements: {form.specialRequirements or 'None'}",
    ]
    if form.nonprofitStatus:
        parts.append(f"Nonprofit Status: {form.nonprofitStatus}")
    if form.nonprofitEIN:
        parts.append(f"EIN: {form.nonprofitEIN}")
    return "\n\n".join(parts)


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", name.lower()) + f"-{random.randint(0, 999)}"


def is_nonprofit(form: LeadSubmission) -> bool:
    return (
        "nonprofit" in (form.outreachProgram or "")
        or "501(c)(3)" in (form.nonprofitStatus or "")
        or form.serviceType == "nonprofit"
    )


async def find_active_request(session: AsyncSession, user_id) -> ProjectRequest | None:
    result = await session.execute(
        select(ProjectRequest)
        .where(
            ProjectRequest.user_id == user_id,
            ProjectRequest.status.in_(ACTIVE_REQUEST_STATUSES),
        )
        .order_by(ProjectRequest.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_or_create_organization(
    session: AsyncSession, user: User, form: LeadSubmission
) -> Organization:
    result = await session.execute(
        select(Organization)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user.id)
        .limit(1)
    )
    organization = result.scalar_one_or_none()
    if organization is not None:
        return organization

    org_name = form.company or f"{form.name}'s Organization"
    organization = Organization(name=org_name, slug=slugify(org_name), email=form.email)
    session.add(organization)
    await session.flush()
    session.add(OrganizationMember(organization_id=organization.id, user_id=user.id, role="OWNER"))
    await session.flush()
    logger.info("Created organization %s for user %s", organization.id, user.id)
    return organization


async def submit_lead(
    session: AsyncSession, current: CurrentUser | None, form: LeadSubmission
) -> dict[str, Any]:
    """Create the lead, project request, project and activity for a form."""
    if current is None:
        raise APIError(401, "Unauthorized - please sign in")

    user = None
    if current.id is not None:
        user = await session.get(User, current.id)
    if user is None and current.email:
        result = await session.execute(select(User).where(User.email == current.email.lower()))
        user = result.scalar_one_or_none()
    if user is None:
        raise APIError(404, "User not found")

    active = await find_active_request(session, user.id)
    if active is not None:
        raise APIError(
            400,
            "You already have an active project request. Please wait for it to be "
            "reviewed before submitting a new one.",
            activeRequest={"id": str(active.id), "title": active.title, "status": active.status},
        )

    legacy = form.legacy_fields()
    if legacy:
        logger.warning("Rejected legacy lead submission from %s: %s", user.email, legacy)
        raise APIError(
            400,
            "The questionnaire format is no longer supported. Please use the service request form.",
            code="LEGACY_FORMAT_REJECTED",
            legacyFields=legacy,
        )

    if not (form.serviceType and form.email and form.name):
        raise APIError(400, "Missing required fields: serviceType, email, name")

    organization = await find_or_create_organization(session, user, form)
    message = compose_message(form)
    service = form.serviceType

    lead = Lead(
        organization_id=organization.id,
        name=form.name,
        email=form.email.lower(),
        phone=form.phone,
        company=form.company,
        message=message,
        source=form.referralSource or "Service Selection",
        status="NEW",
        service_type=service.upper().replace("-", "_"),
        timeline=form.timeline,
        metadata_={
            "userId": str(user.id),
            "serviceType": service,
            "referralSource": form.referralSource,
            "stage": form.stage,
            "outreachProgram": form.outreachProgram,
            "projectType": form.projectType,
            "projectGoals": form.projectGoals,
            "timeline": form.timeline,
            "specialRequirements": form.specialRequirements,
            "nonprofitStatus": form.nonprofitStatus,
            "nonprofitEIN": form.nonprofitEIN,
        },
    )
    lead.score = calculate_lead_score(
        LeadForScoring(has_website=False, email=lead.email, phone=lead.phone)
    )
    session.add(lead)
    await session.flush()

    request = ProjectRequest(
        user_id=user.id,
        title=form.projectGoals or f"{service} Service Request",
        description=message,
        contact_email=form.email,
        company=form.company,
        budget="UNKNOWN",
        timeline=form.timeline,
        services=map_service_types(form.projectType),
        status="SUBMITTED",
    )
    session.add(request)
    await session.flush()

    nonprofit = is_nonprofit(form)
    project = Project(
        name=f"{form.name}'s Project",
        description=f"{service} service project. Goals: {form.projectGoals or 'Not specified'}",
        status="LEAD",
        organization_id=organization.id,
        lead_id=lead.id,
    )
    session.add(project)
    await session.flush()

    request.status = "APPROVED"
    request.project_id = project.id

    session.add(
        Activity(
            type="PROJECT_CREATED",
            title="New Project Created",
            description=f"New project inquiry from {form.name}",
            user_id=user.id,
            metadata_={
                "projectId": str(project.id),
                "service": service,
                "serviceType": service,
                "timeline": form.timeline,
                "isNonprofit": nonprofit,
            },
        )
    )
    await session.flush()
    logger.info("Lead %s submitted by %s (project %s)", lead.id, user.email, project.id)

    return {
        "success": True,
        "leadId": str(lead.id),
        "projectRequestId": str(request.id),
        "projectId": str(project.id),
    }
