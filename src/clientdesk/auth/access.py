"""Which organizations and projects a signed-in user may see."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.models.db import Lead, OrganizationMember, Project


@dataclass
class AccessContext:
    organization_ids: list = field(default_factory=list)
    lead_project_ids: list = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.organization_ids and not self.lead_project_ids


async def get_access_context(session: AsyncSession, user_id, email: str | None) -> AccessContext:
    """Orgs the user belongs to plus projects that came from their leads."""
    ctx = AccessContext()
    if user_id is not None:
        result = await session.execute(
            select(OrganizationMember.organization_id).where(OrganizationMember.user_id == user_id)
        )
        ctx.organization_ids = [row[0] for row in result.all()]

    if email:
        result = await session.execute(
            select(Project.id)
            .join(Lead, Lead.id == Project.lead_id)
            .where(Lead.email == email.lower())
        )
        ctx.lead_project_ids = [row[0] for row in result.all()]
    return ctx


def accessible_projects_clause(ctx: AccessContext):
    """SQL filter restricting ``Project`` rows to an access context."""
    clauses = []
    if ctx.organization_ids:
        clauses.append(Project.organization_id.in_(ctx.organization_ids))
    if ctx.lead_project_ids:
        clauses.append(Project.id.in_(ctx.lead_project_ids))
    return or_(*clauses)
