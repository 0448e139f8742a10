"""Tests for lead intake and the admin lead pipeline."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from clientdesk.models.db import Activity, Lead, Project, ProjectRequest
from clientdesk.models.schemas import CurrentUser

FORM = {
    "serviceType": "website",
    "name": "Jordan Lee",
    "email": "Jordan@Example.org",
    "company": "Hope House",
    "projectType": ["Website", "Branding"],
    "projectGoals": "Accept online donations",
    "timeline": "3 months",
    "nonprofitStatus": "501(c)(3) registered",
}


class TestLeadSubmit:
    """Tests for POST /api/leads/submit."""

    @pytest.mark.asyncio
    async def test_requires_sign_in(self, client):
        response = await client.post("/api/leads/submit", json=FORM)
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized - please sign in"

    @pytest.mark.asyncio
    async def test_legacy_questionnaire_rejected(self, client, auth_state, seed_client, db_session):
        account = await seed_client()
        auth_state.user = account.current

        response = await client.post("/api/leads/submit", json={**FORM, "qid": "q-17"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "LEGACY_FORMAT_REJECTED"
        assert body["legacyFields"] == ["qid"]
        assert (await db_session.execute(select(Lead))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_active_request_blocks_new_submission(
        self, client, auth_state, seed_client, db_session
    ):
        account = await seed_client()
        auth_state.user = account.current
        pending = ProjectRequest(user_id=account.user.id, title="Donation page", status="SUBMITTED")
        db_session.add(pending)
        await db_session.flush()

        response = await client.post("/api/leads/submit", json=FORM)

        assert response.status_code == 400
        active = response.json()["activeRequest"]
        assert active["id"] == str(pending.id)
        assert active["status"] == "SUBMITTED"

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, client, auth_state, seed_client):
        account = await seed_client()
        auth_state.user = account.current

        response = await client.post("/api/leads/submit", json={"serviceType": "website"})

        assert response.status_code == 400
        assert "Missing required fields" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_creates_lead_request_project_and_activity(
        self, client, auth_state, seed_client, db_session
    ):
        account = await seed_client()
        auth_state.user = account.current

        response = await client.post("/api/leads/submit", json=FORM)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True

        lead = await db_session.get(Lead, uuid.UUID(body["leadId"]))
        assert lead.email == "jordan@example.org"
        assert lead.organization_id == account.org.id
        assert lead.service_type == "WEBSITE"
        assert lead.status == "NEW"
        assert "Nonprofit Status: 501(c)(3) registered" in lead.message
        assert lead.score > 0

        request = (await db_session.execute(select(ProjectRequest))).scalar_one()
        assert request.status == "APPROVED"
        assert str(request.project_id) == body["projectId"]
        assert request.services == ["WEBSITE", "BRANDING"]

        project = (
            await db_session.execute(select(Project).where(Project.lead_id == lead.id))
        ).scalar_one()
        assert project.status == "LEAD"
        assert project.name == "Jordan Lee's Project"

        activity = (
            await db_session.execute(select(Activity).where(Activity.type == "PROJECT_CREATED"))
        ).scalar_one()
        assert activity.metadata_["isNonprofit"] is True
        assert activity.metadata_["projectId"] == body["projectId"]

    @pytest.mark.asyncio
    async def test_user_without_organization_gets_one(self, client, auth_state, db_session):
        from clientdesk.models.db import OrganizationMember, User

        user = User(email="solo@example.com", name="Solo")
        db_session.add(user)
        await db_session.flush()
        auth_state.user = CurrentUser(id=user.id, email=user.email)

        response = await client.post("/api/leads/submit", json={**FORM, "company": None})

        assert response.status_code == 200
        member = (
            await db_session.execute(
                select(OrganizationMember).where(OrganizationMember.user_id == user.id)
            )
        ).scalar_one()
        assert member.role == "OWNER"


class TestLeadPipeline:
    """Tests for the staff-only lead routes."""

    async def _staff(self, seed_client):
        return await seed_client(email="staff@example.com", role="ADMIN", with_plan=False)

    @pytest.mark.asyncio
    async def test_client_cannot_list_leads(self, client, auth_state, seed_client):
        account = await seed_client()
        auth_state.user = account.current

        response = await client.get("/api/admin/leads")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_orders_by_score(self, client, auth_state, seed_client, db_session):
        staff = await self._staff(seed_client)
        auth_state.user = staff.current
        db_session.add_all(
            [
                Lead(name="Low", email="low@example.org", score=35),
                Lead(name="High", email="high@example.org", score=92),
            ]
        )
        await db_session.flush()

        body = (await client.get("/api/admin/leads")).json()

        assert body["total"] == 2
        assert [lead["name"] for lead in body["leads"]] == ["High", "Low"]
        assert body["leads"][0]["scoreLabel"] == "Hot Lead"
        assert body["leads"][1]["scoreLabel"] == "Cold Lead"

    @pytest.mark.asyncio
    async def test_convert_creates_project(self, client, auth_state, seed_client, db_session):
        staff = await self._staff(seed_client)
        auth_state.user = staff.current
        lead = Lead(name="Hope House", email="hope@example.org", organization_id=staff.org.id, score=80)
        db_session.add(lead)
        await db_session.flush()

        response = await client.post(f"/api/admin/leads/{lead.id}/convert")

        assert response.status_code == 200
        assert lead.status == "CONVERTED"
        assert lead.score == 0
        assert lead.converted_at is not None

        again = await client.post(f"/api/admin/leads/{lead.id}/convert")
        assert again.status_code == 400
        assert again.json()["error"] == "Lead is already converted"
