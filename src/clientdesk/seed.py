"""Seed database with sample data for demo purposes.

Usage: python -m clientdesk.seed
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from clientdesk.billing.checkout import apply_tier
from clientdesk.billing.tiers import get_hour_pack, get_tier
from clientdesk.billing.hours import add_months
from clientdesk.config import settings
from clientdesk.db.session import async_session_factory, init_db
from clientdesk.leads.scoring import calculate_lead_score, scoring_input
from clientdesk.models.db import (
    BoardCampaign,
    ClientTask,
    Donation,
    DUIClass,
    HourPack,
    Invoice,
    Lead,
    MaintenanceLog,
    MaintenancePlan,
    Organization,
    OrganizationMember,
    Project,
    User,
)

DEMO_CLIENT_EMAIL = "client@example.com"


async def seed_owner() -> int:
    """Create a CEO user for every configured owner email."""
    emails = settings.owner_email_list
    if not emails:
        print("  OWNER_EMAILS is empty, skipping.")
        return 0

    async with async_session_factory() as session:
        count = 0
        for email in emails:
            result = await session.execute(select(User).where(User.email == email))
            if result.scalar_one_or_none():
                continue
            now = datetime.now(timezone.utc)
            session.add(
                User(
                    email=email,
                    name=email.split("@")[0].title(),
                    role="CEO",
                    tos_accepted_at=now,
                    profile_done_at=now,
                    questionnaire_completed_at=now,
                    email_verified_at=now,
                )
            )
            count += 1
        await session.commit()
        return count


async def seed_demo_client() -> str | None:
    """Create a client organization with a project on the Director plan."""
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.email == DEMO_CLIENT_EMAIL))
        if result.scalar_one_or_none():
            print("  Demo client already exists, skipping.")
            return None

        now = datetime.now(timezone.utc)
        user = User(email=DEMO_CLIENT_EMAIL, name="Casey Client", role="CLIENT", tos_accepted_at=now)
        org = Organization(name="Riverside Recovery", slug="riverside-recovery", email=DEMO_CLIENT_EMAIL)
        session.add_all([user, org])
        await session.flush()
        session.add(OrganizationMember(organization_id=org.id, user_id=user.id, role="OWNER"))

        lead = Lead(
            organization_id=org.id,
            name=user.name,
            email=user.email,
            company=org.name,
            source="Referral",
            status="CONVERTED",
            service_type="WEBSITE",
            website_quality="POOR",
            annual_revenue=750000,
            category="Nonprofit",
            city="Louisville",
            state="KY",
            converted_at=now,
        )
        lead.score = calculate_lead_score(scoring_input(lead))
        session.add(lead)
        await session.flush()

        project = Project(
            organization_id=org.id,
            lead_id=lead.id,
            name="Riverside Recovery Website",
            description="Community recovery resource site",
            status="ACTIVE",
            budget=850000,
            maintenance_status="ACTIVE",
        )
        session.add(project)
        await session.flush()

        plan = MaintenancePlan(project_id=project.id, status="ACTIVE")
        apply_tier(plan, get_tier("DIRECTOR"))
        plan.current_period_start = now - timedelta(days=10)
        plan.current_period_end = add_months(plan.current_period_start, 1)
        plan.support_hours_used = 3.0
        session.add(plan)
        await session.flush()

        pack = get_hour_pack("SMALL")
        session.add_all(
            [
                MaintenanceLog(
                    plan_id=plan.id,
                    hours_spent=3.0,
                    description="Homepage content refresh",
                    performed_by="Studio",
                    source="monthly",
                    performed_at=now - timedelta(days=3),
                ),
                HourPack(
                    plan_id=plan.id,
                    pack_type=pack.id,
                    hours=pack.hours,
                    hours_remaining=pack.hours,
                    cost=pack.price,
                    purchased_at=now - timedelta(days=20),
                    expires_at=now - timedelta(days=20) + timedelta(days=pack.expiration_days),
                ),
                ClientTask(
                    project_id=project.id,
                    title="Send updated staff photos",
                    status="TODO",
                    due_date=now + timedelta(days=7),
                ),
                Invoice(
                    organization_id=org.id,
                    project_id=project.id,
                    number=f"INV-{now:%Y%m}-SEED01",
                    title="Website build deposit",
                    amount=425000,
                    status="SENT",
                    sent_at=now - timedelta(days=5),
                    due_date=now + timedelta(days=25),
                ),
            ]
        )
        await session.commit()
        print(f"  Created project: {project.name} (ID: {project.id})")
        return str(project.id)


async def seed_nonprofit() -> int:
    """Create a fundraising campaign and an upcoming DUI class."""
    async with async_session_factory() as session:
        result = await session.execute(select(BoardCampaign).limit(1))
        if result.scalar_one_or_none():
            print("  Nonprofit data already seeded, skipping.")
            return 0

        now = datetime.now(timezone.utc)
        campaign = BoardCampaign(
            name="Spring Recovery Drive",
            description="Funding peer support meetings",
            goal_amount=2500000,
            starts_at=now - timedelta(days=14),
            ends_at=now + timedelta(days=45),
        )
        session.add(campaign)
        await session.flush()

        donations = [
            Donation(campaign_id=campaign.id, donor_name="A. Rivera", amount=5000),
            Donation(campaign_id=campaign.id, donor_name="J. Chen", amount=2500, recurring=True),
            Donation(campaign_id=campaign.id, donor_name="Anonymous", amount=10000, status="REFUNDED"),
        ]
        session.add_all(donations)
        session.add(
            DUIClass(
                title="DUI Education Class",
                date=now + timedelta(days=21),
                location="Community Center, Room B",
                capacity=20,
                price=7500,
            )
        )
        await session.commit()
        return len(donations)


async def main():
    """Run all seed operations."""
    print("Initializing database connection...")
    await init_db()

    print("Seeding owner accounts...")
    count = await seed_owner()
    print(f"  Created {count} owner account(s).")

    print("Seeding demo client...")
    project_id = await seed_demo_client()
    if project_id:
        print(f"  Demo project ID: {project_id}")

    print("Seeding nonprofit data...")
    count = await seed_nonprofit()
    print(f"  Created {count} donation(s).")

    print("Done! Seed data loaded successfully.")


if __name__ == "__main__":
    asyncio.run(main())
