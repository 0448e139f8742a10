"""Lead prioritisation score (0-100).

Higher scores mean a better opportunity: a nonprofit without a decent
website, with budget, in a mission-aligned category and close to home.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

PRIORITY_CATEGORIES = (
    "Healthcare",
    "Mental Health",
    "Education",
    "Community Development",
    "Social Services",
    "Family Services",
    "Youth Development",
    "Substance Abuse",
    "Housing",
    "Food Security",
)

TARGET_STATES = ("KY", "IN", "OH", "TN", "WV")
HOME_CITY = "Louisville"
HOME_STATE = "KY"

_WEBSITE_QUALITY_POINTS = {"POOR": 25, "FAIR": 15, "GOOD": 5, "EXCELLENT": 0}


@dataclass
class LeadForScoring:
    has_website: bool = False
    website_quality: str | None = None
    annual_revenue: int | None = None
    category: str | None = None
    city: str | None = None
    state: str | None = None
    employee_count: int | None = None
    email: str | None = None
    phone: str | None = None
    emails_sent: int = 0
    converted_at: datetime | None = None


@dataclass
class ScoreBreakdown:
    total: int
    website: int = 0
    revenue: int = 0
    category: int = 0
    location: int = 0
    size: int = 0
    bonus: int = 0
    penalty: int = 0


def _website_points(lead: LeadForScoring) -> int:
    if not lead.has_website:
        return 30
    return _WEBSITE_QUALITY_POINTS.get((lead.website_quality or "").upper(), 20)


def _revenue_points(revenue: int | None) -> int:
    if not revenue:
        return 12
    if revenue >= 1_000_000:
        return 25
    if revenue >= 500_000:
        return 20
    if revenue >= 100_000:
        return 15
    if revenue >= 50_000:
        return 10
    return 5


def _category_points(category: str | None) -> int:
    if not category:
        return 10
    needle = category.lower()
    for cat in PRIORITY_CATEGORIES:
        if needle in cat.lower() or cat.lower() in needle:
            return 20
    return 10


def _location_points(city: str | None, state: str | None) -> int:
    state = (state or "").upper()
    if state == HOME_STATE and (city or "").lower() == HOME_CITY.lower():
        return 15
    if state == HOME_STATE:
        return 12
    if state in TARGET_STATES:
        return 7
    return 3


def _size_points(employees: int | None) -> int:
    if not employees:
        return 5
    if employees >= 50:
        return 10
    if employees >= 20:
        return 7
    if employees >= 10:
        return 5
    return 3


def score_breakdown(lead: LeadForScoring) -> ScoreBreakdown:
    if lead.converted_at is not None:
        return ScoreBreakdown(total=0)

    parts = ScoreBreakdown(
        total=0,
        website=_website_points(lead),
        revenue=_revenue_points(lead.annual_revenue),
        category=_category_points(lead.category),
        location=_location_points(lead.city, lead.state),
        size=_size_points(lead.employee_count),
        bonus=5 if (lead.email or lead.phone) else 0,
        # Contacted before without converting
        penalty=10 if lead.emails_sent > 0 else 0,
    )
    raw = (
        parts.website + parts.revenue + parts.category + parts.location
        + parts.size + parts.bonus - parts.penalty
    )
    parts.total = min(100, max(0, raw))
    return parts


def calculate_lead_score(lead: LeadForScoring) -> int:
    return score_breakdown(lead).total


def score_label(score: int) -> str:
    if score >= 90:
        return "Hot Lead"
    if score >= 80:
        return "Warm Lead"
    if score >= 70:
        return "Good Lead"
    if score >= 60:
        return "Warm Lead"
    if score >= 40:
        return "Cool Lead"
    return "Cold Lead"


def scoring_input(lead: Any) -> LeadForScoring:
    """Adapt a ``Lead`` row to the scoring input."""
    meta = lead.metadata_ or {}
    return LeadForScoring(
        has_website=bool(lead.website_url),
        website_quality=lead.website_quality,
        annual_revenue=lead.annual_revenue,
        category=lead.category,
        city=lead.city,
        state=lead.state,
        employee_count=meta.get("employeeCount"),
        email=lead.email,
        phone=lead.phone,
        emails_sent=int(meta.get("emailsSent") or 0),
        converted_at=lead.converted_at,
    )
