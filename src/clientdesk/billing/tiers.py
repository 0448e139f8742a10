"""Maintenance-plan tiers and hour packs.

This table is the source of truth for allowances: stored plan rows may
carry stale values from an earlier tier, so billing code always resolves
limits through :func:`get_tier`.
"""

from __future__ import annotations

from dataclasses import dataclass

from clientdesk.config import settings

UNLIMITED = -1

# One-time overage allowance before on-demand billing is required.
GRACE_PERIOD_MAX_OVERAGE_HOURS = 1.0


@dataclass(frozen=True)
class TierConfig:
    id: str
    name: str
    description: str
    monthly_price: int  # cents
    support_hours_included: float
    change_requests_included: int
    rollover_enabled: bool
    rollover_cap: float
    rollover_expiry_days: int
    price_setting: str
    features: tuple[str, ...] = ()

    @property
    def is_unlimited(self) -> bool:
        return self.support_hours_included == UNLIMITED

    @property
    def stripe_price_id(self) -> str:
        return getattr(settings, self.price_setting, "") or ""


@dataclass(frozen=True)
class HourPackConfig:
    id: str
    name: str
    hours: float
    price: int  # cents
    expiration_days: int | None  # None = never expires

    @property
    def never_expires(self) -> bool:
        return self.expiration_days is None

    @property
    def price_per_hour(self) -> int:
        return round(self.price / self.hours)


TIERS: dict[str, TierConfig] = {
    "ESSENTIALS": TierConfig(
        id="ESSENTIALS",
        name="Nonprofit Essentials",
        description="Core website care for small nonprofits",
        monthly_price=50000,
        support_hours_included=8,
        change_requests_included=3,
        rollover_enabled=True,
        rollover_cap=16,
        rollover_expiry_days=60,
        price_setting="stripe_price_nonprofit_t1",
        features=("Security & uptime monitoring", "Monthly updates", "Email support"),
    ),
    "DIRECTOR": TierConfig(
        id="DIRECTOR",
        name="Digital Director Platform",
        description="Ongoing digital direction for growing organizations",
        monthly_price=75000,
        support_hours_included=16,
        change_requests_included=5,
        rollover_enabled=True,
        rollover_cap=32,
        rollover_expiry_days=90,
        price_setting="stripe_price_nonprofit_t2",
        features=("Everything in Essentials", "Priority support", "Quarterly strategy call"),
    ),
    "COO": TierConfig(
        id="COO",
        name="Digital COO System",
        description="Unlimited support and a dedicated digital operations partner",
        monthly_price=200000,
        support_hours_included=UNLIMITED,
        change_requests_included=UNLIMITED,
        rollover_enabled=False,
        rollover_cap=0,
        rollover_expiry_days=0,
        price_setting="stripe_price_nonprofit_t3",
        features=("Unlimited support hours", "Unlimited change requests", "Same-day response"),
    ),
}

TIER_IDS = tuple(TIERS)

HOUR_PACKS: dict[str, HourPackConfig] = {
    "SMALL": HourPackConfig(id="SMALL", name="Starter Pack", hours=5, price=35000, expiration_days=60),
    "MEDIUM": HourPackConfig(id="MEDIUM", name="Growth Pack", hours=10, price=65000, expiration_days=90),
    "LARGE": HourPackConfig(id="LARGE", name="Scale Pack", hours=20, price=120000, expiration_days=120),
    "PREMIUM": HourPackConfig(
        id="PREMIUM", name="Premium Reserve", hours=10, price=85000, expiration_days=None
    ),
}


def get_tier(tier: str | None) -> TierConfig | None:
    """Look up a tier by id, case-insensitively."""
    if not tier:
        return None
    return TIERS.get(tier.upper())


def get_hour_pack(pack_id: str | None) -> HourPackConfig | None:
    if not pack_id:
        return None
    return HOUR_PACKS.get(pack_id.upper())


def format_hours(hours: float) -> str:
    if hours == UNLIMITED:
        return "Unlimited"
    if hours == int(hours):
        hours = int(hours)
    return f"{hours} hour" if hours == 1 else f"{hours} hours"


def recommended_tier(monthly_hours_needed: float, subscriptions: int = 1) -> str:
    """Suggest a tier for an expected monthly workload."""
    if monthly_hours_needed > 10 or subscriptions > 6:
        return "COO"
    if monthly_hours_needed > 4 or subscriptions > 3:
        return "DIRECTOR"
    return "ESSENTIALS"
