"""Role vocabulary and helpers for authorization checks."""

from __future__ import annotations

DEFAULT_ROLE = "CLIENT"

ADMIN_ROLES = frozenset({"CEO", "CFO", "ADMIN"})
STAFF_ROLES = ADMIN_ROLES | {"STAFF", "FRONTEND", "BACKEND", "OUTREACH"}
BOARD_ROLES = ADMIN_ROLES | {"BOARD"}
COMMUNITY_ROLES = frozenset({"ALUMNI", "COMMUNITY"})
ALL_ROLES = STAFF_ROLES | BOARD_ROLES | COMMUNITY_ROLES | {"CLIENT"}


def normalize_role(role: str | None) -> str:
    if not role:
        return DEFAULT_ROLE
    role = role.upper()
    return role if role in ALL_ROLES else DEFAULT_ROLE


def is_admin(role: str | None) -> bool:
    return normalize_role(role) in ADMIN_ROLES


def is_staff_or_admin(role: str | None) -> bool:
    return normalize_role(role) in STAFF_ROLES


def is_client(role: str | None) -> bool:
    return normalize_role(role) == "CLIENT"


def dashboard_url(role: str | None) -> str:
    """Landing page for a role after sign-in."""
    role = normalize_role(role)
    if role in ADMIN_ROLES:
        return "/admin"
    if role == "BOARD":
        return "/board"
    if role in COMMUNITY_ROLES:
        return "/community"
    return "/client"
