"""Data models - SQLAlchemy ORM and Pydantic schemas."""

from clientdesk.models.db import (
    Base,
    User,
    Account,
    Organization,
    OrganizationMember,
    Lead,
    Project,
    ProjectRequest,
    MaintenancePlan,
    MaintenanceLog,
    HourPack,
    RolloverRecord,
    ChangeRequest,
    Invoice,
    Payment,
    ClientTask,
    Activity,
    AIConversation,
    AIMessage,
    BoardCampaign,
    Donation,
    DUIClass,
    DUIRegistration,
    Meeting,
)

__all__ = [
    "Base",
    "User",
    "Account",
    "Organization",
    "OrganizationMember",
    "Lead",
    "Project",
    "ProjectRequest",
    "MaintenancePlan",
    "MaintenanceLog",
    "HourPack",
    "RolloverRecord",
    "ChangeRequest",
    "Invoice",
    "Payment",
    "ClientTask",
    "Activity",
    "AIConversation",
    "AIMessage",
    "BoardCampaign",
    "Donation",
    "DUIClass",
    "DUIRegistration",
    "Meeting",
]
