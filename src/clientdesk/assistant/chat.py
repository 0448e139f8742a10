"""Website chat assistant.

Answers visitor questions through the configured LLM and stores the
conversation. Without credentials, or when the LLM call fails, it falls
back to canned answers chosen by keyword intent.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.billing.tiers import HOUR_PACKS, TIERS, format_hours
from clientdesk.config import settings
from clientdesk.llm import BaseLLM, get_llm
from clientdesk.models.db import AIConversation, AIMessage
from clientdesk.models.schemas import ChatRequest

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"

_jinja_env = Environment(
    loader=FileSystemLoader(str(PROMPTS_DIR)),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)

HISTORY_TURNS = 8
MAX_TOKENS = 500

# First match wins.
INTENT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("pricing", re.compile(r"price|cost|how much|budget|afford|pricing")),
    ("portfolio", re.compile(r"portfolio|examples|past work|show me|work")),
    ("contact", re.compile(r"contact|call|email|talk|human|person|schedule")),
    ("get_started", re.compile(r"start|begin|get started|new project")),
    ("maintenance", re.compile(r"maintain|support|update|monthly")),
    ("nonprofit", re.compile(r"nonprofit|501c3|charity|donation")),
    ("timeline", re.compile(r"timeline|how long|when|deadline|fast")),
]

QUICK_ACTIONS: dict[str, list[str]] = {
    "pricing": ["Portfolio", "Schedule", "Get Started"],
    "portfolio": ["Pricing", "Schedule", "Get Started"],
    "contact": ["Pricing", "Portfolio", "Get Started"],
    "get_started": ["Pricing", "Portfolio", "Schedule"],
    "maintenance": ["Pricing", "Schedule", "Get Started"],
    "nonprofit": ["Pricing", "Portfolio", "Schedule"],
    "timeline": ["Pricing", "Schedule", "Get Started"],
    "general": ["Pricing", "Portfolio", "Schedule"],
}


def detect_intent(message: str) -> str:
    lower = message.lower()
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(lower):
            return intent
    return "general"


def quick_actions(message: str) -> list[str]:
    return list(QUICK_ACTIONS.get(detect_intent(message), QUICK_ACTIONS["general"]))


def _plan_lines() -> str:
    return "\n".join(
        f"- **{t.name}**: ${t.monthly_price // 100}/month, {format_hours(t.support_hours_included)}"
        for t in TIERS.values()
    )


def fallback_response(message: str) -> str:
    """Canned answer for the message's intent."""
    intent = detect_intent(message)
    if intent == "pricing" or intent == "maintenance":
        return (
            "Here are our monthly maintenance plans:\n\n"
            f"{_plan_lines()}\n\n"
            "Need extra time? Hour packs start at 5 hours. "
            "Would you like to schedule a free consultation?"
        )
    if intent == "portfolio":
        return (
            "We've built recovery community platforms, mental health resource "
            "directories and many nonprofit and small business sites.\n\n"
            "Browse the full portfolio at **/portfolio**. What kind of project "
            "are you thinking about?"
        )
    if intent == "contact":
        return (
            "I'd love to connect you with the team:\n\n"
            f"- **Email**: {settings.support_email}\n"
            "- **Schedule a call**: /contact\n"
            "- **Start a project**: /start\n\n"
            "The team usually responds within 24 hours. Anything else I can help with?"
        )
    if intent == "get_started":
        return (
            "Getting started is easy:\n\n"
            "1. Fill out the short project form at /start\n"
            "2. We review it and send a proposal\n"
            "3. Once approved, we kick off your project\n\n"
            "Ready to begin?"
        )
    if intent == "nonprofit":
        return (
            "We love working with nonprofits! Our maintenance plans are built "
            f"for mission-driven organizations:\n\n{_plan_lines()}\n\n"
            "What kind of work does your organization do?"
        )
    if intent == "timeline":
        return (
            "Typical timelines:\n\n"
            "- **Small sites**: 1-2 weeks\n"
            "- **Growing sites**: 2-3 weeks\n"
            "- **Custom builds**: 4-6 weeks\n\n"
            "When are you hoping to launch?"
        )
    return (
        f"Hi there! I'm the {settings.studio_name} assistant. I can help with:\n\n"
        "- **Pricing** for websites and maintenance\n"
        "- **Portfolio** examples of our work\n"
        "- **Getting started** on your project\n\n"
        "What would you like to know?"
    )


def render_system_prompt() -> str:
    template = _jinja_env.get_template("chat_system.j2")
    tiers = [
        {
            "name": t.name,
            "monthly_price": t.monthly_price,
            "hours_label": format_hours(t.support_hours_included),
            "change_requests_included": t.change_requests_included,
        }
        for t in TIERS.values()
    ]
    return template.render(
        studio_name=settings.studio_name,
        studio_city=settings.studio_city,
        contact_email=settings.support_email,
        tiers=tiers,
        hour_packs=list(HOUR_PACKS.values()),
    )


class ChatAssistant:
    """Produces replies for the website chat widget."""

    def __init__(self, llm: BaseLLM | None = None):
        self.llm = llm or get_llm()

    def build_messages(self, request: ChatRequest) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": render_system_prompt()}]
        for turn in request.history[-HISTORY_TURNS:]:
            if turn.content:
                messages.append({"role": turn.role, "content": turn.content})

        content = request.message
        lead = request.leadInfo
        if lead and lead.name:
            who = lead.name + (f", {lead.email}" if lead.email else "")
            content = f"[User: {who}] {content}"
        messages.append({"role": "user", "content": content})
        return messages

    def _fallback(self, request: ChatRequest, prefix: str) -> dict[str, Any]:
        return {
            "content": fallback_response(request.message),
            "conversationId": request.conversationId or f"{prefix}-{int(time.time() * 1000)}",
            "quickActions": quick_actions(request.message),
        }

    async def reply(
        self, session: AsyncSession, request: ChatRequest, source: str | None = None
    ) -> dict[str, Any]:
        if not self.llm.available:
            return self._fallback(request, "local")

        intent = detect_intent(request.message)
        try:
            response = await self.llm.complete(
                self.build_messages(request), max_tokens=MAX_TOKENS
            )
            content = response.content or "I'm having trouble responding right now."

            conversation = None
            if request.conversationId:
                try:
                    conversation = await session.get(
                        AIConversation, uuid.UUID(request.conversationId)
                    )
                except ValueError:
                    conversation = None
            if conversation is None:
                lead = request.leadInfo
                conversation = AIConversation(
                    session_id=request.sessionId or f"session-{uuid.uuid4().hex[:12]}",
                    visitor_name=lead.name if lead else None,
                    visitor_email=lead.email if lead else None,
                    status="ACTIVE",
                    intent=intent,
                    source=source or "chat_widget",
                )
                session.add(conversation)
                await session.flush()
            else:
                conversation.intent = intent

            session.add_all(
                [
                    AIMessage(conversation_id=conversation.id, role="user", content=request.message),
                    AIMessage(
                        conversation_id=conversation.id,
                        role="assistant",
                        content=content,
                        model_used=response.model,
                        tokens=response.output_tokens,
                    ),
                ]
            )
            await session.flush()
        except Exception:
            logger.exception("Chat assistant failed, returning fallback")
            await session.rollback()
            return self._fallback(request, "error")

        return {
            "content": content,
            "conversationId": str(conversation.id),
            "quickActions": quick_actions(request.message),
        }
