"""Tests for the website chat assistant."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from clientdesk.assistant.chat import (
    ChatAssistant,
    detect_intent,
    fallback_response,
    quick_actions,
    render_system_prompt,
)
from clientdesk.models.db import AIConversation, AIMessage
from clientdesk.models.schemas import ChatRequest


class TestIntent:
    """Tests for keyword intent detection."""

    @pytest.mark.parametrize(
        "message,intent",
        [
            ("How much does a website cost?", "pricing"),
            ("Show me your past work", "portfolio"),
            ("Can I talk to a person?", "contact"),
            ("I want to begin a new project", "get_started"),
            ("Do you offer monthly support?", "maintenance"),
            ("We are a 501c3 charity", "nonprofit"),
            ("How long would it take?", "timeline"),
            ("hello", "general"),
        ],
    )
    def test_detect_intent(self, message, intent):
        assert detect_intent(message) == intent

    def test_quick_actions_follow_intent(self):
        assert quick_actions("what's the price?") == ["Portfolio", "Schedule", "Get Started"]
        assert quick_actions("hi") == ["Pricing", "Portfolio", "Schedule"]

    def test_pricing_fallback_lists_plans(self):
        text = fallback_response("pricing please")
        assert "Nonprofit Essentials" in text
        assert "$500/month" in text


class TestSystemPrompt:
    def test_mentions_tiers_and_packs(self):
        prompt = render_system_prompt()
        assert "Digital COO System" in prompt
        assert "Unlimited" in prompt
        assert "Premium Reserve" in prompt
        assert "never expires" in prompt


class TestChatAssistant:
    """Tests for ChatAssistant.reply."""

    def test_build_messages_keeps_recent_history(self, mock_llm):
        history = [
            {"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"} for i in range(12)
        ]
        request = ChatRequest(
            message="What about hosting?",
            history=history,
            leadInfo={"name": "Ana", "email": "ana@example.org"},
        )

        messages = ChatAssistant(llm=mock_llm).build_messages(request)

        assert messages[0]["role"] == "system"
        assert [m["content"] for m in messages[1:-1]] == [f"turn {i}" for i in range(4, 12)]
        assert messages[-1] == {"role": "user", "content": "[User: Ana, ana@example.org] What about hosting?"}

    @pytest.mark.asyncio
    async def test_fallback_without_credentials(self, db_session, mock_llm):
        mock_llm.available = False

        result = await ChatAssistant(llm=mock_llm).reply(db_session, ChatRequest(message="pricing?"))

        assert result["conversationId"].startswith("local-")
        assert "maintenance plans" in result["content"]
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_reply_persists_conversation(self, db_session, mock_llm):
        assistant = ChatAssistant(llm=mock_llm)

        first = await assistant.reply(
            db_session,
            ChatRequest(message="How much is maintenance?", sessionId="s-1"),
            source="https://example.org/pricing",
        )
        await assistant.reply(
            db_session, ChatRequest(message="And hour packs?", conversationId=first["conversationId"])
        )

        assert first["content"] == "We have three maintenance plans."
        conversation = (await db_session.execute(select(AIConversation))).scalar_one()
        assert str(conversation.id) == first["conversationId"]
        assert conversation.session_id == "s-1"
        assert conversation.source == "https://example.org/pricing"

        messages = (await db_session.execute(select(AIMessage))).scalars().all()
        assert len(messages) == 4
        assistant_rows = [m for m in messages if m.role == "assistant"]
        assert all(m.tokens == 20 and m.model_used == "test-model" for m in assistant_rows)

    @pytest.mark.asyncio
    async def test_llm_error_falls_back(self, db_session, mock_llm):
        mock_llm.complete.side_effect = RuntimeError("provider down")

        result = await ChatAssistant(llm=mock_llm).reply(db_session, ChatRequest(message="hello"))

        assert result["conversationId"].startswith("error-")
        assert result["quickActions"] == ["Pricing", "Portfolio", "Schedule"]


class TestChatRoute:
    """Tests for POST /api/chat/ai."""

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, client):
        response = await client.post("/api/chat/ai", json={"message": "   "})
        assert response.status_code == 400
        assert response.json()["error"] == "Message is required"

    @pytest.mark.asyncio
    async def test_reply(self, client):
        response = await client.post("/api/chat/ai", json={"message": "Tell me about your plans"})
        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "We have three maintenance plans."
        assert body["conversationId"]
