"""
Tests for the chat assistant: intent detection, offline replies and the endpoint.
"""

import asyncio
from datetime import date

import pytest

from models import Expense, Goal, Wallet
from services.ai_service import AIServiceError
from services.chat_service import ChatService, detect_intent


class TestDetectIntent:

    @pytest.mark.parametrize("message,intent", [
        ("Hello there", "greeting"),
        ("thanks a lot", "thanks"),
        ("What's my wallet balance?", "balance"),
        ("Am I on track with my goals?", "goals"),
        ("Compare my spending to last month", "compare"),
        ("How can I save more money?", "savings"),
        ("Any tips for me?", "insights"),
        ("How much did I spend this month?", "spending_summary"),
        ("Tell me a joke", "unknown"),
    ])
    def test_intents(self, message, intent):
        assert detect_intent(message) == intent

    def test_matches_whole_words_only(self):
        # "this" must not trigger the "hi" greeting
        assert detect_intent("this") == "unknown"


class TestFallbackReplies:

    def test_balance_reply(self, db, make_user, mock_ai_service):
        user = make_user()
        db.add(Wallet(user_id=user.id, balance=1234.5, currency="USD"))
        db.commit()

        reply = ChatService(db, mock_ai_service).fallback_response(user.id, "what is my balance")

        assert reply == "Your wallet balance is USD 1,234.50."

    def test_spending_summary_reply(self, db, make_user, mock_ai_service):
        user = make_user()
        today = date.today()
        db.add_all([
            Expense(user_id=user.id, amount=30, category="Food", description="a", date=today),
            Expense(user_id=user.id, amount=70, category="Rent", description="b", date=today),
        ])
        db.commit()

        reply = ChatService(db, mock_ai_service).fallback_response(user.id, "spending summary")

        assert "$100.00 across 2 expenses" in reply
        assert reply.index("Rent") < reply.index("Food")

    def test_goals_reply_without_goals(self, db, make_user, mock_ai_service):
        user = make_user()

        reply = ChatService(db, mock_ai_service).fallback_response(user.id, "my goals")

        assert "don't have any active goals" in reply

    def test_goals_reply_lists_progress(self, db, make_user, mock_ai_service):
        user = make_user()
        db.add(Goal(user_id=user.id, name="Bike", target=400, saved=100, target_date=date(2030, 1, 1)))
        db.commit()

        reply = ChatService(db, mock_ai_service).fallback_response(user.id, "goal progress")

        assert "Bike: 25%" in reply


class TestChatServiceRouting:

    def test_ai_reply_when_available(self, db, make_user, mock_ai_service):
        user = make_user()
        mock_ai_service.available = True

        async def chat(message, context):
            assert "User financial summary" in context
            return "AI says hi"

        mock_ai_service.chat = chat

        reply, source = asyncio.run(ChatService(db, mock_ai_service).chat(user.id, "hello"))

        assert (reply, source) == ("AI says hi", "ai")

    def test_ai_failure_falls_back(self, db, make_user, mock_ai_service):
        user = make_user()
        mock_ai_service.available = True

        async def chat(message, context):
            raise AIServiceError("upstream down")

        mock_ai_service.chat = chat

        reply, source = asyncio.run(ChatService(db, mock_ai_service).chat(user.id, "hello"))

        assert source == "fallback"
        assert reply.startswith("Hi! I'm PiggyBank")


class TestChatApi:

    def test_offline_reply(self, client, auth_headers):
        response = client.post("/api/chat", json={"message": "hello"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["source"] == "fallback"
        assert data["reply"].startswith("Hi!")

    @pytest.mark.parametrize("body", [{}, {"message": "   "}])
    def test_blank_message_is_400(self, client, auth_headers, body):
        response = client.post("/api/chat", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Message is required"}

    def test_rate_limited_per_user(self, client, auth_headers, register):
        for _ in range(5):
            assert client.post("/api/chat", json={"message": "hi"}, headers=auth_headers).status_code == 200

        response = client.post("/api/chat", json={"message": "hi"}, headers=auth_headers)

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Remaining"] == "0"

        other_headers, _ = register()
        assert client.post("/api/chat", json={"message": "hi"}, headers=other_headers).status_code == 200

    def test_prompts(self, client, auth_headers):
        client.post("/api/insights", json={"title": "New", "description": "n"}, headers=auth_headers)

        response = client.get("/api/chat/prompts", headers=auth_headers)

        prompts = response.json()["data"]["prompts"]
        assert prompts[0] == "Explain my 1 new insight(s)"
        assert len(prompts) == 6
