"""
Tests for insight mapping, generation and read state.
"""

import asyncio
from datetime import date

import pytest

from models import Expense, Goal, Saving
from services.ai_service import AIService
from services.insight_generator import InsightGenerator, map_insight_type, map_priority_to_impact


class TestMapping:

    @pytest.mark.parametrize("value,expected", [
        ("spending", "SPENDING"),
        (" Goal ", "GOAL"),
        ("INVESTMENT", "INVESTMENT"),
        ("horoscope", "SAVING"),
        (None, "SAVING"),
    ])
    def test_map_insight_type(self, value, expected):
        assert map_insight_type(value) == expected

    @pytest.mark.parametrize("priority,expected", [
        (5, "HIGH"),
        (4, "HIGH"),
        (3, "MEDIUM"),
        (2, "MEDIUM"),
        (1, "LOW"),
        (None, "MEDIUM"),
    ])
    def test_map_priority_to_impact(self, priority, expected):
        assert map_priority_to_impact(priority) == expected


class TestInsightGenerator:

    def test_context_aggregates_without_descriptions(self, db, make_user, mock_ai_service):
        user = make_user()
        db.add_all([
            Expense(user_id=user.id, amount=40, category="Food", description="secret diner", date=date(2026, 3, 1)),
            Expense(user_id=user.id, amount=60, category="Rent", description="landlord", date=date(2026, 3, 2)),
            Saving(user_id=user.id, amount=15, type="MANUAL", date=date(2026, 3, 3)),
        ])
        db.commit()

        context = InsightGenerator(db, mock_ai_service).build_context(user.id, today=date(2026, 3, 10))

        assert context["expenses"] == {"total": 100.0, "count": 2, "by_category": {"Food": 40.0, "Rent": 60.0}}
        assert context["savings"]["by_type"] == {"MANUAL": 15.0}
        assert "secret diner" not in str(context)

    def test_generate_stores_mapped_insights(self, db, make_user, mock_ai_service):
        user = make_user()

        async def insights(context):
            return [
                {"type": "spending", "title": "Too much coffee", "content": "Cut back.", "priority": 5},
                {"type": "astrology", "title": "Odd", "content": "Mapped.", "priority": 1},
            ]

        mock_ai_service.generate_financial_insights = insights

        created = asyncio.run(InsightGenerator(db, mock_ai_service).generate(user.id))

        assert [(i.type, i.impact) for i in created] == [("SPENDING", "HIGH"), ("SAVING", "LOW")]
        assert all(i.id and not i.is_read for i in created)


class TestInsightApi:

    def test_generate_without_ai_uses_rules(self, client, auth_headers):
        client.post("/api/expenses", json={
            "amount": 80, "category": "Food", "description": "Groceries", "date": date.today().isoformat(),
        }, headers=auth_headers)

        response = client.get("/api/insights/generate", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert 1 <= len(data) <= 3
        assert data[0]["type"] == "SPENDING"
        assert "Food" in data[0]["title"]

    def test_unread_count_and_mark_all_read(self, client, auth_headers):
        for title in ("One", "Two"):
            client.post("/api/insights", json={"title": title, "description": "d", "priority": 4},
                        headers=auth_headers)

        count = client.get("/api/insights/unread-count", headers=auth_headers).json()["data"]
        assert count == {"unreadCount": 2}

        response = client.put("/api/insights/mark-all-read", headers=auth_headers)
        assert response.json()["data"] == {"updated": 2}

        count = client.get("/api/insights/unread-count", headers=auth_headers).json()["data"]
        assert count == {"unreadCount": 0}

    def test_create_maps_type_and_priority(self, client, auth_headers):
        response = client.post("/api/insights", json={
            "type": "budget", "title": "Budget", "description": "Set one.", "priority": 1,
        }, headers=auth_headers)

        data = response.json()["data"]
        assert data["type"] == "BUDGET"
        assert data["impact"] == "LOW"
        assert data["isRead"] is False

    def test_mark_one_read_and_filter(self, client, auth_headers):
        first = client.post("/api/insights", json={"title": "A", "description": "a"},
                            headers=auth_headers).json()["data"]
        client.post("/api/insights", json={"title": "B", "description": "b"}, headers=auth_headers)

        response = client.put(f"/api/insights/{first['id']}/read", headers=auth_headers)
        assert response.json()["data"]["isRead"] is True

        unread = client.get("/api/insights?isRead=false", headers=auth_headers).json()["data"]
        assert [i["title"] for i in unread] == ["B"]

    def test_other_users_insight_is_404(self, client, register, auth_headers):
        insight = client.post("/api/insights", json={"title": "Mine", "description": "m"},
                              headers=auth_headers).json()["data"]
        other_headers, _ = register()

        response = client.delete(f"/api/insights/{insight['id']}", headers=other_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Insight not found"


class TestGoalInGeneratedContext:

    def test_fallback_targets_goal_furthest_behind(self, db, make_user, settings):
        user = make_user()
        db.add_all([
            Goal(user_id=user.id, name="Almost", target=100, saved=90, target_date=date(2026, 12, 1)),
            Goal(user_id=user.id, name="Barely", target=100, saved=5, target_date=date(2026, 12, 1)),
        ])
        db.commit()

        service = AIService(settings)
        context = InsightGenerator(db, service).build_context(user.id, today=date(2026, 6, 1))
        insights = service._fallback_insights(context)

        goal_insight = next(i for i in insights if i["type"] == "GOAL")
        assert "Barely" in goal_insight["title"]
