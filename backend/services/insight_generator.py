"""AI-powered insight generation from a user's expenses, savings and goals."""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from models import Expense, Saving, Goal, Insight
from .ai_service import AIService
from .analytics import to_frame, breakdown, goal_progress
from .observability import logger, metrics


INSIGHT_TYPES = ("SAVING", "SPENDING", "BUDGET", "GOAL", "INVESTMENT", "GENERAL")


def map_insight_type(value: Optional[str]) -> str:
    """Upper-case known types; anything else becomes SAVING."""
    upper = (value or "").strip().upper()
    return upper if upper in INSIGHT_TYPES else "SAVING"


def map_priority_to_impact(priority: Optional[int]) -> str:
    """Priority 1-5 to impact: >=4 HIGH, >=2 MEDIUM, else LOW; missing is MEDIUM."""
    if not priority:
        return "MEDIUM"
    if priority >= 4:
        return "HIGH"
    if priority >= 2:
        return "MEDIUM"
    return "LOW"


class InsightGenerator:
    """Generate and store personalized financial insights."""

    def __init__(self, db: DBSession, ai_service: AIService):
        self.db = db
        self.ai_service = ai_service

    async def generate(self, user_id: str) -> list[Insight]:
        """Generate insights for a user and store them."""
        context = self.build_context(user_id)
        ai_insights = await self.ai_service.generate_financial_insights(context)

        created = []
        for item in ai_insights:
            insight = Insight(
                user_id=user_id,
                type=map_insight_type(item.get("type")),
                title=item.get("title") or "Insight",
                description=item.get("content") or "",
                impact=map_priority_to_impact(item.get("priority")),
            )
            self.db.add(insight)
            created.append(insight)

        self.db.commit()
        for insight in created:
            self.db.refresh(insight)

        logger.info("Insights generated", user=user_id[:8], count=len(created),
                    source="ai" if self.ai_service.available else "fallback")
        metrics.increment("insights.generated", len(created))
        return created

    def build_context(self, user_id: str, today: Optional[date] = None) -> dict:
        """Aggregated view of the user's data; no raw descriptions or notes."""
        today = today or date.today()

        expenses = self.db.query(Expense).filter(Expense.user_id == user_id).all()
        savings = self.db.query(Saving).filter(Saving.user_id == user_id).all()
        goals = self.db.query(Goal).filter(Goal.user_id == user_id).all()

        expense_df = to_frame(expenses, "category")
        saving_df = to_frame(savings, "type")

        by_category = (
            expense_df.groupby("group")["amount"].sum().round(2).to_dict()
            if not expense_df.empty else {}
        )

        return {
            "expenses": {
                "total": round(float(expense_df["amount"].sum()), 2) if not expense_df.empty else 0.0,
                "count": len(expenses),
                "by_category": {k: float(v) for k, v in by_category.items()},
            },
            "savings": {
                "total": round(float(saving_df["amount"].sum()), 2) if not saving_df.empty else 0.0,
                "count": len(savings),
                "by_type": {b["type"]: b["amount"] for b in breakdown(saving_df, key="type")},
            },
            "goals": [
                {**goal_progress(g, today), "is_active": bool(g.is_active)}
                for g in goals
            ],
        }
