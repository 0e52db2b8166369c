"""
Module: chat_service.py
Description: Conversational finance assistant for the /api/chat endpoint.

This service provides:
    - One-shot answers from the AI service, primed with a summary of the user's data
    - An offline intent-matched reply when the AI is unavailable or fails
    - Suggested prompts based on what the user has recorded

Usage:
    chat_service = ChatService(db, ai_service)
    reply, source = await chat_service.chat(user_id, "What are my biggest expenses?")
"""

import re
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from models import Expense, Goal, Insight, Wallet
from .ai_service import AIService, AIServiceError
from .analytics import to_frame, category_deltas, goal_progress, month_window
from .observability import logger, metrics


# Intent patterns (order matters - more specific first)
INTENT_PATTERNS = {
    'greeting': [
        'hello', 'hi', 'hey', 'good morning', 'good afternoon',
        'good evening', 'howdy', "what's up",
    ],
    'thanks': ['thank', 'thanks', 'thx', 'appreciate'],
    'balance': ['balance', 'wallet', 'how much do i have', 'account', 'funds'],
    'goals': ['goal', 'goals', 'target', 'on track', 'progress'],
    'compare': [
        'compare', 'comparison', 'vs', 'versus', 'last month', 'previous',
        'change', 'trend', 'over time', 'month over month',
    ],
    'savings': [
        'save', 'saving', 'savings', 'cut', 'reduce', 'afford',
        'how can i', 'ways to', 'help me',
    ],
    'insights': [
        'insight', 'insights', 'advice', 'recommend', 'suggestion',
        'suggest', 'tip', 'tips', 'analysis', 'analyze', 'what should',
    ],
    'spending_summary': [
        'spend', 'spent', 'spending', 'expense', 'expenses', 'total',
        'summary', 'overview', 'breakdown', 'how much', 'cost', 'paid',
        'budget', 'finances', 'this month', 'biggest',
    ],
}

SUGGESTED_PROMPTS = [
    "How much did I spend this month?",
    "What are my biggest expenses?",
    "How can I save more money?",
    "Compare my spending to last month",
    "Am I on track with my goals?",
    "What's my wallet balance?",
]


def detect_intent(text: str) -> str:
    """Detect user intent by whole-word keyword matching."""
    text = text.lower().strip()
    for intent, patterns in INTENT_PATTERNS.items():
        for pattern in patterns:
            if re.search(rf"\b{re.escape(pattern)}\b", text):
                return intent
    return 'unknown'


class ChatService:
    """
    Finance assistant answering one message at a time.

    Uses the AI service when it is configured; otherwise (or when the call
    fails after retries) answers from the user's own data.
    """

    def __init__(self, db: DBSession, ai_service: AIService):
        self.db = db
        self.ai_service = ai_service

    async def chat(self, user_id: str, message: str, context: Optional[str] = None) -> tuple[str, str]:
        """
        Answer a chat message.

        Args:
            user_id: The authenticated user.
            message: Non-blank user message.
            context: Optional caller-supplied context.

        Returns:
            (reply, source) where source is "ai" or "fallback".
        """
        if self.ai_service.available:
            prompt_context = self._build_prompt_context(user_id)
            if context:
                prompt_context = f"{prompt_context}\n\n{context}"
            try:
                reply = await self.ai_service.chat(message, prompt_context)
                metrics.increment("chat.replies", tags={"source": "ai"})
                return reply, "ai"
            except AIServiceError as e:
                logger.warning("Chat falling back to offline reply", user=user_id[:8], error=str(e))

        metrics.increment("chat.replies", tags={"source": "fallback"})
        return self.fallback_response(user_id, message), "fallback"

    def _build_prompt_context(self, user_id: str) -> str:
        """Short plain-text summary of the user's finances for the model."""
        summary = self._get_spending_summary(user_id)
        wallet = self._get_wallet(user_id)
        goals = self._get_goals(user_id)

        lines = ["User financial summary:"]
        if wallet:
            lines.append(f"- Wallet balance: {wallet.currency} {float(wallet.balance):,.2f}")
        lines.append(f"- Total recorded expenses: ${summary['total']:,.2f} ({summary['count']} entries)")
        lines.append(f"- Spent this month: ${summary['this_month']:,.2f}")
        if summary['by_category']:
            lines.append(f"- Top categories: {self._format_top_categories(summary['by_category'])}")
        for g in goals[:5]:
            lines.append(f"- Goal {g['name']}: {g['progress']:.0f}% of ${g['target']:,.2f}")
        return "\n".join(lines)

    # =========================================================================
    # Data Access
    # =========================================================================

    def _get_wallet(self, user_id: str) -> Optional[Wallet]:
        return self.db.query(Wallet).filter(Wallet.user_id == user_id).first()

    def _get_expenses(self, user_id: str) -> list[Expense]:
        return self.db.query(Expense).filter(Expense.user_id == user_id).all()

    def _get_spending_summary(self, user_id: str) -> dict:
        """Totals overall, for this month and per category."""
        expenses = self._get_expenses(user_id)
        today = date.today()

        by_category: dict[str, float] = {}
        this_month = 0.0
        for e in expenses:
            amount = float(e.amount)
            by_category[e.category] = by_category.get(e.category, 0.0) + amount
            if e.date.year == today.year and e.date.month == today.month:
                this_month += amount

        return {
            "total": sum(by_category.values()),
            "count": len(expenses),
            "this_month": this_month,
            "by_category": by_category,
        }

    def _get_goals(self, user_id: str) -> list[dict]:
        goals = (
            self.db.query(Goal)
            .filter(Goal.user_id == user_id, Goal.is_active.is_(True))
            .order_by(Goal.priority.desc(), Goal.target_date.asc())
            .all()
        )
        return [goal_progress(g) for g in goals]

    def _get_unread_insights(self, user_id: str) -> list[Insight]:
        return (
            self.db.query(Insight)
            .filter(Insight.user_id == user_id, Insight.is_read.is_(False))
            .order_by(Insight.created_at.desc())
            .limit(3)
            .all()
        )

    # =========================================================================
    # Fallback Responses
    # =========================================================================

    def fallback_response(self, user_id: str, user_message: str) -> str:
        """Generate a response without AI using intent matching."""
        intent = detect_intent(user_message)

        if intent == 'greeting':
            return self._respond_greeting(user_id)
        elif intent == 'thanks':
            return "You're welcome! Ask me anything else about your money."
        elif intent == 'balance':
            return self._respond_balance(user_id)
        elif intent == 'goals':
            return self._respond_goals(user_id)
        elif intent == 'compare':
            return self._respond_compare(user_id)
        elif intent == 'savings':
            return self._respond_savings(user_id)
        elif intent == 'insights':
            return self._respond_insights(user_id)
        elif intent == 'spending_summary':
            return self._respond_spending_summary(user_id)
        return self._respond_unknown(user_id)

    def _respond_greeting(self, user_id: str) -> str:
        summary = self._get_spending_summary(user_id)
        response = "Hi! I'm PiggyBank, your finance assistant. "
        if summary['this_month'] > 0:
            response += f"You've spent ${summary['this_month']:,.2f} so far this month. "
        return response + "What would you like to know about your money?"

    def _respond_balance(self, user_id: str) -> str:
        wallet = self._get_wallet(user_id)
        if not wallet:
            return "You haven't opened your wallet yet. Visit the payments page to get started."
        return f"Your wallet balance is {wallet.currency} {float(wallet.balance):,.2f}."

    def _respond_spending_summary(self, user_id: str) -> str:
        summary = self._get_spending_summary(user_id)
        if summary['count'] == 0:
            return "You haven't recorded any expenses yet. Add a few and I'll break them down for you."

        return (
            f"You've recorded ${summary['total']:,.2f} across {summary['count']} expenses, "
            f"${summary['this_month']:,.2f} of it this month.\n\n"
            f"Top categories: {self._format_top_categories(summary['by_category'])}"
        )

    def _respond_savings(self, user_id: str) -> str:
        summary = self._get_spending_summary(user_id)
        if not summary['by_category']:
            return "Start by logging your expenses. Once I can see where the money goes I can suggest what to cut."

        category, amount = max(summary['by_category'].items(), key=lambda x: x[1])
        return (
            f"Your biggest spending category is {category} at ${amount:,.2f}. "
            f"Reducing it by 20% would save ${amount * 0.2:,.2f}. "
            f"Moving that into a savings goal each month adds up quickly."
        )

    def _respond_goals(self, user_id: str) -> str:
        goals = self._get_goals(user_id)
        if not goals:
            return "You don't have any active goals. Create one to start tracking your progress."

        lines = [f"You have {len(goals)} active goal(s):"]
        for g in goals[:5]:
            lines.append(
                f"• {g['name']}: {g['progress']:.0f}% (${g['saved']:,.2f} of ${g['target']:,.2f}), "
                f"{max(g['daysRemaining'], 0)} days left"
            )
        return "\n".join(lines)

    def _respond_compare(self, user_id: str) -> str:
        df = to_frame(self._get_expenses(user_id), "category")
        previous, current = month_window(date.today(), 2)
        changes = [c for c in category_deltas(df, current, previous) if c['changeAmount'] != 0]

        if not changes:
            return "I don't have enough data to compare months yet. I need expenses from this month and last month."

        lines = [f"Spending changes {previous} → {current}:"]
        for c in changes[:5]:
            lines.append(
                f"• {c['category']}: {abs(c['changePercent']):.0f}% {c['direction']} "
                f"(${c['previous']:,.2f} → ${c['current']:,.2f})"
            )
        return "\n".join(lines)

    def _respond_insights(self, user_id: str) -> str:
        insights = self._get_unread_insights(user_id)
        if not insights:
            return self._respond_savings(user_id)

        lines = ["Here are your latest insights:"]
        for i, insight in enumerate(insights, 1):
            lines.append(f"{i}. {insight.title}: {insight.description}")
        return "\n".join(lines)

    def _respond_unknown(self, user_id: str) -> str:
        summary = self._get_spending_summary(user_id)
        response = "I'm not quite sure what you're asking, but here's what I can tell you:\n\n"
        response += f"• You've spent ${summary['this_month']:,.2f} this month\n"
        response += "\nYou can ask me things like:\n"
        response += "\n".join(f"• \"{p}\"" for p in SUGGESTED_PROMPTS[:3])
        return response

    def _format_top_categories(self, by_category: dict) -> str:
        top = sorted(by_category.items(), key=lambda x: x[1], reverse=True)[:3]
        return ", ".join(f"{name} ${amount:,.2f}" for name, amount in top)

    def get_suggested_prompts(self, user_id: str) -> list[str]:
        """Get contextual suggested prompts based on the user's data."""
        prompts = list(SUGGESTED_PROMPTS)

        unread = len(self._get_unread_insights(user_id))
        if unread:
            prompts.insert(0, f"Explain my {unread} new insight(s)")

        return prompts[:6]
