"""
OpenAI wrapper with retry logic, rate limiting, and error handling.

Features:
    - Exponential backoff retry for transient failures
    - Rate limit handling (429 errors)
    - Token usage tracking
    - Graceful fallback when API unavailable

The service is built once from Settings and stored on app.state.
"""

import json
import time
import asyncio
from typing import Any, Optional

from openai import AsyncOpenAI

from config import Settings
from .observability import logger, log_openai_call


INSIGHT_COUNT = 3

CHAT_SYSTEM_PROMPT = """You are PiggyBank, a friendly personal finance assistant.
Answer questions about budgeting, saving, spending and financial goals.

Guidelines:
- Be concise: 2-4 short paragraphs at most
- Be specific: use the numbers provided in the context when available
- Be encouraging: celebrate progress, not just problems
- Never invent account data that was not provided
- You are not a licensed advisor; suggest a professional for investment or tax decisions"""

INSIGHTS_SYSTEM_PROMPT = """You are a personal finance AI. Analyze the user's expenses,
savings and goals and produce short, actionable insights.

Guidelines:
- Be specific: use actual numbers from the data
- Be actionable: every insight should suggest a concrete step
- Be encouraging: celebrate wins, not just problems
- Priority runs from 1 (nice to know) to 5 (act now)"""


class AIServiceError(Exception):
    """The AI provider could not produce a response."""


class AIService:
    """
    Wrapper for OpenAI API with retry logic and rate limit handling.

    Features:
        - Automatic retry with exponential backoff
        - Rate limit (429) handling
        - Token usage tracking
        - Graceful fallback when API unavailable
    """

    # Rate limit settings
    MAX_RETRIES = 3
    INITIAL_DELAY = 1.0
    MAX_DELAY = 60.0

    def __init__(self, settings: Settings):
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model
        self.client: Optional[AsyncOpenAI] = None

        # Token usage tracking
        self.total_tokens_used = 0
        self.request_count = 0

        # Only initialize client if API key is available and valid
        if self.api_key and self.api_key.startswith("sk-"):
            self.client = AsyncOpenAI(api_key=self.api_key)
            logger.info("OpenAI client initialized", model=self.model)
        else:
            logger.warning("OpenAI API key not configured. AI features will use fallback mode.")

    @property
    def available(self) -> bool:
        return self.client is not None

    def _track_usage(self, response) -> int:
        """Track token usage from API response."""
        if hasattr(response, 'usage') and response.usage:
            self.total_tokens_used += response.usage.total_tokens
            self.request_count += 1
            return response.usage.total_tokens
        return 0

    def get_usage_stats(self) -> dict:
        """Get current usage statistics."""
        return {
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
            "avg_tokens_per_request": (
                self.total_tokens_used / self.request_count
                if self.request_count > 0 else 0
            )
        }

    async def _call_with_retry(self, endpoint: str = "chat", **kwargs) -> Any:
        """
        Make OpenAI API call with retry logic for rate limits.

        Implements exponential backoff for:
        - 429 Rate Limit errors
        - 500/502/503 Server errors
        - Network timeouts
        """
        last_exception = None
        delay = self.INITIAL_DELAY

        for attempt in range(self.MAX_RETRIES + 1):
            start = time.perf_counter()
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    **kwargs
                )
                tokens = self._track_usage(response)
                log_openai_call(endpoint, tokens, (time.perf_counter() - start) * 1000)
                return response

            except Exception as e:
                last_exception = e
                error_str = str(e).lower()

                # Check if retryable error
                is_rate_limit = "rate_limit" in error_str or "429" in error_str
                is_server_error = any(code in error_str for code in ["500", "502", "503"])
                is_timeout = "timeout" in error_str

                if is_rate_limit or is_server_error or is_timeout:
                    if attempt < self.MAX_RETRIES:
                        wait_time = delay * (2 if is_rate_limit else 1)
                        logger.warning(
                            "OpenAI API error, retrying",
                            wait_s=f"{wait_time:.1f}",
                            attempt=f"{attempt + 1}/{self.MAX_RETRIES + 1}",
                        )
                        await asyncio.sleep(wait_time)
                        delay = min(delay * 2, self.MAX_DELAY)
                        continue

                # Non-retryable error or max retries reached
                raise last_exception

        raise last_exception

    # =========================================================================
    # Chat
    # =========================================================================

    async def chat(self, message: str, context: Optional[str] = None) -> str:
        """
        One-shot chat completion.

        Args:
            message: The user's question.
            context: Optional text placed before the question.

        Returns:
            The assistant reply.

        Raises:
            AIServiceError: If no client is configured or the call fails after retries.
        """
        if not self.client:
            raise AIServiceError("OpenAI client not configured")

        prompt = f"{context}\n\nUser: {message}" if context else message

        try:
            response = await self._call_with_retry(
                endpoint="chat",
                messages=[
                    {"role": "system", "content": CHAT_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=600,
                temperature=0.7,
                timeout=30,
            )
        except Exception as e:
            logger.error("AI chat error after retries", error=str(e))
            raise AIServiceError("Failed to generate AI response") from e

        reply = response.choices[0].message.content
        if not reply:
            raise AIServiceError("Empty AI response")
        return reply.strip()

    # =========================================================================
    # Insights
    # =========================================================================

    async def generate_financial_insights(self, context: dict) -> list[dict]:
        """
        Generate insights from an aggregated financial context using function calling.

        Args:
            context: Output of InsightGenerator.build_context().

        Returns:
            List of {type, title, content, priority} dicts. Falls back to
            rule-based insights when the API is unavailable or fails.
        """
        if not self.client:
            logger.info("AI insights skipped - using fallback insights")
            return self._fallback_insights(context)

        try:
            response = await self._call_with_retry(
                endpoint="insights",
                messages=[
                    {"role": "system", "content": INSIGHTS_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"Generate {INSIGHT_COUNT} short, actionable financial insights "
                            f"from this data:\n{json.dumps(context, indent=2, default=str)}"
                        ),
                    },
                ],
                tools=[
                    {
                        "type": "function",
                        "function": {
                            "name": "generate_insights",
                            "description": "Generate personalized financial insights",
                            "parameters": {
                                "type": "object",
                                "properties": {
                                    "insights": {
                                        "type": "array",
                                        "items": {
                                            "type": "object",
                                            "properties": {
                                                "type": {
                                                    "type": "string",
                                                    "enum": [
                                                        "SAVING",
                                                        "SPENDING",
                                                        "BUDGET",
                                                        "GOAL",
                                                        "INVESTMENT",
                                                        "GENERAL",
                                                    ],
                                                },
                                                "title": {"type": "string", "maxLength": 80},
                                                "content": {"type": "string", "maxLength": 300},
                                                "priority": {
                                                    "type": "integer",
                                                    "minimum": 1,
                                                    "maximum": 5,
                                                },
                                            },
                                            "required": ["type", "title", "content", "priority"],
                                        },
                                    }
                                },
                                "required": ["insights"],
                            },
                        },
                    }
                ],
                tool_choice={"type": "function", "function": {"name": "generate_insights"}},
                timeout=30,
            )

            tool_call = response.choices[0].message.tool_calls[0]
            result = json.loads(tool_call.function.arguments)
            return [self._normalize_insight(item) for item in result.get("insights", [])]

        except Exception as e:
            logger.error("AI insight generation error after retries", error=str(e))
            return self._fallback_insights(context)

    @staticmethod
    def _normalize_insight(item: dict) -> dict:
        try:
            priority = int(item.get("priority") or 3)
        except (TypeError, ValueError):
            priority = 3
        return {
            "type": str(item.get("type") or "GENERAL"),
            "title": str(item.get("title") or "Insight"),
            "content": str(item.get("content") or item.get("description") or ""),
            "priority": priority,
        }

    def _fallback_insights(self, context: dict) -> list[dict]:
        """Generate basic insights without AI if API fails."""
        insights = []
        expenses = context.get("expenses", {})
        savings = context.get("savings", {})
        goals = context.get("goals", [])

        # Largest spending category
        by_category = expenses.get("by_category", {})
        if by_category:
            category, amount = max(by_category.items(), key=lambda x: x[1])
            share = amount / expenses["total"] * 100 if expenses.get("total") else 0
            insights.append({
                "type": "SPENDING",
                "title": f"Largest spending: {category}",
                "content": (
                    f"You spent ${amount:.2f} on {category} ({share:.0f}% of expenses). "
                    f"Review it for potential savings."
                ),
                "priority": 4 if share >= 40 else 3,
            })

        # Savings rate
        total_spent = expenses.get("total", 0)
        total_saved = savings.get("total", 0)
        if total_spent > 0:
            target = total_spent * 0.10
            if total_saved < target:
                insights.append({
                    "type": "SAVING",
                    "title": "Boost your savings",
                    "content": (
                        f"You have saved ${total_saved:.2f} against ${total_spent:.2f} of spending. "
                        f"Setting aside 10% (${target:.2f}) would build a healthy cushion."
                    ),
                    "priority": 4,
                })
            else:
                insights.append({
                    "type": "SAVING",
                    "title": "Great savings habit",
                    "content": f"You have saved ${total_saved:.2f}, over 10% of your spending. Keep it up!",
                    "priority": 1,
                })

        # Goal furthest behind
        active_goals = [g for g in goals if g.get("is_active", True) and g.get("progress", 0) < 100]
        if active_goals:
            goal = min(active_goals, key=lambda g: g.get("progress", 0))
            remaining = goal["target"] - goal["saved"]
            insights.append({
                "type": "GOAL",
                "title": f"Keep going on {goal['name']}",
                "content": (
                    f"{goal['name']} is {goal.get('progress', 0):.0f}% funded. "
                    f"${remaining:.2f} to go before {goal.get('targetDate', 'the target date')}."
                ),
                "priority": 3,
            })

        if not insights:
            insights.append({
                "type": "GENERAL",
                "title": "Start tracking your money",
                "content": "Log a few expenses and set a savings goal to get personalized insights.",
                "priority": 2,
            })

        return insights[:INSIGHT_COUNT]

    async def check_connection(self) -> bool:
        """Check if OpenAI API is accessible."""
        if not self.client:
            return False
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.warning("OpenAI connectivity check failed", error=str(e))
            return False
