"""
Spending and savings analytics built on pandas.

All functions take ORM rows (anything with date/amount and a grouping
attribute) and return plain dicts with camelCase keys, ready for the
JSON envelope.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression


MIN_PROJECTION_MONTHS = 3


def to_frame(rows: Iterable, group_field: str) -> pd.DataFrame:
    """Build a DataFrame with date, amount, group and month columns."""
    df = pd.DataFrame(
        [
            {"date": r.date, "amount": float(r.amount), "group": getattr(r, group_field)}
            for r in rows
        ],
        columns=["date", "amount", "group"],
    )
    df["date"] = pd.to_datetime(df["date"])
    df["month"] = df["date"].dt.to_period("M")
    return df


def month_window(today: date, months: int) -> list[pd.Period]:
    """The last `months` calendar months, oldest first, ending with today's month."""
    end = pd.Period(today, freq="M")
    return [end - i for i in range(months - 1, -1, -1)]


def monthly_totals(df: pd.DataFrame, window: list[pd.Period]) -> list[dict]:
    """Sum of amounts per month in window; months without rows are zero."""
    totals = {} if df.empty else df.groupby("month")["amount"].sum().to_dict()
    return [
        {"month": str(p), "total": round(float(totals.get(p, 0.0)), 2)}
        for p in window
    ]


def breakdown(df: pd.DataFrame, key: str = "category") -> list[dict]:
    """Amount, count and share of total per group, largest first."""
    if df.empty:
        return []

    grouped = (
        df.groupby("group")["amount"]
        .agg(["sum", "count"])
        .sort_values("sum", ascending=False)
    )
    total = grouped["sum"].sum()

    return [
        {
            key: name,
            "amount": round(float(row["sum"]), 2),
            "count": int(row["count"]),
            "percentage": round(float(row["sum"] / total * 100), 1) if total else 0.0,
        }
        for name, row in grouped.iterrows()
    ]


def category_deltas(df: pd.DataFrame, current: pd.Period, previous: pd.Period) -> list[dict]:
    """Month-over-month change per category between two months."""
    if df.empty:
        return []

    cur = df[df["month"] == current].groupby("group")["amount"].sum()
    prev = df[df["month"] == previous].groupby("group")["amount"].sum()

    deltas = []
    for category in sorted(set(cur.index) | set(prev.index)):
        c = float(cur.get(category, 0.0))
        p = float(prev.get(category, 0.0))
        if p != 0:
            change_percent = (c - p) / abs(p) * 100
        else:
            change_percent = 100.0 if c != 0 else 0.0

        deltas.append({
            "category": category,
            "current": round(c, 2),
            "previous": round(p, 2),
            "changeAmount": round(c - p, 2),
            "changePercent": round(change_percent, 1),
            "direction": "increase" if c > p else "decrease" if c < p else "flat",
        })

    deltas.sort(key=lambda d: abs(d["changeAmount"]), reverse=True)
    return deltas


def project_next_month(values: list[float]) -> dict:
    """
    Project next month's total from a monthly series.

    Leading zero months (before any data) are ignored. A linear regression
    over month index is used once MIN_PROJECTION_MONTHS months remain;
    otherwise the last month's total is carried forward.

    Returns:
        {"amount", "method", "slope"}
    """
    series = list(values)
    while series and series[0] == 0:
        series.pop(0)

    if len(series) < MIN_PROJECTION_MONTHS:
        last = series[-1] if series else 0.0
        return {"amount": round(float(last), 2), "method": "last_month", "slope": None}

    X = np.arange(len(series)).reshape(-1, 1)
    y = np.array(series, dtype=float)
    model = LinearRegression().fit(X, y)
    predicted = float(model.predict(np.array([[len(series)]]))[0])

    return {
        "amount": round(max(predicted, 0.0), 2),
        "method": "linear_regression",
        "slope": round(float(model.coef_[0]), 2),
    }


def spending_analytics(expenses: Iterable, savings: Iterable, today: date, months: int = 6) -> dict:
    """Dashboard analytics over the last `months` months."""
    window = month_window(today, months)
    expense_df = to_frame(expenses, "category")
    saving_df = to_frame(savings, "type")

    start = window[0].start_time
    expense_df = expense_df[expense_df["date"] >= start]
    saving_df = saving_df[saving_df["date"] >= start]

    expense_totals = monthly_totals(expense_df, window)

    return {
        "months": months,
        "monthlyExpenses": expense_totals,
        "categoryBreakdown": breakdown(expense_df, key="category"),
        "categoryChanges": (
            category_deltas(expense_df, window[-1], window[-2]) if len(window) >= 2 else []
        ),
        "savingsTrend": monthly_totals(saving_df, window),
        "projection": project_next_month([m["total"] for m in expense_totals]),
    }


# =============================================================================
# Savings & Goals
# =============================================================================

def goal_progress(goal, today: Optional[date] = None) -> dict:
    """Progress figures for one goal."""
    today = today or date.today()
    target = float(goal.target)
    saved = float(goal.saved or 0)
    progress = min(saved / target * 100, 100.0) if target > 0 else 0.0

    return {
        "id": goal.id,
        "name": goal.name,
        "emoji": goal.emoji,
        "target": round(target, 2),
        "saved": round(saved, 2),
        "progress": round(progress, 1),
        "remaining": round(max(target - saved, 0.0), 2),
        "daysRemaining": (goal.target_date - today).days,
        "targetDate": goal.target_date.isoformat(),
    }


def savings_summary(savings: Iterable, period_days: int = 30, today: Optional[date] = None) -> dict:
    """Total, monthly average and per-type breakdown over the last period_days."""
    today = today or date.today()
    df = to_frame(savings, "type")
    start = pd.Timestamp(today - timedelta(days=period_days))
    recent = df[df["date"] >= start]

    total = float(recent["amount"].sum()) if not recent.empty else 0.0

    return {
        "period": period_days,
        "totalSaved": round(total, 2),
        "monthlyAverage": round(total / (period_days / 30), 2),
        "count": int(len(recent)),
        "byType": breakdown(recent, key="type"),
        "monthlyTrend": monthly_totals(df, month_window(today, 6)),
    }


def savings_analytics(savings: Iterable, goals: Iterable, today: Optional[date] = None) -> dict:
    """All-time savings, active goal progress and a twelve-month trend."""
    today = today or date.today()
    df = to_frame(savings, "type")

    return {
        "totalSaved": round(float(df["amount"].sum()), 2) if not df.empty else 0.0,
        "goals": [goal_progress(g, today) for g in goals if g.is_active],
        "monthlyTrend": monthly_totals(df, month_window(today, 12)),
    }
