"""
Aggregations behind the dashboard, insights, heatmap, budget, bill, target
and health score views.

Functions take plain row objects (ORM instances or anything with the same
attributes) and return JSON-ready dicts. ``month`` is ``YYYY-MM`` or
``"all"``; ``today`` can be passed for deterministic results.
"""
import calendar
import math
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from dateutil.relativedelta import relativedelta

ALL_MONTHS = "all"
TREND_MONTHS = 6

SAVING_RATIO_POINTS = 40
BUDGET_DISCIPLINE_POINTS = 30
SPENDING_STABILITY_POINTS = 20
CONSISTENCY_POINTS = 10
TARGET_SAVING_RATIO = 20.0
TARGET_ACTIVE_DAYS = 10

MILESTONES = (25, 50, 75, 100)


def month_of(value: date) -> str:
    return value.strftime("%Y-%m")


def current_month(today: Optional[date] = None) -> str:
    return month_of(today or date.today())


def first_day(month: str) -> date:
    year, mon = month.split("-")
    return date(int(year), int(mon), 1)


def previous_month(month: str) -> str:
    return month_of(first_day(month) - relativedelta(months=1))


def valid_month(month: Optional[str], today: Optional[date] = None) -> str:
    """``month`` as ``YYYY-MM``, or the current month when it is not a month."""
    try:
        return month_of(first_day(month))
    except (AttributeError, TypeError, ValueError):
        return current_month(today)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def for_month(rows: Iterable, month: str) -> list:
    if month == ALL_MONTHS:
        return list(rows)
    return [row for row in rows if row.month == month]


def total(rows: Iterable, field: str = "amount") -> float:
    return sum((getattr(row, field) or 0) for row in rows)


def net_savings(savings: Iterable) -> float:
    return sum((s.deposit or 0) - (s.withdrawal or 0) for s in savings)


def running_balance(incomes: list, expenses: list, month: str) -> float:
    """Income minus expense up to and including ``month``."""
    if month == ALL_MONTHS:
        return total(incomes) - total(expenses)
    income = total(i for i in incomes if i.month and i.month <= month)
    expense = total(e for e in expenses if e.month and e.month <= month)
    return income - expense


def monthly_trend(incomes: list, expenses: list, limit: int = TREND_MONTHS) -> List[dict]:
    months = defaultdict(lambda: {"income": 0.0, "expense": 0.0})
    for income in incomes:
        months[income.month]["income"] += income.amount
    for expense in expenses:
        months[expense.month]["expense"] += expense.amount
    ordered = sorted(months.items())[-limit:] if limit else sorted(months.items())
    return [{"month": month, **totals} for month, totals in ordered]


def category_breakdown(expenses: list) -> List[dict]:
    grand_total = total(expenses)
    grouped = defaultdict(lambda: {"total": 0.0, "count": 0})
    for expense in expenses:
        grouped[expense.category]["total"] += expense.amount
        grouped[expense.category]["count"] += 1

    data = [
        {
            "category": category,
            "total": values["total"],
            "percentage": (values["total"] / grand_total * 100) if grand_total > 0 else 0.0,
            "count": values["count"],
        }
        for category, values in grouped.items()
    ]
    return sorted(data, key=lambda item: item["total"], reverse=True)


def dashboard_summary(
    incomes: list,
    expenses: list,
    savings: list,
    month: str,
    currency: str,
    rate: float = 1.0,
) -> dict:
    """Headline figures for a month; money values are multiplied by ``rate``."""
    monthly_incomes = for_month(incomes, month)
    monthly_expenses = for_month(expenses, month)
    total_income = total(monthly_incomes)
    total_expense = total(monthly_expenses)

    by_kind = defaultdict(float)
    for saving in savings:
        by_kind[saving.kind] += (saving.deposit or 0) - (saving.withdrawal or 0)

    categories = category_breakdown(monthly_expenses)
    for item in categories:
        item["total"] *= rate

    return {
        "month": month,
        "currency": currency,
        "total_income": total_income * rate,
        "total_expense": total_expense * rate,
        "net": (total_income - total_expense) * rate,
        "running_balance": running_balance(incomes, expenses, month) * rate,
        "total_savings": net_savings(savings) * rate,
        "savings_by_kind": {kind: value * rate for kind, value in by_kind.items()},
        "monthly_trend": [
            {"month": m["month"], "income": m["income"] * rate, "expense": m["expense"] * rate}
            for m in monthly_trend(incomes, expenses)
        ],
        "expense_categories": categories,
    }


def expense_insights(expenses: list, month: str) -> dict:
    monthly_expenses = for_month(expenses, month)
    categories = category_breakdown(monthly_expenses)
    top = categories[0] if categories else None
    top_three = categories[:3]

    insights = []
    if top:
        insights.append(
            {
                "code": "largest_category",
                "category": top["category"],
                "percent": _round_half_up(top["percentage"]),
            }
        )
        if top["percentage"] >= 30:
            insights.append({"code": "highest_spending", "category": top["category"]})
    if len(top_three) >= 3:
        insights.append(
            {"code": "top_three", "categories": [c["category"] for c in top_three]}
        )
    if categories:
        insights.append({"code": "category_count", "count": len(categories)})

    return {
        "month": month,
        "total_expense": total(monthly_expenses),
        "categories": categories,
        "top_category": top,
        "top_three": top_three,
        "insights": insights,
    }


def _quartiles(values: List[float]) -> Dict[str, float]:
    ordered = sorted(v for v in values if v > 0)
    if not ordered:
        return {"q1": 0.0, "q2": 0.0, "q3": 0.0}
    n = len(ordered)
    return {
        "q1": ordered[int(n * 0.25)],
        "q2": ordered[int(n * 0.5)],
        "q3": ordered[int(n * 0.75)],
    }


def _intensity(day_total: float, quartiles: Dict[str, float]) -> str:
    if day_total <= 0:
        return "none"
    if day_total <= quartiles["q1"]:
        return "low"
    if day_total <= quartiles["q2"]:
        return "medium"
    if day_total <= quartiles["q3"]:
        return "high"
    return "very-high"


def expense_heatmap(expenses: list, month: str, today: Optional[date] = None) -> dict:
    """Per-day expense totals for a calendar grid."""
    month = valid_month(month, today)
    start = first_day(month)
    days_in_month = calendar.monthrange(start.year, start.month)[1]

    by_date = defaultdict(lambda: {"total": 0.0, "transactions": []})
    for expense in for_month(expenses, month):
        cell = by_date[expense.date]
        cell["total"] += expense.amount
        cell["transactions"].append(
            {
                "id": expense.id,
                "name": expense.name,
                "category": expense.category,
                "amount": expense.amount,
            }
        )

    quartiles = _quartiles([cell["total"] for cell in by_date.values()])
    days = []
    for day in range(1, days_in_month + 1):
        current = start.replace(day=day)
        cell = by_date.get(current, {"total": 0.0, "transactions": []})
        days.append(
            {
                "date": current,
                "day": day,
                "total": cell["total"],
                "transactions": cell["transactions"],
                "intensity": _intensity(cell["total"], quartiles),
            }
        )

    active = [d for d in days if d["total"] > 0]
    total_expense = sum(d["total"] for d in active)
    most_expensive = None
    for d in active:
        if most_expensive is None or d["total"] > most_expensive["total"]:
            most_expensive = d

    return {
        "month": month,
        "month_name": start.strftime("%B %Y"),
        "days_in_month": days_in_month,
        # Sunday-first calendar grid.
        "first_day_offset": (start.weekday() + 1) % 7,
        "days": days,
        "insights": {
            "most_expensive_day": (
                {"date": most_expensive["date"], "total": most_expensive["total"]}
                if most_expensive
                else None
            ),
            "zero_expense_days": len(days) - len(active),
            "average_daily": total_expense / days_in_month if days_in_month else 0.0,
            "total_expense": total_expense,
            "active_days": len(active),
        },
    }


def budget_usage(budgets: list, expenses: list, month: str) -> List[dict]:
    usage = []
    for budget in for_month(budgets, month):
        spent = total(
            e for e in expenses if e.month == budget.month and e.category == budget.category
        )
        usage.append(
            {
                "id": budget.id,
                "category": budget.category,
                "budget": budget.amount,
                "spent": spent,
                "remaining": budget.amount - spent,
                "percentage": (spent / budget.amount * 100) if budget.amount else 0.0,
                "over_budget": spent > budget.amount,
            }
        )
    return usage


def _spending_stability(change_percent: float) -> int:
    if change_percent <= 0:
        return 20
    if change_percent <= 10:
        return 18
    if change_percent <= 25:
        return 12
    if change_percent <= 50:
        return 6
    return 2


def health_score(
    incomes: list,
    expenses: list,
    savings: list,
    budgets: list,
    month: str,
    today: Optional[date] = None,
) -> dict:
    """Weighted 0-100 score for one month.

    Saving ratio is worth 40 points (20% of income saved earns all of them),
    budget discipline 30, spending stability against the previous month 20
    and recording consistency 10 (ten distinct days with transactions).
    """
    if month == ALL_MONTHS:
        month = current_month(today)
    month = valid_month(month, today)

    monthly_incomes = for_month(incomes, month)
    monthly_expenses = for_month(expenses, month)
    monthly_savings = [s for s in savings if month_of(s.date) == month]

    total_income = total(monthly_incomes)
    if total_income == 0:
        saving_ratio_percent = 0.0
        saving_ratio_score = 0.0
    else:
        saving_ratio_percent = net_savings(monthly_savings) / total_income * 100
        saving_ratio_score = max(
            0.0,
            min(
                float(SAVING_RATIO_POINTS),
                saving_ratio_percent / TARGET_SAVING_RATIO * SAVING_RATIO_POINTS,
            ),
        )

    usage = budget_usage(budgets, expenses, month)
    over_budget = [item["category"] for item in usage if item["over_budget"]]
    if not usage:
        budget_score = BUDGET_DISCIPLINE_POINTS / 2
    else:
        budget_score = (len(usage) - len(over_budget)) / len(usage) * BUDGET_DISCIPLINE_POINTS

    current_spending = total(monthly_expenses)
    previous_spending = total(for_month(expenses, previous_month(month)))
    if previous_spending == 0:
        spending_change = 0.0
        stability_score = SPENDING_STABILITY_POINTS / 2
    else:
        spending_change = (current_spending - previous_spending) / previous_spending * 100
        stability_score = _spending_stability(spending_change)

    start = first_day(month)
    days_in_month = calendar.monthrange(start.year, start.month)[1]
    active_days = len({row.date for row in monthly_incomes + monthly_expenses})
    consistency_score = min(
        float(CONSISTENCY_POINTS), active_days / TARGET_ACTIVE_DAYS * CONSISTENCY_POINTS
    )

    total_score = _round_half_up(
        saving_ratio_score + budget_score + stability_score + consistency_score
    )
    if total_score >= 80:
        status = "healthy"
    elif total_score >= 60:
        status = "moderate"
    else:
        status = "needs_attention"

    recommendations = []
    if saving_ratio_percent < 10:
        recommendations.append("increase_savings")
    if over_budget:
        recommendations.append("over_budget")
    if spending_change > 25:
        recommendations.append("reduce_spending")
    if consistency_score < 5:
        recommendations.append("track_regularly")
    if total_score >= 80 and not recommendations:
        recommendations.append("good_job")

    return {
        "month": month,
        "total_score": total_score,
        "status": status,
        "breakdown": {
            "saving_ratio": _round_half_up(saving_ratio_score),
            "budget_discipline": _round_half_up(budget_score),
            "spending_stability": _round_half_up(stability_score),
            "consistency": _round_half_up(consistency_score),
        },
        "recommendations": recommendations,
        "saving_ratio_percent": saving_ratio_percent,
        "over_budget_categories": over_budget,
        "spending_change": spending_change,
        "active_days_percent": active_days / days_in_month * 100,
    }


def account_balances(savings: list, kind: Optional[str] = None) -> List[dict]:
    accounts = {}
    for saving in savings:
        if kind and saving.kind != kind:
            continue
        key = (saving.kind, saving.account_name)
        account = accounts.setdefault(
            key,
            {
                "account_name": saving.account_name,
                "kind": saving.kind,
                "deposit": 0.0,
                "withdrawal": 0.0,
                "balance": 0.0,
            },
        )
        account["deposit"] += saving.deposit or 0
        account["withdrawal"] += saving.withdrawal or 0
        account["balance"] += (saving.deposit or 0) - (saving.withdrawal or 0)
    return list(accounts.values())


def bill_statuses(bills: list, payments: list, month: str, today: Optional[date] = None) -> dict:
    """Which bills fall due in ``month`` and whether they are paid."""
    today = today or date.today()
    this_month = month_of(today)

    statuses = []
    for bill in bills:
        # Switched-off bills stop falling due; past months keep their history.
        if month < bill.start_month or (not bill.is_active and month >= this_month):
            continue
        if bill.end_month != "ongoing" and month > bill.end_month:
            continue
        payment = next(
            (p for p in payments if p.bill_id == bill.id and p.month == month), None
        )
        is_paid = payment is not None
        is_overdue = not is_paid and (
            (month == this_month and today.day > bill.due_day) or month < this_month
        )
        statuses.append(
            {
                "id": bill.id,
                "name": bill.name,
                "category": bill.category,
                "amount": bill.amount,
                "due_day": bill.due_day,
                "is_paid": is_paid,
                "is_overdue": is_overdue,
                "payment": (
                    {
                        "id": payment.id,
                        "month": payment.month,
                        "paid_at": payment.paid_at,
                        "amount_paid": payment.amount_paid,
                    }
                    if payment
                    else None
                ),
            }
        )

    statuses.sort(key=lambda s: (s["is_paid"], s["due_day"]))
    paid = [s for s in statuses if s["is_paid"]]
    return {
        "month": month,
        "bills": statuses,
        "stats": {
            "total": len(statuses),
            "paid": len(paid),
            "unpaid": len(statuses) - len(paid),
            "overdue": len([s for s in statuses if s["is_overdue"]]),
            "total_amount": sum(s["amount"] for s in statuses),
            "paid_amount": sum(
                s["payment"]["amount_paid"] or s["amount"] for s in paid
            ),
        },
    }


def target_progress(target, balances: Dict[str, float], today: Optional[date] = None) -> dict:
    today = today or date.today()
    current_amount = balances.get(target.linked_account, 0.0)
    if target.target_amount > 0:
        progress = min(current_amount / target.target_amount * 100, 100.0)
    else:
        progress = 0.0
    remaining = max(target.target_amount - current_amount, 0.0)

    delta = relativedelta(target.target_date, today)
    months_remaining = max(delta.years * 12 + delta.months, 0)
    monthly_required = remaining / months_remaining if months_remaining > 0 else remaining

    return {
        "id": target.id,
        "user_id": target.user_id,
        "name": target.name,
        "target_amount": target.target_amount,
        "start_date": target.start_date,
        "target_date": target.target_date,
        "linked_account": target.linked_account,
        "current_amount": current_amount,
        "progress": progress,
        "remaining": remaining,
        "milestones": [{"percentage": p, "reached": progress >= p} for p in MILESTONES],
        "months_remaining": months_remaining,
        "monthly_required": monthly_required,
        "is_on_track": months_remaining > 0 or progress >= 100,
        "status": "achieved" if progress >= 100 else "active",
    }


def target_insights(progress_list: List[dict]) -> List[dict]:
    insights = []
    for target in progress_list:
        base = {"target_id": target["id"], "target_name": target["name"]}
        if target["progress"] >= 100:
            insights.append({**base, "type": "success", "code": "achieved"})
        elif target["progress"] >= 75:
            insights.append(
                {**base, "type": "success", "code": "almost_there", "value": target["progress"]}
            )
        elif not target["is_on_track"]:
            insights.append({**base, "type": "warning", "code": "past_deadline"})
        elif target["monthly_required"] > 0:
            insights.append(
                {
                    **base,
                    "type": "info",
                    "code": "monthly_required",
                    "value": target["monthly_required"],
                }
            )
    return insights


def month_options(dates: Iterable[date], today: Optional[date] = None) -> List[str]:
    """Months that have data, plus the current one, newest first."""
    months = {current_month(today)}
    months.update(month_of(d) for d in dates if d)
    return sorted(months, reverse=True)
