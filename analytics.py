from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Callable, Optional, Sequence

from models import Budget, Transaction, TransactionType
from periods import Period

UNCATEGORIZED = "Uncategorized"
UNKNOWN_ACCOUNT = "Unknown"
SAVINGS_TARGET_PERCENT = 20
DAILY_WINDOW_DAYS = 30
BUDGET_ATTENTION_THRESHOLD = 80


@dataclass(frozen=True)
class TransactionRecord:
    """A transaction joined with its account and category.

    Built once after the fetch; a missing relation falls back to the
    ``Uncategorized`` / ``Unknown`` labels instead of failing the batch.
    """

    id: int
    date: date
    type: TransactionType
    amount_cents: int
    description: str = ""
    is_necessary: bool = False
    reason: Optional[str] = None
    category_id: Optional[int] = None
    category_name: str = UNCATEGORIZED
    category_color: Optional[str] = None
    account_id: Optional[int] = None
    account_name: str = UNKNOWN_ACCOUNT

    @classmethod
    def from_model(cls, txn: Transaction) -> TransactionRecord:
        category = txn.category
        account = txn.account
        return cls(
            id=txn.id,
            date=txn.date,
            type=TransactionType(txn.type),
            amount_cents=int(txn.amount_cents),
            description=txn.description or "",
            is_necessary=bool(txn.is_necessary),
            reason=txn.reason,
            category_id=category.id if category else None,
            category_name=category.name if category else UNCATEGORIZED,
            category_color=category.color if category else None,
            account_id=account.id if account else None,
            account_name=account.name if account else UNKNOWN_ACCOUNT,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "type": self.type.value,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "is_necessary": self.is_necessary,
            "reason": self.reason,
            "category": {
                "id": self.category_id,
                "name": self.category_name,
                "color": self.category_color,
            },
            "account": {"id": self.account_id, "name": self.account_name},
        }


@dataclass(frozen=True)
class BudgetRecord:
    id: int
    category_id: Optional[int]
    monthly_limit_cents: int
    category_name: str = UNCATEGORIZED
    category_color: Optional[str] = None

    @classmethod
    def from_model(cls, budget: Budget) -> BudgetRecord:
        category = budget.category
        return cls(
            id=budget.id,
            category_id=category.id if category else None,
            monthly_limit_cents=int(budget.monthly_limit_cents),
            category_name=category.name if category else UNCATEGORIZED,
            category_color=category.color if category else None,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "monthly_limit_cents": self.monthly_limit_cents,
            "category": {
                "id": self.category_id,
                "name": self.category_name,
                "color": self.category_color,
            },
        }


def month_key(value: date) -> str:
    return value.strftime("%b %Y")


def percent_change(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 0.0


def _ratio_percent(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


def _round_half_up(value: Decimal) -> int:
    # Ties go toward +inf: 2.5 -> 3, -2.5 -> -2.
    return int((value + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def _is_income(txn: TransactionRecord) -> bool:
    return txn.type == TransactionType.income


def _is_expense(txn: TransactionRecord) -> bool:
    return txn.type == TransactionType.expense


def _monthly_totals(
    transactions: Sequence[TransactionRecord],
) -> dict[str, dict[str, int]]:
    totals: dict[str, dict[str, int]] = {}
    for txn in transactions:
        bucket = totals.setdefault(month_key(txn.date), {"income": 0, "expenses": 0})
        if _is_income(txn):
            bucket["income"] += txn.amount_cents
        elif _is_expense(txn):
            bucket["expenses"] += txn.amount_cents
    return totals


def _expense_totals_by(
    transactions: Sequence[TransactionRecord],
    key: Callable[[TransactionRecord], str],
) -> list[dict[str, object]]:
    totals: dict[str, int] = {}
    for txn in transactions:
        if not _is_expense(txn):
            continue
        name = key(txn)
        totals[name] = totals.get(name, 0) + txn.amount_cents
    rows = [{"name": name, "value": value} for name, value in totals.items()]
    # sorted() is stable with reverse=True, so ties keep first-seen order.
    return sorted(rows, key=lambda r: int(r["value"]), reverse=True)


def type_totals(transactions: Sequence[TransactionRecord]) -> dict[str, int]:
    income = sum(t.amount_cents for t in transactions if _is_income(t))
    expenses = sum(t.amount_cents for t in transactions if _is_expense(t))
    return {"income": income, "expenses": expenses, "net": income - expenses}


def necessity_split(transactions: Sequence[TransactionRecord]) -> dict[str, int]:
    necessary = 0
    unnecessary = 0
    for txn in transactions:
        if not _is_expense(txn):
            continue
        if txn.is_necessary:
            necessary += txn.amount_cents
        else:
            unnecessary += txn.amount_cents
    return {"necessary": necessary, "unnecessary": unnecessary}


def monthly_trend(transactions: Sequence[TransactionRecord]) -> list[dict[str, object]]:
    """Income and expenses per calendar month.

    Months appear in the order they are first met, so callers that want
    calendar order must pass transactions sorted by date ascending.
    """
    return [
        {"month": month, "income": data["income"], "expenses": data["expenses"]}
        for month, data in _monthly_totals(transactions).items()
    ]


def category_breakdown(
    transactions: Sequence[TransactionRecord],
) -> list[dict[str, object]]:
    return _expense_totals_by(transactions, lambda t: t.category_name)


def account_breakdown(
    transactions: Sequence[TransactionRecord],
) -> list[dict[str, object]]:
    return _expense_totals_by(transactions, lambda t: t.account_name)


def account_performance(
    transactions: Sequence[TransactionRecord],
) -> list[dict[str, object]]:
    totals: dict[str, dict[str, int]] = {}
    for txn in transactions:
        bucket = totals.setdefault(txn.account_name, {"income": 0, "expenses": 0})
        if _is_income(txn):
            bucket["income"] += txn.amount_cents
        elif _is_expense(txn):
            bucket["expenses"] += txn.amount_cents
    return [
        {
            "name": name,
            "income": data["income"],
            "expenses": data["expenses"],
            "net": data["income"] - data["expenses"],
        }
        for name, data in totals.items()
    ]


def daily_pattern(
    transactions: Sequence[TransactionRecord],
    *,
    window_days: int = DAILY_WINDOW_DAYS,
    today: Optional[date] = None,
) -> list[dict[str, object]]:
    today = today or date.today()
    cutoff = today - timedelta(days=window_days)
    daily: dict[date, int] = {}
    for txn in transactions:
        if not _is_expense(txn) or not (cutoff <= txn.date <= today):
            continue
        daily[txn.date] = daily.get(txn.date, 0) + txn.amount_cents
    return [
        {"date": day.isoformat(), "label": day.strftime("%m/%d"), "amount": amount}
        for day, amount in sorted(daily.items())
    ]


def expense_heatmap(
    transactions: Sequence[TransactionRecord],
    *,
    window_days: int = DAILY_WINDOW_DAYS,
    today: Optional[date] = None,
) -> list[dict[str, object]]:
    if not transactions:
        return []
    today = today or date.today()
    pattern = daily_pattern(transactions, window_days=window_days, today=today)
    spent = {row["date"]: row["amount"] for row in pattern}
    days = []
    current = today - timedelta(days=window_days)
    while current <= today:
        iso = current.isoformat()
        days.append(
            {
                "date": iso,
                "label": current.strftime("%m/%d"),
                "day": current.strftime("%a"),
                "amount": spent.get(iso, 0),
            }
        )
        current += timedelta(days=1)
    return days


def savings_rate(
    transactions: Sequence[TransactionRecord],
    *,
    target: int = SAVINGS_TARGET_PERCENT,
) -> list[dict[str, object]]:
    rows = []
    for month, data in _monthly_totals(transactions).items():
        income = data["income"]
        rate = 0
        if income > 0:
            rate = _round_half_up(
                Decimal(income - data["expenses"]) * 100 / Decimal(income)
            )
        rows.append({"month": month, "rate": rate, "target": target})
    return rows


def cash_flow(transactions: Sequence[TransactionRecord]) -> list[dict[str, object]]:
    """Per-month flows with a running balance that starts from zero.

    The balance is cumulative net of the periods seen so far, not the
    balance of any account.
    """
    running = 0
    rows = []
    for month, data in _monthly_totals(transactions).items():
        running += data["income"] - data["expenses"]
        rows.append(
            {
                "date": month,
                "income": data["income"],
                "expenses": data["expenses"],
                "balance": running,
            }
        )
    return rows


def budget_utilization(
    budgets: Sequence[BudgetRecord],
    transactions: Sequence[TransactionRecord],
    month: Period,
) -> list[dict[str, object]]:
    spent_by_category: dict[int, int] = {}
    for txn in transactions:
        if not _is_expense(txn) or txn.category_id is None:
            continue
        if not month.contains(txn.date):
            continue
        spent_by_category[txn.category_id] = (
            spent_by_category.get(txn.category_id, 0) + txn.amount_cents
        )

    rows = []
    for budget in budgets:
        spent = 0
        if budget.category_id is not None:
            spent = spent_by_category.get(budget.category_id, 0)
        ratio = _ratio_percent(spent, budget.monthly_limit_cents)
        rows.append(
            {
                "budget": budget.to_dict(),
                "spent": spent,
                "percentage": min(ratio, 100.0),
                "ratio": ratio,
                "remaining": budget.monthly_limit_cents - spent,
                "over_budget": spent > budget.monthly_limit_cents,
            }
        )
    return rows


def budget_health(
    utilization: Sequence[dict[str, object]],
    *,
    threshold: int = BUDGET_ATTENTION_THRESHOLD,
) -> dict[str, int]:
    """Bucket budgets by clamped percentage: below ``threshold`` is on track,
    anything at or above it (80% included) needs attention.
    """
    on_track = sum(1 for row in utilization if float(row["percentage"]) < threshold)
    return {
        "total": len(utilization),
        "on_track": on_track,
        "needs_attention": len(utilization) - on_track,
    }


def overview(transactions: Sequence[TransactionRecord]) -> dict[str, object]:
    totals = type_totals(transactions)
    trend = monthly_trend(transactions)
    months = len(trend) or 1
    empty = {"income": 0, "expenses": 0}
    latest = trend[-1] if trend else empty
    prior = trend[-2] if len(trend) > 1 else empty
    return {
        "total_income": totals["income"],
        "total_expenses": totals["expenses"],
        "net_savings": totals["net"],
        "savings_percent": _ratio_percent(totals["net"], totals["income"]),
        "avg_monthly_income": totals["income"] / months,
        "avg_monthly_expenses": totals["expenses"] / months,
        "income_change": percent_change(int(latest["income"]), int(prior["income"])),
        "expense_change": percent_change(
            int(latest["expenses"]), int(prior["expenses"])
        ),
    }
