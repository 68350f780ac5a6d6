from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from analytics import (
    BudgetRecord,
    TransactionRecord,
    account_breakdown,
    budget_utilization,
    category_breakdown,
    necessity_split,
    percent_change,
    type_totals,
)
from models import Account, AccountType
from periods import Period

RECENT_TRANSACTIONS_LIMIT = 5


@dataclass(frozen=True)
class NoData:
    """Returned instead of a summary when nobody is signed in."""

    reason: str = "authentication_required"

    def __bool__(self) -> bool:
        return False


NO_DATA = NoData()


@dataclass(frozen=True)
class AccountRecord:
    id: int
    name: str
    type: AccountType
    balance_cents: int

    @classmethod
    def from_model(cls, account: Account) -> AccountRecord:
        return cls(
            id=account.id,
            name=account.name,
            type=AccountType(account.type),
            balance_cents=int(account.balance_cents),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "balance_cents": self.balance_cents,
        }


@dataclass(frozen=True)
class PeriodTotals:
    income: int
    expenses: int
    net: int

    @classmethod
    def of(cls, transactions: Sequence[TransactionRecord]) -> PeriodTotals:
        totals = type_totals(transactions)
        return cls(
            income=totals["income"], expenses=totals["expenses"], net=totals["net"]
        )

    def to_dict(self) -> dict[str, int]:
        return {"income": self.income, "expenses": self.expenses, "net": self.net}


@dataclass(frozen=True)
class DashboardSnapshot:
    month: Period
    current_month: Sequence[TransactionRecord]
    last_month: Sequence[TransactionRecord]
    accounts: Sequence[AccountRecord] = ()
    budgets: Sequence[BudgetRecord] = ()


@dataclass(frozen=True)
class DashboardSummary:
    month: Period
    current_month: PeriodTotals
    last_month: PeriodTotals
    income_change: float
    expense_change: float
    total_balance: int
    accounts: list[AccountRecord] = field(default_factory=list)
    spending_by_category: list[dict[str, object]] = field(default_factory=list)
    spending_by_account: list[dict[str, object]] = field(default_factory=list)
    necessary_expenses: int = 0
    unnecessary_expenses: int = 0
    recent_transactions: list[TransactionRecord] = field(default_factory=list)
    budgets: list[dict[str, object]] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "month": {
                "start": self.month.start.isoformat(),
                "end": self.month.end.isoformat(),
            },
            "current_month": self.current_month.to_dict(),
            "last_month": self.last_month.to_dict(),
            "income_change": self.income_change,
            "expense_change": self.expense_change,
            "total_balance": self.total_balance,
            "account_count": len(self.accounts),
            "accounts": [a.to_dict() for a in self.accounts],
            "spending_by_category": self.spending_by_category,
            "spending_by_account": self.spending_by_account,
            "necessary_expenses": self.necessary_expenses,
            "unnecessary_expenses": self.unnecessary_expenses,
            "recent_transactions": [t.to_dict() for t in self.recent_transactions],
            "budgets": self.budgets,
        }


def summarize(
    snapshot: DashboardSnapshot,
    *,
    recent_limit: int = RECENT_TRANSACTIONS_LIMIT,
) -> DashboardSummary:
    """Compare the current calendar month against the one before it.

    ``snapshot.current_month`` is expected newest first; the recent slice
    keeps that order as supplied.
    """
    current = PeriodTotals.of(snapshot.current_month)
    previous = PeriodTotals.of(snapshot.last_month)
    split = necessity_split(snapshot.current_month)
    return DashboardSummary(
        month=snapshot.month,
        current_month=current,
        last_month=previous,
        income_change=percent_change(current.income, previous.income),
        expense_change=percent_change(current.expenses, previous.expenses),
        # Stored account balances are authoritative; transactions are not summed.
        total_balance=sum(a.balance_cents for a in snapshot.accounts),
        accounts=list(snapshot.accounts),
        spending_by_category=category_breakdown(snapshot.current_month),
        spending_by_account=account_breakdown(snapshot.current_month),
        necessary_expenses=split["necessary"],
        unnecessary_expenses=split["unnecessary"],
        recent_transactions=list(snapshot.current_month[:recent_limit]),
        budgets=budget_utilization(
            snapshot.budgets, snapshot.current_month, snapshot.month
        ),
    )
