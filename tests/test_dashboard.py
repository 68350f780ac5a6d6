from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from analytics import BudgetRecord, TransactionRecord
from dashboard import (
    NO_DATA,
    AccountRecord,
    DashboardSnapshot,
    DashboardSummary,
    NoData,
    summarize,
)
from database import Base
from models import (
    Account,
    AccountType,
    Budget,
    Category,
    Transaction,
    TransactionType,
    User,
)
from periods import current_month
from services import DashboardService

MARCH = current_month(date(2024, 3, 20))


def _record(txn_id, txn_type, amount_cents, on, **kwargs) -> TransactionRecord:
    return TransactionRecord(
        id=txn_id, date=on, type=txn_type, amount_cents=amount_cents, **kwargs
    )


def test_total_balance_sums_signed_account_balances() -> None:
    accounts = [
        AccountRecord(1, "Checking", AccountType.checking, 100_000),
        AccountRecord(2, "Visa", AccountType.credit_card, -20_000),
        AccountRecord(3, "Savings", AccountType.savings, 5_000),
    ]

    summary = summarize(DashboardSnapshot(MARCH, [], [], accounts=accounts))

    assert summary.total_balance == 85_000
    assert summary.to_dict()["account_count"] == 3


def test_change_against_empty_previous_month_is_zero() -> None:
    current = [_record(1, TransactionType.income, 50_000, date(2024, 3, 1))]

    summary = summarize(DashboardSnapshot(MARCH, current, []))

    assert summary.current_month.income == 50_000
    assert summary.last_month.income == 0
    assert summary.income_change == 0
    assert summary.expense_change == 0


def test_summary_compares_months_and_splits_necessity() -> None:
    current = [
        _record(
            4, TransactionType.expense, 3_000, date(2024, 3, 9), is_necessary=True
        ),
        _record(3, TransactionType.expense, 1_000, date(2024, 3, 5)),
        _record(2, TransactionType.income, 60_000, date(2024, 3, 1)),
    ]
    previous = [
        _record(1, TransactionType.income, 50_000, date(2024, 2, 1)),
        _record(0, TransactionType.expense, 8_000, date(2024, 2, 2)),
    ]

    summary = summarize(DashboardSnapshot(MARCH, current, previous))

    assert summary.income_change == 20.0
    assert summary.expense_change == -50.0
    assert summary.necessary_expenses == 3_000
    assert summary.unnecessary_expenses == 1_000
    assert summary.current_month.net == 56_000


def test_recent_transactions_keep_supplied_order_and_limit() -> None:
    current = [
        _record(i, TransactionType.expense, 100, date(2024, 3, 20 - i))
        for i in range(8)
    ]

    summary = summarize(DashboardSnapshot(MARCH, current, []))

    assert [t.id for t in summary.recent_transactions] == [0, 1, 2, 3, 4]
    short = summarize(DashboardSnapshot(MARCH, current, []), recent_limit=2)
    assert len(short.recent_transactions) == 2


def test_summary_reports_budget_progress_for_the_month() -> None:
    budgets = [BudgetRecord(id=1, category_id=7, monthly_limit_cents=10_000)]
    current = [
        _record(1, TransactionType.expense, 2_500, date(2024, 3, 3), category_id=7)
    ]

    summary = summarize(DashboardSnapshot(MARCH, current, [], budgets=budgets))

    assert summary.budgets[0]["spent"] == 2_500
    assert summary.budgets[0]["percentage"] == 25.0


def test_no_user_returns_no_data_sentinel() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        result = DashboardService(session, None).summary()

    assert result is NO_DATA
    assert isinstance(result, NoData)
    assert not result

    empty = summarize(DashboardSnapshot(MARCH, [], []))
    assert isinstance(empty, DashboardSummary)
    assert empty.total_balance == 0


def test_dashboard_service_reads_current_and_previous_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        user = User(email="ana@example.com", password_hash="x")
        session.add(user)
        session.flush()
        food = Category(user_id=user.id, name="Food", color="#ef4444")
        checking = Account(
            user_id=user.id,
            name="Checking",
            type=AccountType.checking,
            balance_cents=42_000,
        )
        session.add_all([food, checking])
        session.flush()
        session.add(
            Budget(user_id=user.id, category_id=food.id, monthly_limit_cents=4_000)
        )
        rows = [
            (date(2024, 2, 10), TransactionType.expense, 2_000, "Groceries"),
            (date(2024, 3, 2), TransactionType.expense, 1_000, "Lunch"),
            (date(2024, 3, 15), TransactionType.expense, 3_000, "Dinner"),
            (date(2024, 4, 1), TransactionType.expense, 9_999, "Next month"),
        ]
        for on, txn_type, amount, description in rows:
            session.add(
                Transaction(
                    user_id=user.id,
                    account_id=checking.id,
                    category_id=food.id,
                    amount_cents=amount,
                    type=txn_type,
                    description=description,
                    date=on,
                )
            )
        session.commit()

        summary = DashboardService(session, user.id).summary(today=date(2024, 3, 20))

    assert summary.current_month.expenses == 4_000
    assert summary.last_month.expenses == 2_000
    assert summary.expense_change == 100.0
    assert summary.total_balance == 42_000
    assert [t.description for t in summary.recent_transactions] == ["Dinner", "Lunch"]
    assert summary.spending_by_category == [{"name": "Food", "value": 4_000}]
    assert summary.spending_by_account == [{"name": "Checking", "value": 4_000}]
    assert summary.budgets[0]["percentage"] == 100.0
    assert summary.budgets[0]["over_budget"] is False
