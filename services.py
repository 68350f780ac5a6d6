from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

import analytics
from analytics import BudgetRecord, TransactionRecord
from auth import hash_password, verify_password
from dashboard import (
    NO_DATA,
    AccountRecord,
    DashboardSnapshot,
    DashboardSummary,
    NoData,
    summarize,
)
from models import Account, Budget, Category, Transaction, TransactionType, User
from periods import Period, current_month, previous_month
from schemas import AccountIn, BudgetIn, CategoryIn, LoginIn, SignupIn, TransactionIn

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Food & Dining", "#ef4444"),
    ("Transportation", "#f97316"),
    ("Shopping", "#eab308"),
    ("Entertainment", "#22c55e"),
    ("Bills & Utilities", "#3b82f6"),
    ("Healthcare", "#8b5cf6"),
    ("Education", "#ec4899"),
    ("Travel", "#06b6d4"),
    ("Income", "#10b981"),
    ("Other", "#6b7280"),
]


def seed_default_categories(session: Session) -> int:
    existing = {
        name.lower()
        for name in session.scalars(
            select(Category.name).where(Category.is_default.is_(True))
        )
    }
    created = 0
    for name, color in DEFAULT_CATEGORIES:
        if name.lower() in existing:
            continue
        session.add(Category(user_id=None, name=name, color=color, is_default=True))
        created += 1
    if created:
        session.commit()
        logger.info(f"seed_default_categories: created={created}")
    return created


def provision_default_categories(session: Session, user_id: int) -> int:
    """Give a new user their own editable copy of the default categories.

    Safe to call more than once: a user who already owns any category is
    left untouched.
    """
    owned = session.execute(
        select(func.count(Category.id)).where(Category.user_id == user_id)
    ).scalar_one()
    if owned:
        return 0

    shared = session.scalars(
        select(Category).where(Category.is_default.is_(True)).order_by(Category.id)
    ).all()
    sources = [(c.name, c.color) for c in shared] or DEFAULT_CATEGORIES
    for name, color in sources:
        session.add(Category(user_id=user_id, name=name, color=color, is_default=False))
    session.flush()
    logger.info(
        f"provision_default_categories: user_id={user_id} created={len(sources)}"
    )
    return len(sources)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def signup(self, data: SignupIn) -> User:
        existing = self.session.scalar(
            select(User).where(func.lower(User.email) == data.email.lower())
        )
        if existing:
            raise ValueError("An account with this email already exists")
        user = User(email=data.email, password_hash=hash_password(data.password))
        self.session.add(user)
        self.session.flush()
        provision_default_categories(self.session, user.id)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"signup: user_id={user.id}")
        return user

    def authenticate(self, data: LoginIn) -> User:
        user = self.session.scalar(
            select(User).where(func.lower(User.email) == data.email.lower())
        )
        if not user or not verify_password(data.password, user.password_hash):
            logger.info("login_failed")
            raise ValueError("Invalid email or password")
        return user


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def records(self) -> list[AccountRecord]:
        return [AccountRecord.from_model(a) for a in self.list_all()]

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            balance_cents=data.balance_cents,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        account.name = data.name.strip()
        account.type = data.type
        account.balance_cents = data.balance_cents
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        in_use = self.session.scalar(
            select(Transaction.id).where(Transaction.account_id == account.id).limit(1)
        )
        if in_use:
            raise ValueError(
                "Cannot delete account with existing transactions. "
                "Please delete or move transactions first."
            )
        self.session.delete(account)
        self.session.commit()


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(Category.user_id == self.user_id, Category.is_default.is_(True))

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(self._visible())
            .order_by(Category.is_default.desc(), Category.name, Category.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, self._visible())
        )
        if not category:
            raise ValueError("Category not found")
        return category

    def _owned(self, category_id: int) -> Category:
        category = self.get(category_id)
        if category.is_default or category.user_id != self.user_id:
            raise ValueError("Default categories cannot be changed")
        return category

    def create(self, data: CategoryIn) -> Category:
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                func.lower(Category.name) == data.name.strip().lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            color=data.color,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self._owned(category_id)
        clash = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.id != category.id,
                func.lower(Category.name) == data.name.strip().lower(),
            )
        )
        if clash:
            raise ValueError("Category with this name already exists")
        category.name = data.name.strip()
        category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self._owned(category_id)
        in_use = self.session.scalar(
            select(Transaction.id)
            .where(Transaction.category_id == category.id)
            .limit(1)
        )
        if in_use:
            raise ValueError(
                "Cannot delete category with existing transactions. "
                "Please delete or recategorize transactions first."
            )
        for budget in self.session.scalars(
            select(Budget).where(
                Budget.user_id == self.user_id, Budget.category_id == category.id
            )
        ):
            self.session.delete(budget)
        self.session.delete(category)
        self.session.commit()


@dataclass
class TransactionFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    type: Optional[TransactionType] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None


def _balance_effect(txn_type: TransactionType, amount_cents: int) -> int:
    if txn_type == TransactionType.income:
        return amount_cents
    return -amount_cents


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _base_query(self):
        return (
            select(Transaction)
            .options(joinedload(Transaction.account), joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
        )

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            self._base_query().where(Transaction.id == transaction_id)
        )
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        account = AccountService(self.session, self.user_id).get(data.account_id)
        CategoryService(self.session, self.user_id).get(data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            account_id=account.id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            type=data.type,
            description=data.description.strip(),
            date=data.date,
            is_necessary=data.is_necessary,
            reason=(data.reason or "").strip() or None,
        )
        account.balance_cents += _balance_effect(data.type, data.amount_cents)
        self.session.add(txn)
        self.session.commit()
        return self.get(txn.id)

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        account = AccountService(self.session, self.user_id).get(data.account_id)
        CategoryService(self.session, self.user_id).get(data.category_id)

        if txn.account is not None:
            txn.account.balance_cents -= _balance_effect(txn.type, txn.amount_cents)
        account.balance_cents += _balance_effect(data.type, data.amount_cents)

        txn.account_id = account.id
        txn.category_id = data.category_id
        txn.amount_cents = data.amount_cents
        txn.type = data.type
        txn.description = data.description.strip()
        txn.date = data.date
        txn.is_necessary = data.is_necessary
        txn.reason = (data.reason or "").strip() or None
        self.session.commit()
        self.session.expire(txn)
        return self.get(txn.id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        if txn.account is not None:
            txn.account.balance_cents -= _balance_effect(txn.type, txn.amount_cents)
        self.session.delete(txn)
        self.session.commit()

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            self._base_query()
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        if filters.start:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.date <= filters.end)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return self.session.scalars(stmt).all()

    def records_for_period(
        self, period: Period, *, newest_first: bool = False
    ) -> list[TransactionRecord]:
        if newest_first:
            order = (Transaction.date.desc(), Transaction.id.desc())
        else:
            order = (Transaction.date.asc(), Transaction.id.asc())
        stmt = (
            self._base_query()
            .where(Transaction.date.between(period.start, period.end))
            .order_by(*order)
        )
        return [TransactionRecord.from_model(t) for t in self.session.scalars(stmt)]


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .outerjoin(Category, Category.id == Budget.category_id)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Category.name, Budget.id)
        )
        return self.session.scalars(stmt).all()

    def records(self) -> list[BudgetRecord]:
        return [BudgetRecord.from_model(b) for b in self.list_all()]

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def _ensure_unique(
        self, category_id: int, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Budget.id).where(
            Budget.user_id == self.user_id, Budget.category_id == category_id
        )
        if exclude_id is not None:
            stmt = stmt.where(Budget.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("A budget already exists for this category")

    def create(self, data: BudgetIn) -> Budget:
        CategoryService(self.session, self.user_id).get(data.category_id)
        self._ensure_unique(data.category_id)
        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            monthly_limit_cents=data.monthly_limit_cents,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetIn) -> Budget:
        budget = self.get(budget_id)
        CategoryService(self.session, self.user_id).get(data.category_id)
        self._ensure_unique(data.category_id, exclude_id=budget.id)
        budget.category_id = data.category_id
        budget.monthly_limit_cents = data.monthly_limit_cents
        self.session.commit()
        self.session.expire(budget)
        return self.get(budget.id)

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def progress_for_month(self, month: Period) -> list[dict[str, object]]:
        txn_service = TransactionService(self.session, self.user_id)
        transactions = txn_service.records_for_period(month)
        return analytics.budget_utilization(self.records(), transactions, month)


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def report(
        self, period: Period, *, today: Optional[date] = None
    ) -> dict[str, object]:
        today = today or date.today()
        txn_service = TransactionService(self.session, self.user_id)
        transactions = txn_service.records_for_period(period)

        month = current_month(today)
        if period.start <= month.start and period.end >= month.end:
            month_transactions = transactions
        else:
            month_transactions = txn_service.records_for_period(month)
        budgets = analytics.budget_utilization(
            BudgetService(self.session, self.user_id).records(),
            month_transactions,
            month,
        )
        logger.debug(
            f"analytics_report: user_id={self.user_id} range={period.slug} "
            f"transactions={len(transactions)}"
        )
        return {
            "range": {
                "slug": period.slug,
                "start": period.start.isoformat(),
                "end": period.end.isoformat(),
            },
            "overview": analytics.overview(transactions),
            "monthly_trend": analytics.monthly_trend(transactions),
            "category_breakdown": analytics.category_breakdown(transactions),
            "account_performance": analytics.account_performance(transactions),
            "daily_pattern": analytics.daily_pattern(transactions, today=today),
            "expense_heatmap": analytics.expense_heatmap(transactions, today=today),
            "savings_rate": analytics.savings_rate(transactions),
            "cash_flow": analytics.cash_flow(transactions),
            "necessity": analytics.necessity_split(transactions),
            "budgets": budgets,
            "budget_health": analytics.budget_health(budgets),
        }


class DashboardService:
    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = user_id

    def snapshot(self, today: Optional[date] = None) -> DashboardSnapshot:
        month = current_month(today)
        txn_service = TransactionService(self.session, self.user_id)
        return DashboardSnapshot(
            month=month,
            current_month=txn_service.records_for_period(month, newest_first=True),
            last_month=txn_service.records_for_period(previous_month(today)),
            accounts=AccountService(self.session, self.user_id).records(),
            budgets=BudgetService(self.session, self.user_id).records(),
        )

    def summary(self, today: Optional[date] = None) -> DashboardSummary | NoData:
        if self.user_id is None:
            return NO_DATA
        return summarize(self.snapshot(today))
