from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from currency import format_currency
from errors import (
    AtomicOperationFailed,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)
from models import (
    Category,
    Profile,
    RecurringObligation,
    TimeGrain,
    Transaction,
    TransactionType,
)
from periods import (
    MONTH_ABBREVIATIONS,
    aggregate_by_grain,
    date_range_for_grain,
    local_now,
    local_today,
    previous_period_range,
    trend_percentage,
)
from recurrence import RecurringEngine, is_pending
from schemas import (
    CategoryIn,
    CategoryUpdate,
    ProfileUpdate,
    RecurringIn,
    RecurringUpdate,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

DEFAULT_EXPENSE_CATEGORIES = [
    ("Food", "#f97316", "Utensils"),
    ("Transport", "#3b82f6", "Car"),
    ("Utilities", "#eab308", "Zap"),
    ("Entertainment", "#a855f7", "Film"),
    ("Grocery", "#ec4899", "ShoppingBag"),
    ("Healthcare", "#ef4444", "Heart"),
    ("Education", "#06b6d4", "GraduationCap"),
    ("Rent", "#14b8a6", "Home"),
    ("Personal Care", "#f472b6", "Sparkles"),
    ("Other", "#6b7280", "MoreHorizontal"),
]
DEFAULT_INCOME_CATEGORIES = [
    ("Salary", "#10b981", "Briefcase"),
    ("Freelance", "#3b82f6", "Laptop"),
    ("Investments", "#8b5cf6", "TrendingUp"),
    ("Side Hustle", "#f59e0b", "Zap"),
    ("Rental Income", "#06b6d4", "Home"),
]

ADVICE_OVERSPENDING = (
    "Your expenses exceed your income. Consider reducing discretionary spending "
    "or increasing your income."
)
ADVICE_LOW_SAVINGS = (
    "Your savings rate is below the recommended 10%. Look for ways to reduce "
    "expenses or increase income."
)
ADVICE_EMERGENCY_FUND = (
    "Your current balance is less than one month of expenses. Build an "
    "emergency fund."
)
ADVICE_BUDGET = (
    "Create a monthly budget to track your income and expenses more closely."
)
ADVICE_ADVISOR = (
    "Consider working with a financial advisor to develop a debt repayment plan."
)


def require_owner(user_id: Optional[str]) -> str:
    if not user_id:
        raise Unauthenticated()
    return user_id


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def _category_dict(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "icon_name": category.icon_name,
        "is_default": category.is_default,
    }


def seed_default_categories(session: Session) -> int:
    """Insert missing global default categories. Returns how many were added."""
    existing = {
        (row.type, row.name)
        for row in session.execute(
            select(Category.type, Category.name).where(Category.user_id.is_(None))
        )
    }
    added = 0
    for kind, defaults in (
        (TransactionType.expense, DEFAULT_EXPENSE_CATEGORIES),
        (TransactionType.income, DEFAULT_INCOME_CATEGORIES),
    ):
        for name, color, icon in defaults:
            if (kind, name) in existing:
                continue
            session.add(
                Category(user_id=None, name=name, type=kind, color=color, icon_name=icon)
            )
            added += 1
    if added:
        session.commit()
    return added


def ledger_totals(
    session: Session,
    user_id: str,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
) -> tuple[int, int]:
    """(income, expenses) for an owner, optionally within inclusive dates."""
    stmt = select(
        func.coalesce(
            func.sum(
                case(
                    (
                        Transaction.type == TransactionType.income,
                        Transaction.amount_cents,
                    ),
                    else_=0,
                )
            ),
            0,
        ).label("income"),
        func.coalesce(
            func.sum(
                case(
                    (
                        Transaction.type == TransactionType.expense,
                        Transaction.amount_cents,
                    ),
                    else_=0,
                )
            ),
            0,
        ).label("expenses"),
    ).where(Transaction.user_id == user_id)
    if start is not None:
        stmt = stmt.where(Transaction.occurred_on >= _as_date(start))
    if end is not None:
        stmt = stmt.where(Transaction.occurred_on <= _as_date(end))
    row = session.execute(stmt).one()
    return int(row.income or 0), int(row.expenses or 0)


def refresh_all_cached_balances(session: Session) -> int:
    """Recompute every profile's cached balance. Returns how many changed."""
    profiles = session.scalars(select(Profile).order_by(Profile.id)).all()
    changed = 0
    for profile in profiles:
        income, expenses = ledger_totals(session, profile.id)
        balance = income - expenses
        if profile.current_balance_cents != balance:
            profile.current_balance_cents = balance
            changed += 1
    session.commit()
    return changed


@dataclass
class TransactionFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    category_id: Optional[int] = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class PaidResult:
    success: bool
    expense_id: Optional[int] = None


@dataclass(frozen=True)
class CashFlow:
    total_income: int
    total_expenses: int
    net_cash_flow: int
    cash_flow_percentage: float


@dataclass(frozen=True)
class FinancialHealth:
    score: int
    category: str
    recommendations: list[str] = field(default_factory=list)


def cash_flow_from_totals(income: int, expenses: int) -> CashFlow:
    net = income - expenses
    percentage = (net / income * 100) if income > 0 else 0.0
    return CashFlow(
        total_income=income,
        total_expenses=expenses,
        net_cash_flow=net,
        cash_flow_percentage=percentage,
    )


def health_band(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Poor"


def score_financial_health(balance: int, cash_flow: CashFlow) -> FinancialHealth:
    """Score the month's cash flow against the current balance.

    Starts at 50 and only adds points; the clamp keeps the result in [0, 100]
    should the weights change.
    """
    score = 50
    if balance > 0:
        score += 15
    if balance > cash_flow.total_income:
        score += 15
    if cash_flow.net_cash_flow > 0:
        score += 20
    if cash_flow.cash_flow_percentage > 20:
        score += 20

    savings_rate = (
        cash_flow.net_cash_flow / cash_flow.total_income * 100
        if cash_flow.total_income > 0
        else 0
    )
    if savings_rate > 10:
        score += 15
    if savings_rate > 20:
        score += 15
    score = max(0, min(100, score))

    recommendations = []
    if cash_flow.net_cash_flow <= 0:
        recommendations.append(ADVICE_OVERSPENDING)
    if cash_flow.cash_flow_percentage < 10:
        recommendations.append(ADVICE_LOW_SAVINGS)
    if balance < cash_flow.total_expenses:
        recommendations.append(ADVICE_EMERGENCY_FUND)
    if score < 60:
        recommendations.append(ADVICE_BUDGET)
    if score < 40:
        recommendations.append(ADVICE_ADVISOR)
    return FinancialHealth(
        score=score, category=health_band(score), recommendations=recommendations
    )


class ProfileService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = require_owner(user_id)

    def get_or_create(self, email: Optional[str] = None) -> Profile:
        profile = self.session.get(Profile, self.user_id)
        if profile:
            return profile
        profile = Profile(
            id=self.user_id,
            email=email,
            currency=get_settings().default_currency,
            current_balance_cents=0,
        )
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def update(self, data: ProfileUpdate) -> Profile:
        profile = self.get_or_create()
        changes = data.model_dump(exclude_unset=True)
        if changes.get("theme_preference") is not None:
            profile.theme_preference = changes["theme_preference"]
        if changes.get("dark_mode") is not None:
            profile.dark_mode = changes["dark_mode"]
        if changes.get("currency"):
            profile.currency = changes["currency"]
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def currency(self) -> str:
        return self.get_or_create().currency


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = require_owner(user_id)

    def _visible(self):
        return or_(Category.user_id.is_(None), Category.user_id == self.user_id)

    def list_all(self, kind: Optional[TransactionType] = None) -> list[Category]:
        stmt = select(Category).where(self._visible()).order_by(Category.name)
        if kind is not None:
            stmt = stmt.where(Category.type == kind)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id not in (None, self.user_id):
            raise NotFound("Category not found")
        return category

    def _owned(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name,
            type=data.type,
            color=data.color,
            icon_name=data.icon_name,
        )
        self.session.add(category)
        self._commit_unique()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self._owned(category_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            name = changes["name"].strip()
            if not name:
                raise ValidationFailed("Name is required", field="name")
            category.name = name
        if changes.get("color") is not None:
            category.color = changes["color"]
        if "icon_name" in changes:
            category.icon_name = changes["icon_name"]
        self._commit_unique()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self._owned(category_id)
        # references become uncategorized rather than blocking the delete
        self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category.id)
            .values(category_id=None)
        )
        self.session.execute(
            update(RecurringObligation)
            .where(RecurringObligation.category_id == category.id)
            .values(category_id=None)
        )
        self.session.delete(category)
        self.session.commit()

    def _commit_unique(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationFailed(
                "A category with this name already exists", field="name"
            ) from exc

    def stats_for_window(
        self, start: DateLike, end: DateLike
    ) -> list[dict[str, object]]:
        total_amount = func.sum(Transaction.amount_cents)
        stmt = (
            select(Category, total_amount.label("total"))
            .join(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.occurred_on.between(_as_date(start), _as_date(end)),
            )
            .group_by(Category.id)
            .order_by(total_amount.desc(), Category.name)
        )
        rows = self.session.execute(stmt).all()
        total = sum(int(row.total or 0) for row in rows)
        if total == 0:
            return []
        return [
            {
                "category": _category_dict(row.Category),
                "amount_cents": int(row.total),
                "percentage": int(row.total) / total * 100,
            }
            for row in rows
            if row.total
        ]


class LedgerService:
    """Owner-scoped operations over one kind of ledger entry."""

    kind: TransactionType = TransactionType.expense
    label = "Transaction"

    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = require_owner(user_id)

    def _base(self):
        return (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id, Transaction.type == self.kind)
        )

    def _apply_filters(self, stmt, filters: TransactionFilters):
        if filters.start:
            stmt = stmt.where(Transaction.occurred_on >= _as_date(filters.start))
        if filters.end:
            stmt = stmt.where(Transaction.occurred_on <= _as_date(filters.end))
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return stmt

    def list(
        self, filters: Optional[TransactionFilters] = None
    ) -> tuple[list[Transaction], int]:
        filters = filters or TransactionFilters()
        stmt = (
            self._apply_filters(self._base(), filters)
            .order_by(Transaction.occurred_on.desc(), Transaction.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        items = list(self.session.scalars(stmt).all())

        count_stmt = self._apply_filters(
            select(func.count(Transaction.id)).where(
                Transaction.user_id == self.user_id, Transaction.type == self.kind
            ),
            filters,
        )
        total_count = int(self.session.execute(count_stmt).scalar_one() or 0)
        return items, total_count

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(self._base().where(Transaction.id == transaction_id))
        if not txn:
            raise NotFound(f"{self.label} not found")
        return txn

    def recent(self, limit: int = 10) -> list[Transaction]:
        stmt = (
            self._base()
            .order_by(Transaction.occurred_on.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def all_in_window(self, start: DateLike, end: DateLike) -> list[Transaction]:
        stmt = (
            self._base()
            .where(Transaction.occurred_on.between(_as_date(start), _as_date(end)))
            .order_by(Transaction.occurred_on.asc(), Transaction.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def total_for_window(self, start: DateLike, end: DateLike) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == self.kind,
            Transaction.occurred_on.between(_as_date(start), _as_date(end)),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def period_stats(
        self, grain: TimeGrain, today: Optional[date] = None
    ) -> dict[str, object]:
        today = today or local_today()
        current = date_range_for_grain(grain, today)
        previous = previous_period_range(grain, today)
        current_total = self.total_for_window(current.start, current.end)
        previous_total = self.total_for_window(previous.start, previous.end)
        return {
            "current_total": current_total,
            "previous_total": previous_total,
            "trend": trend_percentage(current_total, previous_total),
        }

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if (
            not category
            or category.user_id not in (None, self.user_id)
            or category.type != self.kind
        ):
            raise ValidationFailed("Invalid category", field="category_id")

    def create(self, data: TransactionIn) -> Transaction:
        self._check_category(data.category_id)
        currency = data.currency or ProfileService(
            self.session, self.user_id
        ).currency()
        txn = Transaction(
            user_id=self.user_id,
            type=self.kind,
            amount_cents=data.amount_cents,
            currency_code=currency,
            description=data.description,
            category_id=data.category_id,
            occurred_on=data.occurred_on,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        BalanceService(self.session, self.user_id).refresh_cache_best_effort()
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        if "category_id" in changes:
            self._check_category(changes["category_id"])
            txn.category_id = changes["category_id"]
        if changes.get("amount_cents") is not None:
            txn.amount_cents = changes["amount_cents"]
        if changes.get("occurred_on") is not None:
            txn.occurred_on = changes["occurred_on"]
        if "description" in changes:
            txn.description = changes["description"]
        if changes.get("currency"):
            txn.currency_code = changes["currency"]
        self.session.commit()
        self.session.refresh(txn)
        BalanceService(self.session, self.user_id).refresh_cache_best_effort()
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        BalanceService(self.session, self.user_id).refresh_cache_best_effort()


class ExpenseService(LedgerService):
    kind = TransactionType.expense
    label = "Expense"


class IncomeService(LedgerService):
    kind = TransactionType.income
    label = "Income"


class RecurringService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = require_owner(user_id)

    def _base(self):
        return (
            select(RecurringObligation)
            .options(joinedload(RecurringObligation.category))
            .where(RecurringObligation.user_id == self.user_id)
        )

    def get(self, item_id: int) -> RecurringObligation:
        item = self.session.scalar(self._base().where(RecurringObligation.id == item_id))
        if not item:
            raise NotFound("Recurring item not found")
        return item

    def list(self) -> list[RecurringObligation]:
        stmt = self._base().order_by(
            RecurringObligation.next_due_at.asc(), RecurringObligation.id.asc()
        )
        return list(self.session.scalars(stmt).all())

    def list_pending(self, now: Optional[datetime] = None) -> list[RecurringObligation]:
        now = now or local_now()
        return [item for item in self.list() if is_pending(item, now)]

    def pending_total(self, now: Optional[datetime] = None) -> int:
        return sum(item.amount_cents for item in self.list_pending(now))

    def upcoming(
        self, days: int = 7, now: Optional[datetime] = None
    ) -> list[RecurringObligation]:
        now = now or local_now()
        horizon = now + timedelta(days=days)
        return [item for item in self.list() if now <= item.next_due_at <= horizon]

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if (
            not category
            or category.user_id not in (None, self.user_id)
            or category.type != TransactionType.expense
        ):
            raise ValidationFailed("Invalid category", field="category_id")

    def create(self, data: RecurringIn) -> RecurringObligation:
        self._check_category(data.category_id)
        item = RecurringObligation(
            user_id=self.user_id,
            name=data.name,
            amount_cents=data.amount_cents,
            currency_code=data.currency,
            category_id=data.category_id,
            frequency=data.frequency,
            next_due_at=data.next_due_at,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def update(self, item_id: int, data: RecurringUpdate) -> RecurringObligation:
        item = self.get(item_id)
        changes = data.model_dump(exclude_unset=True)
        # a rejected update must leave nothing dirty on the session
        if "category_id" in changes:
            self._check_category(changes["category_id"])
        name = changes.get("name")
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed("Name is required", field="name")

        if "category_id" in changes:
            item.category_id = changes["category_id"]
        if name is not None:
            item.name = name
        if changes.get("amount_cents") is not None:
            item.amount_cents = changes["amount_cents"]
        if changes.get("frequency") is not None:
            item.frequency = changes["frequency"]
        if changes.get("next_due_at") is not None:
            item.next_due_at = changes["next_due_at"]
        if changes.get("currency"):
            item.currency_code = changes["currency"]
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        self.session.delete(item)
        self.session.commit()

    def mark_as_paid(self, item_id: int, now: Optional[datetime] = None) -> PaidResult:
        """Post this period's expense and roll the schedule forward, all or nothing."""
        now = now or local_now()
        item = self.get(item_id)
        currency = ProfileService(self.session, self.user_id).currency()

        try:
            result = RecurringEngine(self.session).settle(item, now, currency)
            if result.success:
                self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.exception(
                f"mark_as_paid_rolled_back: item_id={item_id} user_id={self.user_id}"
            )
            raise AtomicOperationFailed() from exc
        if not result.success:
            self.session.rollback()
            logger.warning(
                f"mark_as_paid_rolled_back: item_id={item_id} reason=no_expense"
            )
            raise AtomicOperationFailed()

        logger.info(
            f"mark_as_paid: item_id={item_id} expense_id={result.expense_id} "
            f"next_due_at={item.next_due_at.isoformat()}"
        )
        BalanceService(self.session, self.user_id).refresh_cache_best_effort()
        return PaidResult(success=True, expense_id=result.expense_id)


class BalanceService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = require_owner(user_id)

    def _lifetime_balance(self) -> int:
        income, expenses = ledger_totals(self.session, self.user_id)
        return income - expenses

    def current_balance(self) -> int:
        balance = self._lifetime_balance()
        try:
            self._write_cache(balance)
        except Exception:
            self.session.rollback()
            logger.exception(f"balance_cache_write_failed: user_id={self.user_id}")
        return balance

    def refresh_cache(self) -> int:
        balance = self._lifetime_balance()
        self._write_cache(balance)
        return balance

    def refresh_cache_best_effort(self) -> Optional[int]:
        try:
            return self.refresh_cache()
        except Exception:
            self.session.rollback()
            logger.exception(f"balance_cache_refresh_failed: user_id={self.user_id}")
            return None

    def _write_cache(self, balance: int) -> None:
        profile = ProfileService(self.session, self.user_id).get_or_create()
        if profile.current_balance_cents != balance:
            profile.current_balance_cents = balance
            self.session.commit()

    def cached_balance(self) -> int:
        return ProfileService(self.session, self.user_id).get_or_create().current_balance_cents

    def cash_flow(self, start: DateLike, end: DateLike) -> CashFlow:
        income, expenses = ledger_totals(self.session, self.user_id, start, end)
        return cash_flow_from_totals(income, expenses)

    def balance_history(
        self, days: int = 30, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        """Daily running balance over the window, starting from zero."""
        today = today or local_today()
        start = today - timedelta(days=days)
        rows = self.session.execute(
            select(
                Transaction.occurred_on,
                Transaction.type,
                func.sum(Transaction.amount_cents).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.occurred_on.between(start, today),
            )
            .group_by(Transaction.occurred_on, Transaction.type)
        ).all()
        per_day: dict[date, dict[TransactionType, int]] = {}
        for row in rows:
            per_day.setdefault(row.occurred_on, {})[row.type] = int(row.total or 0)

        history = []
        balance = 0
        current = start
        while current <= today:
            totals = per_day.get(current, {})
            income = totals.get(TransactionType.income, 0)
            expenses = totals.get(TransactionType.expense, 0)
            balance += income - expenses
            history.append(
                {
                    "date": current.isoformat(),
                    "balance": balance,
                    "income": income,
                    "expenses": expenses,
                }
            )
            current += timedelta(days=1)
        return history

    def financial_health(self, now: Optional[datetime] = None) -> FinancialHealth:
        now = now or local_now()
        balance = self.current_balance()
        month_flow = self.cash_flow(now.date().replace(day=1), now)
        return score_financial_health(balance, month_flow)


class MetricsService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = require_owner(user_id)

    def spending_series(
        self, grain: TimeGrain, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        period = date_range_for_grain(grain, today or local_today())
        expenses = ExpenseService(self.session, self.user_id).all_in_window(
            period.start, period.end
        )
        return aggregate_by_grain(expenses, grain)

    @staticmethod
    def _series_key(value: date, grain: TimeGrain) -> str:
        if grain == TimeGrain.week:
            return value.isoformat()
        if grain == TimeGrain.month:
            iso_year, iso_week, _ = value.isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        return f"{value.year}-{value.month:02d}"

    @staticmethod
    def _series_label(value: date, grain: TimeGrain) -> str:
        if grain == TimeGrain.week:
            return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.day}"
        if grain == TimeGrain.month:
            iso_year, iso_week, _ = value.isocalendar()
            monday = date.fromisocalendar(iso_year, iso_week, 1)
            sunday = monday + timedelta(days=6)
            start = f"{MONTH_ABBREVIATIONS[monday.month - 1]} {monday.day}"
            if sunday.month != monday.month:
                return f"{start} - {MONTH_ABBREVIATIONS[sunday.month - 1]} {sunday.day}"
            return f"{start} - {sunday.day}"
        return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.year}"

    def income_expense_series(
        self, grain: TimeGrain, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        grain = TimeGrain(grain)
        period = date_range_for_grain(grain, today or local_today())

        points: dict[str, dict[str, object]] = {}
        day = period.start_date
        while day <= period.end_date:
            key = self._series_key(day, grain)
            if key not in points:
                points[key] = {
                    "date": key,
                    "label": self._series_label(day, grain),
                    "income": 0,
                    "expenses": 0,
                    "balance": 0,
                }
            day += timedelta(days=1)

        rows = self.session.execute(
            select(
                Transaction.occurred_on,
                Transaction.type,
                func.sum(Transaction.amount_cents).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.occurred_on.between(period.start_date, period.end_date),
            )
            .group_by(Transaction.occurred_on, Transaction.type)
        ).all()
        for row in rows:
            point = points[self._series_key(row.occurred_on, grain)]
            bucket = "income" if row.type == TransactionType.income else "expenses"
            point[bucket] += int(row.total or 0)

        for point in points.values():
            point["balance"] = point["income"] - point["expenses"]
        return sorted(points.values(), key=lambda p: p["date"])

    def summary(
        self, grain: TimeGrain, now: Optional[datetime] = None
    ) -> dict[str, object]:
        now = now or local_now()
        today = now.date()
        spent = ExpenseService(self.session, self.user_id).period_stats(grain, today)
        earned = IncomeService(self.session, self.user_id).period_stats(grain, today)
        pending_total = RecurringService(self.session, self.user_id).pending_total(now)
        profile = ProfileService(self.session, self.user_id).get_or_create()
        currency = profile.currency
        net = earned["current_total"] - spent["current_total"]
        return {
            "grain": TimeGrain(grain).value,
            "currency": currency,
            "total_spent": spent["current_total"],
            "spending_trend": spent["trend"],
            "total_income": earned["current_total"],
            "income_trend": earned["trend"],
            "net_cash_flow": net,
            "pending_recurring_total": pending_total,
            "current_balance": profile.current_balance_cents,
            "display": {
                "total_spent": format_currency(spent["current_total"], currency),
                "total_income": format_currency(earned["current_total"], currency),
                "net_cash_flow": format_currency(net, currency),
                "pending_recurring_total": format_currency(pending_total, currency),
                "current_balance": format_currency(
                    profile.current_balance_cents, currency
                ),
            },
        }
