from datetime import date, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database import Base, make_engine
from errors import NotFound, ValidationFailed
from models import Category, Frequency, RecurringObligation, Transaction, TransactionType
from schemas import CategoryIn, CategoryUpdate, RecurringIn, TransactionIn
from services import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    CategoryService,
    ExpenseService,
    RecurringService,
    seed_default_categories,
)


def make_session():
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_seed_default_categories_is_idempotent():
    session = make_session()
    added = seed_default_categories(session)
    assert added == len(DEFAULT_EXPENSE_CATEGORIES) + len(DEFAULT_INCOME_CATEGORIES)
    assert seed_default_categories(session) == 0

    food = session.scalar(select(Category).where(Category.name == "Food"))
    assert food.user_id is None
    assert food.is_default
    assert (food.color, food.icon_name) == ("#f97316", "Utensils")


def test_list_all_includes_defaults_and_own_only():
    session = make_session()
    seed_default_categories(session)
    CategoryService(session, "owner-1").create(
        CategoryIn(name="Coffee", type=TransactionType.expense, color="#111111")
    )
    CategoryService(session, "owner-2").create(
        CategoryIn(name="Boats", type=TransactionType.expense)
    )

    names = [c.name for c in CategoryService(session, "owner-1").list_all()]
    assert "Coffee" in names
    assert "Boats" not in names
    assert "Salary" in names
    assert names == sorted(names)

    expense_names = [
        c.name
        for c in CategoryService(session, "owner-1").list_all(TransactionType.expense)
    ]
    assert "Salary" not in expense_names
    assert len(expense_names) == len(DEFAULT_EXPENSE_CATEGORIES) + 1


def test_duplicate_name_per_owner_and_kind_is_rejected():
    session = make_session()
    service = CategoryService(session, "owner-1")
    service.create(CategoryIn(name="Coffee", type=TransactionType.expense))
    with pytest.raises(ValidationFailed) as excinfo:
        service.create(CategoryIn(name="Coffee", type=TransactionType.expense))
    assert "name" in excinfo.value.fields

    # same name, other kind is fine
    service.create(CategoryIn(name="Coffee", type=TransactionType.income))


def test_defaults_and_foreign_categories_cannot_be_changed():
    session = make_session()
    seed_default_categories(session)
    food = session.scalar(select(Category).where(Category.name == "Food"))
    theirs = CategoryService(session, "owner-2").create(
        CategoryIn(name="Boats", type=TransactionType.expense)
    )
    service = CategoryService(session, "owner-1")

    with pytest.raises(NotFound):
        service.update(food.id, CategoryUpdate(name="Meals"))
    with pytest.raises(NotFound):
        service.delete(food.id)
    with pytest.raises(NotFound):
        service.update(theirs.id, CategoryUpdate(color="#000000"))
    with pytest.raises(NotFound):
        service.get(theirs.id)
    assert service.get(food.id).name == "Food"


def test_update_category():
    session = make_session()
    service = CategoryService(session, "owner-1")
    category = service.create(CategoryIn(name="Coffee", type=TransactionType.expense))
    updated = service.update(
        category.id, CategoryUpdate(name="  Cafe ", color="#abcdef", icon_name=None)
    )
    assert updated.name == "Cafe"
    assert updated.color == "#abcdef"
    assert updated.icon_name is None


def test_delete_category_uncategorizes_references():
    session = make_session()
    categories = CategoryService(session, "owner-1")
    category = categories.create(CategoryIn(name="Gym", type=TransactionType.expense))
    expense = ExpenseService(session, "owner-1").create(
        TransactionIn(
            amount_cents=2500, occurred_on=date(2026, 10, 1), category_id=category.id
        )
    )
    item = RecurringService(session, "owner-1").create(
        RecurringIn(
            name="Membership",
            amount_cents=4000,
            frequency=Frequency.monthly,
            next_due_at=datetime(2026, 10, 20, 9, 0),
            category_id=category.id,
        )
    )

    categories.delete(category.id)

    assert session.get(Category, category.id) is None
    assert session.get(Transaction, expense.id).category_id is None
    assert session.get(RecurringObligation, item.id).category_id is None


def test_stats_for_window_percentages():
    session = make_session()
    categories = CategoryService(session, "owner-1")
    food = categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    travel = categories.create(CategoryIn(name="Travel", type=TransactionType.expense))
    expenses = ExpenseService(session, "owner-1")
    for amount, category_id, day in (
        (20000, food.id, 2),
        (10000, food.id, 3),
        (10000, travel.id, 4),
        (5000, None, 5),
        (99999, food.id, 28),
    ):
        expenses.create(
            TransactionIn(
                amount_cents=amount,
                occurred_on=date(2026, 9, day),
                category_id=category_id,
            )
        )

    stats = categories.stats_for_window(date(2026, 9, 1), date(2026, 9, 10))
    assert [(s["category"]["name"], s["amount_cents"]) for s in stats] == [
        ("Food", 30000),
        ("Travel", 10000),
    ]
    assert stats[0]["percentage"] == pytest.approx(75.0)
    assert sum(s["percentage"] for s in stats) == pytest.approx(100.0)


def test_stats_for_window_empty_when_no_spending():
    session = make_session()
    assert CategoryService(session, "owner-1").stats_for_window(
        date(2026, 9, 1), date(2026, 9, 30)
    ) == []
