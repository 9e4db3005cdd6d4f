from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

import services
from database import Base, make_engine
from errors import NotFound, Unauthenticated, ValidationFailed
from models import Profile, Transaction, TransactionType, TimeGrain
from schemas import CategoryIn, ProfileUpdate, TransactionIn, TransactionUpdate
from services import (
    CategoryService,
    ExpenseService,
    IncomeService,
    ProfileService,
    TransactionFilters,
)


def make_session():
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _expense(amount: int, day: date, **extra) -> TransactionIn:
    return TransactionIn(amount_cents=amount, occurred_on=day, **extra)


def test_services_require_an_owner():
    session = make_session()
    with pytest.raises(Unauthenticated):
        ExpenseService(session, None)
    with pytest.raises(Unauthenticated):
        IncomeService(session, "")


def test_list_paginates_newest_first_with_total_count():
    session = make_session()
    service = ExpenseService(session, "owner-1")
    for day in range(1, 6):
        service.create(_expense(day * 100, date(2026, 10, day)))

    items, total = service.list(TransactionFilters(limit=2, offset=0))
    assert total == 5
    assert [t.occurred_on.day for t in items] == [5, 4]

    items, total = service.list(TransactionFilters(limit=2, offset=4))
    assert total == 5
    assert [t.occurred_on.day for t in items] == [1]


def test_list_filters_are_conjunctive():
    session = make_session()
    category = CategoryService(session, "owner-1").create(
        CategoryIn(name="Coffee", type=TransactionType.expense)
    )
    service = ExpenseService(session, "owner-1")
    service.create(_expense(100, date(2026, 10, 1), category_id=category.id))
    service.create(_expense(200, date(2026, 10, 5), category_id=category.id))
    service.create(_expense(300, date(2026, 10, 5)))
    service.create(_expense(400, date(2026, 11, 5), category_id=category.id))

    items, total = service.list(
        TransactionFilters(
            start=date(2026, 10, 2), end=date(2026, 10, 31), category_id=category.id
        )
    )
    assert total == 1
    assert items[0].amount_cents == 200


def test_owner_in_input_is_ignored():
    session = make_session()
    data = TransactionIn.model_validate(
        {"amount_cents": 100, "occurred_on": "2026-10-01", "user_id": "intruder"}
    )
    txn = ExpenseService(session, "owner-1").create(data)
    assert txn.user_id == "owner-1"
    assert txn.type == TransactionType.expense


def test_currency_defaults_to_profile_currency():
    session = make_session()
    ProfileService(session, "owner-1").update(ProfileUpdate(currency="php"))
    service = ExpenseService(session, "owner-1")
    assert service.create(_expense(100, date(2026, 10, 1))).currency_code == "PHP"
    assert (
        service.create(_expense(100, date(2026, 10, 1), currency="usd")).currency_code
        == "USD"
    )


def test_cross_owner_and_cross_kind_access_is_not_found():
    session = make_session()
    txn = ExpenseService(session, "owner-1").create(_expense(100, date(2026, 10, 1)))

    with pytest.raises(NotFound):
        ExpenseService(session, "owner-2").get(txn.id)
    with pytest.raises(NotFound):
        ExpenseService(session, "owner-2").update(txn.id, TransactionUpdate(amount_cents=5))
    with pytest.raises(NotFound):
        ExpenseService(session, "owner-2").delete(txn.id)
    with pytest.raises(NotFound):
        IncomeService(session, "owner-1").get(txn.id)

    assert session.get(Transaction, txn.id).amount_cents == 100


def test_category_must_match_ledger_kind():
    session = make_session()
    salary = CategoryService(session, "owner-1").create(
        CategoryIn(name="Salary", type=TransactionType.income)
    )
    with pytest.raises(ValidationFailed) as excinfo:
        ExpenseService(session, "owner-1").create(
            _expense(100, date(2026, 10, 1), category_id=salary.id)
        )
    assert "category_id" in excinfo.value.fields

    foreign = CategoryService(session, "owner-2").create(
        CategoryIn(name="Bonus", type=TransactionType.income)
    )
    with pytest.raises(ValidationFailed):
        IncomeService(session, "owner-1").create(
            _expense(100, date(2026, 10, 1), category_id=foreign.id)
        )


def test_update_and_delete():
    session = make_session()
    service = IncomeService(session, "owner-1")
    txn = service.create(_expense(1000, date(2026, 10, 1), description="Paycheck"))

    updated = service.update(
        txn.id, TransactionUpdate(amount_cents=1500, description=None)
    )
    assert updated.amount_cents == 1500
    assert updated.description is None
    assert updated.occurred_on == date(2026, 10, 1)

    service.delete(txn.id)
    with pytest.raises(NotFound):
        service.get(txn.id)


def test_mutations_refresh_cached_balance():
    session = make_session()
    income = IncomeService(session, "owner-1").create(_expense(10000, date(2026, 10, 1)))
    expenses = ExpenseService(session, "owner-1")
    expense = expenses.create(_expense(2500, date(2026, 10, 2)))
    assert session.get(Profile, "owner-1").current_balance_cents == 7500

    expenses.update(expense.id, TransactionUpdate(amount_cents=3000))
    assert session.get(Profile, "owner-1").current_balance_cents == 7000

    IncomeService(session, "owner-1").delete(income.id)
    assert session.get(Profile, "owner-1").current_balance_cents == -3000


def test_cache_refresh_failure_does_not_undo_the_write(monkeypatch):
    session = make_session()

    def broken_refresh(self):
        raise RuntimeError("profile store down")

    monkeypatch.setattr(services.BalanceService, "refresh_cache", broken_refresh)
    txn = ExpenseService(session, "owner-1").create(_expense(100, date(2026, 10, 1)))

    count = session.execute(select(func.count(Transaction.id))).scalar_one()
    assert count == 1
    assert txn.id is not None


def test_total_for_window_and_period_stats():
    session = make_session()
    service = ExpenseService(session, "owner-1")
    service.create(_expense(10000, date(2026, 10, 3)))
    service.create(_expense(5000, date(2026, 9, 20)))
    service.create(_expense(700, date(2026, 10, 31)))
    IncomeService(session, "owner-1").create(_expense(99999, date(2026, 10, 3)))

    assert service.total_for_window(date(2026, 10, 1), date(2026, 10, 31)) == 10700

    stats = service.period_stats(TimeGrain.month, today=date(2026, 10, 18))
    assert stats["current_total"] == 10700
    assert stats["previous_total"] == 5000
    assert stats["trend"] == pytest.approx(114.0)

    stats = IncomeService(session, "owner-1").period_stats(
        TimeGrain.month, today=date(2026, 10, 18)
    )
    assert stats["trend"] == 0


def test_recent_and_all_in_window():
    session = make_session()
    service = ExpenseService(session, "owner-1")
    for day in (3, 1, 2):
        service.create(_expense(day, date(2026, 10, day)))

    assert [t.amount_cents for t in service.recent(2)] == [3, 2]
    window = service.all_in_window(date(2026, 10, 1), date(2026, 10, 2))
    assert [t.amount_cents for t in window] == [1, 2]
