from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from database import Base, make_engine
from errors import AtomicOperationFailed
from events import DELETE, INSERT, UPDATE, ChangeFeed
from models import Frequency, Transaction, TransactionType
from recurrence import RecurringEngine
from schemas import RecurringIn, TransactionIn, TransactionUpdate
from services import ExpenseService, IncomeService, RecurringService


def make_session():
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


@pytest.fixture
def feed():
    change_feed = ChangeFeed()
    change_feed.install()
    yield change_feed
    change_feed.uninstall()


def test_changes_are_published_after_commit(feed):
    session = make_session()
    received = []
    feed.subscribe("expenses", received.append)

    service = ExpenseService(session, "owner-1")
    txn = service.create(TransactionIn(amount_cents=1500, occurred_on=date(2026, 10, 1)))
    service.update(txn.id, TransactionUpdate(amount_cents=1800))
    service.delete(txn.id)

    assert [(c.table, c.event_type) for c in received] == [
        ("expenses", INSERT),
        ("expenses", UPDATE),
        ("expenses", DELETE),
    ]
    assert received[0].row["amount_cents"] == 1500
    assert received[1].row["amount_cents"] == 1800


def test_transactions_report_their_ledger_table(feed):
    session = make_session()
    everything = []
    income_only = []
    feed.subscribe("*", everything.append)
    feed.subscribe("income", income_only.append)

    IncomeService(session, "owner-1").create(
        TransactionIn(amount_cents=100, occurred_on=date(2026, 10, 1))
    )
    ExpenseService(session, "owner-1").create(
        TransactionIn(amount_cents=50, occurred_on=date(2026, 10, 1))
    )

    assert [c.event_type for c in income_only] == [INSERT]
    tables = {c.table for c in everything}
    assert {"income", "expenses", "profiles"} <= tables


def test_rolled_back_writes_are_never_published(feed):
    session = make_session()
    received = []
    feed.subscribe("expenses", received.append)

    session.add(
        Transaction(
            user_id="owner-1",
            type=TransactionType.expense,
            amount_cents=100,
            currency_code="AED",
            occurred_on=date(2026, 10, 1),
        )
    )
    session.flush()
    session.rollback()
    session.commit()

    assert received == []


def test_failed_settlement_publishes_nothing(feed, monkeypatch):
    session = make_session()
    now = datetime(2026, 10, 18, 12, 0)
    item = RecurringService(session, "owner-1").create(
        RecurringIn(
            name="Internet",
            amount_cents=5000,
            frequency=Frequency.monthly,
            next_due_at=now - timedelta(days=1),
        )
    )
    received = []
    feed.subscribe("expenses", received.append)
    feed.subscribe("recurring_items", received.append)

    original_post = RecurringEngine._post_expense

    def insert_then_fail(self, obligation, today, currency):
        original_post(self, obligation, today, currency)
        raise RuntimeError("write rejected")

    monkeypatch.setattr(RecurringEngine, "_post_expense", insert_then_fail)
    with pytest.raises(AtomicOperationFailed):
        RecurringService(session, "owner-1").mark_as_paid(item.id, now)

    assert received == []


def test_subscriber_errors_do_not_reach_the_writer(feed):
    session = make_session()
    received = []

    def broken(change):
        raise RuntimeError("subscriber bug")

    feed.subscribe("expenses", broken)
    feed.subscribe("expenses", received.append)

    txn = ExpenseService(session, "owner-1").create(
        TransactionIn(amount_cents=100, occurred_on=date(2026, 10, 1))
    )
    assert txn.id is not None
    assert len(received) == 1


def test_unsubscribe_stops_delivery(feed):
    session = make_session()
    received = []
    unsubscribe = feed.subscribe("expenses", received.append)
    unsubscribe()
    unsubscribe()

    ExpenseService(session, "owner-1").create(
        TransactionIn(amount_cents=100, occurred_on=date(2026, 10, 1))
    )
    assert received == []
