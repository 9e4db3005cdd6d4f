from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from config import get_settings
from models import Frequency, RecurringObligation, Transaction, TransactionType
from periods import add_months, local_now

Moment = Union[date, datetime]


def next_due_date(frequency: Frequency, from_: Moment) -> Moment:
    """Advance exactly one frequency unit.

    Month and year steps clamp the day to the target month's length, so
    Jan 31 becomes Feb 28/29 and Feb 29 becomes Feb 28. Time of day is kept.
    """
    frequency = Frequency(frequency)
    if frequency == Frequency.weekly:
        return from_ + timedelta(days=7)
    months = 1 if frequency == Frequency.monthly else 12
    return add_months(from_, months)


def is_settled_this_period(
    item: RecurringObligation, now: Optional[datetime] = None
) -> bool:
    now = now or local_now()
    processed = item.last_processed_on
    if processed is None:
        return False
    return processed.year == now.year and processed.month == now.month


def is_within_lookback(
    item: RecurringObligation,
    now: Optional[datetime] = None,
    lookback_days: Optional[int] = None,
) -> bool:
    now = now or local_now()
    if lookback_days is None:
        lookback_days = get_settings().pending_lookback_days
    return item.next_due_at >= now - timedelta(days=lookback_days)


def is_pending(
    item: RecurringObligation,
    now: Optional[datetime] = None,
    lookback_days: Optional[int] = None,
) -> bool:
    now = now or local_now()
    return not is_settled_this_period(item, now) and is_within_lookback(
        item, now, lookback_days
    )


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    expense_id: Optional[int] = None


class RecurringEngine:
    """Posts the expense for a settled obligation and rolls its schedule forward.

    Works inside the caller's unit of work: it flushes but never commits.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def settle(
        self,
        item: RecurringObligation,
        now: Optional[datetime] = None,
        currency: Optional[str] = None,
    ) -> SettlementResult:
        now = now or local_now()
        today = now.date()
        expense_id = self._post_expense(item, today, currency)
        if expense_id is None:
            return SettlementResult(success=False)

        item.last_processed_on = today
        item.next_due_at = next_due_date(item.frequency, item.next_due_at)
        self.session.flush()
        return SettlementResult(success=True, expense_id=expense_id)

    def _post_expense(
        self, item: RecurringObligation, today: date, currency: Optional[str]
    ) -> Optional[int]:
        currency_code = item.currency_code or currency or get_settings().default_currency
        txn = Transaction(
            user_id=item.user_id,
            type=TransactionType.expense,
            amount_cents=item.amount_cents,
            currency_code=currency_code,
            description=item.name,
            category_id=item.category_id,
            occurred_on=today,
            origin_obligation_id=item.id,
        )
        self.session.add(txn)
        self.session.flush()
        return txn.id
