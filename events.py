"""In-process change feed.

Row changes are collected when a session flushes and handed to subscribers only
once the outermost transaction commits. A rollback drops whatever was collected,
so subscribers never hear about writes that did not land.
"""

from collections import defaultdict
from dataclasses import dataclass, field
import logging
import threading
from typing import Any, Callable, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from models import Category, Profile, RecurringObligation, Transaction, TransactionType

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_TABLES = "*"

_PENDING_KEY = "change_feed_pending"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    row: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[ChangeEvent], None]


def table_for(obj: object) -> Optional[str]:
    if isinstance(obj, Transaction):
        return "income" if obj.type == TransactionType.income else "expenses"
    if isinstance(obj, RecurringObligation):
        return "recurring_items"
    if isinstance(obj, Category):
        return "categories"
    if isinstance(obj, Profile):
        return "profiles"
    return None


def _snapshot(obj: object) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


class ChangeFeed:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()
        self._installed = False

    def subscribe(self, table: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(change.table, []))
            callbacks += self._subscribers.get(ALL_TABLES, [])
        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                logger.exception(
                    f"change_feed_subscriber_failed: table={change.table} "
                    f"event={change.event_type}"
                )

    def install(self) -> None:
        """Attach to every ORM session; safe to call more than once."""
        if self._installed:
            return
        event.listen(Session, "after_flush", self._collect)
        event.listen(Session, "after_commit", self._flush_to_subscribers)
        event.listen(Session, "after_soft_rollback", self._discard)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        event.remove(Session, "after_flush", self._collect)
        event.remove(Session, "after_commit", self._flush_to_subscribers)
        event.remove(Session, "after_soft_rollback", self._discard)
        self._installed = False

    def _collect(self, session: Session, _flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for event_type, objects in (
            (INSERT, session.new),
            (UPDATE, session.dirty),
            (DELETE, session.deleted),
        ):
            for obj in objects:
                table = table_for(obj)
                if table is None:
                    continue
                if event_type == UPDATE and not session.is_modified(obj):
                    continue
                pending.append(ChangeEvent(table, event_type, _snapshot(obj)))

    def _flush_to_subscribers(self, session: Session) -> None:
        changes = session.info.pop(_PENDING_KEY, [])
        for change in changes:
            self.publish(change)

    def _discard(self, session: Session, previous_transaction) -> None:
        if previous_transaction.parent is None:
            session.info.pop(_PENDING_KEY, None)


feed = ChangeFeed()
