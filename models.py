from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Frequency(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class TimeGrain(str, Enum):
    week = "week"
    month = "month"
    year = "year"


class ThemeAccent(str, Enum):
    blue = "blue"
    emerald = "emerald"
    violet = "violet"
    rose = "rose"


OWNER_ID_LENGTH = 36


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL owner marks a global default visible to everyone
    user_id: Mapped[Optional[str]] = mapped_column(String(OWNER_ID_LENGTH))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6b7280")
    icon_name: Mapped[Optional[str]] = mapped_column(String(50))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category", passive_deletes=True
    )
    recurring_items: Mapped[list["RecurringObligation"]] = relationship(
        "RecurringObligation", back_populates="category", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
        Index("ix_categories_user_type", "user_id", "type"),
    )

    @property
    def is_default(self) -> bool:
        return self.user_id is None


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(OWNER_ID_LENGTH), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    origin_obligation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_items.id", ondelete="SET NULL")
    )

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    origin_obligation: Mapped[Optional["RecurringObligation"]] = relationship(
        "RecurringObligation", back_populates="settlements"
    )

    __table_args__ = (
        Index("ix_transactions_user_type_date", "user_id", "type", "occurred_on"),
        Index(
            "ix_transactions_user_category_date",
            "user_id",
            "category_id",
            "occurred_on",
        ),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )


class RecurringObligation(Base, TimestampMixin):
    __tablename__ = "recurring_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(OWNER_ID_LENGTH), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency_code: Mapped[Optional[str]] = mapped_column(String(3))
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    last_processed_on: Mapped[Optional[date]] = mapped_column(Date)
    next_due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="recurring_items"
    )
    settlements: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="origin_obligation", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_recurring_items_user_due", "user_id", "next_due_at"),
        CheckConstraint("amount_cents > 0", name="ck_recurring_amount_positive"),
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(OWNER_ID_LENGTH), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    theme_preference: Mapped[ThemeAccent] = mapped_column(
        SAEnum(ThemeAccent), nullable=False, default=ThemeAccent.blue
    )
    dark_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # denormalized; recomputed from the ledger, may lag behind it
    current_balance_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
