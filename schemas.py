from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import get_settings
from models import Frequency, ThemeAccent, TransactionType

MAX_AMOUNT_CENTS = 99_999_999_999
HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
CURRENCY_PATTERN = r"^[A-Za-z]{3}$"


def to_local_naive(value: datetime) -> datetime:
    """Store timestamps as naive wall-clock time in the configured zone."""
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def strip_required_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Name is required")
    return value


class CurrencyInput(BaseModel):
    # unknown keys (an owner id, say) are dropped, the owner is the caller
    model_config = ConfigDict(extra="ignore")

    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field("#6b7280", pattern=HEX_COLOR_PATTERN)
    icon_name: Optional[str] = Field(None, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return strip_required_name(value)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    icon_name: Optional[str] = Field(None, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return strip_required_name(value)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    color: str
    icon_name: Optional[str]
    is_default: bool


class TransactionIn(CurrencyInput):
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    occurred_on: date
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = None


class TransactionUpdate(CurrencyInput):
    amount_cents: Optional[int] = Field(None, gt=0, le=MAX_AMOUNT_CENTS)
    occurred_on: Optional[date] = None
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount_cents: int
    currency_code: str
    description: Optional[str]
    category_id: Optional[int]
    category: Optional[CategoryOut]
    occurred_on: date
    origin_obligation_id: Optional[int]
    created_at: datetime


class RecurringIn(CurrencyInput):
    name: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    category_id: Optional[int] = None
    frequency: Frequency
    next_due_at: datetime

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return strip_required_name(value)

    @field_validator("next_due_at")
    @classmethod
    def localize_due(cls, value: datetime) -> datetime:
        return to_local_naive(value)


class RecurringUpdate(CurrencyInput):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    amount_cents: Optional[int] = Field(None, gt=0, le=MAX_AMOUNT_CENTS)
    category_id: Optional[int] = None
    frequency: Optional[Frequency] = None
    next_due_at: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return strip_required_name(value)

    @field_validator("next_due_at")
    @classmethod
    def localize_due(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value) if value else value


class RecurringOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_cents: int
    currency_code: Optional[str]
    category_id: Optional[int]
    category: Optional[CategoryOut]
    frequency: Frequency
    last_processed_on: Optional[date]
    next_due_at: datetime
    is_pending: bool = False


class ProfileUpdate(CurrencyInput):
    theme_preference: Optional[ThemeAccent] = None
    dark_mode: Optional[bool] = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str]
    theme_preference: ThemeAccent
    dark_mode: bool
    currency: str
    current_balance_cents: int
    created_at: datetime
