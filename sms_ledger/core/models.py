# sms_ledger/core/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class TransactionType(str, Enum):
    """Canonical transaction types recorded against a wallet."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    TRANSFER = "TRANSFER"
    WITHDRAW = "WITHDRAW"


class TransactionStatus(str, Enum):
    UNCATEGORIZED = "UNCATEGORIZED"
    CATEGORIZED = "CATEGORIZED"


@dataclass
class SmsMessage:
    """A raw SMS as delivered by the device inbox or live listener."""

    sender: str
    body: str
    received_at: datetime

    @classmethod
    def from_epoch_millis(cls, sender: str, body: str, millis: int) -> "SmsMessage":
        return cls(
            sender=sender,
            body=body,
            received_at=datetime.fromtimestamp(int(millis) / 1000),
        )


@dataclass
class NormalizedMessage:
    sender_name: str
    text: str
    received_at: datetime


@dataclass
class Rejected:
    """A message filtered out before extraction (not an error)."""

    reason: str


@dataclass
class ExtractedFields:
    """Fields pulled out of a message by the first matching pattern."""

    pattern: str
    tag: TransactionType
    sender_name: str
    amount: Decimal
    occurred_at: datetime
    fee: Decimal = Decimal("0.00")
    counterparty: str = ""
    balance: Optional[Decimal] = None
    wallet_name: Optional[str] = None
    destination: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ClassifiedTransaction:
    type: TransactionType
    wallet_id: int
    amount: Decimal
    fee: Decimal
    description: str
    occurred_at: datetime
    counterparty: str = ""
    reported_balance: Optional[Decimal] = None


@dataclass
class Wallet:
    id: int
    name: str
    sender_name: str
    balance: Decimal
    opening_balance: Decimal = Decimal("0.00")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Category:
    id: int
    name: str


@dataclass
class CategoryItem:
    id: int
    name: str
    category_id: int


@dataclass
class Transaction:
    wallet_id: int
    amount: Decimal
    type: TransactionType
    occurred_at: datetime
    fee: Decimal = Decimal("0.00")
    description: str = ""
    category_item_id: Optional[int] = None
    status: TransactionStatus = TransactionStatus.UNCATEGORIZED
    sms_hash: Optional[str] = None
    exclude_from_weekly: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def needs_categorization(self) -> bool:
        return self.status is TransactionStatus.UNCATEGORIZED


@dataclass
class WeeklySpendingLimit:
    """Spending target for one Monday-to-Sunday week."""

    id: int
    week_start: date
    week_end: date
    amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SplitItem:
    id: int
    list_id: int
    category_item_id: int
    amount: Decimal


@dataclass
class SplitList:
    """A transaction's amount divided across several category items."""

    id: int
    name: str
    transaction_id: Optional[int] = None
    applied: bool = False
    items: List[SplitItem] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0.00"))
