# sms_ledger/patterns/base.py
import re
from dataclasses import dataclass
from typing import Optional, Pattern

from sms_ledger.core.models import TransactionType

# Shared building blocks for provider tables
AMOUNT = r"ksh\s?\.?\s?(?P<amount>\d[\d,.]*?\d(?:[.,]\d{1,2})?|\d)(?=\D|$)"
FEE_RX = re.compile(
    r"transaction cost[,:\s]*ksh\s?\.?\s?(?P<fee>\d[\d,]*(?:\.\d{1,2})?)", re.I
)
BALANCE_RX = re.compile(
    r"(?:new )?(?:m-?pesa|business|account) balance (?:is|was)\s*ksh\s?\.?\s?"
    r"(?P<balance>\d[\d,]*(?:\.\d{1,2})?)",
    re.I,
)
DATE_RX = re.compile(
    r"on (?P<date>\d{1,2}/\d{1,2}/\d{2,4}) at (?P<time>\d{1,2}:\d{2}) ?(?P<ampm>[AP]M)",
    re.I,
)


@dataclass(frozen=True)
class MessagePattern:
    """
    One known message shape.

    ``match`` is searched in the normalized text and must expose an
    ``amount`` group; a ``counterparty`` group is optional. ``wallet`` names
    the wallet the transaction is recorded on (``None`` means the sender's
    default wallet) and ``description`` is a ``str.format`` template over
    ``wallet``, ``destination`` and ``counterparty``.
    """

    name: str
    tag: TransactionType
    match: Pattern
    wallet: Optional[str] = None
    destination: Optional[str] = None
    description: Optional[str] = None
    fee_rx: Optional[Pattern] = FEE_RX
    balance_rx: Optional[Pattern] = BALANCE_RX


def rule(name, tag, regex, **kwargs):
    """Compile ``regex`` case-insensitively into a :class:`MessagePattern`."""
    return MessagePattern(name=name, tag=tag, match=re.compile(regex, re.I), **kwargs)
