"""Pull structured fields out of a normalized message using a pattern table."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sms_ledger.core.models import ExtractedFields, NormalizedMessage
from sms_ledger.errors import ExtractionFailure
from sms_ledger.patterns.base import DATE_RX, MessagePattern
from sms_ledger.utils import parse_amount

logger = logging.getLogger(__name__)

_DATE_FORMATS = ("%d/%m/%y %I:%M %p", "%d/%m/%Y %I:%M %p")


def parse_sms_datetime(text: str) -> Optional[datetime]:
    """Return the ``on D/M/YY at H:MM AM`` timestamp in ``text``, if any."""
    match = DATE_RX.search(text)
    if not match:
        return None
    token = f"{match.group('date')} {match.group('time')} {match.group('ampm').upper()}"
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(token, fmt)
        except ValueError:
            continue
    logger.debug("Unparsable date token '%s'", token)
    return None


def _optional_amount(rx, group, text, default=None):
    if rx is None:
        return default
    match = rx.search(text)
    if not match:
        return default
    try:
        return parse_amount(match.group(group))
    except ValueError:
        logger.warning("Ignoring unparsable %s '%s'", group, match.group(group))
        return default


def extract(
    message: NormalizedMessage, patterns: Iterable[MessagePattern]
) -> ExtractedFields:
    """Apply ``patterns`` in order; the first structural match wins.

    Raises :class:`ExtractionFailure` when no pattern matches or the amount
    does not parse. A missing fee is zero, a missing counterparty is empty,
    and a missing or unparsable date falls back to the receipt time.
    """
    text = message.text
    for pattern in patterns:
        match = pattern.match.search(text)
        if not match:
            continue

        raw_amount = match.group("amount")
        try:
            amount = parse_amount(raw_amount)
        except ValueError as exc:
            raise ExtractionFailure(
                f"Pattern '{pattern.name}' matched but amount '{raw_amount}' did not parse"
            ) from exc
        if amount < 0:
            raise ExtractionFailure(f"Negative amount '{raw_amount}' in '{pattern.name}'")

        groups = match.groupdict()
        counterparty = (groups.get("counterparty") or "").strip(" .,")

        return ExtractedFields(
            pattern=pattern.name,
            tag=pattern.tag,
            sender_name=message.sender_name,
            amount=amount,
            fee=_optional_amount(pattern.fee_rx, "fee", text, Decimal("0.00")),
            counterparty=counterparty,
            balance=_optional_amount(pattern.balance_rx, "balance", text),
            occurred_at=parse_sms_datetime(text) or message.received_at,
            wallet_name=pattern.wallet,
            destination=pattern.destination,
            description=pattern.description,
        )

    raise ExtractionFailure(f"No pattern matched message from {message.sender_name}")
