# sms_ledger/utils.py
import hashlib
import re
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("0.01")
_CLEAN_AMOUNT = re.compile(r"[^\d,.\-]")


def parse_amount(raw):
    """
    Parse a money figure such as ``1,500.00``, ``1.500,00`` or ``KSh 250``.

    The right-most separator followed by one or two digits is the decimal
    mark; every other ``,``/``.`` (and any space) is a thousands separator.
    Raises ValueError when nothing numeric is left.
    """
    if isinstance(raw, Decimal):
        return raw.quantize(_CENT, rounding=ROUND_HALF_UP)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # str() of a float is its shortest round-tripping form, so 0.1 + 0.2 is 0.30
        return _quantize(str(raw), raw)
    cleaned = _CLEAN_AMOUNT.sub("", str(raw)).strip(",.")
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        raise ValueError(f"Could not parse amount '{raw}'")

    last = max(cleaned.rfind(","), cleaned.rfind("."))
    if last != -1 and 1 <= len(cleaned) - last - 1 <= 2:
        whole = re.sub(r"[,.]", "", cleaned[:last])
        number = f"{whole}.{cleaned[last + 1:]}"
    else:
        number = re.sub(r"[,.]", "", cleaned)
    return _quantize(number, raw)


def _quantize(number, raw):
    try:
        value = Decimal(number).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{raw}'")
    if not value.is_finite():
        raise ValueError(f"Could not parse amount '{raw}'")
    return value


def to_cents(amount):
    return int(parse_amount(amount) * 100)


def from_cents(cents):
    return (Decimal(int(cents or 0)) / 100).quantize(_CENT)


def sms_fingerprint(sender, text):
    """Stable SHA-256 hex digest of a normalized message body."""
    payload = f"{sender.upper()}|{text}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def dedupe_transactions(transactions):
    """
    Remove duplicates based on (wallet, occurred_at, amount).
    """
    seen = set()
    unique = []
    for tx in transactions:
        key = (tx.wallet_id, tx.occurred_at, tx.amount)
        if key not in seen:
            seen.add(key)
            unique.append(tx)
    return unique


def week_bounds(day):
    """Monday and Sunday of the week containing ``day``."""
    if isinstance(day, datetime):
        day = day.date()
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)
