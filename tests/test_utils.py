from datetime import datetime
from decimal import Decimal

import pytest

from sms_ledger.core.models import Transaction, TransactionType
from sms_ledger.utils import (
    dedupe_transactions,
    from_cents,
    parse_amount,
    sms_fingerprint,
    to_cents,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("100", "100.00"),
        ("1,500.00", "1500.00"),
        ("1.500,50", "1500.50"),
        ("KSh 2,000", "2000.00"),
        ("12,345,678.9", "12345678.90"),
        ("0.5", "0.50"),
    ],
)
def test_parse_amount_handles_separators(raw, expected):
    assert parse_amount(raw) == Decimal(expected)


@pytest.mark.parametrize("raw", ["", "abc", "KSh", None])
def test_parse_amount_rejects_non_numbers(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (1500, "1500.00"),
        (0.1 + 0.2, "0.30"),
        (12.345, "12.35"),
        (-12.345, "-12.35"),
        (1e3, "1000.00"),
    ],
)
def test_parse_amount_takes_numbers_at_face_value(raw, expected):
    assert parse_amount(raw) == Decimal(expected)


@pytest.mark.parametrize("raw", [True, float("nan"), float("inf")])
def test_parse_amount_rejects_non_money_numbers(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_cents_conversion_is_exact():
    assert to_cents("1,500.05") == 150005
    assert to_cents(Decimal("-29.00")) == -2900
    assert from_cents(150005) == Decimal("1500.05")
    assert from_cents(None) == Decimal("0.00")


def test_sms_fingerprint_is_stable_and_sender_scoped():
    a = sms_fingerprint("MPESA", "Ksh100 sent to X")
    assert a == sms_fingerprint("mpesa", "Ksh100 sent to X")
    assert a != sms_fingerprint("MPESA", "Ksh101 sent to X")
    assert a != sms_fingerprint("AIRTEL", "Ksh100 sent to X")
    assert len(a) == 64


def test_dedupe_transactions_keeps_first_of_each_fingerprint():
    when = datetime(2024, 1, 5, 10, 0)
    first = Transaction(1, Decimal("10.00"), TransactionType.DEBIT, when, description="a")
    again = Transaction(1, Decimal("10.00"), TransactionType.DEBIT, when, description="b")
    other = Transaction(2, Decimal("10.00"), TransactionType.DEBIT, when)
    assert dedupe_transactions([first, again, other]) == [first, other]
