from datetime import datetime

from sms_ledger.core.models import NormalizedMessage, Rejected
from sms_ledger.normalizer import clean_text, match_sender, normalize

RECEIVED = datetime(2023, 12, 15, 14, 31)


def test_clean_text_strips_artifacts_and_whitespace():
    raw = "  Ksh100.00\u200b sent\u00a0to\n\nJOHN\u2019S  SHOP\ufeff "
    assert clean_text(raw) == "Ksh100.00 sent to JOHN'S SHOP"


def test_match_sender_ignores_case_and_punctuation():
    assert match_sender("M-PESA", ["MPESA", "CASH"]) == "MPESA"
    assert match_sender("mpesa", ["MPESA"]) == "MPESA"


def test_match_sender_requires_whole_label():
    assert match_sender("MPESA", ["PESA", "MPESA"]) == "MPESA"
    assert match_sender("SAFARICOM-MPESA", ["MPESA"]) is None
    assert match_sender("FAKEMPESA", ["MPESA"]) is None
    assert match_sender("MPESAPROMO", ["MPESA"]) is None


def test_match_sender_unknown():
    assert match_sender("AIRTEL", ["MPESA"]) is None
    assert match_sender("", ["MPESA"]) is None


def test_normalize_returns_cleaned_message():
    result = normalize("Ksh100.00  sent to JOHN", "M-PESA", ["MPESA"], RECEIVED)
    assert result == NormalizedMessage("MPESA", "Ksh100.00 sent to JOHN", RECEIVED)


def test_normalize_rejects_unknown_sender():
    result = normalize("Ksh100.00 sent to JOHN", "Safaricom", ["MPESA"], RECEIVED)
    assert isinstance(result, Rejected)
    assert "Safaricom" in result.reason


def test_normalize_rejects_messages_without_money():
    result = normalize("Your M-PESA PIN has been changed", "MPESA", ["MPESA"], RECEIVED)
    assert isinstance(result, Rejected)


def test_normalize_rejects_failed_and_empty():
    failed = normalize("Failed. Ksh100 could not be sent", "MPESA", ["MPESA"], RECEIVED)
    empty = normalize(" \u200b ", "MPESA", ["MPESA"], RECEIVED)
    assert isinstance(failed, Rejected)
    assert isinstance(empty, Rejected)


def test_normalize_rejects_lookalike_senders():
    for sender in ("FAKEMPESA", "MPESAPROMO", "M-PESA-OFFERS"):
        result = normalize("Ksh100.00 sent to JOHN", sender, ["MPESA"], RECEIVED)
        assert isinstance(result, Rejected), sender
