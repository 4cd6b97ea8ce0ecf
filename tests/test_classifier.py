from datetime import datetime
from decimal import Decimal

import pytest

from sms_ledger.classifier import classify, display_name
from sms_ledger.core.models import ExtractedFields, TransactionType, Wallet
from sms_ledger.errors import ExtractionFailure, WalletNotFound

WHEN = datetime(2023, 12, 15, 14, 30)
WALLETS = [
    Wallet(2, "Pochi La Biashara", "MPESA", Decimal("0.00")),
    Wallet(1, "M-Pesa", "MPESA", Decimal("1600.00")),
    Wallet(4, "Cash", "CASH", Decimal("0.00")),
]


def fields(tag, **kwargs):
    base = dict(
        pattern="test", tag=tag, sender_name="MPESA",
        amount=Decimal("100.00"), occurred_at=WHEN,
    )
    base.update(kwargs)
    return ExtractedFields(**base)


def test_named_wallet_and_template():
    result = classify(
        fields(TransactionType.DEBIT, wallet_name="M-Pesa", counterparty="JOHN DOE",
               description="Sent from {wallet}", balance=Decimal("1500.00")),
        WALLETS,
    )
    assert result.wallet_id == 1
    assert result.type is TransactionType.DEBIT
    assert result.description == "Sent from M-Pesa"
    assert result.counterparty == "JOHN DOE"
    assert result.reported_balance == Decimal("1500.00")


def test_transfer_description_uses_short_names():
    result = classify(
        fields(TransactionType.TRANSFER, wallet_name="M-Pesa", destination="Pochi La Biashara"),
        WALLETS,
    )
    assert result.description == "M-Pesa to Pochi"
    assert display_name("Pochi La Biashara") == "Pochi"


def test_withdraw_description():
    with_agent = classify(fields(TransactionType.WITHDRAW, counterparty="AGENT 1"), WALLETS)
    without = classify(fields(TransactionType.WITHDRAW), WALLETS)
    assert with_agent.description == "Withdrawn at AGENT 1"
    assert without.description == "Withdrawn from M-Pesa"


def test_unnamed_wallet_uses_lowest_id_for_sender():
    result = classify(fields(TransactionType.CREDIT), WALLETS)
    assert result.wallet_id == 1
    assert result.description == "Received to M-Pesa"


def test_missing_wallet_raises():
    with pytest.raises(WalletNotFound):
        classify(fields(TransactionType.DEBIT, wallet_name="M-Shwari"), WALLETS)
    with pytest.raises(ExtractionFailure):
        classify(fields(TransactionType.DEBIT, sender_name="AIRTEL"), WALLETS)
