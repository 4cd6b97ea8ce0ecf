# sms_ledger/patterns/mpesa.py
"""Safaricom M-PESA message shapes, most specific first."""

from sms_ledger.core.models import TransactionType
from sms_ledger.patterns.base import AMOUNT, rule

MPESA = "M-Pesa"
POCHI = "Pochi La Biashara"
MSHWARI = "M-Shwari"
CASH = "Cash"

# counterparty runs until the date clause or the end of the sentence
_UNTIL = r"(?: for account .*?)?(?= on \d|\.|$)"
_BUSINESS = r"(?=.*new business balance)"

CREDIT = TransactionType.CREDIT
DEBIT = TransactionType.DEBIT
TRANSFER = TransactionType.TRANSFER
WITHDRAW = TransactionType.WITHDRAW

MPESA_PATTERNS = [
    rule(
        "received_from_equity", CREDIT,
        rf"you have received {AMOUNT} from (?P<counterparty>equity bulk account.*?){_UNTIL}",
        wallet=MPESA, destination="Equity Bank",
        description="{destination} to {wallet}",
    ),
    rule(
        "received_from_sc_bank", CREDIT,
        rf"you have received {AMOUNT} from (?P<counterparty>standard chartered bank.*?){_UNTIL}",
        wallet=MPESA, destination="SC Bank",
        description="{destination} to {wallet}",
    ),
    rule(
        "received", CREDIT,
        rf"you have received {AMOUNT} from (?P<counterparty>.+?){_UNTIL}",
        wallet=MPESA, description="Received to {wallet}",
    ),
    rule(
        "moved_to_business", TRANSFER,
        rf"{AMOUNT} has been moved from your m-?pesa account to your business account",
        wallet=MPESA, destination=POCHI, balance_rx=None,
    ),
    rule(
        "moved_to_mpesa", TRANSFER,
        rf"{AMOUNT} has been moved from your business account to your m-?pesa account",
        wallet=POCHI, destination=MPESA, balance_rx=None,
    ),
    rule(
        "mshwari_deposit", TRANSFER,
        rf"{AMOUNT} transferred to m-?shwari account",
        wallet=MPESA, destination=MSHWARI, balance_rx=None,
    ),
    rule(
        "mshwari_withdrawal", TRANSFER,
        rf"{AMOUNT} transferred from m-?shwari account",
        wallet=MSHWARI, destination=MPESA, balance_rx=None,
    ),
    rule(
        "withdraw", WITHDRAW,
        rf"withdraw {AMOUNT} from (?P<counterparty>.+?)(?= new m-?pesa balance|\.|$)",
        wallet=MPESA, destination=CASH,
    ),
    rule(
        "airtime_business", DEBIT,
        rf"{_BUSINESS}you bought {AMOUNT} of airtime",
        wallet=POCHI, description="Airtime purchase",
    ),
    rule(
        "airtime", DEBIT,
        rf"you bought {AMOUNT} of airtime",
        wallet=MPESA, description="Airtime purchase",
    ),
    rule(
        "data_bundles", DEBIT,
        rf"{AMOUNT} sent to (?P<counterparty>safaricom data bundles){_UNTIL}",
        wallet=MPESA, description="Data Bundles purchase",
    ),
    rule(
        "sent_to_sc_bank", TRANSFER,
        rf"{AMOUNT} sent to (?P<counterparty>c2b standard chartered bank.*?){_UNTIL}",
        wallet=MPESA, destination="SC Bank",
    ),
    rule(
        "sent_to_equity", TRANSFER,
        rf"{AMOUNT} sent to (?P<counterparty>[^.]*?equity.*?){_UNTIL}",
        wallet=MPESA, destination="Equity Bank",
    ),
    rule(
        "paid_business", DEBIT,
        rf"{_BUSINESS}{AMOUNT} paid to (?P<counterparty>.+?){_UNTIL}",
        wallet=POCHI, description="Sent from {wallet}",
    ),
    rule(
        "paid", DEBIT,
        rf"{AMOUNT} paid to (?P<counterparty>.+?){_UNTIL}",
        wallet=MPESA, description="Sent from {wallet}",
    ),
    rule(
        "sent_business", DEBIT,
        rf"{_BUSINESS}{AMOUNT} sent to (?P<counterparty>.+?){_UNTIL}",
        wallet=POCHI, description="Sent from {wallet}",
    ),
    rule(
        "sent", DEBIT,
        rf"{AMOUNT} sent to (?P<counterparty>.+?){_UNTIL}",
        wallet=MPESA, description="Sent from {wallet}",
    ),
]
