from datetime import datetime

import pytest

from sms_ledger import database
from sms_ledger.config import load_config
from sms_ledger.core.models import SmsMessage
from sms_ledger.ingest import IngestionEngine
from sms_ledger.sync import SyncNotifier

EXAMPLE_SMS = (
    "QLF3XYZ12A Confirmed. KSh100.00 sent to JOHN DOE 0712345678 on 15/12/23 "
    "at 2:30 PM. New M-PESA balance is KSh1,500.00. Transaction cost, KSh0.00."
)
RECEIVED_SMS = (
    "QLG4ABC34B Confirmed.You have received Ksh500.00 from JANE WANJIKU "
    "0722000111 on 16/12/23 at 9:15 AM New M-PESA balance is Ksh2,000.00."
)
AIRTIME_SMS = (
    "QLH5DEF56C confirmed.You bought Ksh50.00 of airtime on 17/12/23 at 8:05 AM."
    "New M-PESA balance is Ksh1,450.00. Transaction cost, Ksh0.00."
)
WITHDRAW_SMS = (
    "QLJ6GHI78D Confirmed.on 18/12/23 at 11:40 AMWithdraw Ksh1,000.00 from "
    "123456 - KAMAU AGENCIES New M-PESA balance is Ksh450.00. "
    "Transaction cost, Ksh29.00."
)
POCHI_SMS = (
    "QLK7JKL90E Confirmed. Ksh50.00 paid to MAMA MBOGA SHOP. on 19/12/23 at "
    "7:20 PM. New business balance is Ksh450.00. Transaction cost, Ksh0.00."
)

WALLETS = [
    {"name": "M-Pesa", "sender": "MPESA", "balance": 1600},
    {"name": "Pochi La Biashara", "sender": "MPESA", "balance": 500},
    {"name": "M-Shwari", "sender": "MPESA", "balance": 0},
    {"name": "Cash", "sender": "CASH", "balance": 0},
]
MPESA_ID, POCHI_ID, MSHWARI_ID, CASH_ID = 1, 2, 3, 4


def sms(body, received_at=None, sender="MPESA"):
    return SmsMessage(
        sender=sender,
        body=body,
        received_at=received_at or datetime(2023, 12, 20, 12, 0),
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PESALEDGER_DB", "PESALEDGER_SYNC_URL", "PESALEDGER_SYNC_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    cfg = load_config(None)
    cfg["db_path"] = str(tmp_path / "ledger.db")
    cfg["wallets"] = [dict(w) for w in WALLETS]
    return cfg


@pytest.fixture
def db_path(config):
    database.seed_defaults(config["db_path"], config)
    return config["db_path"]


@pytest.fixture
def engine(config, db_path):
    eng = IngestionEngine(db_path, config, notifier=SyncNotifier())
    yield eng
    eng.close()
