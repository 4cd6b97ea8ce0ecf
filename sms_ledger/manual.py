# sms_ledger/manual.py
from datetime import datetime

import yaml

from sms_ledger import database
from sms_ledger.core.models import Transaction, TransactionType
from sms_ledger.utils import dedupe_transactions, parse_amount


def load_manual_transactions(path, wallets):
    """Load manual transactions from a YAML file.

    ``wallets`` is the list of Wallet rows used to resolve each entry's
    ``wallet`` name. Manual entries carry no SMS hash.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []

    by_name = {w.name.lower(): w for w in wallets}
    txs = []
    for entry in data:
        date_str = entry.get('date')
        if not date_str:
            raise ValueError(f"Missing 'date' in manual entry: {entry}")
        wallet = by_name.get(str(entry.get('wallet', '')).lower())
        if wallet is None:
            raise ValueError(f"Unknown wallet in manual entry: {entry}")
        amount = parse_amount(entry.get('amount', 0))
        fee = parse_amount(entry.get('fee', 0))
        if amount < 0 or fee < 0:
            raise ValueError(f"Negative amount or fee in manual entry: {entry}")
        occurred = date_str if isinstance(date_str, datetime) else datetime.fromisoformat(str(date_str))
        tx = Transaction(
            wallet_id=wallet.id,
            amount=amount,
            fee=fee,
            type=TransactionType(str(entry.get('type', 'DEBIT')).upper()),
            occurred_at=occurred,
            description=entry.get('description', ''),
        )
        txs.append(tx)
    return dedupe_transactions(txs)


def commit_manual_transactions(engine, path):
    """Commit every entry in ``path`` through the engine's dedup gate."""
    with database.open_db(engine.db_path, engine.timeout) as conn:
        wallets = database.list_wallets(conn)
    return [engine.commit(tx) for tx in load_manual_transactions(path, wallets)]
