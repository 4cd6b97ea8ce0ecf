# sms_ledger/outputs/csv_output.py

import csv
import logging
import os

from sms_ledger.outputs.base import BaseOutput

logger = logging.getLogger(__name__)

COLUMNS = [
    'id', 'date', 'wallet', 'type', 'description', 'category',
    'amount', 'transaction_cost', 'status', 'exclude_from_weekly', 'sms_hash',
]


class CSVOutput(BaseOutput):
    """
    Writes committed transactions to ``output_path`` (or
    ``<output_dir>/Transactions<Year>.csv``), sorted by date, oldest first.
    """
    def __init__(self, config):
        self.config      = config
        self.output_dir  = config.get('output_dir', 'data')
        self.output_path = config.get('output_path')

    def _target(self, year):
        if self.output_path:
            return self.output_path
        return os.path.join(self.output_dir, f"Transactions{year}.csv")

    def append(self, transactions, wallets=None, items=None):
        if not transactions:
            logger.info("No transactions to write.")
            return None

        wallet_names = {w.id: w.name for w in wallets or []}
        item_names = {i.id: i.name for i in items or []}

        rows = sorted(transactions, key=lambda tx: (tx.occurred_at, tx.id or 0))
        out_path = self._target(rows[0].occurred_at.year)
        parent = os.path.dirname(out_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        with open(out_path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(COLUMNS)
            for tx in rows:
                writer.writerow([
                    tx.id,
                    tx.occurred_at.isoformat(),
                    wallet_names.get(tx.wallet_id, tx.wallet_id),
                    tx.type.value,
                    tx.description,
                    item_names.get(tx.category_item_id, ''),
                    f"{tx.amount:.2f}",
                    f"{tx.fee:.2f}",
                    tx.status.value,
                    int(tx.exclude_from_weekly),
                    tx.sms_hash or '',
                ])

        logger.info("Written %d transactions to %s", len(rows), out_path)
        return out_path
