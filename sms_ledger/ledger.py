"""Wallet balance bookkeeping.

A wallet's stored balance is a cache of ``opening_balance`` plus the signed
effect of every transaction recorded against it:

* CREDIT adds ``amount`` (fees are ignored),
* DEBIT and WITHDRAW subtract ``amount + fee``,
* TRANSFER leaves the amount out and subtracts only ``fee``.

Every balance change is a single ``balance = balance + delta`` UPDATE issued
while holding a per-wallet lock, inside the same SQLite transaction as the
transaction row it belongs to.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

from sms_ledger import database
from sms_ledger.core.models import TransactionType
from sms_ledger.errors import PersistenceFailure, StaleEditError
from sms_ledger.utils import from_cents, parse_amount, to_cents

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
FEE_ADJUSTED_TYPES = frozenset(
    {TransactionType.DEBIT, TransactionType.WITHDRAW, TransactionType.TRANSFER}
)

_registry_lock = threading.Lock()
_wallet_locks: Dict[tuple, threading.RLock] = defaultdict(threading.RLock)


def wallet_lock(db_path, wallet_id) -> threading.RLock:
    """Process-wide lock serializing balance writes for one wallet."""
    key = (str(Path(db_path).resolve()), int(wallet_id))
    with _registry_lock:
        return _wallet_locks[key]


def signed_effect(tx_type, amount, fee=ZERO) -> Decimal:
    """Balance change a transaction causes on the wallet it is recorded on.

    A TRANSFER moves its amount between wallets, so the amount is neutral for
    the recording wallet; its fee is still charged there and the effect is
    ``-fee``. This keeps ``apply_cost_change`` and :meth:`Ledger.computed_balance`
    in agreement for transfers.
    """
    tx_type = TransactionType(tx_type)
    amount = parse_amount(amount)
    fee = parse_amount(fee)
    if tx_type is TransactionType.CREDIT:
        return amount
    if tx_type is TransactionType.TRANSFER:
        return -fee
    return -(amount + fee)


class Ledger:
    def __init__(self, db_path, timeout=database.DEFAULT_TIMEOUT):
        self.db_path = str(db_path)
        self.timeout = timeout

    def _open(self):
        return database.open_db(self.db_path, self.timeout, immediate=True)

    def _post(self, conn, wallet_id, delta: Decimal) -> Decimal:
        with wallet_lock(self.db_path, wallet_id):
            cents = database.add_to_wallet_balance(conn, wallet_id, to_cents(delta))
        balance = from_cents(cents)
        logger.debug("Wallet %s %+.2f -> %.2f", wallet_id, delta, balance)
        return balance

    def apply_adjustment(self, wallet_id: int, signed_delta, conn=None) -> Decimal:
        """Add ``signed_delta`` to a wallet's balance and return the new balance."""
        delta = parse_amount(signed_delta)
        # wallet lock before the SQLite write lock, everywhere
        with wallet_lock(self.db_path, wallet_id):
            if conn is not None:
                return self._post(conn, wallet_id, delta)
            with self._open() as own:
                return self._post(own, wallet_id, delta)

    def apply_new(self, wallet_id: int, tx_type, amount, fee=ZERO, conn=None) -> Decimal:
        """Post the effect of a newly recorded transaction."""
        return self.apply_adjustment(wallet_id, signed_effect(tx_type, amount, fee), conn=conn)

    def _edit(self, tx_id, mutate):
        # the wallet id is needed to pick the lock before the write transaction starts
        with database.open_db(self.db_path, self.timeout) as conn:
            wallet_id = database.get_transaction(conn, tx_id).wallet_id
        with wallet_lock(self.db_path, wallet_id):
            with self._open() as conn:
                tx = database.get_transaction(conn, tx_id)
                delta = mutate(conn, tx)
                return self._post(conn, tx.wallet_id, delta)

    def edit_amount(self, tx_id: int, new_amount, old_amount=None) -> Decimal:
        """Change a transaction's amount and move the balance by the difference.

        When ``old_amount`` is given it must match the stored amount, otherwise
        :class:`StaleEditError` is raised and nothing changes.
        """
        new_amount = parse_amount(new_amount)
        if new_amount < 0:
            raise ValueError("amount must not be negative")

        def mutate(conn, tx):
            if old_amount is not None and parse_amount(old_amount) != tx.amount:
                raise StaleEditError(
                    f"Transaction {tx.id} amount is {tx.amount}, not {old_amount}"
                )
            database.update_transaction_amounts(conn, tx.id, amount=new_amount)
            return signed_effect(tx.type, new_amount, tx.fee) - signed_effect(
                tx.type, tx.amount, tx.fee
            )

        return self._edit(tx_id, mutate)

    def apply_cost_change(self, tx_id: int, old_fee, new_fee) -> Decimal:
        """Correct a transaction's fee.

        The balance moves by ``-(new_fee - old_fee)`` for fee-bearing types;
        CREDIT rows store the new fee without touching the balance.
        """
        new_fee = parse_amount(new_fee)
        if new_fee < 0:
            raise ValueError("fee must not be negative")

        def mutate(conn, tx):
            if old_fee is not None and parse_amount(old_fee) != tx.fee:
                raise StaleEditError(f"Transaction {tx.id} fee is {tx.fee}, not {old_fee}")
            database.update_transaction_amounts(conn, tx.id, fee=new_fee)
            if tx.type not in FEE_ADJUSTED_TYPES:
                return ZERO
            return -(new_fee - tx.fee)

        return self._edit(tx_id, mutate)

    def computed_balance(self, wallet_id: int, conn=None) -> Decimal:
        if conn is None:
            with database.open_db(self.db_path, self.timeout) as own:
                return self.computed_balance(wallet_id, own)
        wallet = database.get_wallet(conn, wallet_id)
        if wallet is None:
            raise PersistenceFailure(f"Wallet {wallet_id} does not exist")
        total = wallet.opening_balance
        for tx_type, sums in database.wallet_effect_totals(conn, wallet_id).items():
            total += signed_effect(tx_type, from_cents(sums["amount"]), from_cents(sums["fee"]))
        return total

    def reconcile(self, wallet_id: int) -> Dict[str, Decimal]:
        """Compare the cached balance with the one implied by history."""
        with database.open_db(self.db_path, self.timeout) as conn:
            wallet = database.get_wallet(conn, wallet_id)
            if wallet is None:
                raise PersistenceFailure(f"Wallet {wallet_id} does not exist")
            computed = self.computed_balance(wallet_id, conn)
        return {
            "stored": wallet.balance,
            "computed": computed,
            "drift": wallet.balance - computed,
        }

    def rebuild_balance(self, wallet_id: int) -> Decimal:
        """Overwrite the cached balance with the one implied by history."""
        with wallet_lock(self.db_path, wallet_id):
            with self._open() as conn:
                computed = self.computed_balance(wallet_id, conn)
                database.set_wallet_balance(conn, wallet_id, to_cents(computed))
        logger.info("Rebuilt wallet %s balance to %.2f", wallet_id, computed)
        return computed

    def balance(self, wallet_id: int) -> Optional[Decimal]:
        with database.open_db(self.db_path, self.timeout) as conn:
            wallet = database.get_wallet(conn, wallet_id)
        return wallet.balance if wallet else None
