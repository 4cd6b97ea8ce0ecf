"""Idempotent ingestion of SMS (and manual) transactions.

Every candidate passes the same gate: look it up under each dedup key in
order, and only when all lookups miss insert it and post its balance effect
in one SQLite transaction. Sync notification happens afterwards on a
background worker.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sms_ledger import database
from sms_ledger.classifier import classify
from sms_ledger.config import DEFAULT_CONFIG
from sms_ledger.core.categorizer import categorize, resolve_item_id
from sms_ledger.core.models import (
    Rejected,
    SmsMessage,
    SplitList,
    Transaction,
    TransactionStatus,
    TransactionType,
    WeeklySpendingLimit,
)
from sms_ledger.errors import (
    ExtractionFailure,
    LedgerError,
    PersistenceFailure,
    SplitMismatchError,
)
from sms_ledger.extractor import extract
from sms_ledger.ledger import Ledger, wallet_lock
from sms_ledger.normalizer import normalize
from sms_ledger.patterns import get_patterns
from sms_ledger.sync import SyncNotifier
from sms_ledger.utils import sms_fingerprint

logger = logging.getLogger(__name__)

DELETE_BALANCE_WARNING = (
    "Deleting a transaction does not restore the wallet balance. "
    "Adjust the balance manually or rebuild it from history."
)

# the SMS-reported balance is only comparable when the whole amount moved
_CROSS_CHECK_TYPES = {TransactionType.CREDIT, TransactionType.DEBIT, TransactionType.WITHDRAW}


class IngestStatus(str, Enum):
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class IngestResult:
    status: IngestStatus
    transaction: Optional[Transaction] = None
    reason: str = ""
    sms_hash: Optional[str] = None
    balance: Optional[Decimal] = None
    reported_balance: Optional[Decimal] = None

    @property
    def committed(self) -> bool:
        return self.status is IngestStatus.COMMITTED

    @property
    def balance_mismatch(self) -> bool:
        return (
            self.committed
            and self.reported_balance is not None
            and self.transaction.type in _CROSS_CHECK_TYPES
            and self.balance != self.reported_balance
        )


@dataclass
class DeleteResult:
    transaction: Transaction
    balance_reversed: bool = False
    warning: str = DELETE_BALANCE_WARNING


def _by_sms_hash(conn, tx: Transaction) -> Optional[Transaction]:
    if not tx.sms_hash:
        return None
    return database.find_by_sms_hash(conn, tx.sms_hash)


def _by_fingerprint(conn, tx: Transaction) -> Optional[Transaction]:
    return database.find_by_fingerprint(conn, tx.wallet_id, tx.occurred_at, tx.amount)


DEDUP_KEYS: Tuple[Tuple[str, Callable], ...] = (
    ("sms_hash", _by_sms_hash),
    ("wallet/date/amount", _by_fingerprint),
)


class IngestionEngine:
    def __init__(
        self,
        db_path,
        config: Optional[Dict] = None,
        ledger: Optional[Ledger] = None,
        notifier: Optional[SyncNotifier] = None,
    ):
        self.db_path = str(db_path)
        self.config = config or DEFAULT_CONFIG
        self.timeout = float(self.config.get("db_timeout", database.DEFAULT_TIMEOUT))
        self.ledger = ledger or Ledger(self.db_path, self.timeout)
        self.notifier = notifier or SyncNotifier()
        self._patterns: Dict[str, list] = {}

    def _read(self):
        return database.open_db(self.db_path, self.timeout)

    def patterns_for(self, sender_name: str) -> list:
        if sender_name not in self._patterns:
            self._patterns[sender_name] = get_patterns(sender_name, self.config)
        return self._patterns[sender_name]

    # ------------------------------------------------------------------
    # Commit gate
    # ------------------------------------------------------------------

    def commit(self, candidate: Transaction, reported_balance=None) -> IngestResult:
        """Insert ``candidate`` exactly once and post it to the ledger.

        Raises :class:`~sms_ledger.errors.PersistenceFailure` if storage fails.
        """
        with wallet_lock(self.db_path, candidate.wallet_id):
            with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
                for key, lookup in DEDUP_KEYS:
                    existing = lookup(conn, candidate)
                    if existing is not None:
                        logger.info(
                            "Skipping duplicate of transaction %s (matched on %s)",
                            existing.id, key,
                        )
                        return IngestResult(
                            IngestStatus.DUPLICATE,
                            transaction=existing,
                            reason=f"matched on {key}",
                            sms_hash=candidate.sms_hash,
                        )
                try:
                    tx = database.insert_transaction(conn, candidate)
                except sqlite3.IntegrityError as exc:
                    existing = (
                        database.find_by_sms_hash(conn, candidate.sms_hash)
                        if candidate.sms_hash
                        else None
                    )
                    if existing is None:
                        raise PersistenceFailure(f"Could not store transaction: {exc}") from exc
                    logger.info("Skipping duplicate SMS hash %s", candidate.sms_hash)
                    return IngestResult(
                        IngestStatus.DUPLICATE,
                        transaction=existing,
                        reason="matched on sms_hash",
                        sms_hash=candidate.sms_hash,
                    )
                balance = self.ledger.apply_new(
                    tx.wallet_id, tx.type, tx.amount, tx.fee, conn=conn
                )

        logger.info(
            "Committed %s %.2f (fee %.2f) on wallet %s as transaction %s",
            tx.type.value, tx.amount, tx.fee, tx.wallet_id, tx.id,
        )
        self.notifier.upsert(tx)
        result = IngestResult(
            IngestStatus.COMMITTED,
            transaction=tx,
            sms_hash=tx.sms_hash,
            balance=balance,
            reported_balance=reported_balance,
        )
        if result.balance_mismatch:
            logger.warning(
                "Wallet %s balance %.2f disagrees with SMS-reported %.2f",
                tx.wallet_id, balance, reported_balance,
            )
        return result

    # ------------------------------------------------------------------
    # SMS entry points
    # ------------------------------------------------------------------

    def ingest(self, sms: SmsMessage) -> IngestResult:
        """Normalize, extract, classify and commit one SMS.

        Rejections, extraction failures and unknown wallets come back as
        results; only storage failures raise.
        """
        with self._read() as conn:
            wallets = database.list_wallets(conn)
            items = database.list_category_items(conn)

        normalized = normalize(
            sms.body, sms.sender, {w.sender_name for w in wallets}, sms.received_at
        )
        if isinstance(normalized, Rejected):
            logger.debug("Rejected SMS from %s: %s", sms.sender, normalized.reason)
            return IngestResult(IngestStatus.REJECTED, reason=normalized.reason)

        sms_hash = sms_fingerprint(normalized.sender_name, normalized.text)
        try:
            fields = extract(normalized, self.patterns_for(normalized.sender_name))
            classified = classify(fields, wallets)
        except ExtractionFailure as exc:
            logger.warning("Dropping SMS from %s: %s", sms.sender, exc)
            return IngestResult(IngestStatus.FAILED, reason=str(exc), sms_hash=sms_hash)

        item_id = resolve_item_id(
            categorize(classified, self.config.get("auto_categories") or {}), items
        )
        candidate = Transaction(
            wallet_id=classified.wallet_id,
            amount=classified.amount,
            fee=classified.fee,
            type=classified.type,
            description=classified.description,
            occurred_at=classified.occurred_at,
            category_item_id=item_id,
            status=TransactionStatus.CATEGORIZED if item_id else TransactionStatus.UNCATEGORIZED,
            sms_hash=sms_hash,
        )
        return self.commit(candidate, reported_balance=classified.reported_balance)

    def _safe_ingest(self, sms: SmsMessage) -> IngestResult:
        try:
            return self.ingest(sms)
        except LedgerError as exc:
            logger.exception("Failed to store SMS from %s", sms.sender)
            return IngestResult(IngestStatus.FAILED, reason=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error while ingesting SMS from %s", sms.sender)
            return IngestResult(IngestStatus.FAILED, reason=f"{type(exc).__name__}: {exc}")

    def listen(self, stream: Iterable[SmsMessage]) -> Counter:
        """Consume a live message stream; one bad message never stops it."""
        counts: Counter = Counter()
        for sms in stream:
            counts[self._safe_ingest(sms).status] += 1
        return counts

    def watermark(self) -> datetime:
        """Timestamp after which messages still need to be considered."""
        with self._read() as conn:
            latest = database.latest_sms_transaction(conn)
            if latest is not None:
                return latest.occurred_at
            latest = database.latest_committed_transaction(conn)
        if latest is not None and latest.created_at is not None:
            return latest.created_at
        days = int(self.config.get("backfill_lookback_days", 7))
        return datetime.now() - timedelta(days=days)

    def backfill(
        self, messages: Iterable[SmsMessage], since: Optional[datetime] = None
    ) -> List[IngestResult]:
        """Catch up on history, oldest first, skipping anything at or before
        the watermark (``since`` or :meth:`watermark`)."""
        cutoff = since if since is not None else self.watermark()
        pending = sorted(
            (m for m in messages if m.received_at > cutoff),
            key=lambda m: m.received_at,
        )
        logger.info("Backfill: %d message(s) newer than %s", len(pending), cutoff.isoformat())
        results = [self._safe_ingest(sms) for sms in pending]
        summary = Counter(r.status.value for r in results)
        logger.info("Backfill finished: %s", dict(summary))
        return results

    # ------------------------------------------------------------------
    # Edits made outside the SMS path
    # ------------------------------------------------------------------

    def _sync_row(self, tx_id: int) -> Transaction:
        with self._read() as conn:
            tx = database.get_transaction(conn, tx_id)
        self.notifier.upsert(tx)
        return tx

    def edit_amount(self, tx_id: int, new_amount, old_amount=None) -> Decimal:
        balance = self.ledger.edit_amount(tx_id, new_amount, old_amount)
        self._sync_row(tx_id)
        return balance

    def edit_fee(self, tx_id: int, new_fee, old_fee=None) -> Decimal:
        if old_fee is None:
            with self._read() as conn:
                old_fee = database.get_transaction(conn, tx_id).fee
        balance = self.ledger.apply_cost_change(tx_id, old_fee, new_fee)
        self._sync_row(tx_id)
        return balance

    def categorize(self, tx_id: int, item_id: Optional[int]) -> Transaction:
        with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
            tx = database.categorize_transaction(conn, tx_id, item_id)
        self.notifier.upsert(tx)
        return tx

    def uncategorize(self, tx_id: int) -> Transaction:
        with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
            tx = database.uncategorize_transaction(conn, tx_id)
        self.notifier.upsert(tx)
        return tx

    def set_excluded_from_weekly(self, tx_id: int, excluded: bool) -> Transaction:
        with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
            tx = database.set_excluded_from_weekly(conn, tx_id, excluded)
        self.notifier.upsert(tx)
        return tx

    def split(self, tx_id: int, parts: Iterable[Tuple[int, object]], name: str = "") -> SplitList:
        """Divide a transaction's amount across category items and apply it.

        ``parts`` holds ``(category_item_id, amount)`` pairs whose amounts
        must add up to the transaction amount; otherwise
        :class:`SplitMismatchError` is raised and nothing is stored.
        """
        with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
            tx = database.get_transaction(conn, tx_id)
            split = database.create_split_list(conn, name or f"Split of transaction {tx_id}", tx.id)
            for item_id, amount in parts:
                database.add_split_item(conn, split.id, item_id, amount)
            if not database.mark_split_list_applied(conn, split.id):
                total = database.get_split_list(conn, split.id).total
                raise SplitMismatchError(
                    f"Split parts add up to {total}, transaction {tx_id} is {tx.amount}"
                )
            split = database.get_split_list(conn, split.id)
        logger.info("Split transaction %s across %d item(s)", tx_id, len(split.items))
        self._sync_row(tx_id)
        return split

    def set_weekly_limit(self, day, amount) -> WeeklySpendingLimit:
        with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
            limit = database.set_weekly_limit(conn, day, amount)
        logger.info("Weekly limit for %s set to %.2f", limit.week_start.isoformat(), limit.amount)
        return limit

    def delete(self, tx_id: int) -> DeleteResult:
        """Delete a transaction without reversing its balance effect."""
        with database.open_db(self.db_path, self.timeout, immediate=True) as conn:
            tx = database.delete_transaction(conn, tx_id)
        logger.warning("Deleted transaction %s. %s", tx_id, DELETE_BALANCE_WARNING)
        self.notifier.delete(tx_id)
        return DeleteResult(transaction=tx)

    def close(self) -> None:
        self.notifier.close()
