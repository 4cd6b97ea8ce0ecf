"""SQLite storage for wallets, categories and transactions.

Functions taking a ``conn`` run inside a caller-owned transaction (see
:func:`open_db`); functions taking a ``db_path`` open and close their own
connection.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from sms_ledger.core.models import (
    Category,
    CategoryItem,
    SplitItem,
    SplitList,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
    WeeklySpendingLimit,
)
from sms_ledger.errors import PersistenceFailure, TransactionNotFound
from sms_ledger.utils import from_cents, to_cents, week_bounds

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS wallets (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    transaction_sender_name TEXT NOT NULL,
    balance INTEGER NOT NULL DEFAULT 0,
    opening_balance INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS category_items (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    category_id INTEGER NOT NULL
        REFERENCES categories(id) ON DELETE CASCADE,
    UNIQUE(category_id, name)
);
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY,
    wallet_id INTEGER NOT NULL
        REFERENCES wallets(id) ON DELETE CASCADE,
    category_item_id INTEGER
        REFERENCES category_items(id) ON DELETE SET NULL,
    amount INTEGER NOT NULL,
    transaction_cost INTEGER NOT NULL DEFAULT 0,
    type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    occurred_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'UNCATEGORIZED',
    sms_hash TEXT UNIQUE,
    exclude_from_weekly INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_transactions_fingerprint
    ON transactions (wallet_id, occurred_at, amount);
CREATE TABLE IF NOT EXISTS weekly_spending_limits (
    id INTEGER PRIMARY KEY,
    week_start TEXT NOT NULL UNIQUE,
    week_end TEXT NOT NULL,
    target_amount INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS split_lists (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    transaction_id INTEGER
        REFERENCES transactions(id) ON DELETE CASCADE,
    is_applied INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_split_lists_applied
    ON split_lists (transaction_id) WHERE is_applied = 1;
CREATE TABLE IF NOT EXISTS split_items (
    id INTEGER PRIMARY KEY,
    list_id INTEGER NOT NULL
        REFERENCES split_lists(id) ON DELETE CASCADE,
    category_item_id INTEGER NOT NULL
        REFERENCES category_items(id) ON DELETE CASCADE,
    amount INTEGER NOT NULL
);
"""

_TX_COLUMNS = (
    "id, wallet_id, category_item_id, amount, transaction_cost, type, "
    "description, occurred_at, status, sms_hash, exclude_from_weekly, "
    "created_at, updated_at"
)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA)


def connect(db_path: str, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    _init_db(conn)
    return conn


@contextmanager
def open_db(
    db_path: str, timeout: float = DEFAULT_TIMEOUT, immediate: bool = False
) -> Iterator[sqlite3.Connection]:
    """Yield a connection wrapped in one transaction.

    The transaction commits when the block exits cleanly and rolls back on
    any exception. ``immediate`` takes the write lock up front so
    check-then-write sequences cannot interleave with another writer.
    Storage errors surface as :class:`PersistenceFailure`.
    """
    try:
        conn = connect(db_path, timeout)
    except sqlite3.Error as exc:
        raise PersistenceFailure(f"Could not open {db_path}: {exc}") from exc
    try:
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        with conn:
            yield conn
    except sqlite3.Error as exc:
        raise PersistenceFailure(str(exc)) from exc
    finally:
        conn.close()


# --------------------------------------------------------------------------
# Row mapping
# --------------------------------------------------------------------------

def _wallet(row: sqlite3.Row) -> Wallet:
    return Wallet(
        id=row["id"],
        name=row["name"],
        sender_name=row["transaction_sender_name"],
        balance=from_cents(row["balance"]),
        opening_balance=from_cents(row["opening_balance"]),
        created_at=_ts(row["created_at"]),
        updated_at=_ts(row["updated_at"]),
    )


def _transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        wallet_id=row["wallet_id"],
        category_item_id=row["category_item_id"],
        amount=from_cents(row["amount"]),
        fee=from_cents(row["transaction_cost"]),
        type=TransactionType(row["type"]),
        description=row["description"],
        occurred_at=datetime.fromisoformat(row["occurred_at"]),
        status=TransactionStatus(row["status"]),
        sms_hash=row["sms_hash"],
        exclude_from_weekly=bool(row["exclude_from_weekly"]),
        created_at=_ts(row["created_at"]),
        updated_at=_ts(row["updated_at"]),
    )


# --------------------------------------------------------------------------
# Wallets
# --------------------------------------------------------------------------

def insert_wallet(conn, name, sender_name, balance=0) -> Wallet:
    now = _now()
    cents = to_cents(balance)
    cur = conn.execute(
        """
        INSERT INTO wallets
        (name, transaction_sender_name, balance, opening_balance, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (name, sender_name, cents, cents, now, now),
    )
    return get_wallet(conn, cur.lastrowid)


def get_wallet(conn, wallet_id: int) -> Optional[Wallet]:
    row = conn.execute("SELECT * FROM wallets WHERE id = ?", (wallet_id,)).fetchone()
    return _wallet(row) if row else None


def list_wallets(conn) -> List[Wallet]:
    rows = conn.execute("SELECT * FROM wallets ORDER BY id").fetchall()
    return [_wallet(r) for r in rows]


def find_wallet_by_name(conn, name: str) -> Optional[Wallet]:
    row = conn.execute(
        "SELECT * FROM wallets WHERE lower(name) = lower(?)", (name,)
    ).fetchone()
    return _wallet(row) if row else None


def sender_names(conn) -> List[str]:
    rows = conn.execute(
        "SELECT DISTINCT transaction_sender_name FROM wallets ORDER BY 1"
    ).fetchall()
    return [r[0] for r in rows]


def add_to_wallet_balance(conn, wallet_id: int, delta_cents: int) -> int:
    """Atomically add ``delta_cents`` to a wallet and return the new balance."""
    cur = conn.execute(
        "UPDATE wallets SET balance = balance + ?, updated_at = ? WHERE id = ?",
        (int(delta_cents), _now(), wallet_id),
    )
    if cur.rowcount == 0:
        raise PersistenceFailure(f"Wallet {wallet_id} does not exist")
    return conn.execute(
        "SELECT balance FROM wallets WHERE id = ?", (wallet_id,)
    ).fetchone()[0]


def set_wallet_balance(conn, wallet_id: int, cents: int) -> None:
    conn.execute(
        "UPDATE wallets SET balance = ?, updated_at = ? WHERE id = ?",
        (int(cents), _now(), wallet_id),
    )


def delete_wallet(conn, wallet_id: int) -> int:
    """Delete a wallet together with its transactions."""
    return conn.execute("DELETE FROM wallets WHERE id = ?", (wallet_id,)).rowcount


# --------------------------------------------------------------------------
# Categories
# --------------------------------------------------------------------------

def insert_category(conn, name: str) -> Category:
    cur = conn.execute("INSERT INTO categories (name) VALUES (?)", (name,))
    return Category(id=cur.lastrowid, name=name)


def insert_category_item(conn, category_id: int, name: str) -> CategoryItem:
    cur = conn.execute(
        "INSERT INTO category_items (name, category_id) VALUES (?, ?)",
        (name, category_id),
    )
    return CategoryItem(id=cur.lastrowid, name=name, category_id=category_id)


def list_categories(conn) -> List[Category]:
    rows = conn.execute("SELECT id, name FROM categories ORDER BY name").fetchall()
    return [Category(id=r["id"], name=r["name"]) for r in rows]


def list_category_items(conn, category_id: Optional[int] = None) -> List[CategoryItem]:
    query = "SELECT id, name, category_id FROM category_items"
    params: list = []
    if category_id is not None:
        query += " WHERE category_id = ?"
        params.append(category_id)
    rows = conn.execute(query + " ORDER BY id", params).fetchall()
    return [CategoryItem(id=r["id"], name=r["name"], category_id=r["category_id"]) for r in rows]


def _unlink_items(conn, where: str, params) -> int:
    return conn.execute(
        f"""
        UPDATE transactions
        SET category_item_id = NULL, status = ?, updated_at = ?
        WHERE category_item_id IN (SELECT id FROM category_items WHERE {where})
        """,
        [TransactionStatus.UNCATEGORIZED.value, _now(), *params],
    ).rowcount


def delete_category_item(conn, item_id: int) -> int:
    """Delete an item; linked transactions become uncategorized, not deleted."""
    unlinked = _unlink_items(conn, "id = ?", (item_id,))
    logger.debug("Unlinked %d transaction(s) from category item %s", unlinked, item_id)
    return conn.execute("DELETE FROM category_items WHERE id = ?", (item_id,)).rowcount


def delete_category(conn, category_id: int) -> int:
    """Delete a category and its items, uncategorizing their transactions."""
    unlinked = _unlink_items(conn, "category_id = ?", (category_id,))
    logger.debug("Unlinked %d transaction(s) from category %s", unlinked, category_id)
    return conn.execute("DELETE FROM categories WHERE id = ?", (category_id,)).rowcount


# --------------------------------------------------------------------------
# Transactions
# --------------------------------------------------------------------------

def insert_transaction(conn, tx: Transaction) -> Transaction:
    now = _now()
    cur = conn.execute(
        """
        INSERT INTO transactions
        (wallet_id, category_item_id, amount, transaction_cost, type, description,
         occurred_at, status, sms_hash, exclude_from_weekly, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            tx.wallet_id,
            tx.category_item_id,
            to_cents(tx.amount),
            to_cents(tx.fee),
            TransactionType(tx.type).value,
            (tx.description or "").strip(),
            tx.occurred_at.isoformat(),
            TransactionStatus(tx.status).value,
            tx.sms_hash,
            int(bool(tx.exclude_from_weekly)),
            now,
            now,
        ),
    )
    return get_transaction(conn, cur.lastrowid)


def get_transaction(conn, tx_id: int) -> Transaction:
    row = conn.execute(
        f"SELECT {_TX_COLUMNS} FROM transactions WHERE id = ?", (tx_id,)
    ).fetchone()
    if row is None:
        raise TransactionNotFound(f"Transaction {tx_id} not found")
    return _transaction(row)


def find_by_sms_hash(conn, sms_hash: str) -> Optional[Transaction]:
    row = conn.execute(
        f"SELECT {_TX_COLUMNS} FROM transactions WHERE sms_hash = ?", (sms_hash,)
    ).fetchone()
    return _transaction(row) if row else None


def find_by_fingerprint(conn, wallet_id: int, occurred_at: datetime, amount) -> Optional[Transaction]:
    row = conn.execute(
        f"""
        SELECT {_TX_COLUMNS} FROM transactions
        WHERE wallet_id = ? AND occurred_at = ? AND amount = ?
        ORDER BY id LIMIT 1
        """,
        (wallet_id, occurred_at.isoformat(), to_cents(amount)),
    ).fetchone()
    return _transaction(row) if row else None


def latest_sms_transaction(conn) -> Optional[Transaction]:
    """Most recent transaction that came from an SMS, by occurrence time."""
    row = conn.execute(
        f"""
        SELECT {_TX_COLUMNS} FROM transactions
        WHERE sms_hash IS NOT NULL
        ORDER BY occurred_at DESC, id DESC LIMIT 1
        """
    ).fetchone()
    return _transaction(row) if row else None


def latest_committed_transaction(conn) -> Optional[Transaction]:
    row = conn.execute(
        f"SELECT {_TX_COLUMNS} FROM transactions ORDER BY created_at DESC, id DESC LIMIT 1"
    ).fetchone()
    return _transaction(row) if row else None


def update_transaction_amounts(conn, tx_id: int, amount=None, fee=None) -> None:
    sets, params = [], []
    if amount is not None:
        sets.append("amount = ?")
        params.append(to_cents(amount))
    if fee is not None:
        sets.append("transaction_cost = ?")
        params.append(to_cents(fee))
    if not sets:
        return
    sets.append("updated_at = ?")
    params.extend([_now(), tx_id])
    conn.execute(f"UPDATE transactions SET {', '.join(sets)} WHERE id = ?", params)


def categorize_transaction(conn, tx_id: int, item_id: Optional[int]) -> Transaction:
    status = TransactionStatus.CATEGORIZED if item_id else TransactionStatus.UNCATEGORIZED
    cur = conn.execute(
        """
        UPDATE transactions
        SET category_item_id = ?, status = ?, updated_at = ?
        WHERE id = ?
        """,
        (item_id, status.value, _now(), tx_id),
    )
    if cur.rowcount == 0:
        raise TransactionNotFound(f"Transaction {tx_id} not found")
    return get_transaction(conn, tx_id)


def set_excluded_from_weekly(conn, tx_id: int, excluded: bool) -> Transaction:
    cur = conn.execute(
        "UPDATE transactions SET exclude_from_weekly = ?, updated_at = ? WHERE id = ?",
        (int(bool(excluded)), _now(), tx_id),
    )
    if cur.rowcount == 0:
        raise TransactionNotFound(f"Transaction {tx_id} not found")
    return get_transaction(conn, tx_id)


def delete_transaction(conn, tx_id: int) -> Transaction:
    tx = get_transaction(conn, tx_id)
    conn.execute("DELETE FROM transactions WHERE id = ?", (tx_id,))
    return tx


def wallet_effect_totals(conn, wallet_id: int) -> Dict[str, Dict[str, int]]:
    """Per-type amount and fee sums (in cents) for one wallet."""
    rows = conn.execute(
        """
        SELECT type, COALESCE(SUM(amount), 0), COALESCE(SUM(transaction_cost), 0)
        FROM transactions
        WHERE wallet_id = ?
        GROUP BY type
        """,
        (wallet_id,),
    ).fetchall()
    return {r[0]: {"amount": int(r[1]), "fee": int(r[2])} for r in rows}


def fetch_transactions(
    db_path: str,
    start_date: date | None = None,
    end_date: date | None = None,
    wallet_id: int | None = None,
    status: TransactionStatus | None = None,
) -> List[Transaction]:
    """Retrieve transactions from a SQLite database.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    start_date:
        Optional start date to filter transactions (inclusive).
    end_date:
        Optional end date to filter transactions (inclusive).
    wallet_id:
        Optional wallet to restrict the result to.
    status:
        Optional categorization status filter.
    """
    where, params = _build_filters(start_date, end_date)
    conditions = [where] if where else []
    if wallet_id is not None:
        conditions.append("wallet_id = ?")
        params.append(wallet_id)
    if status is not None:
        conditions.append("status = ?")
        params.append(TransactionStatus(status).value)
    query = f"SELECT {_TX_COLUMNS} FROM transactions"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY occurred_at, id"
    with open_db(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [_transaction(r) for r in rows]


# --------------------------------------------------------------------------
# Reporting
# --------------------------------------------------------------------------

_SPENDING_TYPES = (TransactionType.DEBIT.value, TransactionType.WITHDRAW.value)
_SPENDING_IN = f"IN ({', '.join('?' for _ in _SPENDING_TYPES)})"


def _build_filters(
    start_date: date | None, end_date: date | None, column: str = "occurred_at"
) -> tuple[str, list]:
    conditions: list[str] = []
    params: list = []
    if start_date:
        conditions.append(f"{column} >= ?")
        params.append(start_date.isoformat())
    if end_date:
        conditions.append(f"{column} < ?")
        params.append((end_date + timedelta(days=1)).isoformat())
    return " AND ".join(conditions), params


def summarize_by_category(
    db_path: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> List[Dict[str, object]]:
    """Aggregate spending (amount plus fees) grouped by category.

    A transaction with an applied split counts each part under its own
    category; its fee stays with the transaction's category.
    """

    where, params = _build_filters(start_date, end_date, "t.occurred_at")
    where = f"AND {where}" if where else ""
    applied = "SELECT transaction_id FROM split_lists WHERE is_applied = 1 AND transaction_id IS NOT NULL"
    with open_db(db_path) as conn:
        rows = conn.execute(
            f"""
            WITH spend (tx_id, item_id, cents) AS (
                SELECT t.id, t.category_item_id, t.amount + t.transaction_cost
                FROM transactions t
                WHERE t.type {_SPENDING_IN} {where}
                  AND t.id NOT IN ({applied})
                UNION ALL
                SELECT t.id, si.category_item_id, si.amount
                FROM transactions t
                JOIN split_lists s ON s.transaction_id = t.id AND s.is_applied = 1
                JOIN split_items si ON si.list_id = s.id
                WHERE t.type {_SPENDING_IN} {where}
                UNION ALL
                SELECT t.id, t.category_item_id, t.transaction_cost
                FROM transactions t
                WHERE t.type {_SPENDING_IN} {where}
                  AND t.id IN ({applied}) AND t.transaction_cost != 0
            )
            SELECT COALESCE(c.name, 'Uncategorized') AS category,
                   SUM(spend.cents) AS total,
                   COUNT(DISTINCT spend.tx_id) AS count
            FROM spend
            LEFT JOIN category_items ci ON ci.id = spend.item_id
            LEFT JOIN categories c ON c.id = ci.category_id
            GROUP BY COALESCE(c.name, 'Uncategorized')
            ORDER BY total DESC
            """,
            [*_SPENDING_TYPES, *params] * 3,
        ).fetchall()
    return [
        {
            "category": row[0],
            "total": from_cents(row[1]),
            "transactions": int(row[2]),
        }
        for row in rows
    ]


def monthly_spending(db_path: str, year: int) -> List[Dict[str, object]]:
    """Spending (amount plus fees) per month of ``year``."""

    with open_db(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT CAST(strftime('%m', occurred_at) AS INTEGER) AS month,
                   SUM(amount + transaction_cost) AS total
            FROM transactions
            WHERE type {_SPENDING_IN} AND strftime('%Y', occurred_at) = ?
            GROUP BY month
            ORDER BY month
            """,
            (*_SPENDING_TYPES, f"{year:04d}"),
        ).fetchall()
    return [{"year": year, "month": int(r[0]), "total": from_cents(r[1])} for r in rows]


def weekly_spending(db_path: str, week_start: date) -> Dict[str, object]:
    """Spending (amount plus fees) for the seven days from ``week_start``.

    Transactions flagged ``exclude_from_weekly`` are left out. When a
    spending limit covers ``week_start`` the report carries it, along with
    ``difference`` (spent minus limit, positive when over budget).
    """

    end = week_start + timedelta(days=7)
    with open_db(db_path) as conn:
        row = conn.execute(
            f"""
            SELECT COALESCE(SUM(amount + transaction_cost), 0), COUNT(*)
            FROM transactions
            WHERE type {_SPENDING_IN}
              AND exclude_from_weekly = 0
              AND occurred_at >= ? AND occurred_at < ?
            """,
            [*_SPENDING_TYPES, week_start.isoformat(), end.isoformat()],
        ).fetchone()
        limit = get_weekly_limit(conn, week_start)
    total = from_cents(row[0])
    return {
        "week_start": week_start.isoformat(),
        "total": total,
        "transactions": int(row[1]),
        "limit": limit.amount if limit else None,
        "difference": total - limit.amount if limit else None,
        "over_budget": bool(limit and total > limit.amount),
    }


# --------------------------------------------------------------------------
# Weekly spending limits
# --------------------------------------------------------------------------

def _weekly_limit(row: sqlite3.Row) -> WeeklySpendingLimit:
    return WeeklySpendingLimit(
        id=row["id"],
        week_start=date.fromisoformat(row["week_start"]),
        week_end=date.fromisoformat(row["week_end"]),
        amount=from_cents(row["target_amount"]),
        created_at=_ts(row["created_at"]),
        updated_at=_ts(row["updated_at"]),
    )


def set_weekly_limit(conn, day: date, amount) -> WeeklySpendingLimit:
    """Create or replace the limit for the Monday-to-Sunday week holding ``day``."""
    cents = to_cents(amount)
    if cents < 0:
        raise ValueError("limit must not be negative")
    start, end = week_bounds(day)
    now = _now()
    conn.execute(
        """
        INSERT INTO weekly_spending_limits
        (week_start, week_end, target_amount, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (week_start) DO UPDATE SET
            target_amount = excluded.target_amount,
            updated_at = excluded.updated_at
        """,
        (start.isoformat(), end.isoformat(), cents, now, now),
    )
    return get_weekly_limit(conn, start)


def get_weekly_limit(conn, day: date) -> Optional[WeeklySpendingLimit]:
    """The limit whose week contains ``day``, if any."""
    if isinstance(day, datetime):
        day = day.date()
    row = conn.execute(
        "SELECT * FROM weekly_spending_limits WHERE week_start <= ? AND week_end >= ?",
        (day.isoformat(), day.isoformat()),
    ).fetchone()
    return _weekly_limit(row) if row else None


def list_weekly_limits(
    conn, start_date: date | None = None, end_date: date | None = None
) -> List[WeeklySpendingLimit]:
    """Limits whose week overlaps ``[start_date, end_date]``, oldest first."""
    conditions, params = [], []
    if start_date:
        conditions.append("week_end >= ?")
        params.append(start_date.isoformat())
    if end_date:
        conditions.append("week_start <= ?")
        params.append(end_date.isoformat())
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    rows = conn.execute(
        f"SELECT * FROM weekly_spending_limits {where} ORDER BY week_start", params
    ).fetchall()
    return [_weekly_limit(r) for r in rows]


def delete_weekly_limit(conn, day: date) -> int:
    start, _ = week_bounds(day)
    return conn.execute(
        "DELETE FROM weekly_spending_limits WHERE week_start = ?", (start.isoformat(),)
    ).rowcount


# --------------------------------------------------------------------------
# Split categorization
# --------------------------------------------------------------------------

def _split_list(conn, row: sqlite3.Row) -> SplitList:
    return SplitList(
        id=row["id"],
        name=row["name"],
        transaction_id=row["transaction_id"],
        applied=bool(row["is_applied"]),
        items=list_split_items(conn, row["id"]),
        created_at=_ts(row["created_at"]),
        updated_at=_ts(row["updated_at"]),
    )


def create_split_list(conn, name: str, transaction_id: Optional[int] = None) -> SplitList:
    now = _now()
    cur = conn.execute(
        """
        INSERT INTO split_lists (name, transaction_id, is_applied, created_at, updated_at)
        VALUES (?, ?, 0, ?, ?)
        """,
        (name, transaction_id, now, now),
    )
    return get_split_list(conn, cur.lastrowid)


def get_split_list(conn, list_id: int) -> Optional[SplitList]:
    row = conn.execute("SELECT * FROM split_lists WHERE id = ?", (list_id,)).fetchone()
    return _split_list(conn, row) if row else None


def split_lists_for_transaction(conn, tx_id: int) -> List[SplitList]:
    rows = conn.execute(
        "SELECT * FROM split_lists WHERE transaction_id = ? ORDER BY id", (tx_id,)
    ).fetchall()
    return [_split_list(conn, r) for r in rows]


def unapplied_split_lists(conn) -> List[SplitList]:
    rows = conn.execute("SELECT * FROM split_lists WHERE is_applied = 0 ORDER BY id").fetchall()
    return [_split_list(conn, r) for r in rows]


def add_split_item(conn, list_id: int, category_item_id: int, amount) -> SplitItem:
    cents = to_cents(amount)
    if cents <= 0:
        raise ValueError("split amounts must be positive")
    cur = conn.execute(
        "INSERT INTO split_items (list_id, category_item_id, amount) VALUES (?, ?, ?)",
        (list_id, category_item_id, cents),
    )
    return SplitItem(
        id=cur.lastrowid,
        list_id=list_id,
        category_item_id=category_item_id,
        amount=from_cents(cents),
    )


def list_split_items(conn, list_id: int) -> List[SplitItem]:
    rows = conn.execute(
        "SELECT id, list_id, category_item_id, amount FROM split_items WHERE list_id = ? ORDER BY id",
        (list_id,),
    ).fetchall()
    return [
        SplitItem(
            id=r["id"],
            list_id=r["list_id"],
            category_item_id=r["category_item_id"],
            amount=from_cents(r["amount"]),
        )
        for r in rows
    ]


def delete_split_item(conn, item_id: int) -> int:
    return conn.execute("DELETE FROM split_items WHERE id = ?", (item_id,)).rowcount


def delete_split_list(conn, list_id: int) -> int:
    return conn.execute("DELETE FROM split_lists WHERE id = ?", (list_id,)).rowcount


def can_apply_split_list(conn, list_id: int) -> bool:
    """True when the list belongs to a transaction and its parts add up to
    exactly that transaction's amount."""
    split = get_split_list(conn, list_id)
    if split is None or split.transaction_id is None or not split.items:
        return False
    try:
        tx = get_transaction(conn, split.transaction_id)
    except TransactionNotFound:
        return False
    return to_cents(split.total) == to_cents(tx.amount)


def mark_split_list_applied(conn, list_id: int) -> bool:
    """Apply a list: it replaces any earlier applied split of the same
    transaction, and the transaction is filed under its largest part."""
    split = get_split_list(conn, list_id)
    if split is None or not can_apply_split_list(conn, list_id):
        return False
    conn.execute(
        "DELETE FROM split_lists WHERE transaction_id = ? AND is_applied = 1 AND id != ?",
        (split.transaction_id, list_id),
    )
    conn.execute(
        "UPDATE split_lists SET is_applied = 1, updated_at = ? WHERE id = ?",
        (_now(), list_id),
    )
    largest = max(split.items, key=lambda item: item.amount)
    categorize_transaction(conn, split.transaction_id, largest.category_item_id)
    return True


def uncategorize_transaction(conn, tx_id: int) -> Transaction:
    return categorize_transaction(conn, tx_id, None)


# --------------------------------------------------------------------------
# Seeding
# --------------------------------------------------------------------------

def seed_defaults(db_path: str, config: Dict) -> Dict[str, int]:
    """Create the configured wallets and categories that do not exist yet."""
    created = {"wallets": 0, "categories": 0, "items": 0}
    with open_db(db_path, immediate=True) as conn:
        for entry in config.get("wallets") or []:
            if find_wallet_by_name(conn, entry["name"]) is None:
                insert_wallet(conn, entry["name"], entry["sender"], entry.get("balance", 0))
                created["wallets"] += 1

        existing = {c.name: c.id for c in list_categories(conn)}
        for name, items in (config.get("categories") or {}).items():
            category_id = existing.get(name)
            if category_id is None:
                category_id = insert_category(conn, name).id
                created["categories"] += 1
            known = {i.name for i in list_category_items(conn, category_id)}
            for item in items or []:
                if item not in known:
                    insert_category_item(conn, category_id, item)
                    created["items"] += 1
    logger.info("Seeded %(wallets)d wallet(s), %(categories)d categories, %(items)d item(s)", created)
    return created
