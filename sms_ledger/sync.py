import json
import logging
import os
import urllib.error
import urllib.request
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Protocol

from sms_ledger.core.models import Transaction
from sms_ledger.errors import SyncError

logger = logging.getLogger(__name__)


class SyncClient(Protocol):
    """Remote store mirroring committed transactions."""

    def upsert_transaction(self, tx: Transaction) -> None:
        """Create or replace ``tx`` remotely."""

    def delete_transaction(self, tx_id: int) -> None:
        """Remove the remote copy of transaction ``tx_id``."""


def transaction_payload(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "walletId": tx.wallet_id,
        "categoryItemId": tx.category_item_id,
        "amount": str(tx.amount),
        "transactionCost": str(tx.fee),
        "type": tx.type.value,
        "description": tx.description,
        "date": tx.occurred_at.isoformat(),
        "status": tx.status.value,
        "smsHash": tx.sms_hash,
        "excludeFromWeekly": tx.exclude_from_weekly,
    }


@dataclass
class HttpSyncClient:
    base_url: str
    token: Optional[str] = None
    timeout: float = 10.0

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> None:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        data = json.dumps(payload).encode() if payload is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Content-Type", "application/json")
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")
        logger.debug("Sync ▶ %s %s", method, url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                resp.read()
        except (urllib.error.URLError, OSError) as exc:
            raise SyncError(f"{method} {url} failed: {exc}") from exc

    def upsert_transaction(self, tx: Transaction) -> None:
        self._request("PUT", f"transactions/{tx.id}", transaction_payload(tx))

    def delete_transaction(self, tx_id: int) -> None:
        self._request("DELETE", f"transactions/{tx_id}")


class SyncNotifier:
    """Runs sync calls on a background worker; failures are logged only.

    Local commits never wait on, or roll back because of, the remote side.
    """

    def __init__(self, client: Optional[SyncClient] = None, max_workers: int = 1):
        self.client = client
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sync")
            if client is not None
            else None
        )

    @property
    def enabled(self) -> bool:
        return self._executor is not None

    def _submit(self, label: str, fn, *args) -> Optional[Future]:
        if self._executor is None:
            return None
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError:
            logger.warning("Sync worker is shut down; dropping %s", label)
            return None
        future.add_done_callback(lambda f: self._report(label, f))
        return future

    @staticmethod
    def _report(label: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("Sync %s failed: %s", label, exc)

    def upsert(self, tx: Transaction) -> Optional[Future]:
        if self.client is None:
            return None
        return self._submit(f"upsert of transaction {tx.id}", self.client.upsert_transaction, tx)

    def delete(self, tx_id: int) -> Optional[Future]:
        if self.client is None:
            return None
        return self._submit(f"delete of transaction {tx_id}", self.client.delete_transaction, tx_id)

    def close(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def get_sync_client_from_config(config) -> Optional[SyncClient]:
    """Build the HTTP client when a sync URL is configured (env overrides)."""
    sync_cfg = config.get("sync") or {}
    url = os.getenv("PESALEDGER_SYNC_URL") or sync_cfg.get("url")
    if not url:
        return None
    token = os.getenv("PESALEDGER_SYNC_TOKEN") or sync_cfg.get("token")
    return HttpSyncClient(base_url=url, token=token, timeout=float(sync_cfg.get("timeout", 10.0)))
