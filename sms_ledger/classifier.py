"""Map extracted fields onto a canonical transaction and wallet."""

from __future__ import annotations

from typing import Iterable

from sms_ledger.core.models import (
    ClassifiedTransaction,
    ExtractedFields,
    TransactionType,
    Wallet,
)
from sms_ledger.errors import WalletNotFound

_DISPLAY_NAMES = {"pochi la biashara": "Pochi"}

_DEFAULT_DESCRIPTIONS = {
    TransactionType.CREDIT: "Received to {wallet}",
    TransactionType.DEBIT: "Sent from {wallet}",
    TransactionType.TRANSFER: "{wallet} to {destination}",
}


def display_name(name: str) -> str:
    return _DISPLAY_NAMES.get(name.lower(), name) if name else name


def resolve_wallet(fields: ExtractedFields, wallets: Iterable[Wallet]) -> Wallet:
    candidates = sorted(
        (w for w in wallets if w.sender_name == fields.sender_name),
        key=lambda w: w.id,
    )
    if fields.wallet_name:
        wanted = fields.wallet_name.lower()
        candidates = [w for w in candidates if w.name.lower() == wanted]
    if not candidates:
        target = fields.wallet_name or "any wallet"
        raise WalletNotFound(
            f"No wallet '{target}' with sender name '{fields.sender_name}'"
        )
    return candidates[0]


def describe(fields: ExtractedFields, wallet: Wallet) -> str:
    names = {
        "wallet": display_name(wallet.name),
        "destination": display_name(fields.destination or fields.counterparty),
        "counterparty": fields.counterparty,
    }
    if fields.description:
        return fields.description.format(**names)
    if fields.tag is TransactionType.WITHDRAW:
        if fields.counterparty:
            return f"Withdrawn at {fields.counterparty}"
        return f"Withdrawn from {names['wallet']}"
    return _DEFAULT_DESCRIPTIONS[fields.tag].format(**names)


def classify(fields: ExtractedFields, wallets: Iterable[Wallet]) -> ClassifiedTransaction:
    """Resolve the wallet and build the transaction to be ingested.

    Raises :class:`WalletNotFound` if no wallet carries the message's sender
    name (and, where the pattern names one, the wallet name).
    """
    wallet = resolve_wallet(fields, wallets)
    return ClassifiedTransaction(
        type=fields.tag,
        wallet_id=wallet.id,
        amount=fields.amount,
        fee=fields.fee,
        description=describe(fields, wallet),
        occurred_at=fields.occurred_at,
        counterparty=fields.counterparty,
        reported_balance=fields.balance,
    )
