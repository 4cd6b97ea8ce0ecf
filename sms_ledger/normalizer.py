"""Clean raw SMS text and attribute it to a known sender."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Union

from sms_ledger.core.models import NormalizedMessage, Rejected

_WHITESPACE = re.compile(r"\s+")
_SENDER_CLEAN = re.compile(r"[^A-Z0-9]")
# zero-width characters, BOM and soft hyphens some handsets leave behind
_ARTIFACTS = re.compile("[\u200b\u200c\u200d\u2060\ufeff\u00ad]")
_CURRENCY_FIGURE = re.compile(r"\b(?:ksh|kes)\s?\.?\s?\d", re.IGNORECASE)
_FAILED = re.compile(r"^\s*(?:failed|declined)\b", re.IGNORECASE)


def clean_text(raw_text: str) -> str:
    text = _ARTIFACTS.sub("", raw_text or "")
    text = text.replace("\u00a0", " ").replace("\u2019", "'")
    return _WHITESPACE.sub(" ", text).strip()


def _sender_key(value: str) -> str:
    return _SENDER_CLEAN.sub("", (value or "").upper())


def match_sender(sender_address: str, sender_names: Iterable[str]) -> str | None:
    """Return the wallet sender label that ``sender_address`` belongs to.

    Labels are compared with case and punctuation stripped, so ``M-PESA``
    matches ``MPESA``. Only whole-label matches count: ``FAKEMPESA`` or
    ``MPESAPROMO`` do not belong to ``MPESA``.
    """
    address = _sender_key(sender_address)
    if not address:
        return None
    for label in sorted({name for name in sender_names if _sender_key(name)}, key=len, reverse=True):
        if _sender_key(label) == address:
            return label
    return None


def normalize(
    raw_text: str,
    sender_address: str,
    sender_names: Iterable[str],
    received_at: datetime,
) -> Union[NormalizedMessage, Rejected]:
    """Return a :class:`NormalizedMessage` or a :class:`Rejected` marker.

    Messages from senders that are not attached to any wallet are rejected,
    as are messages that carry no money figure or report a failed
    transaction.
    """
    sender_name = match_sender(sender_address, sender_names)
    if sender_name is None:
        return Rejected(f"unrecognized sender '{sender_address}'")

    text = clean_text(raw_text)
    if not text:
        return Rejected("empty message")
    if _FAILED.search(text):
        return Rejected("failed transaction notice")
    if not _CURRENCY_FIGURE.search(text):
        return Rejected("no money figure in message")

    return NormalizedMessage(sender_name=sender_name, text=text, received_at=received_at)
