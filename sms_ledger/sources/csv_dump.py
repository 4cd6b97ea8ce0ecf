# sms_ledger/sources/csv_dump.py
import logging

import pandas as pd

from sms_ledger.core.models import SmsMessage
from sms_ledger.sources.base import BaseSource

logger = logging.getLogger(__name__)

_SENDER_FRAGMENTS = ('address', 'sender')
_BODY_FRAGMENTS = ('body', 'message', 'text')
_DATE_FRAGMENTS = ('date', 'time', 'received')


def _parse_received(stamp):
    """ISO timestamp as naive local time."""
    parsed = pd.to_datetime(stamp).to_pydatetime()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class CsvDumpSource(BaseSource):
    """Reads an SMS inbox dump such as those written by SMS backup apps."""

    def load(self, file_path):
        # 1. Detect header row (exports may start with a title line)
        header_row = None
        with open(file_path, encoding='utf-8') as f:
            for idx, line in enumerate(f):
                low = line.lower()
                if all(
                    any(frag in low for frag in fragments)
                    for fragments in (_SENDER_FRAGMENTS, _BODY_FRAGMENTS, _DATE_FRAGMENTS)
                ):
                    header_row = idx
                    break
        if header_row is None:
            raise RuntimeError(f"Could not locate header row in {file_path}")

        # 2. Read with that header
        df = pd.read_csv(
            file_path,
            skiprows=header_row,
            header=0,
            dtype=str,
            keep_default_na=False,
        )

        # 3. Column lookup
        cols = {str(c).strip().lower(): c for c in df.columns}

        def find(fragments):
            for frag in fragments:
                if frag in cols:
                    return cols[frag]
            for frag in fragments:
                match = next((orig for low, orig in cols.items() if frag in low), None)
                if match is not None:
                    return match
            return None

        sender_col = find(_SENDER_FRAGMENTS)
        body_col = find(_BODY_FRAGMENTS)
        date_col = find(_DATE_FRAGMENTS)

        for name, col in (('sender', sender_col), ('body', body_col), ('date', date_col)):
            if col is None:
                raise RuntimeError(f"Missing required column '{name}' in {file_path}")

        # 4. Parse & yield; rows without a body or timestamp are not messages
        for idx, row in df.iterrows():
            sender = str(row[sender_col]).strip()
            body = str(row[body_col])
            stamp = str(row[date_col]).strip()
            if not body.strip() or not stamp:
                continue
            if stamp.isdigit():
                # Android exports epoch milliseconds
                yield SmsMessage.from_epoch_millis(sender, body, int(stamp))
                continue
            try:
                received_at = _parse_received(stamp)
            except (ValueError, OverflowError):
                logger.warning("Skipping row %s of %s: bad date %r", idx, file_path, stamp)
                continue
            yield SmsMessage(sender=sender, body=body, received_at=received_at)
