import json
import logging
import urllib.error
from datetime import datetime
from decimal import Decimal

import pytest

from sms_ledger import sync
from sms_ledger.core.models import Transaction, TransactionType
from sms_ledger.errors import SyncError
from sms_ledger.sync import (
    HttpSyncClient,
    SyncNotifier,
    get_sync_client_from_config,
    transaction_payload,
)

TX = Transaction(
    wallet_id=1,
    amount=Decimal('100.00'),
    type=TransactionType.DEBIT,
    occurred_at=datetime(2023, 12, 15, 14, 30),
    description='Sent from M-Pesa',
    sms_hash='abc',
    id=7,
)


class FakeResponse:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self):
        return b'{}'


def test_transaction_payload():
    payload = transaction_payload(TX)
    assert payload['id'] == 7
    assert payload['amount'] == '100.00'
    assert payload['transactionCost'] == '0.00'
    assert payload['type'] == 'DEBIT'
    assert payload['date'] == '2023-12-15T14:30:00'
    assert payload['status'] == 'UNCATEGORIZED'


def test_http_client_sends_authorized_json(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured['req'] = req
        captured['timeout'] = timeout
        return FakeResponse()

    monkeypatch.setattr(sync.urllib.request, 'urlopen', fake_urlopen)
    client = HttpSyncClient('https://sync.example/api/', token='s3cret', timeout=3)
    client.upsert_transaction(TX)

    req = captured['req']
    assert req.full_url == 'https://sync.example/api/transactions/7'
    assert req.get_method() == 'PUT'
    assert req.get_header('Authorization') == 'Bearer s3cret'
    assert json.loads(req.data)['smsHash'] == 'abc'
    assert captured['timeout'] == 3


def test_http_client_wraps_network_errors(monkeypatch):
    def fail(req, timeout):
        raise urllib.error.URLError('connection refused')

    monkeypatch.setattr(sync.urllib.request, 'urlopen', fail)
    with pytest.raises(SyncError):
        HttpSyncClient('https://sync.example').delete_transaction(7)


def test_disabled_notifier_is_a_no_op():
    notifier = SyncNotifier()
    assert not notifier.enabled
    assert notifier.upsert(TX) is None
    assert notifier.delete(7) is None
    notifier.close()
    assert notifier.upsert(TX) is None


def test_notifier_logs_failures(caplog):
    class Broken:
        def upsert_transaction(self, tx):
            raise SyncError('boom')

        def delete_transaction(self, tx_id):
            pass

    notifier = SyncNotifier(Broken())
    with caplog.at_level(logging.WARNING, logger='sms_ledger.sync'):
        future = notifier.upsert(TX)
        notifier.close()
    assert isinstance(future.exception(), SyncError)
    assert any('boom' in r.message for r in caplog.records)


def test_notifier_after_close_drops_calls(caplog):
    class Quiet:
        def upsert_transaction(self, tx):
            pass

        def delete_transaction(self, tx_id):
            pass

    notifier = SyncNotifier(Quiet())
    notifier.close()
    with caplog.at_level(logging.WARNING, logger='sms_ledger.sync'):
        assert notifier.delete(7) is None
    assert any('dropping' in r.message for r in caplog.records)


def test_client_from_config_and_env(monkeypatch):
    assert get_sync_client_from_config({'sync': {'url': None}}) is None

    client = get_sync_client_from_config({'sync': {'url': 'https://a', 'token': 't', 'timeout': 4}})
    assert (client.base_url, client.token, client.timeout) == ('https://a', 't', 4.0)

    monkeypatch.setenv('PESALEDGER_SYNC_URL', 'https://b')
    monkeypatch.setenv('PESALEDGER_SYNC_TOKEN', 'envtoken')
    client = get_sync_client_from_config({})
    assert (client.base_url, client.token) == ('https://b', 'envtoken')
