import csv

import yaml
from click.testing import CliRunner

from conftest import AIRTIME_SMS, EXAMPLE_SMS, RECEIVED_SMS
from sms_ledger.cli import main as cli


def write_config(tmp_path):
    cfg = {
        'wallets': [
            {'name': 'M-Pesa', 'sender': 'MPESA', 'balance': 1600},
            {'name': 'Cash', 'sender': 'CASH', 'balance': 0},
        ],
        'output_dir': str(tmp_path / 'data'),
    }
    path = tmp_path / 'config.yaml'
    with open(path, 'w') as f:
        yaml.safe_dump(cfg, f)
    return path


def run(tmp_path, *args):
    db = tmp_path / 'ledger.db'
    runner = CliRunner()
    return runner.invoke(
        cli, ['--config', str(write_config(tmp_path)), '--db', str(db), *args]
    )


def ready(tmp_path):
    res = run(tmp_path, 'init')
    assert res.exit_code == 0, res.output
    return res


def test_init_seeds_wallets(tmp_path):
    res = ready(tmp_path)
    assert '2 wallet(s)' in res.output

    res = run(tmp_path, 'wallets')
    assert res.exit_code == 0, res.output
    assert 'M-Pesa' in res.output
    assert '1600.00' in res.output


def test_ingest_example(tmp_path):
    ready(tmp_path)
    res = run(tmp_path, 'ingest', '--sender', 'MPESA', '--body', EXAMPLE_SMS,
              '--received-at', '2023-12-15T14:31:00')
    assert res.exit_code == 0, res.output
    assert 'Committed #1 DEBIT 100.00' in res.output
    assert 'balance 1500.00' in res.output

    res = run(tmp_path, 'ingest', '--sender', 'MPESA', '--body', EXAMPLE_SMS)
    assert 'Duplicate' in res.output


def test_ingest_bad_received_at(tmp_path):
    ready(tmp_path)
    res = run(tmp_path, 'ingest', '--sender', 'MPESA', '--body', EXAMPLE_SMS,
              '--received-at', 'last tuesday')
    assert res.exit_code != 0


def test_edit_delete_and_reconcile(tmp_path):
    ready(tmp_path)
    run(tmp_path, 'ingest', '--sender', 'MPESA', '--body', EXAMPLE_SMS)

    res = run(tmp_path, 'edit-amount', '1', '150')
    assert res.exit_code == 0, res.output
    assert 'balance 1450.00' in res.output

    res = run(tmp_path, 'edit-fee', '1', '5', '--old-fee', '3')
    assert res.exit_code != 0
    assert 'fee is 0.00' in res.output

    res = run(tmp_path, 'delete', '1')
    assert res.exit_code == 0, res.output
    assert 'does not restore the wallet balance' in res.output

    res = run(tmp_path, 'reconcile', 'm-pesa', '--rebuild')
    assert res.exit_code == 0, res.output
    assert 'drift -150.00' in res.output
    assert 'Balance rebuilt to 1600.00' in res.output


def test_missing_transaction_is_a_clean_error(tmp_path):
    ready(tmp_path)
    res = run(tmp_path, 'delete', '42')
    assert res.exit_code == 1
    assert 'Transaction 42 not found' in res.output


def test_categorize_and_exclude(tmp_path):
    ready(tmp_path)
    run(tmp_path, 'ingest', '--sender', 'MPESA', '--body', AIRTIME_SMS)

    res = run(tmp_path, 'uncategorize', '1')
    assert 'UNCATEGORIZED' in res.output
    res = run(tmp_path, 'categorize', '1', '1')
    assert res.exit_code == 0, res.output
    assert 'CATEGORIZED' in res.output

    res = run(tmp_path, 'exclude', '1')
    assert 'excluded from weekly totals' in res.output
    res = run(tmp_path, 'weekly', '2023-12-17')
    assert '0.00 across 0 transaction(s)' in res.output
    res = run(tmp_path, 'exclude', '1', '--include')
    assert 'included in weekly totals' in res.output
    res = run(tmp_path, 'weekly', '2023-12-17')
    assert '50.00 across 1 transaction(s)' in res.output


def test_backfill_and_export(tmp_path):
    ready(tmp_path)
    dump = tmp_path / 'sms.csv'
    with open(dump, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['address', 'body', 'date'])
        writer.writerow(['MPESA', EXAMPLE_SMS, '2023-12-15T14:31:00'])
        writer.writerow(['MPESA', RECEIVED_SMS, '2023-12-16T09:16:00'])
        writer.writerow(['Safaricom', 'Ksh10 bonus airtime!', '2023-12-16T10:00:00'])

    res = run(tmp_path, 'backfill', '--file', str(dump), '--since', '2023-12-01')
    assert res.exit_code == 0, res.output
    assert '2 committed, 0 duplicate, 1 rejected, 0 failed' in res.output

    out = tmp_path / 'export.csv'
    res = run(tmp_path, 'export', '--out', str(out))
    assert res.exit_code == 0, res.output
    with open(out) as f:
        rows = list(csv.DictReader(f))
    assert [r['amount'] for r in rows] == ['100.00', '500.00']
    assert rows[0]['wallet'] == 'M-Pesa'
    assert rows[1]['type'] == 'CREDIT'

    res = run(tmp_path, 'summary')
    assert 'Uncategorized' in res.output


def test_manual_command(tmp_path):
    ready(tmp_path)
    manual = tmp_path / 'manual.yaml'
    manual.write_text(
        """\
- wallet: Cash
  amount: 300
  type: DEBIT
  date: 2024-05-04
  description: Market
"""
    )
    res = run(tmp_path, 'manual', '--file', str(manual))
    assert res.exit_code == 0, res.output
    assert 'Stored 1 of 1 manual transaction(s).' in res.output

    res = run(tmp_path, 'wallets')
    assert '-300.00' in res.output


def test_split_and_weekly_limit(tmp_path):
    ready(tmp_path)
    run(tmp_path, 'ingest', '--sender', 'MPESA', '--body', EXAMPLE_SMS)

    res = run(tmp_path, 'split', '1', '1=60', '2=40')
    assert res.exit_code == 0, res.output
    assert 'split into 2 part(s) totalling 100.00' in res.output

    res = run(tmp_path, 'split', '1', '1=60')
    assert res.exit_code == 1
    assert 'add up to 60.00' in res.output

    res = run(tmp_path, 'split', '1', '1=abc')
    assert res.exit_code == 2

    res = run(tmp_path, 'set-limit', '2023-12-13', '80')
    assert res.exit_code == 0, res.output
    assert 'Limit for 2023-12-11 to 2023-12-17: 80.00' in res.output

    res = run(tmp_path, 'weekly', '2023-12-11')
    assert '100.00 across 1 transaction(s)' in res.output
    assert 'Limit 80.00: 20.00 over budget' in res.output

    res = run(tmp_path, 'set-limit', '--', '2023-12-13', '-5')
    assert res.exit_code == 2
