# sms_ledger/cli.py
import functools
import logging
from datetime import date, datetime

import click
from dotenv import load_dotenv

from sms_ledger import database
from sms_ledger.config import load_config, save_config
from sms_ledger.core.models import SmsMessage
from sms_ledger.errors import LedgerError
from sms_ledger.ingest import IngestionEngine, IngestStatus
from sms_ledger.manual import commit_manual_transactions
from sms_ledger.outputs import get_output
from sms_ledger.sources import get_source
from sms_ledger.sync import SyncNotifier, get_sync_client_from_config
from sms_ledger.utils import parse_amount


def _iso(ctx, param, value):
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an ISO date/time")


def _day(ctx, param, value):
    parsed = _iso(ctx, param, value)
    return parsed.date() if parsed else None


def _ledger_errors(fn):
    """Report LedgerError as a clean CLI error instead of a traceback."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except LedgerError as exc:
            raise click.ClickException(str(exc))
    return wrapper


def _engine(ctx):
    obj = ctx.obj
    if 'engine' not in obj:
        cfg = obj['config']
        notifier = SyncNotifier(get_sync_client_from_config(cfg))
        obj['engine'] = IngestionEngine(cfg['db_path'], cfg, notifier=notifier)
        ctx.call_on_close(obj['engine'].close)
    return obj['engine']


def _wallet_by_name(engine, name):
    with database.open_db(engine.db_path, engine.timeout) as conn:
        wallet = database.find_wallet_by_name(conn, name)
    if wallet is None:
        raise click.ClickException(f"Unknown wallet: {name}")
    return wallet


def _describe(result):
    if result.status is IngestStatus.COMMITTED:
        tx = result.transaction
        line = (
            f"Committed #{tx.id} {tx.type.value} {tx.amount:.2f}"
            f" (fee {tx.fee:.2f}); balance {result.balance:.2f}"
        )
        if result.balance_mismatch:
            line += f" [SMS says {result.reported_balance:.2f}]"
        return line
    if result.status is IngestStatus.DUPLICATE:
        return f"Duplicate ({result.reason})"
    return f"{result.status.value.capitalize()}: {result.reason}"


@click.group()
@click.option(
    '--config', 'config_path',
    default='config.yaml',
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (built-in defaults when missing)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file with PESALEDGER_* settings such as the sync token'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides config and PESALEDGER_DB)'
)
@click.option(
    '--log-level',
    default=None,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    help='Logging verbosity (defaults to the config value)'
)
@click.pass_context
def main(ctx, config_path, env_file, db_path, log_level):
    """
    Turn mobile-money SMS notifications into wallet transactions and keep
    wallet balances in step with them.
    """
    if env_file:
        load_dotenv(env_file)

    try:
        cfg = load_config(config_path)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    if db_path:
        cfg['db_path'] = db_path

    logging.basicConfig(
        level=(log_level or cfg.get('log_level') or 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    ctx.obj = {'config': cfg, 'config_path': config_path}


@main.command()
@click.option('--write-config', is_flag=True, default=False,
              help='Also write the effective configuration to --config')
@click.pass_context
@_ledger_errors
def init(ctx, write_config):
    """Create the database and seed wallets and categories from config."""
    cfg = ctx.obj['config']
    created = database.seed_defaults(cfg['db_path'], cfg)
    if write_config:
        save_config(cfg, ctx.obj['config_path'])
        click.echo(f"Wrote {ctx.obj['config_path']}")
    click.echo(
        f"Initialised {cfg['db_path']}: {created['wallets']} wallet(s), "
        f"{created['categories']} categories, {created['items']} item(s) added."
    )


@main.command()
@click.option('--sender', required=True, help='Sender address, e.g. MPESA')
@click.option('--body', required=True, help='Raw SMS text')
@click.option('--received-at', callback=_iso, default=None,
              help='ISO receipt time (default: now)')
@click.pass_context
@_ledger_errors
def ingest(ctx, sender, body, received_at):
    """Ingest a single SMS."""
    engine = _engine(ctx)
    sms = SmsMessage(sender=sender, body=body, received_at=received_at or datetime.now())
    click.echo(_describe(engine.ingest(sms)))


@main.command()
@click.option('--file', 'file_path', required=True,
              type=click.Path(exists=True, dir_okay=False),
              help='Exported SMS history')
@click.option('--source', 'source_name', default='csv',
              help='SMS source reader configured under sms_sources')
@click.option('--since', callback=_iso, default=None,
              help='Only consider messages received after this ISO time')
@click.pass_context
@_ledger_errors
def backfill(ctx, file_path, source_name, since):
    """Catch up on SMS history newer than the last ingested message."""
    engine = _engine(ctx)
    cfg = ctx.obj['config']
    if source_name not in (cfg.get('sms_sources') or {}):
        raise click.ClickException(f"Unknown SMS source: {source_name}")
    try:
        messages = list(get_source(source_name, cfg).load(file_path))
    except (RuntimeError, ValueError) as exc:
        raise click.ClickException(str(exc))
    results = engine.backfill(messages, since=since)
    counts = {status: 0 for status in IngestStatus}
    for result in results:
        counts[result.status] += 1
    click.echo(
        f"Read {len(messages)} message(s): "
        + ", ".join(f"{counts[s]} {s.value}" for s in IngestStatus)
    )


@main.command()
@click.option('--file', 'file_path', required=True,
              type=click.Path(exists=True, dir_okay=False),
              help='YAML file of manual transactions')
@click.pass_context
@_ledger_errors
def manual(ctx, file_path):
    """Commit manually entered transactions."""
    engine = _engine(ctx)
    try:
        results = commit_manual_transactions(engine, file_path)
    except ValueError as exc:
        raise click.ClickException(f"Error loading manual transactions: {exc}")
    committed = sum(1 for r in results if r.committed)
    click.echo(f"Stored {committed} of {len(results)} manual transaction(s).")


@main.command('edit-amount')
@click.argument('tx_id', type=int)
@click.argument('new_amount')
@click.option('--old-amount', default=None, help='Expected current amount')
@click.pass_context
@_ledger_errors
def edit_amount(ctx, tx_id, new_amount, old_amount):
    """Change a transaction's amount and adjust its wallet."""
    try:
        balance = _engine(ctx).edit_amount(tx_id, new_amount, old_amount)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint='NEW_AMOUNT')
    click.echo(f"Transaction #{tx_id} updated; wallet balance {balance:.2f}")


@main.command('edit-fee')
@click.argument('tx_id', type=int)
@click.argument('new_fee')
@click.option('--old-fee', default=None, help='Expected current fee')
@click.pass_context
@_ledger_errors
def edit_fee(ctx, tx_id, new_fee, old_fee):
    """Correct a transaction's cost and adjust its wallet."""
    try:
        balance = _engine(ctx).edit_fee(tx_id, new_fee, old_fee)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint='NEW_FEE')
    click.echo(f"Transaction #{tx_id} fee updated; wallet balance {balance:.2f}")


@main.command()
@click.argument('tx_id', type=int)
@click.pass_context
@_ledger_errors
def delete(ctx, tx_id):
    """Delete a transaction (its wallet balance is left unchanged)."""
    result = _engine(ctx).delete(tx_id)
    click.echo(f"Deleted transaction #{tx_id}.")
    click.echo(f"Warning: {result.warning}", err=True)


@main.command()
@click.argument('tx_id', type=int)
@click.argument('item_id', type=int)
@click.pass_context
@_ledger_errors
def categorize(ctx, tx_id, item_id):
    """Link a transaction to a category item."""
    tx = _engine(ctx).categorize(tx_id, item_id)
    click.echo(f"Transaction #{tx.id} is {tx.status.value}")


@main.command()
@click.argument('tx_id', type=int)
@click.pass_context
@_ledger_errors
def uncategorize(ctx, tx_id):
    """Remove a transaction's category link."""
    tx = _engine(ctx).uncategorize(tx_id)
    click.echo(f"Transaction #{tx.id} is {tx.status.value}")


def _split_parts(ctx, param, values):
    pairs = []
    for value in values:
        item_id, sep, amount = value.partition('=')
        try:
            if not sep:
                raise ValueError(value)
            part = int(item_id), parse_amount(amount)
            if part[1] <= 0:
                raise ValueError(value)
        except ValueError:
            raise click.BadParameter(f"'{value}' is not ITEM_ID=AMOUNT")
        pairs.append(part)
    return pairs


@main.command()
@click.argument('tx_id', type=int)
@click.argument('parts', nargs=-1, required=True, callback=_split_parts)
@click.option('--name', default='', help='Label for the split')
@click.pass_context
@_ledger_errors
def split(ctx, tx_id, parts, name):
    """Divide a transaction across category items (ITEM_ID=AMOUNT ...)."""
    result = _engine(ctx).split(tx_id, parts, name=name)
    click.echo(f"Transaction #{tx_id} split into {len(result.items)} part(s) totalling {result.total:.2f}")


@main.command()
@click.argument('tx_id', type=int)
@click.option('--include', is_flag=True, default=False,
              help='Count the transaction in weekly totals again')
@click.pass_context
@_ledger_errors
def exclude(ctx, tx_id, include):
    """Leave a transaction out of weekly spending."""
    tx = _engine(ctx).set_excluded_from_weekly(tx_id, not include)
    state = 'excluded from' if tx.exclude_from_weekly else 'included in'
    click.echo(f"Transaction #{tx.id} {state} weekly totals")


@main.command()
@click.pass_context
@_ledger_errors
def wallets(ctx):
    """List wallets and their balances."""
    engine = _engine(ctx)
    with database.open_db(engine.db_path, engine.timeout) as conn:
        rows = database.list_wallets(conn)
    if not rows:
        click.echo("No wallets. Run 'pesaledger init' first.")
        return
    for w in rows:
        click.echo(f"{w.id:>3}  {w.name:<20} {w.sender_name:<8} {w.balance:>12.2f}")


@main.command()
@click.argument('wallet_name')
@click.option('--rebuild', is_flag=True, default=False,
              help='Overwrite the stored balance with the recomputed one')
@click.pass_context
@_ledger_errors
def reconcile(ctx, wallet_name, rebuild):
    """Compare a wallet's stored balance with its transaction history."""
    engine = _engine(ctx)
    wallet = _wallet_by_name(engine, wallet_name)
    report = engine.ledger.reconcile(wallet.id)
    click.echo(
        f"{wallet.name}: stored {report['stored']:.2f}, "
        f"computed {report['computed']:.2f}, drift {report['drift']:.2f}"
    )
    if rebuild and report['drift']:
        balance = engine.ledger.rebuild_balance(wallet.id)
        click.echo(f"Balance rebuilt to {balance:.2f}")


@main.command()
@click.option('--out', 'out_path', default=None, type=click.Path(dir_okay=False),
              help='CSV file to write (default: <output_dir>/Transactions<Year>.csv)')
@click.option('--start', callback=_day, default=None, help='First day (ISO)')
@click.option('--end', callback=_day, default=None, help='Last day (ISO)')
@click.option('--wallet', 'wallet_name', default=None, help='Only this wallet')
@click.pass_context
@_ledger_errors
def export(ctx, out_path, start, end, wallet_name):
    """Export committed transactions to CSV."""
    engine = _engine(ctx)
    cfg = dict(ctx.obj['config'])
    if out_path:
        cfg['output_path'] = out_path
    wallet_id = _wallet_by_name(engine, wallet_name).id if wallet_name else None
    txs = database.fetch_transactions(engine.db_path, start, end, wallet_id=wallet_id)
    with database.open_db(engine.db_path, engine.timeout) as conn:
        all_wallets = database.list_wallets(conn)
        items = database.list_category_items(conn)
    written = get_output('csv', cfg).append(txs, wallets=all_wallets, items=items)
    if written is None:
        click.echo("No transactions to write.")
    else:
        click.echo(f"Exported {len(txs)} transaction(s) to {written}")


@main.command()
@click.option('--start', callback=_day, default=None, help='First day (ISO)')
@click.option('--end', callback=_day, default=None, help='Last day (ISO)')
@click.pass_context
@_ledger_errors
def summary(ctx, start, end):
    """Spending by category."""
    db_path = _engine(ctx).db_path
    rows = database.summarize_by_category(db_path, start, end)
    if not rows:
        click.echo("No spending recorded.")
    for row in rows:
        click.echo(f"{row['category']:<20} {row['total']:>12.2f}  ({row['transactions']})")


@main.command('set-limit')
@click.argument('day', callback=_day)
@click.argument('amount')
@click.pass_context
@_ledger_errors
def set_limit(ctx, day: date, amount):
    """Set the spending limit for the Monday-to-Sunday week holding DAY."""
    try:
        limit = _engine(ctx).set_weekly_limit(day, amount)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint='AMOUNT')
    click.echo(
        f"Limit for {limit.week_start.isoformat()} to {limit.week_end.isoformat()}: "
        f"{limit.amount:.2f}"
    )


@main.command()
@click.argument('week_start', callback=_day)
@click.pass_context
@_ledger_errors
def weekly(ctx, week_start: date):
    """Spending for the seven days starting WEEK_START."""
    report = database.weekly_spending(_engine(ctx).db_path, week_start)
    click.echo(
        f"Week of {report['week_start']}: {report['total']:.2f} "
        f"across {report['transactions']} transaction(s)"
    )
    if report['limit'] is not None:
        state = "over" if report['over_budget'] else "under"
        click.echo(
            f"Limit {report['limit']:.2f}: {abs(report['difference']):.2f} {state} budget"
        )


if __name__ == '__main__':
    main()
