"""Transaction management commands."""

import asyncio
import contextlib

import click

from conti.cli.account_resolution import resolve_account
from conti.cli.date_filters import period_options, pop_period_flags, resolve_cli_date_range
from conti.cli.error_handling import handle_domain_error, run_async
from conti.cli.formatting import transaction_line
from conti.domain.account import AccountService
from conti.domain.entities import TransactionType
from conti.domain.identity import require_user
from conti.domain.transaction import TransactionService
from conti.utils.amount_parser import parse_amount
from conti.utils.date_parser import parse_date, start_of_day


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("add")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--amount", required=True, help="Signed amount (e.g. -50,00 or 1234.56)")
@click.option("--description", default="", help="Transaction description")
@click.option("--category", help="Category (defaults to 'Altro')")
@click.option("--date", "txn_date", default="today", help="Transaction date (YYYY-MM-DD, dd/mm/yyyy or relative)")
@click.option("--type", "txn_type", type=click.Choice([t.value for t in TransactionType]), help="Defaults to the amount's sign")
@click.option("--notes", help="Notes")
@click.pass_context
def add_transaction(ctx, account, amount, description, category, txn_date, txn_type, notes):
    """Add a transaction and update the account balance.

    Examples:
        conti transaction add --account "Conto Corrente" --amount -42,50 --description "Esselunga" --category Spesa
        conti transaction add --account 3f2a... --amount 1800 --date 27/01/2025 --category Stipendio
    """
    try:
        value = parse_amount(amount)
        when = start_of_day(parse_date(txn_date))
    except ValueError as e:
        handle_domain_error(ctx, e)

    async def work(db):
        identity = ctx.obj["identity"]
        account_id = await resolve_account(AccountService(db, identity), account)
        return await TransactionService(db, identity).add_transaction(
            account_id=account_id,
            amount=value,
            description=description,
            category=category,
            date=when,
            type=txn_type,
            notes=notes,
        )

    transaction_id = run_async(ctx, work)
    click.echo(f"Added transaction {transaction_id}")


@transaction_group.command("list")
@click.option("--account", help="Account name or ID")
@period_options
@click.pass_context
def list_transactions(ctx, account, start_date, end_date, **flags):
    """List transactions, newest first."""
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period_flags=pop_period_flags(flags)
    )

    async def work(db):
        identity = ctx.obj["identity"]
        account_id = None
        if account is not None:
            account_id = await resolve_account(AccountService(db, identity), account)
        return await TransactionService(db, identity).list_transactions(
            account_id=account_id, start=start, end=end
        )

    transactions = run_async(ctx, work)
    if not transactions:
        click.echo("No transactions found.")
        return
    for txn in transactions:
        click.echo(transaction_line(txn))
    click.echo(f"\n{len(transactions)} transaction{'s' if len(transactions) != 1 else ''}")


@transaction_group.command("delete")
@click.argument("transaction_id")
@click.pass_context
def delete_transaction(ctx, transaction_id: str):
    """Delete a transaction and reverse it on the account balance."""

    async def work(db):
        await TransactionService(db, ctx.obj["identity"]).delete_transaction(transaction_id)

    run_async(ctx, work)
    click.echo(f"Deleted transaction {transaction_id}")


@transaction_group.command("watch")
@click.option("--account", help="Account name or ID")
@click.option("--count", type=int, help="Stop after this many snapshots")
@click.option("--interval", type=float, default=1.0, show_default=True, help="Seconds between checks for changes made elsewhere")
@click.pass_context
def watch_transactions(ctx, account, count, interval):
    """Print the transaction list every time it changes (Ctrl-C to stop)."""

    async def work(db):
        identity = ctx.obj["identity"]
        account_id = None
        if account is not None:
            account_id = await resolve_account(AccountService(db, identity), account)
        received = 0
        # Writes come from other conti processes
        follower = asyncio.create_task(
            db.follow_external_commits(require_user(identity), interval=interval)
        )
        try:
            async with await TransactionService(db, identity).watch_transactions(account_id) as live:
                async for snapshot in live:
                    received += 1
                    click.echo(f"--- snapshot {received}: {len(snapshot)} transactions ---")
                    for txn in snapshot:
                        click.echo(transaction_line(txn))
                    if count is not None and received >= count:
                        break
        finally:
            follower.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await follower

    try:
        run_async(ctx, work)
    except KeyboardInterrupt:
        pass


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
