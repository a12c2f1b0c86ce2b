"""Statement import command."""

import click

from conti.cli.account_resolution import resolve_account
from conti.cli.error_handling import handle_import_error, run_async
from conti.domain.account import AccountService
from conti.domain.results import Err
from conti.domain.statement_import import ImportMode, StatementImportService


@click.command("import")
@click.argument("statement_file", type=click.Path())
@click.option("--account", required=True, help="Account name or ID")
@click.option(
    "--replace",
    is_flag=True,
    help="Delete every existing transaction of the account before importing",
)
@click.pass_context
def import_statement(ctx, statement_file: str, account: str, replace: bool):
    """Import transactions from a bank statement (.xlsx or .xls).

    Rows already imported into the account are skipped. If any row cannot
    be read, nothing is imported and every bad row is listed.
    """
    mode = ImportMode.REPLACE if replace else ImportMode.APPEND

    async def work(db):
        identity = ctx.obj["identity"]
        account_id = await resolve_account(AccountService(db, identity), account)
        return await StatementImportService(db, identity).import_statement(
            statement_file, account_id, mode=mode
        )

    result = run_async(ctx, work)
    if isinstance(result, Err):
        handle_import_error(ctx, result.error)
        return

    summary = result.value
    click.echo("\nImport complete:")
    click.echo(f"  Imported: {summary.imported} transactions")
    click.echo(f"  Skipped: {summary.skipped} already imported")
    click.echo(f"  Balance change: {summary.balance_delta:+,.2f}")


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_statement)
