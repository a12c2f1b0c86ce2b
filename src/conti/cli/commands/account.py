"""Account management commands."""

import click

from conti.cli.account_resolution import resolve_account
from conti.cli.error_handling import handle_domain_error, run_async
from conti.cli.formatting import account_line, format_money
from conti.domain.account import AccountService
from conti.domain.entities import AccountType
from conti.utils.amount_parser import parse_amount

ACCOUNT_TYPES = [t.value for t in AccountType]


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--type", "account_type", type=click.Choice(ACCOUNT_TYPES), default="other", show_default=True)
@click.option("--initial-balance", default="0", help="Opening balance (e.g. 1.234,56 or 1234.56)")
@click.option("--currency", default="EUR", show_default=True)
@click.option("--iban", help="IBAN of the account")
@click.pass_context
def create_account(ctx, name: str, account_type: str, initial_balance: str, currency: str, iban: str | None):
    """Create a new account.

    Examples:
        conti account create "Conto Corrente" --type primary-bank --initial-balance 1500
        conti account create "Carta Prepagata" --type card-wallet
    """
    try:
        opening = parse_amount(initial_balance)
    except ValueError as e:
        handle_domain_error(ctx, e)

    async def work(db):
        service = AccountService(db, ctx.obj["identity"])
        return await service.create_account(
            name=name, type=account_type, initial_balance=opening, currency=currency, iban=iban
        )

    account_id = run_async(ctx, work)
    click.echo(f"Created account '{name}' (ID: {account_id})")


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts."""

    async def work(db):
        return await AccountService(db, ctx.obj["identity"]).list_accounts()

    accounts = run_async(ctx, work)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 80)
    for acc in accounts:
        click.echo(account_line(acc))


@account_group.command("update")
@click.argument("account", metavar="ACCOUNT")
@click.option("--name", help="New account name")
@click.option("--type", "account_type", type=click.Choice(ACCOUNT_TYPES))
@click.option("--currency")
@click.option("--iban", help="New IBAN (empty string to clear)")
@click.pass_context
def update_account(ctx, account: str, name, account_type, currency, iban) -> None:
    """Update account details.

    ACCOUNT can be an account name or ID. The balance cannot be edited;
    use 'account reconcile' to recompute it.
    """
    changes = {
        key: value
        for key, value in (("name", name), ("type", account_type), ("currency", currency), ("iban", iban))
        if value is not None
    }
    if not changes:
        click.echo("Error: Nothing to update", err=True)
        ctx.exit(1)

    async def work(db):
        service = AccountService(db, ctx.obj["identity"])
        account_id = await resolve_account(service, account)
        await service.update_account(account_id, **changes)

    run_async(ctx, work)
    click.echo(f"Updated account '{account}'")


@account_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option("--cascade", is_flag=True, help="Also delete the account's transactions and subscriptions")
@click.pass_context
def delete_account(ctx, account: str, cascade: bool) -> None:
    """Delete an account.

    ACCOUNT can be an account name or ID. Without --cascade its
    transactions and subscriptions are kept.

    Examples:
        conti account delete "Carta Prepagata"
        conti account delete 3f2a... --cascade
    """

    async def work(db):
        service = AccountService(db, ctx.obj["identity"])
        account_id = await resolve_account(service, account)
        await service.delete_account(account_id, cascade=cascade)

    run_async(ctx, work)
    suffix = " with its transactions and subscriptions" if cascade else ""
    click.echo(f"Deleted account '{account}'{suffix}")


@account_group.command("reconcile")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def reconcile_account(ctx, account: str) -> None:
    """Recompute an account balance from its transactions."""

    async def work(db):
        service = AccountService(db, ctx.obj["identity"])
        account_id = await resolve_account(service, account)
        balance = await service.reconcile_balance(account_id)
        acc = await service.get_account(account_id)
        return balance, acc.currency if acc else "EUR"

    balance, currency = run_async(ctx, work)
    click.echo(f"Balance of '{account}': {format_money(balance, currency)}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
