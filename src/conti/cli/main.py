"""Main CLI entry point."""

import click

from conti.database.factories import create_sqlite_database
from conti.domain.identity import StaticIdentity
from conti.logging_config import configure_logging

# Import and register all commands at module level
from conti.cli.commands import (
    account,
    import_cmd,
    subscription,
    summary,
    transaction,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides CONTI_DB_PATH environment variable)",
    envvar="CONTI_DB_PATH",
)
@click.option(
    "--user",
    help="User the ledger belongs to (overrides CONTI_USER environment variable)",
    envvar="CONTI_USER",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (overrides CONTI_LOG_LEVEL environment variable)",
)
@click.pass_context
def cli(ctx, db_path: str | None, user: str | None, log_level: str | None):
    """Conti - Personal finance tracker.

    Keep account balances, transactions and recurring subscriptions, and
    import bank statements exported as .xlsx or .xls spreadsheets.
    """
    ctx.ensure_object(dict)
    configure_logging(level=log_level)

    # Initialize the database only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        ctx.obj["db"] = create_sqlite_database(database_path=db_path)
        ctx.obj["identity"] = StaticIdentity(user)


# Register all commands
account.register_commands(cli)
transaction.register_commands(cli)
import_cmd.register_commands(cli)
subscription.register_commands(cli)
summary.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
