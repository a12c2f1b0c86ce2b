"""CLI error handling helpers."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import click

from conti.database.base import Database
from conti.domain.errors import DomainError, ImportAborted

T = TypeVar("T")


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def handle_import_error(ctx: click.Context, error: DomainError) -> None:
    """Render an aborted import with every row error, then exit with failure."""
    if isinstance(error, ImportAborted):
        click.echo(f"Error: {error.args[0]}", err=True)
        for row_error in error.errors:
            click.echo(f"  {row_error}", err=True)
        ctx.exit(1)
    handle_domain_error(ctx, error)


def run_async(ctx: click.Context, work: Callable[[Database], Awaitable[T]]) -> Any:
    """Run ``work`` on a fresh event loop against the command's database.

    The schema is created first and the engine is disposed afterwards, so
    every command owns its connections. Domain errors end the command with
    exit code 1.
    """
    db: Database = ctx.obj["db"]

    async def _main() -> T:
        await db.initialize_schema()
        try:
            return await work(db)
        finally:
            await db.disconnect()

    try:
        return asyncio.run(_main())
    except DomainError as e:
        handle_domain_error(ctx, e)
