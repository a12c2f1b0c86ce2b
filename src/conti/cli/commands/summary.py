"""Summary commands."""

from datetime import date

import click

from conti.cli.date_filters import period_options, pop_period_flags, resolve_cli_date_range
from conti.cli.error_handling import run_async
from conti.domain.summary import GRANULARITIES, SummaryService, month_bounds


@click.group()
def summary_group():
    """Totals and statistics."""
    pass


@summary_group.command("categories")
@period_options
@click.pass_context
def category_totals(ctx, start_date, end_date, **flags):
    """Show signed totals per category (current month by default)."""
    start, end = resolve_cli_date_range(
        ctx,
        start_date=start_date,
        end_date=end_date,
        period_flags=pop_period_flags(flags),
        default_range=tuple(d.date() for d in month_bounds(date.today())),
    )

    async def work(db):
        return await SummaryService(db, ctx.obj["identity"]).get_total_by_category(start, end)

    totals = run_async(ctx, work)
    if not totals:
        click.echo("No transactions in range.")
        return
    # Largest absolute amount first, then by name
    for category, total in sorted(totals.items(), key=lambda item: (-abs(item[1]), item[0])):
        click.echo(f"{category:20s} {total:>12,.2f}")
    click.echo("-" * 33)
    click.echo(f"{'Total':20s} {sum(totals.values()):>12,.2f}")


@summary_group.command("periods")
@period_options
@click.option("--granularity", type=click.Choice(GRANULARITIES), default="month", show_default=True)
@click.pass_context
def period_totals(ctx, start_date, end_date, granularity, **flags):
    """Show category totals per month or year."""
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period_flags=pop_period_flags(flags)
    )

    async def work(db):
        return await SummaryService(db, ctx.obj["identity"]).get_totals_by_period(
            start, end, granularity=granularity
        )

    periods = run_async(ctx, work)
    if not periods:
        click.echo("No transactions in range.")
        return
    for period, totals in periods.items():
        click.echo(f"\n{period}")
        for category, total in sorted(totals.items()):
            click.echo(f"  {category:20s} {total:>12,.2f}")


@summary_group.command("month")
@click.option("--month", "month_str", help="Month as YYYY-MM (defaults to the current month)")
@click.pass_context
def month_stats(ctx, month_str: str | None):
    """Show income, expenses and subscription cost for a month."""
    reference = date.today()
    if month_str:
        try:
            year, month = (int(part) for part in month_str.split("-"))
            reference = date(year, month, 1)
        except ValueError:
            click.echo(f"Error: Invalid month '{month_str}' (expected YYYY-MM)", err=True)
            ctx.exit(1)

    async def work(db):
        service = SummaryService(db, ctx.obj["identity"])
        return (
            await service.get_monthly_stats(reference),
            await service.get_subscription_cost_summary(),
        )

    stats, costs = run_async(ctx, work)
    click.echo(f"\n{reference:%Y-%m}")
    click.echo(f"  Income:       {stats.income:>12,.2f}")
    click.echo(f"  Expenses:     {stats.expenses:>12,.2f}")
    click.echo(f"  Net:          {stats.net:>12,.2f}")
    click.echo(f"  Transactions: {stats.count:>12d}")
    click.echo(
        f"  Subscriptions: {costs.active_count} active, "
        f"{costs.monthly_total:,.2f}/month, {costs.annual_total:,.2f}/year"
    )


def register_commands(cli):
    """Register summary commands with main CLI."""
    cli.add_command(summary_group, name="summary")
