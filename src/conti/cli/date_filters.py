"""CLI helpers for date range resolution."""

from datetime import date, datetime

import click

from conti.utils.date_parser import end_of_day, get_date_range, parse_date, start_of_day

PERIODS = ("this-month", "this-year", "this-week", "last-month", "last-year", "last-week")


def period_options(command):
    """Add --start-date/--end-date and one flag per period to a command.

    The flags arrive in the command as booleans named after the period
    (``this_month``, ``last_year``, ...).
    """
    for period in reversed(PERIODS):
        command = click.option(
            f"--{period}",
            period.replace("-", "_"),
            is_flag=True,
            help=f"Filter to {period.replace('-', ' ')}",
        )(command)
    command = click.option("--end-date", help="End date (YYYY-MM-DD, dd/mm/yyyy or relative)")(command)
    command = click.option("--start-date", help="Start date (YYYY-MM-DD, dd/mm/yyyy or relative)")(command)
    return command


def pop_period_flags(params: dict) -> dict[str, bool]:
    """Remove the period flags from ``params`` and return them keyed by period."""
    return {period: params.pop(period.replace("-", "_"), False) for period in PERIODS}


def resolve_cli_date_range(
    ctx,
    *,
    start_date: str | None,
    end_date: str | None,
    period_flags: dict[str, bool] | None = None,
    default_range: tuple[date, date] | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Resolve CLI date range from period flags or explicit dates.

    Returns day-inclusive bounds: start at midnight, end at the last instant
    of its day.
    """
    periods = [period for period, is_set in (period_flags or {}).items() if is_set]

    if len(periods) > 1:
        click.echo(
            "Error: Only one period option (--this-month, --this-year, --this-week, --last-month, --last-year, --last-week) can be specified at a time.",
            err=True,
        )
        ctx.exit(1)

    if periods and (start_date or end_date):
        click.echo(
            "Error: Period options (--this-month, --this-year, etc.) cannot be combined with --start-date or --end-date.",
            err=True,
        )
        ctx.exit(1)

    start = None
    end = None

    if periods:
        start, end = get_date_range(periods[0])
    else:
        if start_date:
            try:
                start = parse_date(start_date)
            except ValueError as e:
                click.echo(f"Error: Invalid start date: {e}", err=True)
                ctx.exit(1)

        if end_date:
            try:
                end = parse_date(end_date)
            except ValueError as e:
                click.echo(f"Error: Invalid end date: {e}", err=True)
                ctx.exit(1)

        if start is None and end is None and default_range is not None:
            start, end = default_range

    return (
        start_of_day(start) if start is not None else None,
        end_of_day(end) if end is not None else None,
    )
