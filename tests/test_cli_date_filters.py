"""Tests for CLI date filter helper."""

from datetime import date, datetime

import click
import pytest

from conti.cli.date_filters import PERIODS, pop_period_flags, resolve_cli_date_range
from conti.utils.date_parser import end_of_day, get_date_range, start_of_day


def _ctx() -> click.Context:
    return click.Context(click.Command("test"))


def test_resolve_cli_date_range_rejects_multiple_periods(capsys):
    period_flags = {"this-month": True, "last-month": True}

    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date=None,
            end_date=None,
            period_flags=period_flags,
        )

    assert excinfo.value.exit_code == 1
    err = capsys.readouterr().err
    assert "Only one period option" in err


def test_resolve_cli_date_range_rejects_period_with_start_end(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date="2024-01-01",
            end_date=None,
            period_flags={"this-month": True},
        )

    assert excinfo.value.exit_code == 1
    assert "cannot be combined" in capsys.readouterr().err


def test_resolve_cli_date_range_returns_period_range():
    expected_start, expected_end = get_date_range("this-month")

    start, end = resolve_cli_date_range(
        _ctx(),
        start_date=None,
        end_date=None,
        period_flags={"this-month": True},
    )

    assert start == start_of_day(expected_start)
    assert end == end_of_day(expected_end)


def test_resolve_cli_date_range_parses_explicit_dates():
    start, end = resolve_cli_date_range(
        _ctx(),
        start_date="2024-01-02",
        end_date="05/01/2024",
        period_flags={},
    )

    assert start == datetime(2024, 1, 2)
    assert end.date() == date(2024, 1, 5)
    assert end > datetime(2024, 1, 5, 23, 59)


def test_resolve_cli_date_range_applies_default_range():
    start, end = resolve_cli_date_range(
        _ctx(),
        start_date=None,
        end_date=None,
        period_flags={},
        default_range=(date(2020, 1, 1), date(2020, 1, 31)),
    )

    assert start == datetime(2020, 1, 1)
    assert end.date() == date(2020, 1, 31)


def test_resolve_cli_date_range_no_default_range():
    start, end = resolve_cli_date_range(_ctx(), start_date=None, end_date=None, period_flags={})

    assert start is None
    assert end is None


def test_resolve_cli_date_range_open_ended():
    start, end = resolve_cli_date_range(_ctx(), start_date="2024-03-01", end_date=None)

    assert start == datetime(2024, 3, 1)
    assert end is None


def test_resolve_cli_date_range_invalid_start_date(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date="not-a-date",
            end_date=None,
            period_flags={},
        )

    assert excinfo.value.exit_code == 1
    assert "Invalid start date" in capsys.readouterr().err


def test_pop_period_flags():
    params = {"account": "x", "this_month": True, "last_year": False, "this_week": False}

    flags = pop_period_flags(params)

    assert params == {"account": "x"}
    assert set(flags) == set(PERIODS)
    assert flags["this-month"] is True
    assert flags["last-week"] is False
