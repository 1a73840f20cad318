"""Tests for CLI date filter helper."""

from datetime import date, datetime, time

import click
import pytest

from finboard.cli.date_filters import period_options, resolve_cli_date_range
from finboard.domain.analytics import DateRange


def _ctx() -> click.Context:
    return click.Context(click.Command("test"))


def test_resolve_cli_date_range_rejects_multiple_periods(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date=None,
            end_date=None,
            periods=("this-month", "last-month"),
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
            periods=("this-month",),
        )

    assert excinfo.value.exit_code == 1
    err = capsys.readouterr().err
    assert "cannot be combined" in err


def test_resolve_cli_date_range_returns_period_range():
    result = resolve_cli_date_range(
        _ctx(),
        start_date=None,
        end_date=None,
        periods=("last-month",),
        today=date(2024, 3, 15),
    )

    assert result == DateRange(date(2024, 2, 1), date(2024, 2, 29))


def test_resolve_cli_date_range_parses_explicit_dates():
    result = resolve_cli_date_range(
        _ctx(),
        start_date="2024-01-01",
        end_date="2024-01-31",
    )

    assert result.start == datetime.combine(date(2024, 1, 1), time.min)
    assert result.end == datetime.combine(date(2024, 1, 31), time.max)


def test_resolve_cli_date_range_applies_default_period():
    result = resolve_cli_date_range(
        _ctx(),
        start_date=None,
        end_date=None,
        default_period="this-month",
        today=date(2024, 5, 20),
    )

    assert result.start_date == date(2024, 5, 1)
    assert result.end_date == date(2024, 5, 20)


def test_resolve_cli_date_range_no_default_range():
    assert resolve_cli_date_range(_ctx(), start_date=None, end_date=None) is None


def test_resolve_cli_date_range_invalid_start_date(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date="not-a-date",
            end_date=None,
        )

    assert excinfo.value.exit_code == 1
    assert "Invalid date" in capsys.readouterr().err


def test_resolve_cli_date_range_start_after_end(capsys):
    with pytest.raises(click.exceptions.Exit):
        resolve_cli_date_range(_ctx(), start_date="2024-02-01", end_date="2024-01-01")

    assert "after end" in capsys.readouterr().err


def test_period_options_collects_flags(cli_runner):
    @click.command()
    @period_options
    def show(start_date, end_date, periods):
        click.echo(f"{start_date}|{end_date}|{','.join(periods)}")

    result = cli_runner.invoke(show, ["--last-week"])
    assert result.exit_code == 0
    assert result.output.strip() == "None|None|last-week"

    result = cli_runner.invoke(show, ["--start-date", "2024-01-01"])
    assert result.output.strip() == "2024-01-01|None|"
