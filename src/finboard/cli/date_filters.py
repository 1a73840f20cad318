"""CLI helpers for date range resolution."""

import functools
from datetime import date

import click

from finboard.domain.analytics import DateRange
from finboard.utils.date_parser import parse_date

PERIODS = ("this-month", "this-year", "this-week", "last-month", "last-year", "last-week")


def period_options(command):
    """Add ``--start-date``/``--end-date`` and one flag per named period.

    The flags reach the command as a single ``periods`` tuple.
    """

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        kwargs["periods"] = tuple(p for p in PERIODS if kwargs.pop(p.replace("-", "_")))
        return command(*args, **kwargs)

    for period in reversed(PERIODS):
        wrapper = click.option(
            f"--{period}", is_flag=True, help=f"Limit to {period.replace('-', ' ')}"
        )(wrapper)
    wrapper = click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today')")(wrapper)
    wrapper = click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'last month')")(wrapper)
    return wrapper


def resolve_cli_date_range(
    ctx: click.Context,
    *,
    start_date: str | None,
    end_date: str | None,
    periods: tuple[str, ...] = (),
    default_period: str | None = None,
    today: date | None = None,
) -> DateRange | None:
    """Resolve a CLI date range from a period flag or explicit dates.

    Returns None when nothing was given and there is no default period.
    """
    if len(periods) > 1:
        click.echo(
            f"Error: Only one period option ({', '.join('--' + p for p in PERIODS)}) "
            "can be specified at a time.",
            err=True,
        )
        ctx.exit(1)

    if periods and (start_date or end_date):
        click.echo(
            "Error: Period options (--this-month, --this-year, etc.) cannot be combined "
            "with --start-date or --end-date.",
            err=True,
        )
        ctx.exit(1)

    if periods:
        return DateRange.for_period(periods[0], today=today)

    if start_date or end_date:
        try:
            start = parse_date(start_date) if start_date else date.min
            end = parse_date(end_date) if end_date else (today or date.today())
        except ValueError as e:
            click.echo(f"Error: Invalid date: {e}", err=True)
            ctx.exit(1)
        try:
            return DateRange(start, end)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)

    if default_period is not None:
        return DateRange.for_period(default_period, today=today)
    return None
