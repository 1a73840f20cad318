"""Summary command."""

from datetime import date

import click
from finboard.cli.account_resolution import resolve_account_or_exit, resolve_category_or_exit
from finboard.cli.date_filters import period_options, resolve_cli_date_range
from finboard.domain.account import AccountService
from finboard.domain.analytics import AnalyticsService, PeriodSummary, UNDEFINED
from finboard.domain.category import CategoryService
from finboard.utils.amount_parser import format_currency


def _format_variation(variation) -> str:
    if variation is UNDEFINED:
        return str(variation)
    return f"{variation:+.2f}%"


def _display_summary(summary: PeriodSummary) -> None:
    click.echo(f"{'Income':<20} {format_currency(summary.income):>20}")
    click.echo(f"{'Expenses':<20} {format_currency(summary.expenses):>20}")
    click.echo(f"{'Net':<20} {format_currency(summary.total):>20}")
    click.echo(f"{'Transactions':<20} {summary.count:>20}")


@click.command("summary")
@period_options
@click.option("--account", help="Account name or ID")
@click.option("--category", help="Category name or ID")
@click.option("--include-transfers", is_flag=True, help="Count transfers and investment movements")
@click.option("--compare", is_flag=True, help="Compare with the same-length range just before")
@click.option("--breakdown", is_flag=True, help="Show expenses per category")
@click.pass_context
def summary(
    ctx,
    start_date: str | None,
    end_date: str | None,
    periods: tuple[str, ...],
    account: str | None,
    category: str | None,
    include_transfers: bool,
    compare: bool,
    breakdown: bool,
):
    """Show income, expenses and net for a date range (default: this month).

    Examples:
        finboard summary --last-month
        finboard summary --this-month --compare
        finboard summary --start-date 2024-01-01 --end-date 2024-03-31 --breakdown
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    service = AnalyticsService(db)

    date_range = resolve_cli_date_range(
        ctx,
        start_date=start_date,
        end_date=end_date,
        periods=periods,
        default_period="this-month",
    )
    account_id = resolve_account_or_exit(ctx, AccountService(db, bus), account) if account else None
    category_id = resolve_category_or_exit(ctx, CategoryService(db, bus), category)

    if compare and date_range.start_date == date.min:
        click.echo("Error: --compare needs a start date or a period option.", err=True)
        ctx.exit(1)

    if compare:
        comparison = service.compare(
            date_range,
            category_id=category_id,
            account_id=account_id,
            include_transfers=include_transfers,
        )
        click.echo(f"\nCurrent ({comparison.current.range}):")
        _display_summary(comparison.current)
        click.echo(f"\nPrevious ({comparison.previous.range}):")
        _display_summary(comparison.previous)
        click.echo("\nChange:")
        click.echo(
            f"{'Income':<20} {format_currency(comparison.income_delta):>20} "
            f"{_format_variation(comparison.income_variation):>10}"
        )
        click.echo(
            f"{'Expenses':<20} {format_currency(comparison.expenses_delta):>20} "
            f"{_format_variation(comparison.expenses_variation):>10}"
        )
        click.echo(
            f"{'Net':<20} {format_currency(comparison.delta):>20} "
            f"{_format_variation(comparison.variation):>10}"
        )
    else:
        result = service.summarize(
            date_range,
            category_id=category_id,
            account_id=account_id,
            include_transfers=include_transfers,
        )
        if result.count == 0:
            click.echo("No transactions found.")
            return
        click.echo(f"\nSummary ({date_range}):")
        _display_summary(result)

    if breakdown:
        click.echo("\nExpenses by category:")
        for item in service.category_breakdown(date_range):
            click.echo(f"{item.name:<30} {format_currency(item.amount):>16} {item.share:>7}%")


def register_commands(cli):
    """Register summary command with main CLI."""
    cli.add_command(summary)
