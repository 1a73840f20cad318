"""Recurring bill commands."""

from datetime import date

import click
from finboard.cli.account_resolution import resolve_account_or_exit, resolve_category_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.bills import BillService
from finboard.domain.category import CategoryService
from finboard.domain.errors import DomainError
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_period_key


def _pick_candidate(ctx, service: BillService, key: str):
    """Find a detected candidate by 1-based list number or signature."""
    candidates = service.detect_recurring()
    if key.isdigit() and 1 <= int(key) <= len(candidates):
        return candidates[int(key) - 1]
    for candidate in candidates:
        if candidate.signature == key:
            return candidate
    click.echo(f"Error: No detected bill '{key}'. Run 'bills detect' to list candidates.", err=True)
    ctx.exit(1)


@click.group()
def bills_group():
    """Detect and track recurring bills."""
    pass


@bills_group.command("detect")
@click.pass_context
def detect(ctx):
    """List recurring expenses that look like monthly bills."""
    service = BillService(ctx.obj["db"], ctx.obj["bus"])
    candidates = service.detect_recurring()
    if not candidates:
        click.echo("No recurring bills detected.")
        return

    click.echo("\nDetected bills:")
    click.echo("-" * 90)
    for number, candidate in enumerate(candidates, start=1):
        click.echo(
            f"{number:>3}. {candidate.description[:30]:<30} "
            f"{format_currency(candidate.expected_amount):>14}  day {candidate.due_day:<2}  "
            f"next {candidate.next_due_date}  ({candidate.occurrences} occurrences)"
        )
    click.echo("\nConfirm with 'bills confirm N' or dismiss with 'bills dismiss N'.")


@bills_group.command("confirm")
@click.argument("candidate")
@click.option("--name", help="Name for the bill (defaults to the description)")
@click.pass_context
def confirm(ctx, candidate: str, name: str | None):
    """Track a detected bill. CANDIDATE is its number in 'bills detect' or its signature."""
    service = BillService(ctx.obj["db"], ctx.obj["bus"])
    found = _pick_candidate(ctx, service, candidate)
    try:
        bill = service.confirm_bill(found, name=name)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Tracking bill '{bill.name}' due on day {bill.due_day} (ID: {bill.id})")


@bills_group.command("dismiss")
@click.argument("candidate")
@click.pass_context
def dismiss(ctx, candidate: str):
    """Never propose a detected bill again."""
    service = BillService(ctx.obj["db"], ctx.obj["bus"])
    found = _pick_candidate(ctx, service, candidate)
    service.dismiss_bill(found)
    click.echo(f"Dismissed '{found.description}'")


@bills_group.command("add")
@click.argument("name")
@click.option("--amount", required=True, help="Expected amount")
@click.option("--due-day", required=True, type=click.IntRange(1, 31), help="Day of the month it falls due")
@click.option("--account", help="Account it is usually paid from")
@click.option("--category", help="Category name or ID")
@click.pass_context
def add_bill(ctx, name: str, amount: str, due_day: int, account: str | None, category: str | None):
    """Track a bill manually."""
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    account_id = resolve_account_or_exit(ctx, AccountService(db, bus), account) if account else None
    category_id = resolve_category_or_exit(ctx, CategoryService(db, bus), category)
    try:
        bill = BillService(db, bus).create_bill(
            name, abs(parse_amount(amount)), due_day, account_id=account_id, category_id=category_id
        )
    except (DomainError, ValueError) as e:
        handle_domain_error(ctx, e)
    click.echo(f"Tracking bill '{bill.name}' due on day {bill.due_day} (ID: {bill.id})")


@bills_group.command("status")
@click.option("--month", help="Month as YYYY-MM (default: current month)")
@click.pass_context
def status(ctx, month: str | None):
    """Show which bills are paid, due or overdue."""
    service = BillService(ctx.obj["db"], ctx.obj["bus"])
    today = date.today()
    if month:
        try:
            year, month_number = parse_period_key(month)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)
    else:
        year, month_number = today.year, today.month

    views = service.bills_for_month(year, month_number, today)
    if not views:
        click.echo("No bills tracked.")
        return

    click.echo(f"\nBills for {year:04d}-{month_number:02d}:")
    click.echo("-" * 70)
    for view in views:
        click.echo(
            f"{view.bill.name[:28]:<28} {format_currency(view.bill.expected_amount):>14}  "
            f"{str(view.due_date):<12} {view.status.value.upper()}"
        )


def register_commands(cli):
    """Register bill commands with main CLI."""
    cli.add_command(bills_group, name="bills")
