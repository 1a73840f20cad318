"""Loan commands."""

from decimal import Decimal, InvalidOperation

import click
from finboard.cli.account_resolution import resolve_account_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.errors import DomainError
from finboard.domain.loan import LoanService
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_date


def _find_loan(ctx, service: LoanService, key: str):
    for loan in service.list_loans():
        if loan.id == key or loan.name.lower() == key.lower():
            return loan
    click.echo(f"Error: Loan '{key}' not found", err=True)
    ctx.exit(1)


@click.group()
def loan_group():
    """Manage loans and their installments."""
    pass


@loan_group.command("create")
@click.argument("name")
@click.option("--principal", required=True, help="Amount borrowed")
@click.option("--rate", required=True, help="Monthly interest rate in percent (1.5 = 1.5%)")
@click.option("--months", required=True, type=click.IntRange(min=1), help="Number of installments")
@click.option("--account", required=True, help="Account credited with the loan and debited by installments")
@click.option("--start-date", default="today", show_default=True, help="Contract date")
@click.option(
    "--disbursement",
    "disbursement_id",
    help="ID of an existing credit to use as the disbursement instead of creating one",
)
@click.pass_context
def create_loan(
    ctx, name: str, principal: str, rate: str, months: int, account: str, start_date: str,
    disbursement_id: str,
):
    """Create a loan with a fixed-installment schedule.

    Examples:
        finboard loan create "Financiamento" --principal 10000 --rate 1.5 --months 12 --account Nubank
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    account_id = resolve_account_or_exit(ctx, AccountService(db, bus), account)

    try:
        amount = parse_amount(principal)
        monthly_rate = Decimal(rate.replace(",", ".")) / 100
        start = parse_date(start_date)
    except (ValueError, InvalidOperation) as e:
        click.echo(f"Error: Invalid loan values: {e}", err=True)
        ctx.exit(1)

    try:
        loan = LoanService(db, bus).create_loan(
            name, amount, monthly_rate, months, account_id, start,
            disbursement_transaction_id=disbursement_id,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(
        f"Created loan '{loan.name}': {months} installments of "
        f"{format_currency(loan.installment_amount)} (ID: {loan.id})"
    )


@loan_group.command("list")
@click.pass_context
def list_loans(ctx):
    """List loans with what is still owed."""
    service = LoanService(ctx.obj["db"], ctx.obj["bus"])
    loans = service.list_loans()
    if not loans:
        click.echo("No loans found.")
        return

    click.echo("\nLoans:")
    click.echo("-" * 70)
    for loan in loans:
        paid = sum(1 for i in loan.installments if i.is_paid)
        click.echo(
            f"{loan.name[:25]:<25} {paid:>3}/{loan.term_months:<3} "
            f"{format_currency(service.outstanding_balance(loan.id)):>18} owed"
        )


@loan_group.command("schedule")
@click.argument("loan")
@click.pass_context
def show_schedule(ctx, loan: str):
    """Show every installment of LOAN (name or ID)."""
    found = _find_loan(ctx, LoanService(ctx.obj["db"], ctx.obj["bus"]), loan)
    click.echo(f"\nSchedule of '{found.name}':")
    click.echo(f"{'#':>3} {'Due':<12} {'Amount':>14} {'Principal':>14} {'Interest':>12} {'Balance':>14}")
    for i in found.installments:
        click.echo(
            f"{i.number:>3} {str(i.due_date):<12} {format_currency(i.amount):>14} "
            f"{format_currency(i.principal):>14} {format_currency(i.interest):>12} "
            f"{format_currency(i.balance_after):>14}  {'paid' if i.is_paid else ''}"
        )


@loan_group.command("pay")
@click.argument("loan")
@click.option("--number", type=int, help="Installment number (default: next unpaid)")
@click.option("--date", "payment_date", help="Payment date (default: the due date)")
@click.pass_context
def pay(ctx, loan: str, number: int | None, payment_date: str | None):
    """Pay one installment of LOAN from its account."""
    service = LoanService(ctx.obj["db"], ctx.obj["bus"])
    found = _find_loan(ctx, service, loan)
    try:
        when = parse_date(payment_date) if payment_date else None
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)

    try:
        txn = service.pay_installment(found.id, number=number, payment_date=when)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(
        f"Paid installment {txn.links.installment_number}/{found.term_months} of '{found.name}': "
        f"{format_currency(-txn.amount)} on {txn.date}"
    )


@loan_group.command("delete")
@click.argument("loan")
@click.pass_context
def delete(ctx, loan: str):
    """Delete LOAN; its payments stay in the ledger."""
    service = LoanService(ctx.obj["db"], ctx.obj["bus"])
    found = _find_loan(ctx, service, loan)
    service.delete_loan(found.id)
    click.echo(f"Deleted loan '{found.name}'")


def register_commands(cli):
    """Register loan commands with main CLI."""
    cli.add_command(loan_group, name="loan")
