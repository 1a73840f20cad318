"""Add transaction command."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit, resolve_category_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.category import CategoryService
from finboard.domain.entities import OperationType
from finboard.domain.errors import DomainError
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_date


@click.command("add")
@click.option("--account", required=True, help="Account name or ID")
@click.option(
    "--date",
    required=True,
    help="Transaction date (YYYY-MM-DD or relative like 'today', 'yesterday')",
)
@click.option(
    "--amount", required=True, help="Signed amount (e.g., -123.45 for an expense, 1.234,56 for income)"
)
@click.option(
    "--operation",
    type=click.Choice([o.value for o in OperationType]),
    help="Operation type (inferred from the amount sign if omitted)",
)
@click.option("--description", help="Transaction description")
@click.option("--category", help="Category name or ID")
@click.option("--notes", help="Notes")
@click.pass_context
def add_transaction(
    ctx,
    account: str,
    date: str,
    amount: str,
    operation: str | None,
    description: str | None,
    category: str | None,
    notes: str | None,
):
    """Add a transaction manually.

    Examples:
        finboard add --account Nubank --date 2024-01-15 --amount -50.00 --description "Mercado"
        finboard add --account Nubank --date today --amount 5000 --category "Salário"
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    transaction_service = TransactionService(db, bus)
    account_service = AccountService(db, bus)
    category_service = CategoryService(db, bus)

    account_id = resolve_account_or_exit(ctx, account_service, account)
    account_obj = account_service.get_account(account_id)
    category_id = resolve_category_or_exit(ctx, category_service, category)

    try:
        txn_date = parse_date(date)
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)

    try:
        txn_amount = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    try:
        txn = transaction_service.create_transaction(
            account_id=account_id,
            date=txn_date,
            amount=txn_amount,
            operation_type=OperationType(operation) if operation else None,
            category_id=category_id,
            description=description,
            notes=notes,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created transaction {txn.id}")
    click.echo(f"  Account: {account_obj.name}")
    click.echo(f"  Date: {txn.date}")
    click.echo(f"  Amount: {format_currency(txn.amount, account_obj.currency)}")
    click.echo(f"  Operation: {txn.operation_type.value}")
    if description:
        click.echo(f"  Description: {description}")
    if category:
        click.echo(f"  Category: {category}")


def register_commands(cli):
    """Register add command with main CLI."""
    cli.add_command(add_transaction)
