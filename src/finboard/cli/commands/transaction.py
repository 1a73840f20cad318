"""Transaction management commands."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit, resolve_category_or_exit
from finboard.cli.date_filters import period_options, resolve_cli_date_range
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.category import CategoryService
from finboard.domain.errors import DomainError
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_date


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("list")
@period_options
@click.option("--account", help="Account name or ID")
@click.option("--category", help="Category name or ID")
@click.option("--uncategorized", is_flag=True, help="Only transactions without a category")
@click.option("--verbose", "-v", is_flag=True, help="Show every field")
@click.pass_context
def list_transactions(
    ctx,
    start_date: str | None,
    end_date: str | None,
    periods: tuple[str, ...],
    account: str | None,
    category: str | None,
    uncategorized: bool,
    verbose: bool,
) -> None:
    """List transactions.

    Examples:
        finboard transaction list --this-month
        finboard transaction list --account Nubank --start-date 2024-01-01
        finboard transaction list --uncategorized
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    service = TransactionService(db, bus)
    account_service = AccountService(db, bus)
    category_service = CategoryService(db, bus)

    date_range = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, periods=periods
    )
    account_id = resolve_account_or_exit(ctx, account_service, account) if account else None
    category_id = resolve_category_or_exit(ctx, category_service, category)

    transactions = service.list_transactions(
        start_date=date_range.start_date if date_range else None,
        end_date=date_range.end_date if date_range else None,
        category_id=category_id,
        account_id=account_id,
        uncategorized=uncategorized,
    )

    if not transactions:
        click.echo("No transactions found.")
        return

    accounts = {acc.id: acc for acc in account_service.list_accounts()}
    categories = {cat.id: cat.name for cat in category_service.list_categories()}

    click.echo(f"\nFound {len(transactions)} transaction(s):")
    if verbose:
        click.echo("=" * 100)
        for txn in transactions:
            acc = accounts.get(txn.account_id)
            click.echo(f"\nTransaction ID: {txn.id}")
            click.echo(f"  Date: {txn.date}")
            click.echo(f"  Amount: {format_currency(txn.amount, acc.currency if acc else 'BRL')}")
            click.echo(f"  Operation: {txn.operation_type.value}")
            click.echo(f"  Account: {acc.name if acc else 'Unknown'} (ID: {txn.account_id})")
            click.echo(f"  Category: {categories.get(txn.category_id, 'Uncategorized')}")
            if txn.description:
                click.echo(f"  Description: {txn.description}")
            if txn.links.paired_transaction_id:
                click.echo(f"  Paired with: {txn.links.paired_transaction_id}")
            if txn.notes:
                click.echo(f"  Notes: {txn.notes}")
            click.echo(f"  Source: {txn.source.value}")
            click.echo("-" * 100)
    else:
        click.echo("-" * 100)
        click.echo(
            f"{'Date':<12} {'Amount':>14}  {'Account':<18} {'Category':<18} {'Description':<30}"
        )
        click.echo("-" * 100)
        for txn in transactions:
            acc = accounts.get(txn.account_id)
            amount_str = format_currency(txn.amount, acc.currency if acc else "BRL")
            click.echo(
                f"{str(txn.date):<12} {amount_str:>14}  {(acc.name if acc else 'Unknown')[:18]:<18} "
                f"{categories.get(txn.category_id, '')[:18]:<18} {(txn.description or '')[:30]:<30}"
            )

    total_expenses = sum(txn.amount for txn in transactions if txn.amount < 0)
    total_income = sum(txn.amount for txn in transactions if txn.amount > 0)
    click.echo("-" * 100)
    click.echo(
        f"TOTAL  Expenses: {format_currency(abs(total_expenses))} | "
        f"Income: {format_currency(total_income)} | Count: {len(transactions)}"
    )


@transaction_group.command("update")
@click.argument("transaction_id")
@click.option("--date", help="Transaction date (YYYY-MM-DD or relative like 'today')")
@click.option("--amount", help="Signed amount")
@click.option("--description", help="Transaction description")
@click.option("--category", help="Category name or ID, or empty string to clear")
@click.option("--notes", help="Notes")
@click.pass_context
def update_transaction(
    ctx,
    transaction_id: str,
    date: str | None,
    amount: str | None,
    description: str | None,
    category: str | None,
    notes: str | None,
) -> None:
    """Update a transaction.

    Updates only the fields that are provided. Use --category "" to clear the
    category. Changing the date or amount of a transfer leg updates both legs.

    Examples:
        finboard transaction update tx_1a2b --amount -75.00
        finboard transaction update tx_1a2b --category ""
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    service = TransactionService(db, bus)

    changes = {}
    try:
        if date is not None:
            changes["date"] = parse_date(date)
        if amount is not None:
            changes["amount"] = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    if description is not None:
        changes["description"] = description
    if notes is not None:
        changes["notes"] = notes

    category_id = None
    clear_category = category == ""
    if category:
        category_id = resolve_category_or_exit(ctx, CategoryService(db, bus), category)

    try:
        service.update_transaction(
            transaction_id, category_id=category_id, clear_category=clear_category, **changes
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated transaction {transaction_id}")


@transaction_group.command("delete")
@click.argument("transaction_id")
@click.option("--unlink-only", is_flag=True, help="Keep the other leg of a transfer, unlinked")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_transaction(ctx, transaction_id: str, unlink_only: bool, yes: bool) -> None:
    """Delete a transaction.

    Deleting one leg of a transfer deletes the other leg as well, unless
    --unlink-only is given.

    Examples:
        finboard transaction delete tx_1a2b
        finboard transaction delete tx_1a2b --unlink-only --yes
    """
    service = TransactionService(ctx.obj["db"], ctx.obj["bus"])

    txn = service.get_transaction(transaction_id)
    if txn is None:
        click.echo(f"Error: Transaction {transaction_id} not found", err=True)
        ctx.exit(1)

    if not yes and not click.confirm(f"Are you sure you want to delete transaction {transaction_id}?"):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_transaction(transaction_id, unlink_only=unlink_only)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted transaction {transaction_id}")
    if txn.links.paired_transaction_id and not unlink_only:
        click.echo(f"Deleted paired transaction {txn.links.paired_transaction_id}")


def register_commands(cli: click.Group) -> None:
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
