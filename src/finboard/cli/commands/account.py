"""Account management commands."""

from datetime import date

import click
from finboard.cli.account_resolution import resolve_account_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.entities import AccountType
from finboard.domain.errors import DomainError
from finboard.domain.ledger import LedgerService
from finboard.utils.amount_parser import format_currency, parse_amount


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option(
    "--type",
    "account_type",
    type=click.Choice([t.value for t in AccountType]),
    default=AccountType.CHECKING.value,
    show_default=True,
    help="Kind of account",
)
@click.option("--opening-balance", default="0", help="Balance before the first transaction")
@click.option("--currency", help="ISO currency code (defaults to FINBOARD_CURRENCY or BRL)")
@click.pass_context
def create_account(ctx, name: str, account_type: str, opening_balance: str, currency: str | None):
    """Create a new account.

    Examples:
        finboard account create "Nubank"
        finboard account create "Carteira" --type wallet
        finboard account create "Tesouro" --type investment --opening-balance 5000
    """
    service = AccountService(ctx.obj["db"], ctx.obj["bus"])

    try:
        balance = parse_amount(opening_balance)
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    try:
        account = service.create_account(
            name=name,
            account_type=AccountType(account_type),
            opening_balance=balance,
            currency=currency,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created account '{account.name}' (ID: {account.id})")


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts with their current balances."""
    db = ctx.obj["db"]
    service = AccountService(db, ctx.obj["bus"])
    ledger = LedgerService(db)

    accounts = service.list_accounts()
    if not accounts:
        click.echo("No accounts found.")
        return

    today = date.today()
    click.echo("\nAccounts:")
    click.echo("-" * 78)
    for acc in accounts:
        balance = format_currency(ledger.balance_at(acc.id, today), acc.currency)
        click.echo(f"{acc.id:<38} | {acc.name:20s} | {acc.account_type.value:10s} | {balance:>15}")


@account_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option("--cascade", is_flag=True, help="Also delete the account's transactions and statements")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_account(ctx, account: str, cascade: bool, yes: bool) -> None:
    """Delete an account.

    ACCOUNT can be an account name or ID.

    An account with transactions can only be deleted with --cascade, which
    removes its transactions (and the other leg of its transfers). Accounts
    referenced by loans cannot be deleted.

    Examples:
        finboard account delete "Nubank"
        finboard account delete "Nubank" --cascade --yes
    """
    service = AccountService(ctx.obj["db"], ctx.obj["bus"])
    account_id = resolve_account_or_exit(ctx, service, account)
    account_obj = service.get_account(account_id)

    if not yes and not click.confirm(
        f"Are you sure you want to delete account '{account_obj.name}' (ID: {account_id})?"
    ):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_account(account_id, cascade=cascade)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted account '{account_obj.name}'")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
