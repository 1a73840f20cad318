"""Transfer and investment movement command."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.entities import AccountType
from finboard.domain.errors import DomainError
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_date


@click.command("transfer")
@click.option("--from", "from_account", required=True, help="Source account name or ID")
@click.option("--to", "to_account", required=True, help="Destination account name or ID")
@click.option("--amount", required=True, help="Amount moved (positive)")
@click.option("--date", "when", default="today", show_default=True, help="Transfer date")
@click.option("--description", help="Description for both legs")
@click.pass_context
def transfer(ctx, from_account: str, to_account: str, amount: str, when: str, description: str | None):
    """Move money between two accounts.

    Moving into or out of an investment account is recorded as an investment
    contribution or withdrawal; anything else is a plain transfer.

    Examples:
        finboard transfer --from Nubank --to Carteira --amount 200
        finboard transfer --from Nubank --to Tesouro --amount 1000 --date 2024-03-01
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    account_service = AccountService(db, bus)
    service = TransactionService(db, bus)

    source_id = resolve_account_or_exit(ctx, account_service, from_account)
    target_id = resolve_account_or_exit(ctx, account_service, to_account)
    source = account_service.get_account(source_id)
    target = account_service.get_account(target_id)

    try:
        transfer_date = parse_date(when)
        transfer_amount = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    try:
        if target.account_type == AccountType.INVESTMENT and source.account_type != AccountType.INVESTMENT:
            service.create_investment_movement(
                source_id, target_id, transfer_amount, transfer_date, description=description
            )
            kind = "Investment contribution"
        elif source.account_type == AccountType.INVESTMENT and target.account_type != AccountType.INVESTMENT:
            service.create_investment_movement(
                target_id, source_id, transfer_amount, transfer_date,
                withdrawal=True, description=description,
            )
            kind = "Investment withdrawal"
        else:
            service.create_transfer(
                source_id, target_id, transfer_amount, transfer_date, description=description
            )
            kind = "Transfer"
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(
        f"{kind}: {format_currency(abs(transfer_amount), source.currency)} "
        f"from '{source.name}' to '{target.name}' on {transfer_date}"
    )


def register_commands(cli):
    """Register transfer command with main CLI."""
    cli.add_command(transfer)
