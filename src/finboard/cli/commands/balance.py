"""Balance command."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit
from finboard.domain.account import AccountService
from finboard.domain.ledger import LedgerService
from finboard.utils.amount_parser import format_currency
from finboard.utils.date_parser import parse_date


@click.command("balance")
@click.argument("account", required=False)
@click.option("--date", "as_of", default="today", show_default=True, help="Balance at the end of this date")
@click.option("--statement", is_flag=True, help="Show the running balance after each transaction")
@click.pass_context
def balance(ctx, account: str | None, as_of: str, statement: bool):
    """Show balances replayed from the ledger.

    Without ACCOUNT, every account is listed followed by the investment
    total and net worth.

    Examples:
        finboard balance
        finboard balance Nubank --date 2024-01-31
        finboard balance Nubank --statement
    """
    db = ctx.obj["db"]
    account_service = AccountService(db, ctx.obj["bus"])
    ledger = LedgerService(db)

    try:
        when = parse_date(as_of)
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)

    if account:
        account_id = resolve_account_or_exit(ctx, account_service, account)
        acc = account_service.get_account(account_id)
        if statement:
            click.echo(f"Opening balance: {format_currency(acc.opening_balance, acc.currency)}")
            for line in ledger.replay(account_id, when):
                txn = line.transaction
                click.echo(
                    f"{str(txn.date):<12} {format_currency(txn.amount, acc.currency):>14} "
                    f"{format_currency(line.balance, acc.currency):>14}  {txn.description or ''}"
                )
        click.echo(
            f"Balance of '{acc.name}' on {when}: "
            f"{format_currency(ledger.balance_at(account_id, when), acc.currency)}"
        )
        return

    accounts = account_service.list_accounts()
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo(f"\nBalances on {when}:")
    click.echo("-" * 60)
    for acc in accounts:
        amount = format_currency(ledger.balance_at(acc.id, when), acc.currency)
        click.echo(f"{acc.name:<25} {acc.account_type.value:<12} {amount:>20}")
    click.echo("-" * 60)
    click.echo(f"{'Investments':<38} {format_currency(ledger.total_investment_balance_at(when)):>20}")
    click.echo(f"{'Net worth':<38} {format_currency(ledger.net_worth_at(when)):>20}")


def register_commands(cli):
    """Register balance command with main CLI."""
    cli.add_command(balance)
