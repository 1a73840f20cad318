"""Financial goal commands."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.errors import DomainError
from finboard.domain.goal import GoalService
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_date


@click.group()
def goal_group():
    """Track savings goals."""
    pass


@goal_group.command("create")
@click.argument("name")
@click.option("--target", required=True, help="Amount to reach")
@click.option("--by", "target_date", help="Date the goal should be reached")
@click.option("--account", "accounts", multiple=True, help="Account counted toward the goal (repeatable)")
@click.pass_context
def create_goal(ctx, name: str, target: str, target_date: str | None, accounts: tuple[str, ...]):
    """Create a goal measured by the balances of its accounts.

    Examples:
        finboard goal create "Viagem" --target 8000 --by 2025-12-01 --account Poupanca
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    account_service = AccountService(db, bus)
    account_ids = [resolve_account_or_exit(ctx, account_service, a) for a in accounts]

    try:
        amount = parse_amount(target)
        deadline = parse_date(target_date) if target_date else None
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    try:
        goal = GoalService(db, bus).create_goal(name, amount, deadline, account_ids)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created goal '{goal.name}' of {format_currency(goal.target_amount)} (ID: {goal.id})")


@goal_group.command("list")
@click.pass_context
def list_goals(ctx):
    """Show every goal with its progress today."""
    service = GoalService(ctx.obj["db"], ctx.obj["bus"])
    goals = service.list_goals()
    if not goals:
        click.echo("No goals found.")
        return

    click.echo("\nGoals:")
    click.echo("-" * 80)
    for goal in goals:
        progress = service.progress(goal.id)
        line = (
            f"{goal.name[:25]:<25} {format_currency(progress.current_amount):>16} / "
            f"{format_currency(goal.target_amount):<16} {progress.percent:>6}%"
        )
        if progress.monthly_needed is not None:
            line += f"  {format_currency(progress.monthly_needed)}/month until {goal.target_date}"
        click.echo(line)


def register_commands(cli):
    """Register goal commands with main CLI."""
    cli.add_command(goal_group, name="goal")
