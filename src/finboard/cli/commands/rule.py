"""Standardization rule commands."""

import warnings

import click
from finboard.cli.account_resolution import resolve_account_or_exit, resolve_category_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.category import CategoryService
from finboard.domain.entities import OperationType, RuleMatchType
from finboard.domain.errors import DomainError, RuleConflict
from finboard.domain.standardization import RuleService


@click.group()
def rule_group():
    """Manage standardization rules for imported statements."""
    pass


@rule_group.command("add")
@click.argument("pattern")
@click.option(
    "--match",
    "match_type",
    type=click.Choice([m.value for m in RuleMatchType]),
    default=RuleMatchType.CONTAINS.value,
    show_default=True,
    help="How the pattern is compared with descriptions",
)
@click.option("--category", help="Category name or ID assigned on match")
@click.option("--description", help="Clean description assigned on match")
@click.option(
    "--operation",
    type=click.Choice([o.value for o in OperationType]),
    help="Operation type assigned on match",
)
@click.option("--account", help="Only apply to rows of this account")
@click.option("--position", type=int, help="Evaluation slot (0 = first); appended if omitted")
@click.pass_context
def add_rule(
    ctx,
    pattern: str,
    match_type: str,
    category: str | None,
    description: str | None,
    operation: str | None,
    account: str | None,
    position: int | None,
):
    """Add a rule. Rules are evaluated in order; the first match wins.

    Examples:
        finboard rule add "IFOOD" --category "Alimentação" --description "iFood"
        finboard rule add "^PIX REC" --match regex --operation income
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    service = RuleService(db, bus)
    category_id = resolve_category_or_exit(ctx, CategoryService(db, bus), category)
    account_id = resolve_account_or_exit(ctx, AccountService(db, bus), account) if account else None

    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", RuleConflict)
            rule = service.create_rule(
                pattern,
                match_type=RuleMatchType(match_type),
                category_id=category_id,
                description=description,
                operation_type=OperationType(operation) if operation else None,
                account_id=account_id,
                position=position,
            )
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created rule {rule.id} at position {rule.position}")
    for warning in caught:
        click.echo(f"Warning: {warning.message}", err=True)


@rule_group.command("list")
@click.pass_context
def list_rules(ctx):
    """List rules in evaluation order."""
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    rules = RuleService(db, bus).list_rules()
    if not rules:
        click.echo("No rules found.")
        return

    categories = {c.id: c.name for c in CategoryService(db, bus).list_categories()}
    click.echo("\nRules:")
    click.echo("-" * 90)
    for rule in rules:
        outcome = []
        if rule.category_id:
            outcome.append(f"category={categories.get(rule.category_id, rule.category_id)}")
        if rule.description:
            outcome.append(f"description={rule.description}")
        if rule.operation_type:
            outcome.append(f"operation={rule.operation_type.value}")
        click.echo(
            f"{rule.position:>3}. [{rule.match_type.value}] '{rule.pattern}' -> "
            f"{', '.join(outcome)} (ID: {rule.id})"
        )


@rule_group.command("delete")
@click.argument("rule_id")
@click.pass_context
def delete_rule(ctx, rule_id: str):
    """Delete a rule."""
    service = RuleService(ctx.obj["db"], ctx.obj["bus"])
    try:
        service.delete_rule(rule_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted rule {rule_id}")


def register_commands(cli):
    """Register rule commands with main CLI."""
    cli.add_command(rule_group, name="rule")
