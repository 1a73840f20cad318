"""Category management commands."""

import click
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.category import CategoryService
from finboard.domain.entities import FlowDirection
from finboard.domain.errors import DomainError


@click.group()
def category_group():
    """Manage categories."""
    pass


@category_group.command("list")
@click.pass_context
def list_categories(ctx):
    """List all categories grouped by direction."""
    service = CategoryService(ctx.obj["db"], ctx.obj["bus"])

    categories = service.list_categories()
    if not categories:
        click.echo("No categories found. Run 'category init' to create default categories.")
        return

    for direction in FlowDirection:
        group = [c for c in categories if c.direction == direction]
        if not group:
            continue
        click.echo(f"\n{direction.value.capitalize()}:")
        for cat in group:
            click.echo(f"  {cat.name} (ID: {cat.id})")


@category_group.command("create")
@click.argument("name")
@click.option(
    "--direction",
    type=click.Choice([d.value for d in FlowDirection], case_sensitive=False),
    default=FlowDirection.EXPENSE.value,
    show_default=True,
    help="Which operations the category may classify",
)
@click.pass_context
def create_category(ctx, name: str, direction: str):
    """Create a new category."""
    service = CategoryService(ctx.obj["db"], ctx.obj["bus"])

    try:
        category = service.create_category(name=name, direction=FlowDirection(direction.lower()))
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created {category.direction.value} category '{category.name}' (ID: {category.id})")


@category_group.command("init")
@click.pass_context
def init_categories(ctx):
    """Create the default categories (existing names are kept)."""
    service = CategoryService(ctx.obj["db"], ctx.obj["bus"])
    created = service.init_default_categories()
    if created:
        click.echo(f"Created {created} default categories.")
    else:
        click.echo("Default categories already exist.")


def register_commands(cli):
    """Register category commands with main CLI."""
    cli.add_command(category_group, name="category")
