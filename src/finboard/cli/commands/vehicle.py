"""Vehicle commands."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit, resolve_category_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.assets import VehicleService
from finboard.domain.category import CategoryService
from finboard.domain.errors import DomainError
from finboard.utils.amount_parser import format_currency, parse_amount
from finboard.utils.date_parser import parse_date


def _find_vehicle(ctx, service: VehicleService, key: str):
    for vehicle in service.list_vehicles():
        if vehicle.id == key or vehicle.name.lower() == key.lower():
            return vehicle
    click.echo(f"Error: Vehicle '{key}' not found", err=True)
    ctx.exit(1)


@click.group()
def vehicle_group():
    """Manage vehicles counted in net worth."""
    pass


@vehicle_group.command("add")
@click.argument("name")
@click.option("--value", required=True, help="Purchase value")
@click.option("--current-value", help="Current market value (default: purchase value)")
@click.option("--model", help="Model description")
@click.option("--year", type=int, help="Model year")
@click.pass_context
def add_vehicle(ctx, name: str, value: str, current_value: str | None, model: str | None, year: int | None):
    """Register a vehicle."""
    try:
        purchase = parse_amount(value)
        current = parse_amount(current_value) if current_value else None
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    try:
        vehicle = VehicleService(ctx.obj["db"], ctx.obj["bus"]).create_vehicle(
            name, purchase, current_value=current, model=model, year=year
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Added vehicle '{vehicle.name}' worth {format_currency(vehicle.current_value)} (ID: {vehicle.id})")


@vehicle_group.command("list")
@click.pass_context
def list_vehicles(ctx):
    """List vehicles and their current values."""
    vehicles = VehicleService(ctx.obj["db"], ctx.obj["bus"]).list_vehicles()
    if not vehicles:
        click.echo("No vehicles found.")
        return

    click.echo("\nVehicles:")
    click.echo("-" * 60)
    for vehicle in vehicles:
        click.echo(f"{vehicle.name[:25]:<25} {vehicle.model or '':<15} {format_currency(vehicle.current_value):>16}")


@vehicle_group.command("expense")
@click.argument("vehicle")
@click.argument("amount")
@click.option("--account", required=True, help="Account the expense is paid from")
@click.option("--date", "expense_date", default="today", show_default=True, help="Expense date")
@click.option("--description", "-d", help="What was paid")
@click.option("--category", help="Category name or ID")
@click.pass_context
def record_expense(
    ctx,
    vehicle: str,
    amount: str,
    account: str,
    expense_date: str,
    description: str | None,
    category: str | None,
):
    """Record fuel, maintenance or another cost of VEHICLE."""
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    service = VehicleService(db, bus)
    found = _find_vehicle(ctx, service, vehicle)
    account_id = resolve_account_or_exit(ctx, AccountService(db, bus), account)
    category_id = resolve_category_or_exit(ctx, CategoryService(db, bus), category)

    try:
        cost = parse_amount(amount)
        when = parse_date(expense_date)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    try:
        txn = service.record_expense(found.id, account_id, cost, when, description, category_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Recorded {format_currency(txn.amount)} for '{found.name}' on {txn.date}")


def register_commands(cli):
    """Register vehicle commands with main CLI."""
    cli.add_command(vehicle_group, name="vehicle")
