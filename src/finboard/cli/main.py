"""Main CLI entry point."""

import logging

import click
from finboard.database.factories import create_sqlite_database
from finboard.domain.bills import BillService
from finboard.domain.events import EventBus

# Import and register all commands at module level
from finboard.cli.commands import (
    account,
    add,
    balance,
    bills,
    category,
    goal,
    import_cmd,
    loan,
    rule,
    summary,
    transaction,
    transfer,
    vehicle,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides FINBOARD_DB_PATH environment variable)",
    envvar="FINBOARD_DB_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr")
@click.pass_context
def cli(ctx, db_path: str | None, verbose: bool):
    """Finboard - personal finance ledger.

    Keep accounts, transfers and investments in one ledger, import bank
    statements, and track recurring bills.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        bus = EventBus()
        # New transactions settle matching bills automatically
        BillService(db, bus).attach()
        ctx.obj["db"] = db
        ctx.obj["bus"] = bus
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
category.register_commands(cli)
add.register_commands(cli)
transfer.register_commands(cli)
transaction.register_commands(cli)
balance.register_commands(cli)
summary.register_commands(cli)
import_cmd.register_commands(cli)
rule.register_commands(cli)
bills.register_commands(cli)
loan.register_commands(cli)
vehicle.register_commands(cli)
goal.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
