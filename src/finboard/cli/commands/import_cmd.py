"""Statement import command."""

import click
from finboard.cli.account_resolution import resolve_account_or_exit
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.errors import DomainError
from finboard.domain.statement_import import StatementImportService
from finboard.utils.statement_parser import parse_statement_file


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True))
@click.option("--account", required=True, help="Account name or ID the statement belongs to")
@click.option("--no-commit", is_flag=True, help="Only stage rows; commit them later")
@click.pass_context
def import_statement(ctx, statement_file: str, account: str, no_commit: bool):
    """Import a bank statement (CSV or OFX) into an account.

    Rows are standardized by the rules; rows matching an existing transaction
    are flagged as duplicates and not committed.

    Examples:
        finboard import extrato.csv --account Nubank
        finboard import extrato.ofx --account Nubank --no-commit
    """
    db = ctx.obj["db"]
    bus = ctx.obj["bus"]
    account_id = resolve_account_or_exit(ctx, AccountService(db, bus), account)
    service = StatementImportService(db, bus)

    try:
        parsed = parse_statement_file(statement_file)
        result = service.import_statement(
            parsed.rows, account_id, source=parsed.source, auto_commit=not no_commit
        )
    except (DomainError, FileNotFoundError) as e:
        handle_domain_error(ctx, e)

    errors = parsed.errors + result.errors
    click.echo("\nImport complete:")
    click.echo(f"  Statement: {result.statement.id} ({result.statement.status.value})")
    click.echo(f"  Committed: {result.committed} transactions")
    click.echo(f"  Duplicates: {result.duplicates}")
    if result.pending:
        click.echo(f"  Pending: {result.pending}")
    for warning in result.warnings:
        click.echo(f"  Warning: {warning}")
    if errors:
        click.echo(f"  Errors: {len(errors)}")
        for error in errors:
            click.echo(f"    {error}", err=True)


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_statement)
