"""CLI helpers for resolving account and category arguments."""

from __future__ import annotations

import click
from finboard.cli.error_handling import handle_domain_error
from finboard.domain.account import AccountService
from finboard.domain.category import CategoryService
from finboard.utils.account_resolver import resolve_account


def resolve_account_or_exit(
    ctx: click.Context, account_service: AccountService, account: str
) -> str:
    """Resolve account name or ID, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return resolve_account(account_service, account)
    except ValueError as exc:
        handle_domain_error(ctx, exc)


def resolve_category_or_exit(
    ctx: click.Context, category_service: CategoryService, category: str | None
) -> str | None:
    """Resolve an optional category name or ID, or exit with a CLI error."""
    if category is None:
        return None
    found = category_service.get_category(category) or category_service.get_category_by_name(category)
    if found is None:
        click.echo(f"Error: Category '{category}' not found", err=True)
        ctx.exit(1)
    return found.id
