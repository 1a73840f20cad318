"""Utility for resolving account names to IDs."""

from finboard.domain.account import AccountService
from finboard.domain.errors import NotFoundError


def resolve_account(account_service: AccountService, account: str) -> str:
    """Resolve account name or ID to account ID.

    Args:
        account_service: AccountService instance
        account: Account ID (e.g. ``acc_...``) or account name

    Returns:
        Account ID

    Raises:
        NotFoundError: If account is not found
    """
    account_obj = account_service.get_account(account)
    if account_obj is not None:
        return account_obj.id

    account_obj = account_service.get_account_by_name(account)
    if account_obj is not None:
        return account_obj.id

    raise NotFoundError(f"Account '{account}' not found")
