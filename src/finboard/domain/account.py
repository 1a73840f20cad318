"""Account domain service."""

import logging
from typing import Optional
from decimal import Decimal

from finboard.config import Settings, get_settings
from finboard.database.base import Database
from finboard.domain.entities import Account as AccountEntity, AccountType
from finboard.domain.errors import (
    ConstraintViolationError,
    NotFoundError,
    ValidationError,
    account_delete_blocked,
    account_not_found,
)
from finboard.domain.events import EventBus, FinanceEvent, FinanceEventType, entity_event_type
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import to_money

logger = logging.getLogger(__name__)


class AccountService:
    """Service for managing accounts."""

    def __init__(
        self,
        db: Database,
        bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize account service.

        Args:
            db: Database instance
            bus: Event bus notified after each mutation
            settings: Settings (defaults to the environment-derived settings)
        """
        self.db = db
        self.bus = bus or EventBus()
        self.settings = settings or get_settings()
        self.transactions = TransactionService(db, self.bus)

    def _event(self, operation: str, account: AccountEntity) -> FinanceEvent:
        return FinanceEvent(
            type=entity_event_type(operation),
            entity_kind="account",
            operation=operation,
            payload={"id": account.id, "account": account},
        )

    def _check_name(self, name: str, exclude_id: Optional[str] = None) -> str:
        name = name.strip() if name else ""
        if not name:
            raise ValidationError("Account name must not be empty")
        existing = self.db.get_account_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise ConstraintViolationError(f"Account with name '{name}' already exists")
        return name

    def create_account(
        self,
        name: str,
        account_type: AccountType = AccountType.CHECKING,
        opening_balance: Decimal = Decimal("0"),
        currency: Optional[str] = None,
    ) -> AccountEntity:
        """Create a new account.

        Args:
            name: Account name
            account_type: Kind of account
            opening_balance: Balance before the first transaction
            currency: ISO currency code (defaults to the configured currency)

        Returns:
            The stored account

        Raises:
            ConstraintViolationError: If account name already exists
        """
        with self.db.atomic():
            name = self._check_name(name)
            account_id = self.db.create_account(
                name=name,
                account_type=AccountType(account_type),
                opening_balance=to_money(opening_balance),
                currency=(currency or self.settings.default_currency).upper(),
            )
            account = self.db.get_account(account_id)
        self.bus.publish(self._event("created", account))
        return account

    def get_account(self, account_id: str) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def require_account(self, account_id: str) -> AccountEntity:
        """Get account by ID or raise NotFoundError."""
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account

    def get_account_by_name(self, name: str) -> Optional[AccountEntity]:
        """Get account by exact name."""
        return self.db.get_account_by_name(name)

    def list_accounts(self, account_type: Optional[AccountType] = None) -> list[AccountEntity]:
        """List all accounts.

        Returns:
            List of account entities
        """
        return self.db.list_accounts(account_type=account_type)

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        opening_balance: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> AccountEntity:
        """Update account fields. Omitted fields are left unchanged.

        Raises:
            NotFoundError: If account not found
            ConstraintViolationError: If the new name already exists, or the
                type stops being ``investment`` while investment movements
                still point at the account
        """
        fields = {}
        with self.db.atomic():
            account = self.require_account(account_id)
            if name is not None:
                fields["name"] = self._check_name(name, exclude_id=account_id)
            if account_type is not None:
                account_type = AccountType(account_type)
                if (
                    account.account_type == AccountType.INVESTMENT
                    and account_type != AccountType.INVESTMENT
                    and self.db.list_transactions_by_link("investment_account_id", account_id)
                ):
                    raise ConstraintViolationError(
                        f"Account {account_id} is referenced by investment movements"
                    )
                fields["account_type"] = account_type
            if opening_balance is not None:
                fields["opening_balance"] = to_money(opening_balance)
            if currency is not None:
                fields["currency"] = currency.upper()
            self.db.update_account(account_id, **fields)
            account = self.db.get_account(account_id)
        self.bus.publish(self._event("updated", account))
        return account

    def delete_account(self, account_id: str, cascade: bool = False) -> None:
        """Delete an account.

        Args:
            account_id: Account ID to delete
            cascade: Also delete the account's transactions (and their
                transfer legs), imported statements and scoped rules

        Raises:
            NotFoundError: If account not found
            ConstraintViolationError: If it has transactions and ``cascade`` is
                False, or if loans still reference it
        """
        events: list[FinanceEvent] = []
        with self.db.atomic():
            account = self.require_account(account_id)
            transaction_count = self.db.get_account_transaction_count(account_id)
            loan_count = self.db.get_account_loan_count(account_id)
            if loan_count > 0 or (transaction_count > 0 and not cascade):
                raise ConstraintViolationError(
                    account_delete_blocked(account_id, transaction_count, loan_count)
                )

            # Transfer legs in other accounts go too, so re-read after each removal.
            for txn in self.db.list_transactions():
                if txn.account_id != account_id and txn.links.investment_account_id != account_id:
                    continue
                current = self.db.get_transaction(txn.id)
                if current is not None:
                    self.transactions.remove_in_unit(current, False, events)

            for statement in self.db.list_statements(account_id=account_id):
                self.db.delete_statement(statement.id)
            for rule in self.db.list_rules():
                if rule.account_id == account_id:
                    self.db.delete_rule(rule.id)
            for bill in self.db.list_bills():
                if bill.account_id == account_id:
                    self.db.update_bill(bill.id, account_id=None)
            self.db.remove_account_from_goals(account_id)
            self.db.delete_account(account_id)

        events.append(self._event("deleted", account))
        logger.info("Deleted account %s (%d related event(s))", account.name, len(events) - 1)
        for event in events:
            self.bus.publish(event)
