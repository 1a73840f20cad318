"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional, Any
from datetime import date
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from finboard.domain.entities import (
    Account,
    AccountType,
    BillDismissal,
    BillPayment,
    BillSourceType,
    BillTracker,
    Category,
    FlowDirection,
    Goal,
    ImportedStatement,
    ImportedTransaction,
    ImportRowStatus,
    InsurancePolicy,
    Loan,
    OperationType,
    RuleMatchType,
    StandardizationRule,
    StatementStatus,
    Transaction,
    TransactionFilter,
    TransactionLinks,
    TransactionSource,
    Vehicle,
)


class Database(ABC):
    """Abstract database interface for finboard.

    Implementations assign identifiers on create and return domain entities
    from every read. ``atomic()`` groups several calls into one unit that is
    committed once or rolled back entirely, and serializes access.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Return a context manager wrapping a serialized unit of work."""
        pass

    # Account operations
    @abstractmethod
    def create_account(
        self, name: str, account_type: AccountType, opening_balance: Decimal, currency: str
    ) -> str:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def get_account_by_name(self, name: str) -> Optional[Account]:
        """Get account by name."""
        pass

    @abstractmethod
    def list_accounts(self, account_type: Optional[AccountType] = None) -> list[Account]:
        """List accounts, optionally filtered by type."""
        pass

    @abstractmethod
    def update_account(self, account_id: str, **fields: Any) -> None:
        """Update account fields."""
        pass

    @abstractmethod
    def delete_account(self, account_id: str) -> None:
        """Delete an account row."""
        pass

    @abstractmethod
    def get_account_transaction_count(self, account_id: str) -> int:
        """Get count of transactions held by an account."""
        pass

    @abstractmethod
    def get_account_loan_count(self, account_id: str) -> int:
        """Get count of loans linked to an account."""
        pass

    # Category operations
    @abstractmethod
    def create_category(self, name: str, direction: FlowDirection) -> str:
        """Create a category. Returns category ID."""
        pass

    @abstractmethod
    def get_category(self, category_id: str) -> Optional[Category]:
        """Get category by ID."""
        pass

    @abstractmethod
    def get_category_by_name(self, name: str) -> Optional[Category]:
        """Get category by name (case-insensitive)."""
        pass

    @abstractmethod
    def list_categories(self) -> list[Category]:
        """List all categories."""
        pass

    @abstractmethod
    def update_category(self, category_id: str, **fields: Any) -> None:
        """Update category fields."""
        pass

    @abstractmethod
    def delete_category(self, category_id: str) -> None:
        """Delete a category and clear every reference to it."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(
        self,
        account_id: str,
        date: date,
        amount: Decimal,
        operation_type: OperationType,
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        links: Optional[TransactionLinks] = None,
        source: TransactionSource = TransactionSource.MANUAL,
        notes: Optional[str] = None,
    ) -> str:
        """Create a transaction with the next sequence number. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def list_transactions(self, filters: Optional[TransactionFilter] = None) -> list[Transaction]:
        """List transactions ordered by (date, sequence)."""
        pass

    @abstractmethod
    def list_transactions_by_link(self, link_field: str, value: Any) -> list[Transaction]:
        """List transactions whose link column ``link_field`` equals ``value``."""
        pass

    @abstractmethod
    def update_transaction(self, transaction_id: str, **fields: Any) -> None:
        """Update transaction fields. ``links`` replaces every link column."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        """Delete a transaction row."""
        pass

    # Loan operations
    @abstractmethod
    def create_loan(
        self,
        name: str,
        principal: Decimal,
        monthly_rate: Decimal,
        term_months: int,
        account_id: str,
        start_date: date,
        installment_amount: Decimal,
        installments: list[dict[str, Any]],
    ) -> str:
        """Create a loan with its installment schedule. Returns loan ID."""
        pass

    @abstractmethod
    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan (with installments) by ID."""
        pass

    @abstractmethod
    def list_loans(self, account_id: Optional[str] = None) -> list[Loan]:
        """List loans, optionally filtered by account."""
        pass

    @abstractmethod
    def update_loan(self, loan_id: str, **fields: Any) -> None:
        """Update loan fields."""
        pass

    @abstractmethod
    def delete_loan(self, loan_id: str) -> None:
        """Delete a loan and its schedule."""
        pass

    @abstractmethod
    def set_installment_transaction(
        self, loan_id: str, number: int, transaction_id: Optional[str]
    ) -> None:
        """Record (or clear) the transaction that paid an installment."""
        pass

    # Vehicle and insurance operations
    @abstractmethod
    def create_vehicle(
        self,
        name: str,
        model: Optional[str],
        year: Optional[int],
        purchase_date: Optional[date],
        purchase_value: Decimal,
        current_value: Decimal,
    ) -> str:
        """Create a vehicle. Returns vehicle ID."""
        pass

    @abstractmethod
    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        """Get vehicle by ID."""
        pass

    @abstractmethod
    def list_vehicles(self) -> list[Vehicle]:
        """List all vehicles."""
        pass

    @abstractmethod
    def update_vehicle(self, vehicle_id: str, **fields: Any) -> None:
        """Update vehicle fields."""
        pass

    @abstractmethod
    def delete_vehicle(self, vehicle_id: str) -> None:
        """Delete a vehicle row."""
        pass

    @abstractmethod
    def create_insurance_policy(
        self,
        vehicle_id: str,
        insurer: str,
        premium: Decimal,
        installments: int,
        start_date: date,
        end_date: date,
    ) -> str:
        """Create an insurance policy. Returns policy ID."""
        pass

    @abstractmethod
    def get_insurance_policy(self, policy_id: str) -> Optional[InsurancePolicy]:
        """Get insurance policy by ID."""
        pass

    @abstractmethod
    def list_insurance_policies(self, vehicle_id: Optional[str] = None) -> list[InsurancePolicy]:
        """List insurance policies, optionally filtered by vehicle."""
        pass

    @abstractmethod
    def delete_insurance_policy(self, policy_id: str) -> None:
        """Delete an insurance policy row."""
        pass

    # Goal operations
    @abstractmethod
    def create_goal(
        self,
        name: str,
        target_amount: Decimal,
        target_date: Optional[date],
        account_ids: list[str],
    ) -> str:
        """Create a goal. Returns goal ID."""
        pass

    @abstractmethod
    def get_goal(self, goal_id: str) -> Optional[Goal]:
        """Get goal by ID."""
        pass

    @abstractmethod
    def list_goals(self) -> list[Goal]:
        """List all goals."""
        pass

    @abstractmethod
    def update_goal(self, goal_id: str, **fields: Any) -> None:
        """Update goal fields. ``account_ids`` replaces the linked accounts."""
        pass

    @abstractmethod
    def delete_goal(self, goal_id: str) -> None:
        """Delete a goal row."""
        pass

    @abstractmethod
    def remove_account_from_goals(self, account_id: str) -> None:
        """Unlink an account from every goal."""
        pass

    # Bill operations
    @abstractmethod
    def create_bill(
        self,
        name: str,
        expected_amount: Decimal,
        due_day: int,
        source_type: BillSourceType,
        signature: str,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> str:
        """Create a bill tracker. Returns bill ID."""
        pass

    @abstractmethod
    def get_bill(self, bill_id: str) -> Optional[BillTracker]:
        """Get bill tracker by ID."""
        pass

    @abstractmethod
    def list_bills(self, active_only: bool = False) -> list[BillTracker]:
        """List bill trackers."""
        pass

    @abstractmethod
    def update_bill(self, bill_id: str, **fields: Any) -> None:
        """Update bill tracker fields."""
        pass

    @abstractmethod
    def delete_bill(self, bill_id: str) -> None:
        """Delete a bill tracker and its payments."""
        pass

    @abstractmethod
    def create_bill_payment(self, bill_id: str, period: str, transaction_id: str) -> str:
        """Link a transaction to one period of a bill. Returns payment ID."""
        pass

    @abstractmethod
    def get_bill_payment(self, bill_id: str, period: str) -> Optional[BillPayment]:
        """Get the payment for a bill period."""
        pass

    @abstractmethod
    def list_bill_payments(
        self, bill_id: Optional[str] = None, transaction_id: Optional[str] = None
    ) -> list[BillPayment]:
        """List bill payments, optionally filtered by bill or transaction."""
        pass

    @abstractmethod
    def delete_bill_payment(self, payment_id: str) -> None:
        """Delete a bill payment row."""
        pass

    @abstractmethod
    def create_bill_dismissal(self, signature: str) -> str:
        """Record a dismissed recurrence signature. Returns dismissal ID."""
        pass

    @abstractmethod
    def list_bill_dismissals(self) -> list[BillDismissal]:
        """List dismissed recurrence signatures."""
        pass

    # Standardization rule operations
    @abstractmethod
    def create_rule(
        self,
        pattern: str,
        match_type: RuleMatchType,
        position: int,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        operation_type: Optional[OperationType] = None,
    ) -> str:
        """Create a standardization rule. Returns rule ID."""
        pass

    @abstractmethod
    def get_rule(self, rule_id: str) -> Optional[StandardizationRule]:
        """Get rule by ID."""
        pass

    @abstractmethod
    def list_rules(self) -> list[StandardizationRule]:
        """List rules in evaluation order."""
        pass

    @abstractmethod
    def update_rule(self, rule_id: str, **fields: Any) -> None:
        """Update rule fields."""
        pass

    @abstractmethod
    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule row."""
        pass

    # Imported statement operations
    @abstractmethod
    def create_statement(self, account_id: str, source: str, status: StatementStatus) -> str:
        """Create an imported statement. Returns statement ID."""
        pass

    @abstractmethod
    def get_statement(self, statement_id: str) -> Optional[ImportedStatement]:
        """Get imported statement by ID."""
        pass

    @abstractmethod
    def list_statements(self, account_id: Optional[str] = None) -> list[ImportedStatement]:
        """List imported statements, newest first."""
        pass

    @abstractmethod
    def update_statement(self, statement_id: str, **fields: Any) -> None:
        """Update statement fields."""
        pass

    @abstractmethod
    def delete_statement(self, statement_id: str) -> None:
        """Delete a statement and its rows."""
        pass

    @abstractmethod
    def create_imported_row(
        self,
        statement_id: str,
        row_number: int,
        account_id: str,
        date: date,
        amount: Decimal,
        raw_description: str,
        description: str,
        operation_type: OperationType,
        status: ImportRowStatus,
        category_id: Optional[str] = None,
        rule_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> str:
        """Create an imported row. Returns row ID."""
        pass

    @abstractmethod
    def get_imported_row(self, row_id: str) -> Optional[ImportedTransaction]:
        """Get imported row by ID."""
        pass

    @abstractmethod
    def list_imported_rows(
        self,
        statement_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
        duplicate_of_id: Optional[str] = None,
    ) -> list[ImportedTransaction]:
        """List imported rows with optional filters."""
        pass

    @abstractmethod
    def update_imported_row(self, row_id: str, **fields: Any) -> None:
        """Update imported row fields."""
        pass
