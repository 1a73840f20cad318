"""Transaction domain service."""

import logging
from dataclasses import replace
from typing import Optional
from datetime import date
from decimal import Decimal

from finboard.database.base import Database
from finboard.domain.entities import (
    AccountType,
    OperationType,
    Transaction as TransactionEntity,
    TransactionFilter,
    TransactionLinks,
    TransactionSource,
    ImportRowStatus,
    category_accepts,
    get_flow_type_from_operation,
    is_inflow,
    operation_for_amount,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
    amount_sign_mismatch,
    invalid_reference,
    transaction_not_found,
)
from finboard.domain.events import EventBus, FinanceEvent, FinanceEventType
from finboard.utils.amount_parser import to_money
from finboard.utils.ids import generate_id

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("account_id", "date", "amount", "operation_type", "description", "notes")


def _event(event_type: FinanceEventType, operation: str, txn: TransactionEntity, **extra) -> FinanceEvent:
    return FinanceEvent(
        type=event_type,
        entity_kind="transaction",
        operation=operation,
        payload={"id": txn.id, "transaction": txn, **extra},
    )


class TransactionService:
    """Service for managing transactions.

    Every write goes through ``db.atomic()`` and the matching events are
    published only after the unit of work has committed.
    """

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        """Initialize transaction service.

        Args:
            db: Database instance
            bus: Event bus notified after each mutation
        """
        self.db = db
        self.bus = bus or EventBus()

    def _publish(self, events: list[FinanceEvent]) -> None:
        for event in events:
            self.bus.publish(event)

    def _validate(
        self,
        account_id: str,
        amount: Decimal,
        operation_type: OperationType,
        category_id: Optional[str],
        links: TransactionLinks,
    ) -> None:
        """Check references, sign and category direction for a transaction."""
        if self.db.get_account(account_id) is None:
            raise InvalidReferenceError(invalid_reference("account", account_id, "account_id"))

        if amount == 0:
            raise ValidationError("Transaction amount must not be zero")
        if is_inflow(get_flow_type_from_operation(operation_type)) != (amount > 0):
            raise ConstraintViolationError(amount_sign_mismatch(operation_type.value, amount))

        if category_id is not None:
            category = self.db.get_category(category_id)
            if category is None:
                raise InvalidReferenceError(
                    invalid_reference("category", category_id, "category_id")
                )
            if not category_accepts(category.direction, operation_type):
                raise ConstraintViolationError(
                    f"Category '{category.name}' ({category.direction.value}) "
                    f"cannot classify a '{operation_type.value}' transaction"
                )

        self._validate_links(links)

    def _validate_links(self, links: TransactionLinks) -> None:
        if links.investment_account_id is not None:
            account = self.db.get_account(links.investment_account_id)
            if account is None or account.account_type != AccountType.INVESTMENT:
                raise InvalidReferenceError(
                    invalid_reference(
                        "investment account", links.investment_account_id, "investment_account_id"
                    )
                )
        if links.paired_transaction_id is not None:
            if self.db.get_transaction(links.paired_transaction_id) is None:
                raise InvalidReferenceError(
                    invalid_reference(
                        "transaction", links.paired_transaction_id, "paired_transaction_id"
                    )
                )
        if links.loan_id is not None and self.db.get_loan(links.loan_id) is None:
            raise InvalidReferenceError(invalid_reference("loan", links.loan_id, "loan_id"))
        if links.bill_id is not None and self.db.get_bill(links.bill_id) is None:
            raise InvalidReferenceError(invalid_reference("bill", links.bill_id, "bill_id"))
        if links.vehicle_id is not None and self.db.get_vehicle(links.vehicle_id) is None:
            raise InvalidReferenceError(
                invalid_reference("vehicle", links.vehicle_id, "vehicle_id")
            )
        if (
            links.insurance_id is not None
            and self.db.get_insurance_policy(links.insurance_id) is None
        ):
            raise InvalidReferenceError(
                invalid_reference("insurance policy", links.insurance_id, "insurance_id")
            )

    def _insert(
        self,
        account_id: str,
        date: date,
        amount: Decimal,
        operation_type: Optional[OperationType],
        category_id: Optional[str],
        description: Optional[str],
        links: Optional[TransactionLinks],
        source: TransactionSource,
        notes: Optional[str],
    ) -> TransactionEntity:
        amount = to_money(amount)
        operation_type = (
            OperationType(operation_type) if operation_type is not None
            else operation_for_amount(amount)
        )
        links = links or TransactionLinks()
        self._validate(account_id, amount, operation_type, category_id, links)
        transaction_id = self.db.create_transaction(
            account_id=account_id,
            date=date,
            amount=amount,
            operation_type=operation_type,
            category_id=category_id,
            description=description,
            links=links,
            source=source,
            notes=notes,
        )
        return self.db.get_transaction(transaction_id)

    def insert_in_unit(
        self,
        events: list[FinanceEvent],
        account_id: str,
        date: date,
        amount: Decimal,
        operation_type: Optional[OperationType] = None,
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        links: Optional[TransactionLinks] = None,
        source: TransactionSource = TransactionSource.MANUAL,
        notes: Optional[str] = None,
    ) -> TransactionEntity:
        """Create a transaction inside an open unit of work.

        Events are appended to ``events`` for the caller to publish once the
        unit commits.
        """
        txn = self._insert(
            account_id, date, amount, operation_type, category_id,
            description, links, source, notes,
        )
        events.append(_event(FinanceEventType.TRANSACTION_CREATED, "created", txn))
        if txn.links.investment_account_id is not None and not txn.links.is_transfer:
            events.append(
                _event(
                    FinanceEventType.INVESTMENT_LINKED,
                    "created",
                    txn,
                    investment_account_id=txn.links.investment_account_id,
                )
            )
        return txn

    def create_transaction(
        self,
        account_id: str,
        date: date,
        amount: Decimal,
        operation_type: Optional[OperationType] = None,
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        links: Optional[TransactionLinks] = None,
        source: TransactionSource = TransactionSource.MANUAL,
        notes: Optional[str] = None,
    ) -> TransactionEntity:
        """Create a transaction.

        Args:
            account_id: Account holding the transaction
            date: Transaction date
            amount: Signed amount (positive = inflow)
            operation_type: Operation; inferred from the amount sign when omitted
            category_id: Optional category ID
            description: Optional description
            links: Optional typed associations
            source: Where the transaction came from
            notes: Optional notes

        Returns:
            The stored transaction

        Raises:
            InvalidReferenceError: If the account, category or a link does not resolve
            ConstraintViolationError: If the sign or category contradicts the operation
        """
        events: list[FinanceEvent] = []
        with self.db.atomic():
            txn = self.insert_in_unit(
                events, account_id, date, amount, operation_type, category_id,
                description, links, source, notes,
            )
        self._publish(events)
        return txn

    def get_transaction(self, transaction_id: str) -> Optional[TransactionEntity]:
        """Get transaction by ID.

        Args:
            transaction_id: Transaction ID

        Returns:
            Transaction entity or None if not found
        """
        return self.db.get_transaction(transaction_id)

    def require_transaction(self, transaction_id: str) -> TransactionEntity:
        """Get transaction by ID or raise NotFoundError."""
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return txn

    def update_transaction(
        self,
        transaction_id: str,
        category_id: Optional[str] = None,
        clear_category: bool = False,
        **changes,
    ) -> TransactionEntity:
        """Update transaction fields.

        Changing the date or amount of a transfer leg mirrors the change on
        its paired leg, so the pair always nets to zero.

        Args:
            transaction_id: Transaction ID to update
            category_id: Optional new category ID
            clear_category: If True, clear the category (category_id must be None)
            **changes: Any of account_id, date, amount, operation_type,
                description, notes

        Returns:
            The updated transaction

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValidationError: If an unknown field is given
        """
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if clear_category and category_id is not None:
            raise ValidationError("Cannot set both category_id and clear_category")

        events = []
        with self.db.atomic():
            txn = self.require_transaction(transaction_id)
            if "amount" in changes:
                changes["amount"] = to_money(changes["amount"])
            if "operation_type" in changes:
                changes["operation_type"] = OperationType(changes["operation_type"])
            if clear_category:
                changes["category_id"] = None
            elif category_id is not None:
                changes["category_id"] = category_id

            updated = replace(txn, **changes)
            if txn.links.is_transfer and updated.account_id != txn.account_id:
                paired = self.db.get_transaction(txn.links.paired_transaction_id)
                if paired is not None and paired.account_id == updated.account_id:
                    raise ConstraintViolationError(
                        "Transfer legs must belong to different accounts"
                    )
            self._validate(
                updated.account_id,
                updated.amount,
                updated.operation_type,
                updated.category_id,
                TransactionLinks(),
            )
            self.db.update_transaction(transaction_id, **changes)
            updated = self.db.get_transaction(transaction_id)
            events.append(_event(FinanceEventType.TRANSACTION_UPDATED, "updated", updated))

            paired_id = txn.links.paired_transaction_id
            if paired_id is not None and ("amount" in changes or "date" in changes):
                mirror = {"date": updated.date, "amount": -updated.amount}
                self.db.update_transaction(paired_id, **mirror)
                events.append(
                    _event(
                        FinanceEventType.TRANSACTION_UPDATED,
                        "updated",
                        self.db.get_transaction(paired_id),
                    )
                )

        self._publish(events)
        return updated

    def set_conciliated(self, transaction_id: str, conciliated: bool = True) -> TransactionEntity:
        """Mark a transaction as reconciled against a bank statement."""
        with self.db.atomic():
            self.require_transaction(transaction_id)
            self.db.update_transaction(transaction_id, conciliated=conciliated)
            txn = self.db.get_transaction(transaction_id)
        self._publish([_event(FinanceEventType.TRANSACTION_UPDATED, "updated", txn)])
        return txn

    def _clear_references(self, txn: TransactionEntity) -> None:
        """Remove every bill, loan and import reference to a transaction."""
        for payment in self.db.list_bill_payments(transaction_id=txn.id):
            self.db.delete_bill_payment(payment.id)

        if txn.links.loan_id is not None and txn.links.installment_number is not None:
            loan = self.db.get_loan(txn.links.loan_id)
            if loan is not None:
                self.db.set_installment_transaction(
                    txn.links.loan_id, txn.links.installment_number, None
                )

        if txn.links.loan_id is not None and txn.links.installment_number is None:
            loan = self.db.get_loan(txn.links.loan_id)
            if loan is not None and loan.disbursement_transaction_id == txn.id:
                self.db.update_loan(loan.id, disbursement_transaction_id=None)

        for row in self.db.list_imported_rows(transaction_id=txn.id):
            self.db.update_imported_row(
                row.id, transaction_id=None, status=ImportRowStatus.RULE_APPLIED
            )
        for row in self.db.list_imported_rows(duplicate_of_id=txn.id):
            self.db.update_imported_row(
                row.id, duplicate_of_id=None, status=ImportRowStatus.RULE_APPLIED
            )

    def remove_in_unit(
        self, txn: TransactionEntity, unlink_only: bool, events: list[FinanceEvent]
    ) -> None:
        """Delete a transaction inside an open unit of work.

        Events are appended to ``events`` for the caller to publish once the
        unit commits.
        """
        paired_id = txn.links.paired_transaction_id
        paired = self.db.get_transaction(paired_id) if paired_id is not None else None

        if paired is not None:
            if unlink_only:
                self.db.update_transaction(
                    paired.id,
                    links=replace(
                        paired.links, transfer_group_id=None, paired_transaction_id=None
                    ),
                )
                events.append(
                    _event(
                        FinanceEventType.TRANSACTION_UPDATED,
                        "updated",
                        self.db.get_transaction(paired.id),
                    )
                )
            else:
                self._clear_references(paired)
                self.db.delete_transaction(paired.id)
                events.append(_event(FinanceEventType.TRANSACTION_DELETED, "deleted", paired))

        self._clear_references(txn)
        self.db.delete_transaction(txn.id)
        events.append(_event(FinanceEventType.TRANSACTION_DELETED, "deleted", txn))

    def delete_transaction(self, transaction_id: str, unlink_only: bool = False) -> None:
        """Delete a transaction.

        Args:
            transaction_id: Transaction ID to delete
            unlink_only: For a transfer leg, keep the paired leg and only
                remove its link instead of deleting it too

        Raises:
            NotFoundError: If transaction doesn't exist
        """
        events: list[FinanceEvent] = []
        with self.db.atomic():
            txn = self.require_transaction(transaction_id)
            self.remove_in_unit(txn, unlink_only, events)
        logger.debug("Deleted transaction %s (%d event(s))", transaction_id, len(events))
        self._publish(events)

    def _create_pair(
        self,
        out_account_id: str,
        in_account_id: str,
        amount: Decimal,
        date: date,
        out_operation: OperationType,
        in_operation: OperationType,
        description: Optional[str],
        notes: Optional[str],
        source: TransactionSource,
        investment_account_id: Optional[str] = None,
    ) -> tuple[TransactionEntity, TransactionEntity]:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Transfer amount must be positive")
        if out_account_id == in_account_id:
            raise ConstraintViolationError("Transfer legs must belong to different accounts")

        group_id = generate_id("trf")
        base_links = TransactionLinks(
            transfer_group_id=group_id, investment_account_id=investment_account_id
        )
        out_leg = self._insert(
            out_account_id, date, -amount, out_operation, None,
            description, base_links, source, notes,
        )
        in_leg = self._insert(
            in_account_id, date, amount, in_operation, None, description,
            replace(base_links, paired_transaction_id=out_leg.id), source, notes,
        )
        self.db.update_transaction(
            out_leg.id, links=replace(base_links, paired_transaction_id=in_leg.id)
        )
        return self.db.get_transaction(out_leg.id), in_leg

    def create_transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        date: date,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        source: TransactionSource = TransactionSource.MANUAL,
    ) -> tuple[TransactionEntity, TransactionEntity]:
        """Move money between two accounts as a linked pair of transactions.

        Args:
            from_account_id: Account the money leaves
            to_account_id: Account the money enters
            amount: Positive amount moved
            date: Transfer date
            description: Optional description for both legs
            notes: Optional notes for both legs

        Returns:
            (outgoing leg, incoming leg)

        Raises:
            ConstraintViolationError: If both legs would use the same account
        """
        with self.db.atomic():
            out_leg, in_leg = self._create_pair(
                from_account_id, to_account_id, amount, date,
                OperationType.TRANSFER_OUT, OperationType.TRANSFER_IN,
                description, notes, source,
            )

        self._publish(
            [
                _event(FinanceEventType.TRANSACTION_CREATED, "created", out_leg),
                _event(FinanceEventType.TRANSACTION_CREATED, "created", in_leg),
                FinanceEvent(
                    type=FinanceEventType.TRANSFER_CREATED,
                    entity_kind="transfer",
                    operation="created",
                    payload={
                        "id": out_leg.links.transfer_group_id,
                        "outgoing": out_leg,
                        "incoming": in_leg,
                    },
                ),
            ]
        )
        return out_leg, in_leg

    def create_investment_movement(
        self,
        account_id: str,
        investment_account_id: str,
        amount: Decimal,
        date: date,
        withdrawal: bool = False,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> tuple[TransactionEntity, TransactionEntity]:
        """Contribute to (or withdraw from) an investment account.

        The cash leg carries the investment operation; the investment account
        receives the mirrored transfer leg. Both legs link to the investment
        account.

        Returns:
            (cash leg, investment leg)
        """
        investment = self.db.get_account(investment_account_id)
        if investment is None or investment.account_type != AccountType.INVESTMENT:
            raise InvalidReferenceError(
                invalid_reference(
                    "investment account", investment_account_id, "investment_account_id"
                )
            )

        with self.db.atomic():
            if withdrawal:
                investment_leg, cash_leg = self._create_pair(
                    investment_account_id, account_id, amount, date,
                    OperationType.TRANSFER_OUT, OperationType.INVESTMENT_WITHDRAWAL,
                    description, notes, TransactionSource.MANUAL, investment_account_id,
                )
            else:
                cash_leg, investment_leg = self._create_pair(
                    account_id, investment_account_id, amount, date,
                    OperationType.INVESTMENT_CONTRIBUTION, OperationType.TRANSFER_IN,
                    description, notes, TransactionSource.MANUAL, investment_account_id,
                )

        self._publish(
            [
                _event(FinanceEventType.TRANSACTION_CREATED, "created", cash_leg),
                _event(FinanceEventType.TRANSACTION_CREATED, "created", investment_leg),
                _event(
                    FinanceEventType.INVESTMENT_LINKED,
                    "created",
                    cash_leg,
                    investment_account_id=investment_account_id,
                    withdrawal=withdrawal,
                ),
            ]
        )
        return cash_leg, investment_leg

    def list_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category_id: Optional[str] = None,
        account_id: Optional[str] = None,
        uncategorized: bool = False,
        operation_types: Optional[list[OperationType]] = None,
    ) -> list[TransactionEntity]:
        """List transactions with filters, ordered by date then insertion order.

        Args:
            start_date: Optional start date filter
            end_date: Optional end date filter
            category_id: Optional category ID filter
            account_id: Optional account ID filter
            uncategorized: If True, only transactions without a category
            operation_types: Optional operation types to keep

        Returns:
            List of transaction entities
        """
        return self.db.list_transactions(
            TransactionFilter(
                account_id=account_id,
                start_date=start_date,
                end_date=end_date,
                category_id=category_id,
                uncategorized=uncategorized,
                operation_types=tuple(OperationType(op) for op in operation_types or ()),
            )
        )
