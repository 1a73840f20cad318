"""Loans with a French amortization (Tabela Price) schedule."""

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from finboard.database.base import Database
from finboard.domain.entities import (
    AccountType,
    Loan as LoanEntity,
    LoanInstallment,
    OperationType,
    TransactionLinks,
    TransactionSource,
    Transaction,
    category_accepts,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
    invalid_reference,
    not_found,
)
from finboard.domain.events import (
    EventBus,
    FinanceEvent,
    FinanceEventType,
    entity_event_type,
)
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import CENT, to_money

logger = logging.getLogger(__name__)


def price_installment(principal: Decimal, monthly_rate: Decimal, term_months: int) -> Decimal:
    """Fixed installment of a Price schedule."""
    if monthly_rate == 0:
        return to_money(principal / term_months)
    factor = (1 + monthly_rate) ** term_months
    return to_money(principal * monthly_rate * factor / (factor - 1))


def price_schedule(
    principal: Decimal, monthly_rate: Decimal, term_months: int, start_date: date
) -> list[dict]:
    """Build the installment rows of a Price schedule.

    Installment ``n`` falls due ``n`` months after ``start_date``. The last
    installment pays whatever principal is left, so rounding never leaves a
    residual balance.
    """
    installment = price_installment(principal, monthly_rate, term_months)
    balance = principal
    rows = []
    for number in range(1, term_months + 1):
        interest = (balance * monthly_rate).quantize(CENT)
        if number == term_months:
            amortization = balance
        else:
            amortization = installment - interest
        balance -= amortization
        rows.append(
            {
                "number": number,
                "due_date": start_date + relativedelta(months=number),
                "amount": amortization + interest,
                "principal": amortization,
                "interest": interest,
                "balance_after": balance,
            }
        )
    return rows


class LoanService:
    """Service for loans and installment payments."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or EventBus()
        self.transactions = TransactionService(db, self.bus)

    def _publish(self, events: list[FinanceEvent]) -> None:
        for event in events:
            self.bus.publish(event)

    def create_loan(
        self,
        name: str,
        principal: Decimal,
        monthly_rate: Decimal,
        term_months: int,
        account_id: str,
        start_date: date,
        disbursement_transaction_id: Optional[str] = None,
    ) -> LoanEntity:
        """Create a loan, its schedule and the credit of the borrowed money.

        The principal enters the account as a ``loan_disbursement``
        transaction dated ``start_date``. When the credit is already in the
        ledger (an imported bank line, say) pass its ID instead; it is
        reclassified and linked to the loan rather than duplicated.

        Args:
            name: Lender or loan name
            principal: Amount borrowed (positive)
            monthly_rate: Interest per month as a fraction (0.015 = 1.5%)
            term_months: Number of installments
            account_id: Account credited with the principal and debited by installments
            start_date: Contract date; the first installment is due a month later
            disbursement_transaction_id: Existing credit to adopt as the disbursement

        Returns:
            The stored loan with installments

        Raises:
            ValidationError: If principal, rate or term are out of range
            InvalidReferenceError: If the account or disbursement doesn't exist
            ConstraintViolationError: If the disbursement can't be adopted
        """
        if not name or not name.strip():
            raise ValidationError("Loan name must not be empty")
        principal = to_money(principal)
        monthly_rate = Decimal(str(monthly_rate))
        if principal <= 0:
            raise ValidationError("Loan principal must be positive")
        if monthly_rate < 0:
            raise ValidationError("Monthly rate must not be negative")
        if term_months < 1:
            raise ValidationError("Loan term must be at least one month")

        schedule = price_schedule(principal, monthly_rate, term_months, start_date)
        events: list[FinanceEvent] = []
        with self.db.atomic():
            account = self.db.get_account(account_id)
            if account is None:
                raise InvalidReferenceError(invalid_reference("account", account_id, "account_id"))
            if account.account_type == AccountType.INVESTMENT:
                raise InvalidReferenceError(
                    f"Loan installments cannot be paid from investment account {account.name}"
                )
            loan_id = self.db.create_loan(
                name=name.strip(),
                principal=principal,
                monthly_rate=monthly_rate,
                term_months=term_months,
                account_id=account_id,
                start_date=start_date,
                installment_amount=schedule[0]["amount"],
                installments=schedule,
            )
            if disbursement_transaction_id is None:
                disbursement = self.transactions.insert_in_unit(
                    events,
                    account_id=account_id,
                    date=start_date,
                    amount=principal,
                    operation_type=OperationType.LOAN_DISBURSEMENT,
                    description=name.strip(),
                    links=TransactionLinks(loan_id=loan_id),
                    source=TransactionSource.LOAN,
                )
            else:
                disbursement = self._adopt_disbursement(
                    events, loan_id, account_id, disbursement_transaction_id
                )
            self.db.update_loan(loan_id, disbursement_transaction_id=disbursement.id)
            loan = self.db.get_loan(loan_id)
            events.append(
                FinanceEvent(
                    type=entity_event_type("created"),
                    entity_kind="loan",
                    operation="created",
                    payload={"id": loan.id, "loan": loan},
                )
            )
        logger.info("Created loan '%s' with %d installments", loan.name, term_months)
        self._publish(events)
        return loan

    def _adopt_disbursement(
        self, events: list[FinanceEvent], loan_id: str, account_id: str, transaction_id: str
    ) -> Transaction:
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise InvalidReferenceError(
                invalid_reference("transaction", transaction_id, "disbursement_transaction_id")
            )
        if txn.account_id != account_id:
            raise ConstraintViolationError(
                f"Disbursement {transaction_id} belongs to another account"
            )
        if txn.amount <= 0 or txn.links.is_transfer:
            raise ConstraintViolationError(
                f"Disbursement {transaction_id} must be a positive, non-transfer credit"
            )
        if txn.links.loan_id is not None:
            raise ConstraintViolationError(
                f"Transaction {transaction_id} is already linked to loan {txn.links.loan_id}"
            )
        category_id = txn.category_id
        if category_id is not None:
            category = self.db.get_category(category_id)
            if category is None or not category_accepts(
                category.direction, OperationType.LOAN_DISBURSEMENT
            ):
                category_id = None
        self.db.update_transaction(
            txn.id,
            operation_type=OperationType.LOAN_DISBURSEMENT,
            category_id=category_id,
            links=replace(txn.links, loan_id=loan_id),
        )
        adopted = self.db.get_transaction(txn.id)
        events.append(
            FinanceEvent(
                type=FinanceEventType.TRANSACTION_UPDATED,
                entity_kind="transaction",
                operation="updated",
                payload={"id": adopted.id, "transaction": adopted},
            )
        )
        return adopted

    def get_loan(self, loan_id: str) -> Optional[LoanEntity]:
        return self.db.get_loan(loan_id)

    def require_loan(self, loan_id: str) -> LoanEntity:
        loan = self.db.get_loan(loan_id)
        if loan is None:
            raise NotFoundError(not_found("Loan", loan_id))
        return loan

    def list_loans(self, account_id: Optional[str] = None) -> list[LoanEntity]:
        return self.db.list_loans(account_id=account_id)

    def next_installment(self, loan_id: str) -> Optional[LoanInstallment]:
        """First unpaid installment, or None when the loan is settled."""
        loan = self.require_loan(loan_id)
        return next((i for i in loan.installments if not i.is_paid), None)

    def pay_installment(
        self,
        loan_id: str,
        number: Optional[int] = None,
        payment_date: Optional[date] = None,
        category_id: Optional[str] = None,
    ) -> Transaction:
        """Pay one installment from the loan's account.

        Creates a ``loan_payment`` transaction linked to the installment and
        publishes ``loan.payment``.

        Args:
            loan_id: Loan ID
            number: Installment number; defaults to the first unpaid one
            payment_date: Transaction date; defaults to the installment due date
            category_id: Optional expense category

        Raises:
            ConstraintViolationError: If the installment is already paid
        """
        events: list[FinanceEvent] = []
        with self.db.atomic():
            loan = self.require_loan(loan_id)
            if number is None:
                installment = next((i for i in loan.installments if not i.is_paid), None)
                if installment is None:
                    raise ConstraintViolationError(f"Loan {loan.name} is fully paid")
            else:
                installment = next((i for i in loan.installments if i.number == number), None)
                if installment is None:
                    raise NotFoundError(f"Installment {number} of loan {loan_id} not found")
            if installment.is_paid:
                raise ConstraintViolationError(
                    f"Installment {installment.number} of loan {loan.name} is already paid"
                )
            txn = self.transactions.insert_in_unit(
                events,
                account_id=loan.account_id,
                date=payment_date or installment.due_date,
                amount=-installment.amount,
                operation_type=OperationType.LOAN_PAYMENT,
                category_id=category_id,
                description=f"{loan.name} {installment.number}/{loan.term_months}",
                links=TransactionLinks(loan_id=loan.id, installment_number=installment.number),
                source=TransactionSource.LOAN,
            )
            self.db.set_installment_transaction(loan.id, installment.number, txn.id)
            events.append(
                FinanceEvent(
                    type=FinanceEventType.LOAN_PAYMENT,
                    entity_kind="loan",
                    operation="updated",
                    payload={
                        "id": loan.id,
                        "installment_number": installment.number,
                        "transaction": txn,
                    },
                )
            )
        self._publish(events)
        return txn

    def outstanding_balance(self, loan_id: str, as_of: Optional[date] = None) -> Decimal:
        """Principal still owed, counting installments paid on or before ``as_of``."""
        with self.db.atomic():
            loan = self.require_loan(loan_id)
            paid = Decimal("0.00")
            for installment in loan.installments:
                if not installment.is_paid:
                    continue
                txn = self.db.get_transaction(installment.transaction_id)
                if txn is not None and (as_of is None or txn.date <= as_of):
                    paid += installment.principal
        return loan.principal - paid

    def delete_loan(self, loan_id: str) -> None:
        """Delete a loan; its disbursement and payments stay in the ledger unlinked."""
        events: list[FinanceEvent] = []
        with self.db.atomic():
            loan = self.require_loan(loan_id)
            for txn in self.db.list_transactions_by_link("loan_id", loan.id):
                self.db.update_transaction(txn.id, links=replace(txn.links, loan_id=None, installment_number=None))
                events.append(
                    FinanceEvent(
                        type=FinanceEventType.TRANSACTION_UPDATED,
                        entity_kind="transaction",
                        operation="updated",
                        payload={"id": txn.id, "transaction": self.db.get_transaction(txn.id)},
                    )
                )
            self.db.delete_loan(loan.id)
            events.append(
                FinanceEvent(
                    type=entity_event_type("deleted"),
                    entity_kind="loan",
                    operation="deleted",
                    payload={"id": loan.id, "loan": loan},
                )
            )
        self._publish(events)
