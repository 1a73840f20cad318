"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so every field of the domain
entities (links included) round-trips through storage in one place.
"""

from decimal import Decimal
from typing import Any, Optional

from finboard.domain import entities as domain
from finboard.database.models import (
    Account as ORMAccount,
    Category as ORMCategory,
    Transaction as ORMTransaction,
    Loan as ORMLoan,
    LoanInstallment as ORMLoanInstallment,
    Vehicle as ORMVehicle,
    InsurancePolicy as ORMInsurancePolicy,
    Goal as ORMGoal,
    BillTracker as ORMBillTracker,
    BillPayment as ORMBillPayment,
    BillDismissal as ORMBillDismissal,
    StandardizationRule as ORMStandardizationRule,
    ImportedStatement as ORMImportedStatement,
    ImportedTransaction as ORMImportedTransaction,
)

LINK_FIELDS = (
    "transfer_group_id",
    "paired_transaction_id",
    "loan_id",
    "installment_number",
    "investment_account_id",
    "bill_id",
    "vehicle_id",
    "insurance_id",
)


def _money(value: Any) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"))


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        account_type=domain.AccountType(orm_account.account_type),
        opening_balance=_money(orm_account.opening_balance),
        currency=orm_account.currency,
        created_at=orm_account.created_at,
    )


def category_to_domain(orm_category: ORMCategory) -> domain.Category:
    """Convert SQLAlchemy Category model to domain Category entity."""
    return domain.Category(
        id=orm_category.id,
        name=orm_category.name,
        direction=domain.FlowDirection(orm_category.direction),
        created_at=orm_category.created_at,
    )


def links_to_columns(links: Optional[domain.TransactionLinks]) -> dict[str, Any]:
    """Flatten TransactionLinks into transaction column values."""
    links = links or domain.TransactionLinks()
    return {name: getattr(links, name) for name in LINK_FIELDS}


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        account_id=orm_transaction.account_id,
        date=orm_transaction.date,
        amount=_money(orm_transaction.amount),
        operation_type=domain.OperationType(orm_transaction.operation_type),
        category_id=orm_transaction.category_id,
        description=orm_transaction.description,
        links=domain.TransactionLinks(
            **{name: getattr(orm_transaction, name) for name in LINK_FIELDS}
        ),
        source=domain.TransactionSource(orm_transaction.source),
        notes=orm_transaction.notes,
        conciliated=bool(orm_transaction.conciliated),
        sequence=orm_transaction.sequence,
        created_at=orm_transaction.created_at,
    )


def installment_to_domain(orm_installment: ORMLoanInstallment) -> domain.LoanInstallment:
    """Convert SQLAlchemy LoanInstallment model to domain entity."""
    return domain.LoanInstallment(
        id=orm_installment.id,
        loan_id=orm_installment.loan_id,
        number=orm_installment.number,
        due_date=orm_installment.due_date,
        amount=_money(orm_installment.amount),
        principal=_money(orm_installment.principal),
        interest=_money(orm_installment.interest),
        balance_after=_money(orm_installment.balance_after),
        transaction_id=orm_installment.transaction_id,
    )


def loan_to_domain(orm_loan: ORMLoan) -> domain.Loan:
    """Convert SQLAlchemy Loan model (with its schedule) to domain Loan entity."""
    return domain.Loan(
        id=orm_loan.id,
        name=orm_loan.name,
        principal=_money(orm_loan.principal),
        monthly_rate=Decimal(orm_loan.monthly_rate),
        term_months=orm_loan.term_months,
        account_id=orm_loan.account_id,
        start_date=orm_loan.start_date,
        installment_amount=_money(orm_loan.installment_amount),
        created_at=orm_loan.created_at,
        installments=tuple(installment_to_domain(i) for i in orm_loan.installments),
        disbursement_transaction_id=orm_loan.disbursement_transaction_id,
    )


def vehicle_to_domain(orm_vehicle: ORMVehicle) -> domain.Vehicle:
    """Convert SQLAlchemy Vehicle model to domain Vehicle entity."""
    return domain.Vehicle(
        id=orm_vehicle.id,
        name=orm_vehicle.name,
        model=orm_vehicle.model,
        year=orm_vehicle.year,
        purchase_date=orm_vehicle.purchase_date,
        purchase_value=_money(orm_vehicle.purchase_value),
        current_value=_money(orm_vehicle.current_value),
        created_at=orm_vehicle.created_at,
    )


def insurance_to_domain(orm_policy: ORMInsurancePolicy) -> domain.InsurancePolicy:
    """Convert SQLAlchemy InsurancePolicy model to domain entity."""
    return domain.InsurancePolicy(
        id=orm_policy.id,
        vehicle_id=orm_policy.vehicle_id,
        insurer=orm_policy.insurer,
        premium=_money(orm_policy.premium),
        installments=orm_policy.installments,
        start_date=orm_policy.start_date,
        end_date=orm_policy.end_date,
        created_at=orm_policy.created_at,
    )


def goal_to_domain(orm_goal: ORMGoal) -> domain.Goal:
    """Convert SQLAlchemy Goal model to domain Goal entity."""
    return domain.Goal(
        id=orm_goal.id,
        name=orm_goal.name,
        target_amount=_money(orm_goal.target_amount),
        target_date=orm_goal.target_date,
        account_ids=tuple(acc.id for acc in orm_goal.accounts),
        created_at=orm_goal.created_at,
    )


def bill_to_domain(orm_bill: ORMBillTracker) -> domain.BillTracker:
    """Convert SQLAlchemy BillTracker model to domain entity."""
    return domain.BillTracker(
        id=orm_bill.id,
        name=orm_bill.name,
        expected_amount=_money(orm_bill.expected_amount),
        due_day=orm_bill.due_day,
        source_type=domain.BillSourceType(orm_bill.source_type),
        signature=orm_bill.signature,
        account_id=orm_bill.account_id,
        category_id=orm_bill.category_id,
        active=bool(orm_bill.active),
        created_at=orm_bill.created_at,
    )


def bill_payment_to_domain(orm_payment: ORMBillPayment) -> domain.BillPayment:
    """Convert SQLAlchemy BillPayment model to domain entity."""
    return domain.BillPayment(
        id=orm_payment.id,
        bill_id=orm_payment.bill_id,
        period=orm_payment.period,
        transaction_id=orm_payment.transaction_id,
    )


def bill_dismissal_to_domain(orm_dismissal: ORMBillDismissal) -> domain.BillDismissal:
    """Convert SQLAlchemy BillDismissal model to domain entity."""
    return domain.BillDismissal(
        id=orm_dismissal.id,
        signature=orm_dismissal.signature,
        created_at=orm_dismissal.created_at,
    )


def rule_to_domain(orm_rule: ORMStandardizationRule) -> domain.StandardizationRule:
    """Convert SQLAlchemy StandardizationRule model to domain entity."""
    return domain.StandardizationRule(
        id=orm_rule.id,
        pattern=orm_rule.pattern,
        match_type=domain.RuleMatchType(orm_rule.match_type),
        account_id=orm_rule.account_id,
        category_id=orm_rule.category_id,
        description=orm_rule.description,
        operation_type=(
            domain.OperationType(orm_rule.operation_type) if orm_rule.operation_type else None
        ),
        position=orm_rule.position,
        created_at=orm_rule.created_at,
    )


def statement_to_domain(orm_statement: ORMImportedStatement) -> domain.ImportedStatement:
    """Convert SQLAlchemy ImportedStatement model to domain entity."""
    return domain.ImportedStatement(
        id=orm_statement.id,
        account_id=orm_statement.account_id,
        source=orm_statement.source,
        status=domain.StatementStatus(orm_statement.status),
        imported_at=orm_statement.imported_at,
    )


def imported_row_to_domain(orm_row: ORMImportedTransaction) -> domain.ImportedTransaction:
    """Convert SQLAlchemy ImportedTransaction model to domain entity."""
    return domain.ImportedTransaction(
        id=orm_row.id,
        statement_id=orm_row.statement_id,
        row_number=orm_row.row_number,
        account_id=orm_row.account_id,
        date=orm_row.date,
        amount=_money(orm_row.amount),
        raw_description=orm_row.raw_description,
        description=orm_row.description,
        category_id=orm_row.category_id,
        operation_type=domain.OperationType(orm_row.operation_type),
        status=domain.ImportRowStatus(orm_row.status),
        rule_id=orm_row.rule_id,
        duplicate_of_id=orm_row.duplicate_of_id,
        transaction_id=orm_row.transaction_id,
        error=orm_row.error,
    )
