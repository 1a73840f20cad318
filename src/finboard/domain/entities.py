"""Domain model entities for finboard.

These are pure data classes representing business concepts, independent of
database schema. Services hand them out as read-only views; changes always go
back through a service so the store stays the single source of truth.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional


class AccountType(str, Enum):
    """Kind of account."""

    CHECKING = "checking"
    SAVINGS = "savings"
    WALLET = "wallet"
    INVESTMENT = "investment"
    CREDIT = "credit"
    OTHER = "other"


class OperationType(str, Enum):
    """Closed set of operations a transaction can represent."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    INVESTMENT_CONTRIBUTION = "investment_contribution"
    INVESTMENT_WITHDRAWAL = "investment_withdrawal"
    LOAN_PAYMENT = "loan_payment"
    LOAN_DISBURSEMENT = "loan_disbursement"
    INVESTMENT_YIELD = "investment_yield"


class FlowType(str, Enum):
    """Direction of money relative to the account that holds the transaction."""

    IN = "in"
    OUT = "out"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


class TransactionDomain(str, Enum):
    """Reporting domain of an operation."""

    OPERATIONAL = "operational"
    INVESTMENT = "investment"
    FINANCING = "financing"


class FlowDirection(str, Enum):
    """Whether money enters or leaves the ledger as a whole."""

    INCOME = "income"
    EXPENSE = "expense"
    NEUTRAL = "neutral"


class TransactionSource(str, Enum):
    """Where a transaction came from."""

    MANUAL = "manual"
    IMPORT = "import"
    BILL = "bill"
    LOAN = "loan"
    SYSTEM = "system"


class BillSourceType(str, Enum):
    """How a bill tracker was created."""

    MANUAL = "manual"
    AUTO_DETECTED = "auto_detected"


class BillStatus(str, Enum):
    """Status of one period of a bill tracker."""

    UPCOMING = "upcoming"
    DUE = "due"
    OVERDUE = "overdue"
    PAID = "paid"


class ImportRowStatus(str, Enum):
    """Lifecycle of an imported statement row."""

    UNMATCHED = "unmatched"
    RULE_APPLIED = "rule_applied"
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class StatementStatus(str, Enum):
    """Aggregate state of an imported statement."""

    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


class RuleMatchType(str, Enum):
    """How a standardization rule compares its pattern to a description."""

    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    REGEX = "regex"


# Fixed mapping tables. Sign is derived from the flow: IN and TRANSFER_IN are
# inflows (positive amounts), OUT and TRANSFER_OUT outflows (negative amounts).
_OPERATION_FLOW = {
    OperationType.INCOME: FlowType.IN,
    OperationType.INVESTMENT_WITHDRAWAL: FlowType.IN,
    OperationType.INVESTMENT_YIELD: FlowType.IN,
    OperationType.LOAN_DISBURSEMENT: FlowType.IN,
    OperationType.EXPENSE: FlowType.OUT,
    OperationType.INVESTMENT_CONTRIBUTION: FlowType.OUT,
    OperationType.LOAN_PAYMENT: FlowType.OUT,
    OperationType.TRANSFER_IN: FlowType.TRANSFER_IN,
    OperationType.TRANSFER_OUT: FlowType.TRANSFER_OUT,
}

_OPERATION_DOMAIN = {
    OperationType.INCOME: TransactionDomain.OPERATIONAL,
    OperationType.EXPENSE: TransactionDomain.OPERATIONAL,
    OperationType.TRANSFER_IN: TransactionDomain.OPERATIONAL,
    OperationType.TRANSFER_OUT: TransactionDomain.OPERATIONAL,
    OperationType.INVESTMENT_CONTRIBUTION: TransactionDomain.INVESTMENT,
    OperationType.INVESTMENT_WITHDRAWAL: TransactionDomain.INVESTMENT,
    OperationType.INVESTMENT_YIELD: TransactionDomain.INVESTMENT,
    OperationType.LOAN_PAYMENT: TransactionDomain.FINANCING,
    OperationType.LOAN_DISBURSEMENT: TransactionDomain.FINANCING,
}

_OPERATION_DIRECTION = {
    OperationType.INCOME: FlowDirection.INCOME,
    OperationType.EXPENSE: FlowDirection.EXPENSE,
    OperationType.LOAN_PAYMENT: FlowDirection.EXPENSE,
    OperationType.INVESTMENT_YIELD: FlowDirection.INCOME,
    OperationType.TRANSFER_IN: FlowDirection.NEUTRAL,
    OperationType.TRANSFER_OUT: FlowDirection.NEUTRAL,
    OperationType.INVESTMENT_CONTRIBUTION: FlowDirection.NEUTRAL,
    OperationType.INVESTMENT_WITHDRAWAL: FlowDirection.NEUTRAL,
    OperationType.LOAN_DISBURSEMENT: FlowDirection.NEUTRAL,
}


def get_flow_type_from_operation(operation: OperationType) -> FlowType:
    """Return the flow type implied by an operation."""
    return _OPERATION_FLOW[OperationType(operation)]


def get_domain_from_operation(operation: OperationType) -> TransactionDomain:
    """Return the reporting domain of an operation."""
    return _OPERATION_DOMAIN[OperationType(operation)]


def get_direction_from_operation(operation: OperationType) -> FlowDirection:
    """Return the ledger-wide flow direction of an operation."""
    return _OPERATION_DIRECTION[OperationType(operation)]


def is_inflow(flow: FlowType) -> bool:
    """Return True for flows that carry positive amounts."""
    return flow in (FlowType.IN, FlowType.TRANSFER_IN)


def operation_for_amount(amount: Decimal) -> OperationType:
    """Infer a plain operation from the sign of an amount."""
    return OperationType.EXPENSE if amount < 0 else OperationType.INCOME


def category_accepts(direction: FlowDirection, operation: OperationType) -> bool:
    """Return True if a category with ``direction`` may classify ``operation``."""
    if direction == FlowDirection.NEUTRAL:
        return True
    return get_direction_from_operation(operation) == direction


@dataclass(frozen=True)
class Account:
    """Account domain entity (ContaCorrente). Balance is always replayed."""

    id: str
    name: str
    account_type: AccountType
    opening_balance: Decimal
    currency: str
    created_at: datetime


@dataclass(frozen=True)
class Category:
    """Transaction category with a fixed flow direction."""

    id: str
    name: str
    direction: FlowDirection
    created_at: datetime


@dataclass(frozen=True)
class TransactionLinks:
    """Typed associations recorded on a transaction."""

    transfer_group_id: Optional[str] = None
    paired_transaction_id: Optional[str] = None
    loan_id: Optional[str] = None
    installment_number: Optional[int] = None
    investment_account_id: Optional[str] = None
    bill_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    insurance_id: Optional[str] = None

    @property
    def is_transfer(self) -> bool:
        return self.transfer_group_id is not None


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity (TransacaoCompleta)."""

    id: str
    account_id: str
    date: date
    amount: Decimal
    operation_type: OperationType
    category_id: Optional[str]
    description: Optional[str]
    links: TransactionLinks
    source: TransactionSource
    notes: Optional[str]
    conciliated: bool
    sequence: int
    created_at: datetime

    @property
    def flow(self) -> FlowType:
        return get_flow_type_from_operation(self.operation_type)

    @property
    def domain(self) -> TransactionDomain:
        return get_domain_from_operation(self.operation_type)

    @property
    def direction(self) -> FlowDirection:
        return get_direction_from_operation(self.operation_type)


@dataclass(frozen=True)
class LoanInstallment:
    """One installment of a loan schedule."""

    id: str
    loan_id: str
    number: int
    due_date: date
    amount: Decimal
    principal: Decimal
    interest: Decimal
    balance_after: Decimal
    transaction_id: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.transaction_id is not None


@dataclass(frozen=True)
class Loan:
    """Loan domain entity (Emprestimo)."""

    id: str
    name: str
    principal: Decimal
    monthly_rate: Decimal
    term_months: int
    account_id: str
    start_date: date
    installment_amount: Decimal
    created_at: datetime
    installments: tuple[LoanInstallment, ...] = ()
    disbursement_transaction_id: Optional[str] = None


@dataclass(frozen=True)
class Vehicle:
    """Vehicle asset (Veiculo)."""

    id: str
    name: str
    model: Optional[str]
    year: Optional[int]
    purchase_date: Optional[date]
    purchase_value: Decimal
    current_value: Decimal
    created_at: datetime


@dataclass(frozen=True)
class InsurancePolicy:
    """Vehicle insurance policy (SeguroVeiculo)."""

    id: str
    vehicle_id: str
    insurer: str
    premium: Decimal
    installments: int
    start_date: date
    end_date: date
    created_at: datetime

    @property
    def installment_amount(self) -> Decimal:
        return (self.premium / self.installments).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class Goal:
    """Financial goal (ObjetivoFinanceiro)."""

    id: str
    name: str
    target_amount: Decimal
    target_date: Optional[date]
    account_ids: tuple[str, ...]
    created_at: datetime


@dataclass(frozen=True)
class GoalProgress:
    """Progress of a goal as of a date."""

    goal_id: str
    as_of: date
    current_amount: Decimal
    target_amount: Decimal
    remaining: Decimal
    percent: Decimal
    monthly_needed: Optional[Decimal]


@dataclass(frozen=True)
class BillTracker:
    """Recurring bill tracker."""

    id: str
    name: str
    expected_amount: Decimal
    due_day: int
    source_type: BillSourceType
    signature: str
    account_id: Optional[str]
    category_id: Optional[str]
    active: bool
    created_at: datetime


@dataclass(frozen=True)
class BillPayment:
    """Link between one period of a bill and the transaction that paid it."""

    id: str
    bill_id: str
    period: str
    transaction_id: str


@dataclass(frozen=True)
class BillDismissal:
    """A recurrence signature the user does not want proposed again."""

    id: str
    signature: str
    created_at: datetime


@dataclass(frozen=True)
class PotentialFixedBill:
    """A recurring pattern detected in transaction history."""

    signature: str
    description: str
    category_id: Optional[str]
    account_id: Optional[str]
    expected_amount: Decimal
    due_day: int
    occurrences: int
    last_date: date
    next_due_date: date
    transaction_ids: tuple[str, ...]
    source_type: BillSourceType = BillSourceType.AUTO_DETECTED


@dataclass(frozen=True)
class StandardizationRule:
    """Pattern-to-transform mapping applied to imported descriptions."""

    id: str
    pattern: str
    match_type: RuleMatchType
    account_id: Optional[str]
    category_id: Optional[str]
    description: Optional[str]
    operation_type: Optional[OperationType]
    position: int
    created_at: datetime


@dataclass(frozen=True)
class ImportedStatement:
    """A batch of externally sourced rows."""

    id: str
    account_id: str
    source: str
    status: StatementStatus
    imported_at: datetime


@dataclass(frozen=True)
class ImportedTransaction:
    """One row of an imported statement."""

    id: str
    statement_id: str
    row_number: int
    account_id: str
    date: date
    amount: Decimal
    raw_description: str
    description: str
    category_id: Optional[str]
    operation_type: OperationType
    status: ImportRowStatus
    rule_id: Optional[str] = None
    duplicate_of_id: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SeriesPoint:
    """A ``{date, value}`` point consumed by chart collaborators."""

    date: date
    value: Decimal


@dataclass(frozen=True)
class StatementLine:
    """A replayed transaction with the running balance after it."""

    transaction: Transaction
    balance: Decimal


@dataclass(frozen=True)
class TransactionFilter:
    """Filters for listing transactions."""

    account_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[str] = None
    uncategorized: bool = False
    operation_types: tuple[OperationType, ...] = field(default_factory=tuple)
