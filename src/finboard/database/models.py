"""SQLAlchemy models for finboard database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    Table,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(UTC)


class Account(Base):
    """Account model. Balances are never stored."""

    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    account_type = Column(String, nullable=False)
    opening_balance = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    transactions = relationship("Transaction", back_populates="account")


class Category(Base):
    """Category model with flow direction."""

    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    direction = Column(String, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class Transaction(Base):
    """Transaction model. Link columns hold identifiers, never copies."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    sequence = Column(Integer, unique=True, nullable=False)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    operation_type = Column(String, nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    description = Column(String, nullable=True)
    source = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    conciliated = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    transfer_group_id = Column(String, nullable=True, index=True)
    paired_transaction_id = Column(String, nullable=True)
    loan_id = Column(String, nullable=True)
    installment_number = Column(Integer, nullable=True)
    investment_account_id = Column(String, nullable=True)
    bill_id = Column(String, nullable=True)
    vehicle_id = Column(String, nullable=True)
    insurance_id = Column(String, nullable=True)

    account = relationship("Account", back_populates="transactions")


class Loan(Base):
    """Loan model."""

    __tablename__ = "loans"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    principal = Column(Numeric(14, 2), nullable=False)
    monthly_rate = Column(Numeric(10, 6), nullable=False)
    term_months = Column(Integer, nullable=False)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    installment_amount = Column(Numeric(14, 2), nullable=False)
    disbursement_transaction_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanInstallment.number",
    )


class LoanInstallment(Base):
    """Loan installment model."""

    __tablename__ = "loan_installments"

    id = Column(String, primary_key=True)
    loan_id = Column(String, ForeignKey("loans.id"), nullable=False)
    number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    principal = Column(Numeric(14, 2), nullable=False)
    interest = Column(Numeric(14, 2), nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=False)
    transaction_id = Column(String, nullable=True)

    __table_args__ = (UniqueConstraint("loan_id", "number", name="uq_loan_installment"),)

    loan = relationship("Loan", back_populates="installments")


class Vehicle(Base):
    """Vehicle model."""

    __tablename__ = "vehicles"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    model = Column(String, nullable=True)
    year = Column(Integer, nullable=True)
    purchase_date = Column(Date, nullable=True)
    purchase_value = Column(Numeric(14, 2), nullable=False)
    current_value = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    policies = relationship("InsurancePolicy", back_populates="vehicle")


class InsurancePolicy(Base):
    """Vehicle insurance policy model."""

    __tablename__ = "insurance_policies"

    id = Column(String, primary_key=True)
    vehicle_id = Column(String, ForeignKey("vehicles.id"), nullable=False)
    insurer = Column(String, nullable=False)
    premium = Column(Numeric(14, 2), nullable=False)
    installments = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    vehicle = relationship("Vehicle", back_populates="policies")


goal_accounts = Table(
    "goal_accounts",
    Base.metadata,
    Column("goal_id", String, ForeignKey("goals.id"), primary_key=True),
    Column("account_id", String, ForeignKey("accounts.id"), primary_key=True),
)


class Goal(Base):
    """Financial goal model."""

    __tablename__ = "goals"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    target_amount = Column(Numeric(14, 2), nullable=False)
    target_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    accounts = relationship("Account", secondary=goal_accounts, order_by="Account.name")


class BillTracker(Base):
    """Bill tracker model."""

    __tablename__ = "bill_trackers"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    expected_amount = Column(Numeric(14, 2), nullable=False)
    due_day = Column(Integer, nullable=False)
    source_type = Column(String, nullable=False)
    signature = Column(String, nullable=False, index=True)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    payments = relationship("BillPayment", back_populates="bill", cascade="all, delete-orphan")


class BillPayment(Base):
    """Per-period bill payment link."""

    __tablename__ = "bill_payments"

    id = Column(String, primary_key=True)
    bill_id = Column(String, ForeignKey("bill_trackers.id"), nullable=False)
    period = Column(String(7), nullable=False)
    transaction_id = Column(String, nullable=False, index=True)

    __table_args__ = (UniqueConstraint("bill_id", "period", name="uq_bill_period"),)

    bill = relationship("BillTracker", back_populates="payments")


class BillDismissal(Base):
    """Dismissed recurrence signature."""

    __tablename__ = "bill_dismissals"

    id = Column(String, primary_key=True)
    signature = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class StandardizationRule(Base):
    """Standardization rule model, evaluated by ascending position."""

    __tablename__ = "standardization_rules"

    id = Column(String, primary_key=True)
    pattern = Column(String, nullable=False)
    match_type = Column(String, nullable=False)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    description = Column(String, nullable=True)
    operation_type = Column(String, nullable=True)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class ImportedStatement(Base):
    """Imported statement batch model."""

    __tablename__ = "imported_statements"

    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    source = Column(String, nullable=False)
    status = Column(String, nullable=False)
    imported_at = Column(DateTime, default=_now, nullable=False)

    rows = relationship(
        "ImportedTransaction",
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="ImportedTransaction.row_number",
    )


class ImportedTransaction(Base):
    """Imported statement row model."""

    __tablename__ = "imported_transactions"

    id = Column(String, primary_key=True)
    statement_id = Column(String, ForeignKey("imported_statements.id"), nullable=False)
    row_number = Column(Integer, nullable=False)
    account_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    raw_description = Column(String, nullable=False)
    description = Column(String, nullable=False)
    category_id = Column(String, nullable=True)
    operation_type = Column(String, nullable=False)
    status = Column(String, nullable=False)
    rule_id = Column(String, nullable=True)
    duplicate_of_id = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True, index=True)
    error = Column(String, nullable=True)

    statement = relationship("ImportedStatement", back_populates="rows")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
