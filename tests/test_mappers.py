"""Tests for database mappers."""

from datetime import datetime, date, UTC
from decimal import Decimal

from finboard.database.models import (
    Account as ORMAccount,
    Category as ORMCategory,
    Goal as ORMGoal,
    Loan as ORMLoan,
    LoanInstallment as ORMLoanInstallment,
    StandardizationRule as ORMStandardizationRule,
    Transaction as ORMTransaction,
)
from finboard.database.mappers import (
    LINK_FIELDS,
    account_to_domain,
    category_to_domain,
    goal_to_domain,
    links_to_columns,
    loan_to_domain,
    rule_to_domain,
    transaction_to_domain,
)
from finboard.domain.entities import (
    Account,
    AccountType,
    Category,
    FlowDirection,
    OperationType,
    RuleMatchType,
    Transaction,
    TransactionLinks,
    TransactionSource,
)


class TestAccountMapper:
    """Tests for Account mapper."""

    def test_account_to_domain(self):
        """Test converting ORM Account to domain Account."""
        orm_account = ORMAccount(
            id="acc_1",
            name="Test Account",
            account_type="savings",
            opening_balance=Decimal("10.5"),
            currency="BRL",
            created_at=datetime.now(UTC),
        )
        domain_account = account_to_domain(orm_account)

        assert isinstance(domain_account, Account)
        assert domain_account.id == "acc_1"
        assert domain_account.account_type == AccountType.SAVINGS
        assert domain_account.opening_balance == Decimal("10.50")
        assert str(domain_account.opening_balance) == "10.50"
        assert domain_account.created_at == orm_account.created_at


class TestCategoryMapper:
    """Tests for Category mapper."""

    def test_category_to_domain(self):
        orm_category = ORMCategory(
            id="cat_1",
            name="Food & Dining",
            direction="expense",
            created_at=datetime.now(UTC),
        )
        domain_category = category_to_domain(orm_category)

        assert isinstance(domain_category, Category)
        assert domain_category.name == "Food & Dining"
        assert domain_category.direction == FlowDirection.EXPENSE


class TestTransactionMapper:
    """Tests for Transaction mapper."""

    def _orm_transaction(self, **links):
        return ORMTransaction(
            id="tx_1",
            sequence=7,
            account_id="acc_1",
            date=date(2024, 1, 15),
            amount=Decimal("-50.00"),
            operation_type="transfer_out",
            category_id=None,
            description="Move to savings",
            source="manual",
            notes=None,
            conciliated=False,
            created_at=datetime.now(UTC),
            **links_to_columns(TransactionLinks(**links)),
        )

    def test_transaction_to_domain(self):
        """Test converting ORM Transaction to domain Transaction."""
        domain_txn = transaction_to_domain(
            self._orm_transaction(transfer_group_id="trf_1", paired_transaction_id="tx_2")
        )

        assert isinstance(domain_txn, Transaction)
        assert domain_txn.amount == Decimal("-50.00")
        assert domain_txn.operation_type == OperationType.TRANSFER_OUT
        assert domain_txn.source == TransactionSource.MANUAL
        assert domain_txn.sequence == 7
        assert domain_txn.links.transfer_group_id == "trf_1"
        assert domain_txn.links.paired_transaction_id == "tx_2"
        assert domain_txn.links.loan_id is None

    def test_links_to_columns_covers_every_link(self):
        columns = links_to_columns(TransactionLinks(loan_id="loan_1", installment_number=2))

        assert set(columns) == set(LINK_FIELDS)
        assert columns["loan_id"] == "loan_1"
        assert columns["installment_number"] == 2
        assert columns["bill_id"] is None

    def test_links_to_columns_without_links(self):
        assert all(value is None for value in links_to_columns(None).values())


class TestLoanMapper:
    def test_loan_to_domain_includes_schedule(self):
        orm_loan = ORMLoan(
            id="loan_1",
            name="Car",
            principal=Decimal("1000.00"),
            monthly_rate=Decimal("0.010000"),
            term_months=2,
            account_id="acc_1",
            start_date=date(2024, 1, 10),
            installment_amount=Decimal("507.51"),
            created_at=datetime.now(UTC),
            disbursement_transaction_id="tx_1",
            installments=[
                ORMLoanInstallment(
                    id="inst_1",
                    loan_id="loan_1",
                    number=1,
                    due_date=date(2024, 2, 10),
                    amount=Decimal("507.51"),
                    principal=Decimal("497.51"),
                    interest=Decimal("10.00"),
                    balance_after=Decimal("502.49"),
                    transaction_id="tx_9",
                ),
            ],
        )
        loan = loan_to_domain(orm_loan)

        assert loan.monthly_rate == Decimal("0.01")
        assert len(loan.installments) == 1
        assert loan.installments[0].is_paid
        assert loan.installments[0].principal == Decimal("497.51")
        assert loan.disbursement_transaction_id == "tx_1"


class TestGoalMapper:
    def test_goal_to_domain_lists_account_ids(self):
        orm_goal = ORMGoal(
            id="goal_1",
            name="Trip",
            target_amount=Decimal("5000"),
            target_date=None,
            created_at=datetime.now(UTC),
            accounts=[
                ORMAccount(id="acc_1", name="A", account_type="savings",
                           opening_balance=Decimal("0"), currency="BRL"),
            ],
        )
        goal = goal_to_domain(orm_goal)

        assert goal.account_ids == ("acc_1",)
        assert goal.target_amount == Decimal("5000.00")


class TestRuleMapper:
    def test_rule_without_operation(self):
        orm_rule = ORMStandardizationRule(
            id="rule_1",
            pattern="UBER",
            match_type="contains",
            position=0,
            account_id=None,
            category_id="cat_1",
            description="Uber",
            operation_type=None,
            created_at=datetime.now(UTC),
        )
        rule = rule_to_domain(orm_rule)

        assert rule.match_type == RuleMatchType.CONTAINS
        assert rule.operation_type is None
        assert rule.description == "Uber"
