"""Tests for loans and their installment schedule."""

from datetime import date
from decimal import Decimal

import pytest

from finboard.cli.main import cli
from finboard.domain.entities import OperationType, TransactionSource
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from finboard.domain.events import FinanceEventType
from finboard.domain.loan import LoanService, price_installment, price_schedule


@pytest.fixture
def loan_service(temp_db, bus):
    return LoanService(temp_db, bus)


@pytest.fixture
def car_loan(loan_service, sample_account):
    return loan_service.create_loan(
        "Financiamento", Decimal("10000"), Decimal("0.01"), 12, sample_account.id, date(2024, 1, 15)
    )


class TestPriceSchedule:
    def test_installment(self):
        assert price_installment(Decimal("10000"), Decimal("0.01"), 12) == Decimal("888.49")

    def test_zero_rate_splits_principal(self):
        assert price_installment(Decimal("1200"), Decimal("0"), 12) == Decimal("100.00")

    def test_schedule_rows(self):
        rows = price_schedule(Decimal("10000"), Decimal("0.01"), 12, date(2024, 1, 15))

        assert len(rows) == 12
        first = rows[0]
        assert first["due_date"] == date(2024, 2, 15)
        assert first["interest"] == Decimal("100.00")
        assert first["principal"] == Decimal("788.49")
        assert first["amount"] == Decimal("888.49")
        assert rows[-1]["due_date"] == date(2025, 1, 15)

    def test_schedule_amortizes_everything(self):
        rows = price_schedule(Decimal("10000"), Decimal("0.01"), 12, date(2024, 1, 15))

        assert sum(r["principal"] for r in rows) == Decimal("10000")
        assert rows[-1]["balance_after"] == Decimal("0")
        assert all(abs(r["amount"] - Decimal("888.49")) <= Decimal("0.05") for r in rows)

    def test_due_dates_clamped(self):
        rows = price_schedule(Decimal("300"), Decimal("0"), 3, date(2024, 1, 31))

        assert [r["due_date"] for r in rows] == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


class TestLoanService:
    def test_create_loan(self, car_loan, sample_account):
        assert car_loan.id.startswith("loan_")
        assert car_loan.account_id == sample_account.id
        assert car_loan.installment_amount == Decimal("888.49")
        assert [i.number for i in car_loan.installments] == list(range(1, 13))
        assert not any(i.is_paid for i in car_loan.installments)

    def test_create_loan_credits_principal(self, transaction_service, car_loan, sample_account):
        txn = transaction_service.get_transaction(car_loan.disbursement_transaction_id)

        assert txn.account_id == sample_account.id
        assert txn.amount == Decimal("10000.00")
        assert txn.date == date(2024, 1, 15)
        assert txn.operation_type == OperationType.LOAN_DISBURSEMENT
        assert txn.source == TransactionSource.LOAN
        assert txn.links.loan_id == car_loan.id
        assert txn.links.installment_number is None

    def test_create_loan_leaves_net_worth_unchanged(self, ledger, car_loan, sample_account):
        as_of = date(2024, 1, 15)

        assert ledger.balance_at(sample_account.id, as_of) == Decimal("11000.00")
        assert ledger.outstanding_loans_at(as_of) == Decimal("10000.00")
        assert ledger.net_worth_at(as_of) == Decimal("1000.00")

    def test_create_loan_events(self, loan_service, sample_account, recorded_events):
        loan_service.create_loan(
            "Curto", Decimal("200"), Decimal("0"), 2, sample_account.id, date(2024, 1, 1)
        )

        assert [e.type for e in recorded_events] == [
            FinanceEventType.TRANSACTION_CREATED,
            FinanceEventType.ENTITY_CREATED,
        ]

    def test_adopt_existing_disbursement(
        self, loan_service, transaction_service, ledger, sample_account, sample_categories
    ):
        credit = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 16), Decimal("10000"),
            category_id=sample_categories["Salary"].id, description="TED BANCO",
        )

        loan = loan_service.create_loan(
            "Financiamento", Decimal("10000"), Decimal("0.01"), 12, sample_account.id,
            date(2024, 1, 15), disbursement_transaction_id=credit.id,
        )

        assert loan.disbursement_transaction_id == credit.id
        adopted = transaction_service.get_transaction(credit.id)
        assert adopted.operation_type == OperationType.LOAN_DISBURSEMENT
        assert adopted.links.loan_id == loan.id
        assert adopted.category_id is None
        assert adopted.description == "TED BANCO"
        assert len(transaction_service.list_transactions()) == 1
        assert ledger.net_worth_at(date(2024, 1, 31)) == Decimal("1000.00")

    @pytest.mark.parametrize("amount", ["-10000", "10000"])
    def test_adopt_rejects_unsuitable_credit(
        self, loan_service, transaction_service, sample_account, savings_account, amount
    ):
        account = sample_account if amount.startswith("-") else savings_account
        txn = transaction_service.create_transaction(account.id, date(2024, 1, 15), Decimal(amount))

        with pytest.raises(ConstraintViolationError):
            loan_service.create_loan(
                "Financiamento", Decimal("10000"), Decimal("0.01"), 12, sample_account.id,
                date(2024, 1, 15), disbursement_transaction_id=txn.id,
            )
        assert loan_service.list_loans() == []

    def test_adopt_unknown_disbursement(self, loan_service, sample_account):
        with pytest.raises(InvalidReferenceError, match="transaction"):
            loan_service.create_loan(
                "Financiamento", Decimal("10000"), Decimal("0.01"), 12, sample_account.id,
                date(2024, 1, 15), disbursement_transaction_id="tx_missing",
            )

    def test_deleting_disbursement_clears_loan_reference(
        self, loan_service, transaction_service, car_loan
    ):
        transaction_service.delete_transaction(car_loan.disbursement_transaction_id)

        assert loan_service.get_loan(car_loan.id).disbursement_transaction_id is None

    @pytest.mark.parametrize(
        "principal,rate,term",
        [("0", "0.01", 12), ("1000", "-0.01", 12), ("1000", "0.01", 0)],
    )
    def test_invalid_terms(self, loan_service, sample_account, principal, rate, term):
        with pytest.raises(ValidationError):
            loan_service.create_loan(
                "Bad", Decimal(principal), Decimal(rate), term, sample_account.id, date(2024, 1, 1)
            )

    def test_unknown_account(self, loan_service):
        with pytest.raises(InvalidReferenceError):
            loan_service.create_loan("Bad", Decimal("1000"), Decimal("0.01"), 12, "acc_missing", date(2024, 1, 1))

    def test_investment_account_rejected(self, loan_service, investment_account):
        with pytest.raises(InvalidReferenceError, match="investment account"):
            loan_service.create_loan(
                "Bad", Decimal("1000"), Decimal("0.01"), 12, investment_account.id, date(2024, 1, 1)
            )

    def test_pay_next_installment(self, loan_service, transaction_service, car_loan, recorded_events):
        txn = loan_service.pay_installment(car_loan.id)

        assert txn.amount == Decimal("-888.49")
        assert txn.date == date(2024, 2, 15)
        assert txn.operation_type == OperationType.LOAN_PAYMENT
        assert txn.source == TransactionSource.LOAN
        assert txn.links.loan_id == car_loan.id
        assert txn.links.installment_number == 1
        assert txn.description == "Financiamento 1/12"
        assert [e.type for e in recorded_events] == [
            FinanceEventType.TRANSACTION_CREATED,
            FinanceEventType.LOAN_PAYMENT,
        ]
        assert loan_service.next_installment(car_loan.id).number == 2

    def test_pay_specific_installment_on_date(self, loan_service, car_loan):
        txn = loan_service.pay_installment(car_loan.id, number=3, payment_date=date(2024, 4, 10))

        assert txn.date == date(2024, 4, 10)
        assert txn.links.installment_number == 3
        assert loan_service.next_installment(car_loan.id).number == 1

    def test_installment_paid_once(self, loan_service, car_loan):
        loan_service.pay_installment(car_loan.id, number=1)

        with pytest.raises(ConstraintViolationError, match="already paid"):
            loan_service.pay_installment(car_loan.id, number=1)

    def test_unknown_installment(self, loan_service, car_loan):
        with pytest.raises(NotFoundError):
            loan_service.pay_installment(car_loan.id, number=13)

    def test_fully_paid(self, loan_service, sample_account):
        loan = loan_service.create_loan(
            "Curto", Decimal("200"), Decimal("0"), 2, sample_account.id, date(2024, 1, 1)
        )
        loan_service.pay_installment(loan.id)
        loan_service.pay_installment(loan.id)

        assert loan_service.next_installment(loan.id) is None
        assert loan_service.outstanding_balance(loan.id) == Decimal("0")
        with pytest.raises(ConstraintViolationError, match="fully paid"):
            loan_service.pay_installment(loan.id)

    def test_outstanding_balance(self, loan_service, car_loan):
        loan_service.pay_installment(car_loan.id)

        assert loan_service.outstanding_balance(car_loan.id) == Decimal("9211.51")
        assert loan_service.outstanding_balance(car_loan.id, as_of=date(2024, 2, 14)) == Decimal("10000.00")

    def test_payment_reduces_account_balance(self, loan_service, ledger, car_loan, sample_account):
        loan_service.pay_installment(car_loan.id)

        assert ledger.balance_at(sample_account.id, date(2024, 2, 15)) == Decimal("10111.51")

    def test_delete_loan_keeps_payments(self, loan_service, transaction_service, car_loan):
        txn = loan_service.pay_installment(car_loan.id)

        loan_service.delete_loan(car_loan.id)

        assert loan_service.get_loan(car_loan.id) is None
        kept = transaction_service.get_transaction(txn.id)
        assert kept is not None
        assert kept.links.loan_id is None
        assert kept.links.installment_number is None
        assert transaction_service.get_transaction(car_loan.disbursement_transaction_id).links.loan_id is None

    def test_delete_unknown(self, loan_service):
        with pytest.raises(NotFoundError):
            loan_service.delete_loan("loan_missing")


class TestLoanCommands:
    def _invoke(self, cli_runner, temp_db, *args):
        return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "loan", *args])

    def test_create_and_list(self, cli_runner, temp_db, sample_account):
        result = self._invoke(
            cli_runner, temp_db, "create", "Financiamento", "--principal", "10.000,00",
            "--rate", "1", "--months", "12", "--account", "Test Account", "--start-date", "2024-01-15",
        )
        assert result.exit_code == 0
        assert "12 installments of R$ 888,49" in result.output

        result = self._invoke(cli_runner, temp_db, "list")

        assert "Financiamento" in result.output
        assert "0/12" in result.output
        assert "R$ 10.000,00 owed" in result.output

    def test_schedule_and_pay(self, cli_runner, temp_db, car_loan):
        result = self._invoke(cli_runner, temp_db, "pay", "Financiamento")
        assert result.exit_code == 0
        assert "Paid installment 1/12 of 'Financiamento': R$ 888,49 on 2024-02-15" in result.output

        result = self._invoke(cli_runner, temp_db, "schedule", car_loan.id)

        assert result.exit_code == 0
        assert "Schedule of 'Financiamento':" in result.output
        assert "paid" in result.output

    def test_pay_twice(self, cli_runner, temp_db, car_loan):
        self._invoke(cli_runner, temp_db, "pay", "Financiamento", "--number", "2")
        result = self._invoke(cli_runner, temp_db, "pay", "Financiamento", "--number", "2")

        assert result.exit_code == 1
        assert "already paid" in result.output

    def test_unknown_loan(self, cli_runner, temp_db):
        result = self._invoke(cli_runner, temp_db, "pay", "Nope")

        assert result.exit_code == 1
        assert "Loan 'Nope' not found" in result.output

    def test_invalid_rate(self, cli_runner, temp_db, sample_account):
        result = self._invoke(
            cli_runner, temp_db, "create", "X", "--principal", "100", "--rate", "abc",
            "--months", "2", "--account", "Test Account",
        )

        assert result.exit_code == 1
        assert "Invalid loan values" in result.output

    def test_delete(self, cli_runner, temp_db, car_loan):
        result = self._invoke(cli_runner, temp_db, "delete", "Financiamento")

        assert result.exit_code == 0
        assert "Deleted loan 'Financiamento'" in result.output
