"""Tests for statement import service and command."""

import threading
from datetime import date
from decimal import Decimal

import pytest

from finboard.cli.main import cli
from finboard.domain.entities import (
    ImportRowStatus,
    OperationType,
    StatementStatus,
    TransactionSource,
)
from finboard.domain.errors import ConstraintViolationError, InvalidReferenceError
from finboard.domain.events import FinanceEventType


def _rows(*rows):
    return [
        {"date": when, "amount": amount, "description": description}
        for when, amount, description in rows
    ]


class TestImportStatement:
    """Tests for StatementImportService.import_statement."""

    def test_rows_are_committed(self, import_service, sample_account, temp_db):
        result = import_service.import_statement(
            _rows(("05/01/2024", "-25,90", "UBER"), ("10/01/2024", "5.000,00", "SALARIO")),
            sample_account.id,
            source="csv",
        )

        assert result.committed == 2
        assert result.errors == []
        assert result.statement.status == StatementStatus.COMPLETED
        assert result.statement.source == "csv"
        txns = temp_db.list_transactions()
        assert [t.amount for t in txns] == [Decimal("-25.90"), Decimal("5000.00")]
        assert {t.source for t in txns} == {TransactionSource.IMPORT}
        assert txns[1].operation_type == OperationType.INCOME
        assert result.outcomes[0].row.transaction_id == txns[0].id

    def test_rules_standardize_rows(
        self, import_service, rule_service, sample_account, sample_categories, temp_db
    ):
        rule = rule_service.create_rule(
            "uber", category_id=sample_categories["Groceries"].id, description="Uber"
        )

        result = import_service.import_statement(
            _rows(("05/01/2024", "-25,90", "PAG*UBER TRIP")), sample_account.id
        )

        row = result.outcomes[0].row
        assert row.rule_id == rule.id
        assert row.raw_description == "PAG*UBER TRIP"
        txn = temp_db.get_transaction(row.transaction_id)
        assert txn.description == "Uber"
        assert txn.category_id == sample_categories["Groceries"].id

    def test_duplicates_are_flagged_not_committed(
        self, import_service, transaction_service, sample_account
    ):
        existing = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 6), Decimal("-50.00")
        )

        result = import_service.import_statement(
            _rows(("05/01/2024", "-50,00", "MERCADO"), ("05/01/2024", "-50,00", "MERCADO")),
            sample_account.id,
        )

        first, second = result.outcomes
        assert first.status == ImportRowStatus.DUPLICATE
        assert first.row.duplicate_of_id == existing.id
        # Each existing transaction absorbs one row only
        assert second.status == ImportRowStatus.COMMITTED
        assert result.duplicates == 1
        assert result.committed == 1

    def test_date_tolerance(self, import_service, transaction_service, sample_account):
        transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 10), Decimal("-50.00")
        )

        result = import_service.import_statement(
            _rows(("05/01/2024", "-50,00", "MERCADO")), sample_account.id
        )

        assert result.outcomes[0].status == ImportRowStatus.COMMITTED

    def test_bad_rows_do_not_abort_batch(self, import_service, sample_account):
        result = import_service.import_statement(
            [
                {"date": "05/01/2024", "description": "NO AMOUNT"},
                {"date": "never", "amount": "-1", "description": "BAD DATE", "row_number": 7},
                {"date": date(2024, 1, 6), "amount": Decimal("-3"), "description": "OK"},
            ],
            sample_account.id,
        )

        assert result.committed == 1
        assert [e.row_number for e in result.errors] == [1, 7]
        assert "Missing field amount" in str(result.errors[0])

    def test_unparseable_huge_date_stays_on_its_row(self, import_service, sample_account):
        result = import_service.import_statement(
            [
                {"date": "99999999999999999999", "amount": "-1", "description": "HUGE"},
                {"date": "05/01/2024", "amount": "-2", "description": "OK"},
            ],
            sample_account.id,
        )

        assert result.committed == 1
        assert [e.row_number for e in result.errors] == [1]
        assert result.statement.status == StatementStatus.COMPLETED

    def test_invalid_declared_row_number(self, import_service, sample_account):
        result = import_service.import_statement(
            [
                {"date": "05/01/2024", "amount": "-1", "row_number": "first"},
                {"date": "06/01/2024", "amount": "-2", "row_number": 12},
            ],
            sample_account.id,
        )

        assert result.committed == 1
        assert "Invalid row number" in str(result.errors[0])
        assert [o.row.row_number for o in result.outcomes] == [12]

    def test_unknown_account(self, import_service):
        with pytest.raises(InvalidReferenceError):
            import_service.import_statement(_rows(("05/01/2024", "-1", "X")), "acc_missing")

    def test_stage_only(self, import_service, sample_account, temp_db):
        result = import_service.import_statement(
            _rows(("05/01/2024", "-1", "X"), ("06/01/2024", "-2", "Y")),
            sample_account.id,
            auto_commit=False,
        )

        assert result.pending == 2
        assert result.statement.status == StatementStatus.PENDING
        assert temp_db.list_transactions() == []

    def test_cancel_leaves_rows_pending(self, import_service, sample_account):
        cancel = threading.Event()
        cancel.set()

        result = import_service.import_statement(
            _rows(("05/01/2024", "-1", "X"), ("06/01/2024", "-2", "Y")),
            sample_account.id,
            cancel_event=cancel,
        )

        assert result.cancelled
        assert result.pending == 2
        assert result.committed == 0

        resumed = import_service.commit_pending(result.statement.id)

        assert resumed.committed == 2
        assert resumed.statement.status == StatementStatus.COMPLETED

    def test_publishes_events(self, import_service, sample_account, recorded_events):
        import_service.import_statement(_rows(("05/01/2024", "-1", "X")), sample_account.id)

        types = [e.type for e in recorded_events]
        assert FinanceEventType.TRANSACTION_CREATED in types
        assert recorded_events[-1].entity_kind == "imported_statement"


class TestRowLifecycle:
    """Tests for committing and ignoring staged rows."""

    @pytest.fixture
    def duplicate_row(self, import_service, transaction_service, sample_account):
        transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 5), Decimal("-50.00")
        )
        result = import_service.import_statement(
            _rows(("05/01/2024", "-50,00", "MERCADO")), sample_account.id
        )
        return result.outcomes[0].row

    def test_duplicate_needs_force(self, import_service, duplicate_row, temp_db):
        with pytest.raises(ConstraintViolationError):
            import_service.commit_row(duplicate_row.id)

        committed = import_service.commit_row(duplicate_row.id, force=True)

        assert committed.status == ImportRowStatus.COMMITTED
        assert len(temp_db.list_transactions()) == 2

    def test_ignore_row(self, import_service, duplicate_row):
        ignored = import_service.ignore_row(duplicate_row.id)

        assert ignored.status == ImportRowStatus.IGNORED
        with pytest.raises(ConstraintViolationError):
            import_service.commit_row(duplicate_row.id, force=True)
        statement = import_service.get_statement(duplicate_row.statement_id)
        assert statement.status == StatementStatus.COMPLETED

    def test_list_rows_by_status(self, import_service, duplicate_row):
        rows = import_service.list_rows(duplicate_row.statement_id, ImportRowStatus.DUPLICATE)

        assert [r.id for r in rows] == [duplicate_row.id]
        assert import_service.list_rows(duplicate_row.statement_id, "committed") == []

    def test_deleting_transaction_reopens_row(
        self, import_service, transaction_service, sample_account
    ):
        result = import_service.import_statement(
            _rows(("05/01/2024", "-10,00", "X")), sample_account.id
        )
        row = result.outcomes[0].row

        transaction_service.delete_transaction(row.transaction_id)

        reopened = import_service.list_rows(row.statement_id)[0]
        assert reopened.status == ImportRowStatus.RULE_APPLIED
        assert reopened.transaction_id is None


def test_import_csv_command(cli_runner, temp_db, sample_account, fixtures_dir):
    """Test importing a CSV statement from the command line."""
    result = cli_runner.invoke(
        cli,
        [
            "--db-path", temp_db.database_path, "import",
            str(fixtures_dir / "extrato.csv"), "--account", "Test Account",
        ],
    )

    assert result.exit_code == 0
    assert "Import complete" in result.output
    assert "Committed: 3 transactions" in result.output
    assert "Errors: 2" in result.output
    assert len(temp_db.list_transactions()) == 3


def test_import_ofx_twice_flags_duplicates(cli_runner, temp_db, sample_account, fixtures_dir):
    args = [
        "--db-path", temp_db.database_path, "import",
        str(fixtures_dir / "extrato.ofx"), "--account", "Test Account",
    ]
    assert cli_runner.invoke(cli, args).exit_code == 0

    result = cli_runner.invoke(cli, args)

    assert result.exit_code == 0
    assert "Committed: 0 transactions" in result.output
    assert "Duplicates: 2" in result.output
    assert len(temp_db.list_transactions()) == 2


def test_import_no_commit(cli_runner, temp_db, sample_account, fixtures_dir):
    result = cli_runner.invoke(
        cli,
        [
            "--db-path", temp_db.database_path, "import",
            str(fixtures_dir / "extrato.ofx"), "--account", "Test Account", "--no-commit",
        ],
    )

    assert result.exit_code == 0
    assert "Pending: 2" in result.output
    assert temp_db.list_transactions() == []


def test_import_unknown_account(cli_runner, temp_db, fixtures_dir):
    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "import", str(fixtures_dir / "extrato.csv"), "--account", "Nope"],
    )

    assert result.exit_code == 1
    assert "not found" in result.output
