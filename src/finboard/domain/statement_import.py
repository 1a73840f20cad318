"""Statement import: stage rows, standardize, flag duplicates, commit."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from finboard.config import Settings, get_settings
from finboard.database.base import Database
from finboard.domain.entities import (
    ImportedStatement,
    ImportedTransaction,
    ImportRowStatus,
    StatementStatus,
    Transaction,
    TransactionFilter,
    TransactionSource,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    DomainError,
    ImportRowError,
    InvalidReferenceError,
    NotFoundError,
    invalid_reference,
    invalid_row_transition,
    not_found,
)
from finboard.domain.events import EventBus, FinanceEvent, entity_event_type
from finboard.domain.standardization import RuleService
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import parse_amount, to_money
from finboard.utils.date_parser import parse_date
from finboard.utils.statement_parser import StatementRow

logger = logging.getLogger(__name__)

# Allowed row moves. Deleting a transaction resets its rows to RULE_APPLIED
# outside this table.
ROW_TRANSITIONS = {
    ImportRowStatus.UNMATCHED: {ImportRowStatus.RULE_APPLIED},
    ImportRowStatus.RULE_APPLIED: {
        ImportRowStatus.COMMITTED,
        ImportRowStatus.DUPLICATE,
        ImportRowStatus.IGNORED,
    },
    ImportRowStatus.DUPLICATE: {ImportRowStatus.COMMITTED, ImportRowStatus.IGNORED},
    ImportRowStatus.COMMITTED: set(),
    ImportRowStatus.IGNORED: set(),
}

RawRow = Union[StatementRow, dict[str, Any]]


@dataclass(frozen=True)
class RowOutcome:
    """Final state of one row after an import call."""

    row: ImportedTransaction
    warnings: tuple[str, ...] = ()

    @property
    def status(self) -> ImportRowStatus:
        return self.row.status


@dataclass
class ImportResult:
    """Aggregated result of an import batch."""

    statement: Optional[ImportedStatement]
    outcomes: list[RowOutcome] = field(default_factory=list)
    committed: int = 0
    duplicates: int = 0
    ignored: int = 0
    pending: int = 0
    errors: list[ImportRowError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def warnings(self) -> list[str]:
        return [w for outcome in self.outcomes for w in outcome.warnings]


def check_transition(row: ImportedTransaction, target: ImportRowStatus, force: bool = False) -> None:
    """Raise ConstraintViolationError unless ``row`` may move to ``target``.

    A duplicate only becomes committed when ``force`` is True.
    """
    allowed = ROW_TRANSITIONS[row.status]
    if target not in allowed or (
        row.status == ImportRowStatus.DUPLICATE and target == ImportRowStatus.COMMITTED and not force
    ):
        raise ConstraintViolationError(invalid_row_transition(row.id, row.status.value, target.value))


class StatementImportService:
    """Service for importing external statement rows into the ledger."""

    def __init__(
        self,
        db: Database,
        bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize statement import service.

        Args:
            db: Database instance
            bus: Event bus notified after each mutation
            settings: Settings providing the duplicate date tolerance
        """
        self.db = db
        self.bus = bus or EventBus()
        self.settings = settings or get_settings()
        self.transactions = TransactionService(db, self.bus)
        self.rules = RuleService(db, self.bus)

    def _publish(self, events: list[FinanceEvent]) -> None:
        for event in events:
            self.bus.publish(event)

    def _row_event(self, row: ImportedTransaction) -> FinanceEvent:
        return FinanceEvent(
            type=entity_event_type("updated"),
            entity_kind="imported_row",
            operation="updated",
            payload={"id": row.id, "row": row},
        )

    def _coerce(self, raw: RawRow, row_number: int, default_account_id: str) -> tuple[int, str, date, Decimal, str]:
        """Read (row_number, account_id, date, amount, description) from a raw row.

        ``row_number`` is the position in the batch; a row declaring its own
        number is reported under that number.
        """
        if isinstance(raw, StatementRow):
            return raw.row_number, default_account_id, raw.date, to_money(raw.amount), raw.description
        declared = raw.get("row_number", row_number)
        try:
            row_number = int(declared)
        except (TypeError, ValueError):
            raise ImportRowError(row_number, f"Invalid row number {declared!r}")
        try:
            raw_date = raw["date"]
            raw_amount = raw["amount"]
        except KeyError as e:
            raise ImportRowError(row_number, f"Missing field {e.args[0]}")
        try:
            txn_date = raw_date if isinstance(raw_date, date) else parse_date(str(raw_date), dayfirst=True)
            amount = to_money(raw_amount) if not isinstance(raw_amount, str) else to_money(parse_amount(raw_amount))
        except (ValueError, ArithmeticError) as e:
            raise ImportRowError(row_number, str(e))
        return (
            row_number,
            raw.get("account_id") or default_account_id,
            txn_date,
            amount,
            str(raw.get("description") or ""),
        )

    def _find_duplicate(
        self,
        account_id: str,
        txn_date: date,
        amount: Decimal,
        consumed: set[str],
    ) -> Optional[Transaction]:
        """Closest unconsumed transaction with the same account and amount."""
        tolerance = timedelta(days=self.settings.duplicate_date_tolerance_days)
        candidates = [
            txn
            for txn in self.db.list_transactions(
                TransactionFilter(
                    account_id=account_id,
                    start_date=txn_date - tolerance,
                    end_date=txn_date + tolerance,
                )
            )
            if txn.amount == amount and txn.id not in consumed
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda txn: (abs((txn.date - txn_date).days), txn.sequence))

    def _stage(
        self,
        statement_id: str,
        raw_rows: Iterable[RawRow],
        account_id: str,
        result: ImportResult,
    ) -> list[tuple[ImportedTransaction, tuple[str, ...]]]:
        """Store rows, run the rules and flag duplicates."""
        staged = []
        consumed: set[str] = set()
        rules = self.db.list_rules()
        for index, raw in enumerate(raw_rows, start=1):
            try:
                row_number, row_account_id, txn_date, amount, raw_description = self._coerce(
                    raw, index, account_id
                )
            except ImportRowError as e:
                result.errors.append(e)
                continue

            standardized = self.rules.standardize(raw_description, amount, row_account_id, rules)
            with self.db.atomic():
                row_id = self.db.create_imported_row(
                    statement_id=statement_id,
                    row_number=row_number,
                    account_id=row_account_id,
                    date=txn_date,
                    amount=amount,
                    raw_description=raw_description,
                    description=raw_description,
                    operation_type=standardized.operation_type,
                    status=ImportRowStatus.UNMATCHED,
                )
                self.db.update_imported_row(
                    row_id,
                    description=standardized.description,
                    category_id=standardized.category_id,
                    rule_id=standardized.rule_id,
                    status=ImportRowStatus.RULE_APPLIED,
                )
                duplicate = self._find_duplicate(row_account_id, txn_date, amount, consumed)
                if duplicate is not None:
                    consumed.add(duplicate.id)
                    self.db.update_imported_row(
                        row_id,
                        status=ImportRowStatus.DUPLICATE,
                        duplicate_of_id=duplicate.id,
                    )
                row = self.db.get_imported_row(row_id)
            staged.append((row, standardized.warnings))
        return staged

    def _commit(self, row: ImportedTransaction, force: bool = False) -> ImportedTransaction:
        """Promote one row to a transaction. Raises ImportRowError on failure."""
        check_transition(row, ImportRowStatus.COMMITTED, force=force)
        events: list[FinanceEvent] = []
        try:
            with self.db.atomic():
                if self.db.get_account(row.account_id) is None:
                    raise InvalidReferenceError(
                        invalid_reference("account", row.account_id, "account_id")
                    )
                txn = self.transactions.insert_in_unit(
                    events,
                    account_id=row.account_id,
                    date=row.date,
                    amount=row.amount,
                    operation_type=row.operation_type,
                    category_id=row.category_id,
                    description=row.description,
                    source=TransactionSource.IMPORT,
                )
                self.db.update_imported_row(
                    row.id,
                    status=ImportRowStatus.COMMITTED,
                    transaction_id=txn.id,
                    error=None,
                )
                committed = self.db.get_imported_row(row.id)
        except DomainError as e:
            error = ImportRowError(row.row_number, str(e))
            with self.db.atomic():
                self.db.update_imported_row(row.id, error=error.message)
            raise error from e
        self._publish(events)
        return committed

    def _refresh_status(self, statement_id: str) -> ImportedStatement:
        rows = self.db.list_imported_rows(statement_id=statement_id)
        open_rows = sum(
            1 for r in rows if r.status in (ImportRowStatus.UNMATCHED, ImportRowStatus.RULE_APPLIED)
        )
        if open_rows == 0:
            status = StatementStatus.COMPLETED
        elif open_rows < len(rows):
            status = StatementStatus.PARTIAL
        else:
            status = StatementStatus.PENDING
        self.db.update_statement(statement_id, status=status)
        return self.db.get_statement(statement_id)

    def _commit_rows(
        self,
        rows: list[tuple[ImportedTransaction, tuple[str, ...]]],
        result: ImportResult,
        cancel_event: Optional[threading.Event],
    ) -> None:
        for row, warnings in rows:
            if row.status == ImportRowStatus.RULE_APPLIED and not result.cancelled:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Import cancelled before row %d", row.row_number)
                    result.cancelled = True
                else:
                    try:
                        row = self._commit(row)
                    except ImportRowError as e:
                        logger.warning("Import row failed: %s", e)
                        result.errors.append(e)
                        row = self.db.get_imported_row(row.id)
            result.outcomes.append(RowOutcome(row=row, warnings=warnings))

    def _tally(self, result: ImportResult) -> None:
        for outcome in result.outcomes:
            if outcome.status == ImportRowStatus.COMMITTED:
                result.committed += 1
            elif outcome.status == ImportRowStatus.DUPLICATE:
                result.duplicates += 1
            elif outcome.status == ImportRowStatus.IGNORED:
                result.ignored += 1
            else:
                result.pending += 1

    def import_statement(
        self,
        rows: Iterable[RawRow],
        account_id: str,
        source: str = "manual",
        auto_commit: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportResult:
        """Import a batch of external rows into an account.

        Each row is stored, standardized by the rules and checked for
        duplicates. Non-duplicate rows are committed as transactions when
        ``auto_commit`` is True; duplicates are never committed automatically.
        A failing row is reported in ``ImportResult.errors`` and the batch
        continues.

        Args:
            rows: ``StatementRow`` objects or dicts with date, amount,
                description and optionally account_id / row_number
            account_id: Account the statement belongs to
            source: Origin of the rows (csv, ofx, manual)
            auto_commit: Commit non-duplicate rows right away
            cancel_event: Checked between commits; once set, the remaining
                rows stay ``rule_applied``

        Returns:
            ImportResult with per-row outcomes and counts

        Raises:
            InvalidReferenceError: If the statement account does not exist
        """
        if self.db.get_account(account_id) is None:
            raise InvalidReferenceError(invalid_reference("account", account_id, "account_id"))

        with self.db.atomic():
            statement_id = self.db.create_statement(
                account_id=account_id, source=source, status=StatementStatus.PENDING
            )
        result = ImportResult(statement=None)
        staged = self._stage(statement_id, rows, account_id, result)

        if auto_commit:
            self._commit_rows(staged, result, cancel_event)
        else:
            result.outcomes.extend(RowOutcome(row=row, warnings=w) for row, w in staged)

        with self.db.atomic():
            result.statement = self._refresh_status(statement_id)
        self._tally(result)
        logger.info(
            "Imported statement %s: %d committed, %d duplicate(s), %d pending, %d error(s)",
            statement_id,
            result.committed,
            result.duplicates,
            result.pending,
            len(result.errors),
        )
        self.bus.publish(
            FinanceEvent(
                type=entity_event_type("created"),
                entity_kind="imported_statement",
                operation="created",
                payload={"id": statement_id, "statement": result.statement},
            )
        )
        return result

    def _require_row(self, row_id: str) -> ImportedTransaction:
        row = self.db.get_imported_row(row_id)
        if row is None:
            raise NotFoundError(not_found("Imported row", row_id))
        return row

    def commit_row(self, row_id: str, force: bool = False) -> ImportedTransaction:
        """Commit one staged row.

        Args:
            row_id: Imported row ID
            force: Allow committing a row flagged as duplicate

        Raises:
            ConstraintViolationError: If the row cannot move to committed
            ImportRowError: If the transaction could not be created
        """
        row = self._commit(self._require_row(row_id), force=force)
        with self.db.atomic():
            self._refresh_status(row.statement_id)
        self.bus.publish(self._row_event(row))
        return row

    def ignore_row(self, row_id: str) -> ImportedTransaction:
        """Mark a staged or duplicate row as ignored."""
        with self.db.atomic():
            row = self._require_row(row_id)
            check_transition(row, ImportRowStatus.IGNORED)
            self.db.update_imported_row(row_id, status=ImportRowStatus.IGNORED)
            self._refresh_status(row.statement_id)
            row = self.db.get_imported_row(row_id)
        self.bus.publish(self._row_event(row))
        return row

    def commit_pending(
        self, statement_id: str, cancel_event: Optional[threading.Event] = None
    ) -> ImportResult:
        """Commit every ``rule_applied`` row of a statement (e.g. after a cancel).

        Counts in the result cover every row of the statement.
        """
        statement = self.db.get_statement(statement_id)
        if statement is None:
            raise NotFoundError(not_found("Statement", statement_id))
        result = ImportResult(statement=statement)
        rows = [(row, ()) for row in self.db.list_imported_rows(statement_id=statement_id)]
        self._commit_rows(rows, result, cancel_event)
        with self.db.atomic():
            result.statement = self._refresh_status(statement_id)
        self._tally(result)
        return result

    def get_statement(self, statement_id: str) -> Optional[ImportedStatement]:
        return self.db.get_statement(statement_id)

    def list_statements(self, account_id: Optional[str] = None) -> list[ImportedStatement]:
        """List imported statements, newest first."""
        return self.db.list_statements(account_id=account_id)

    def list_rows(
        self, statement_id: str, status: Optional[ImportRowStatus] = None
    ) -> list[ImportedTransaction]:
        """List rows of a statement, optionally only those with one status."""
        rows = self.db.list_imported_rows(statement_id=statement_id)
        if status is not None:
            rows = [r for r in rows if r.status == ImportRowStatus(status)]
        return rows
