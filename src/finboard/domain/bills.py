"""Recurring bill detection and bill tracking."""

import logging
import re
import unicodedata
from collections import Counter, defaultdict
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional, Union

from dateutil.relativedelta import relativedelta

from finboard.config import Settings, get_settings
from finboard.database.base import Database
from finboard.domain.entities import (
    BillPayment,
    BillSourceType,
    BillStatus,
    BillTracker,
    FlowDirection,
    PotentialFixedBill,
    Transaction,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
    invalid_reference,
    not_found,
    transaction_not_found,
)
from finboard.domain.events import (
    EventBus,
    FinanceEvent,
    FinanceEventType,
    entity_event_type,
)
from finboard.utils.amount_parser import to_money
from finboard.utils.date_parser import clamp_day, parse_period_key, period_key

logger = logging.getLogger(__name__)


def normalize_description(text: Optional[str]) -> str:
    """Reduce a description to its stable words.

    Accents, digits and punctuation are dropped so that ``NETFLIX.COM 01/24``
    and ``Netflix.com 02/24`` normalize the same way.
    """
    text = unicodedata.normalize("NFKD", text or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"\d+", " ", text.casefold())
    text = re.sub(r"[^\w]+|_", " ", text)
    return " ".join(text.split())


def bill_signature(description: Optional[str], category_id: Optional[str]) -> str:
    """Recurrence signature: normalized description plus category."""
    return f"{normalize_description(description)}|{category_id or ''}"


@dataclass(frozen=True)
class BillStatusView:
    """Status of one bill for one month."""

    bill: BillTracker
    period: str
    due_date: date
    status: BillStatus
    payment: Optional[BillPayment]


class BillService:
    """Detects recurring outflows and tracks bill payments per month."""

    def __init__(
        self,
        db: Database,
        bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.bus = bus or EventBus()
        self.settings = settings or get_settings()

    def _publish(self, operation: str, kind: str, entity_id: str, **payload) -> None:
        self.bus.publish(
            FinanceEvent(
                type=entity_event_type(operation),
                entity_kind=kind,
                operation=operation,
                payload={"id": entity_id, **payload},
            )
        )

    # Detection

    def _recurring_run(self, occurrences: list[Transaction]) -> list[Transaction]:
        """Trailing run of occurrences whose consecutive gaps look monthly."""
        low = self.settings.recurrence_min_interval_days
        high = self.settings.recurrence_max_interval_days
        run = [occurrences[-1]]
        for previous in reversed(occurrences[:-1]):
            gap = (run[0].date - previous.date).days
            if not low <= gap <= high:
                break
            run.insert(0, previous)
        return run

    def _amounts_stable(self, amounts: list[Decimal]) -> bool:
        mean = sum(amounts) / len(amounts)
        if mean == 0:
            return False
        return (max(amounts) - min(amounts)) / mean <= self.settings.recurrence_amount_tolerance

    def known_signatures(self) -> set[str]:
        """Signatures that must not be proposed again."""
        signatures = {bill.signature for bill in self.db.list_bills()}
        signatures.update(d.signature for d in self.db.list_bill_dismissals())
        return signatures

    def detect_recurring(
        self, today: Optional[date] = None, account_id: Optional[str] = None
    ) -> list[PotentialFixedBill]:
        """Scan expense history for monthly patterns.

        A group of outflows sharing a signature is a candidate when its most
        recent run has at least ``recurrence_min_occurrences`` occurrences,
        every gap lies in the monthly tolerance band, and the amount spread
        stays within ``recurrence_amount_tolerance`` of the mean.

        Args:
            today: Only transactions dated on or before this day are scanned
            account_id: Optional account filter

        Returns:
            Candidates sorted by next due date, excluding confirmed or
            dismissed signatures
        """
        today = today or date.today()
        with self.db.atomic():
            known = self.known_signatures()
            groups: dict[str, list[Transaction]] = defaultdict(list)
            for txn in self.db.list_transactions():
                if txn.date > today or txn.amount >= 0:
                    continue
                if txn.direction != FlowDirection.EXPENSE or txn.links.loan_id is not None:
                    continue
                if account_id is not None and txn.account_id != account_id:
                    continue
                signature = bill_signature(txn.description, txn.category_id)
                if signature.startswith("|") or signature in known:
                    continue
                groups[signature].append(txn)

        candidates = []
        for signature, occurrences in groups.items():
            if len(occurrences) < self.settings.recurrence_min_occurrences:
                continue
            occurrences.sort(key=lambda t: (t.date, t.sequence))
            run = self._recurring_run(occurrences)
            if len(run) < self.settings.recurrence_min_occurrences:
                continue
            amounts = [abs(t.amount) for t in run]
            if not self._amounts_stable(amounts):
                continue

            last = run[-1]
            due_day = last.date.day
            following = last.date + relativedelta(months=1)
            account = Counter(t.account_id for t in run).most_common(1)[0][0]
            candidates.append(
                PotentialFixedBill(
                    signature=signature,
                    description=last.description or "",
                    category_id=last.category_id,
                    account_id=account,
                    expected_amount=to_money(sum(amounts) / len(amounts)),
                    due_day=due_day,
                    occurrences=len(run),
                    last_date=last.date,
                    next_due_date=clamp_day(following.year, following.month, due_day),
                    transaction_ids=tuple(t.id for t in run),
                )
            )
        candidates.sort(key=lambda c: (c.next_due_date, c.description))
        logger.debug("Detected %d recurring bill candidate(s)", len(candidates))
        return candidates

    def confirm_bill(self, candidate: PotentialFixedBill, name: Optional[str] = None) -> BillTracker:
        """Turn a detected candidate into a tracker.

        The occurrences that formed the candidate are recorded as payments of
        their months.

        Raises:
            ConstraintViolationError: If the signature is already tracked
        """
        with self.db.atomic():
            if any(b.signature == candidate.signature for b in self.db.list_bills()):
                raise ConstraintViolationError(
                    f"A bill with signature '{candidate.signature}' already exists"
                )
            bill_id = self.db.create_bill(
                name=name or candidate.description,
                expected_amount=candidate.expected_amount,
                due_day=candidate.due_day,
                source_type=BillSourceType.AUTO_DETECTED,
                signature=candidate.signature,
                account_id=candidate.account_id,
                category_id=candidate.category_id,
            )
            for transaction_id in candidate.transaction_ids:
                txn = self.db.get_transaction(transaction_id)
                if txn is None:
                    continue
                period = period_key(txn.date)
                if self.db.get_bill_payment(bill_id, period) is None:
                    self.db.create_bill_payment(bill_id, period, txn.id)
            bill = self.db.get_bill(bill_id)
        logger.info("Confirmed recurring bill '%s' due on day %d", bill.name, bill.due_day)
        self._publish("created", "bill", bill.id, bill=bill)
        return bill

    def dismiss_bill(self, candidate: Union[PotentialFixedBill, str]) -> str:
        """Record that a candidate (or a raw signature) should not be proposed again.

        Returns:
            The dismissed signature
        """
        signature = candidate.signature if isinstance(candidate, PotentialFixedBill) else candidate
        with self.db.atomic():
            existing = {d.signature for d in self.db.list_bill_dismissals()}
            if signature in existing:
                return signature
            dismissal_id = self.db.create_bill_dismissal(signature)
        self._publish("created", "bill_dismissal", dismissal_id, signature=signature)
        return signature

    # Trackers

    def _validate(self, expected_amount: Decimal, due_day: int, account_id, category_id) -> None:
        if expected_amount <= 0:
            raise ValidationError("Expected amount must be positive")
        if not 1 <= due_day <= 31:
            raise ValidationError(f"Invalid due day {due_day}; expected 1-31")
        if account_id is not None and self.db.get_account(account_id) is None:
            raise InvalidReferenceError(invalid_reference("account", account_id, "account_id"))
        if category_id is not None and self.db.get_category(category_id) is None:
            raise InvalidReferenceError(invalid_reference("category", category_id, "category_id"))

    def create_bill(
        self,
        name: str,
        expected_amount: Decimal,
        due_day: int,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> BillTracker:
        """Create a manual bill tracker."""
        if not name or not name.strip():
            raise ValidationError("Bill name must not be empty")
        expected_amount = to_money(expected_amount)
        with self.db.atomic():
            self._validate(expected_amount, due_day, account_id, category_id)
            bill_id = self.db.create_bill(
                name=name.strip(),
                expected_amount=expected_amount,
                due_day=due_day,
                source_type=BillSourceType.MANUAL,
                signature=bill_signature(name, category_id),
                account_id=account_id,
                category_id=category_id,
            )
            bill = self.db.get_bill(bill_id)
        self._publish("created", "bill", bill.id, bill=bill)
        return bill

    def get_bill(self, bill_id: str) -> Optional[BillTracker]:
        return self.db.get_bill(bill_id)

    def require_bill(self, bill_id: str) -> BillTracker:
        bill = self.db.get_bill(bill_id)
        if bill is None:
            raise NotFoundError(not_found("Bill", bill_id))
        return bill

    def list_bills(self, active_only: bool = False) -> list[BillTracker]:
        return self.db.list_bills(active_only=active_only)

    def update_bill(self, bill_id: str, **fields) -> BillTracker:
        """Update name, expected_amount, due_day, account_id, category_id or active."""
        allowed = {"name", "expected_amount", "due_day", "account_id", "category_id", "active"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if "expected_amount" in fields:
            fields["expected_amount"] = to_money(fields["expected_amount"])
        with self.db.atomic():
            bill = self.require_bill(bill_id)
            merged = replace(bill, **fields)
            self._validate(merged.expected_amount, merged.due_day, merged.account_id, merged.category_id)
            self.db.update_bill(bill_id, **fields)
            bill = self.db.get_bill(bill_id)
        self._publish("updated", "bill", bill.id, bill=bill)
        return bill

    def delete_bill(self, bill_id: str) -> None:
        """Delete a tracker and its payment links."""
        with self.db.atomic():
            bill = self.require_bill(bill_id)
            for payment in self.db.list_bill_payments(bill_id=bill_id):
                self._clear_transaction_bill_link(payment.transaction_id, bill_id)
            self.db.delete_bill(bill_id)
        self._publish("deleted", "bill", bill.id, bill=bill)

    # Status

    def due_date(self, bill: BillTracker, period: str) -> date:
        """Due date of a bill in a ``YYYY-MM`` period (clamped to the month's end)."""
        year, month = parse_period_key(period)
        return clamp_day(year, month, bill.due_day)

    def status(self, bill_id: str, period: Optional[str] = None, today: Optional[date] = None) -> BillStatus:
        """Status of a bill for one period.

        ``paid`` when a payment is linked for the period; otherwise ``overdue``
        after the due date, ``due`` within ``bill_due_window_days`` before it,
        else ``upcoming``.
        """
        today = today or date.today()
        period = period or period_key(today)
        bill = self.require_bill(bill_id)
        if self.db.get_bill_payment(bill_id, period) is not None:
            return BillStatus.PAID
        due = self.due_date(bill, period)
        if today > due:
            return BillStatus.OVERDUE
        if due - timedelta(days=self.settings.bill_due_window_days) <= today:
            return BillStatus.DUE
        return BillStatus.UPCOMING

    def due_dates(self, bill_id: str, start: date, count: int = 12) -> list[date]:
        """The next ``count`` due dates on or after ``start``."""
        bill = self.require_bill(bill_id)
        dates = []
        cursor = start.replace(day=1)
        while len(dates) < count:
            due = clamp_day(cursor.year, cursor.month, bill.due_day)
            if due >= start:
                dates.append(due)
            cursor += relativedelta(months=1)
        return dates

    def bills_for_month(self, year: int, month: int, today: Optional[date] = None) -> list[BillStatusView]:
        """Status of every active bill for one month, ordered by due date."""
        period = f"{year:04d}-{month:02d}"
        views = []
        with self.db.atomic():
            for bill in self.db.list_bills(active_only=True):
                views.append(
                    BillStatusView(
                        bill=bill,
                        period=period,
                        due_date=self.due_date(bill, period),
                        status=self.status(bill.id, period, today),
                        payment=self.db.get_bill_payment(bill.id, period),
                    )
                )
        views.sort(key=lambda v: (v.due_date, v.bill.name))
        return views

    # Payments

    def _clear_transaction_bill_link(self, transaction_id: str, bill_id: str) -> None:
        txn = self.db.get_transaction(transaction_id)
        if txn is not None and txn.links.bill_id == bill_id:
            self.db.update_transaction(txn.id, links=replace(txn.links, bill_id=None))

    def link_payment(self, bill_id: str, transaction_id: str, period: Optional[str] = None) -> BillPayment:
        """Mark one period of a bill as paid by a transaction.

        Args:
            bill_id: Bill ID
            transaction_id: Paying transaction
            period: ``YYYY-MM`` period; defaults to the transaction's month

        Raises:
            ConstraintViolationError: If the period is already paid
        """
        with self.db.atomic():
            bill = self.require_bill(bill_id)
            txn = self.db.get_transaction(transaction_id)
            if txn is None:
                raise NotFoundError(transaction_not_found(transaction_id))
            period = period or period_key(txn.date)
            parse_period_key(period)
            if self.db.get_bill_payment(bill_id, period) is not None:
                raise ConstraintViolationError(f"Bill {bill.name} is already paid for {period}")
            payment_id = self.db.create_bill_payment(bill_id, period, transaction_id)
            self.db.update_transaction(txn.id, links=replace(txn.links, bill_id=bill_id))
            payment = self.db.get_bill_payment(bill_id, period)
            txn = self.db.get_transaction(txn.id)
        self._publish("created", "bill_payment", payment_id, payment=payment)
        self.bus.publish(
            FinanceEvent(
                type=FinanceEventType.TRANSACTION_UPDATED,
                entity_kind="transaction",
                operation="updated",
                payload={"id": txn.id, "transaction": txn},
            )
        )
        return payment

    def unlink_payment(self, bill_id: str, period: str) -> None:
        """Remove the payment recorded for one period."""
        with self.db.atomic():
            payment = self.db.get_bill_payment(bill_id, period)
            if payment is None:
                raise NotFoundError(f"No payment for bill {bill_id} in {period}")
            self._clear_transaction_bill_link(payment.transaction_id, bill_id)
            self.db.delete_bill_payment(payment.id)
        self._publish("deleted", "bill_payment", payment.id, payment=payment)

    def _describes(self, bill: BillTracker, txn: Transaction) -> bool:
        described = normalize_description(txn.description)
        if not described:
            return False
        bill_words = bill.signature.split("|", 1)[0]
        name_words = normalize_description(bill.name)
        return described == bill_words or (bool(name_words) and name_words in described)

    def match_payment(self, transaction: Transaction) -> Optional[BillPayment]:
        """Link a new outflow to the active bill it pays, if one matches.

        A match needs the same normalized description, an amount within
        ``bill_match_amount_tolerance`` and a date within
        ``bill_match_window_days`` of an unpaid period's due date.
        """
        if transaction.amount >= 0 or transaction.links.bill_id is not None:
            return None
        window = timedelta(days=self.settings.bill_match_window_days)
        magnitude = abs(transaction.amount)
        for bill in self.db.list_bills(active_only=True):
            if not self._describes(bill, transaction):
                continue
            if abs(magnitude - bill.expected_amount) > bill.expected_amount * self.settings.bill_match_amount_tolerance:
                continue
            for offset in (0, -1, 1):
                month = transaction.date.replace(day=1) + relativedelta(months=offset)
                period = period_key(month)
                due = self.due_date(bill, period)
                if abs(transaction.date - due) > window:
                    continue
                if self.db.get_bill_payment(bill.id, period) is not None:
                    continue
                logger.info("Matched transaction %s to bill '%s' for %s", transaction.id, bill.name, period)
                return self.link_payment(bill.id, transaction.id, period)
        return None

    def attach(self, bus: Optional[EventBus] = None) -> Callable[[], None]:
        """Match every newly created transaction against the active bills.

        Returns:
            Handle that detaches the matcher
        """
        bus = bus or self.bus

        def on_created(event: FinanceEvent) -> None:
            txn = event.payload.get("transaction")
            if txn is not None and self.db.get_transaction(txn.id) is not None:
                self.match_payment(txn)

        return bus.subscribe(FinanceEventType.TRANSACTION_CREATED, on_created)
