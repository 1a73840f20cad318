"""Date-range analytics: period totals and period-over-period comparison."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from finboard.database.base import Database
from finboard.domain.entities import FlowDirection, Transaction, TransactionFilter
from finboard.domain.errors import ValidationError
from finboard.utils.date_parser import get_date_range, month_end, period_key

ZERO = Decimal("0.00")


class Variation(Enum):
    """Sentinel values for a percentage variation that has no numeric value."""

    UNDEFINED = "undefined"

    def __str__(self) -> str:
        return "n/a"


UNDEFINED = Variation.UNDEFINED

VariationValue = Union[Decimal, Variation]


@dataclass(frozen=True)
class DateRange:
    """Inclusive range normalized to whole days.

    ``start`` is 00:00:00.000000 of the first day and ``end`` 23:59:59.999999
    of the last, so adjacent ranges never share a transaction date.
    """

    start: datetime
    end: datetime

    def __post_init__(self):
        start = self.start if isinstance(self.start, datetime) else datetime.combine(self.start, time.min)
        end = self.end if isinstance(self.end, datetime) else datetime.combine(self.end, time.max)
        object.__setattr__(self, "start", datetime.combine(start.date(), time.min))
        object.__setattr__(self, "end", datetime.combine(end.date(), time.max))
        if self.start > self.end:
            raise ValidationError(
                f"Range start {self.start.date()} is after end {self.end.date()}"
            )

    @classmethod
    def for_dates(cls, start: date, end: date) -> "DateRange":
        return cls(start, end)

    @classmethod
    def month(cls, year: int, month: int) -> "DateRange":
        first = date(year, month, 1)
        return cls(first, month_end(first))

    @classmethod
    def for_period(cls, period: str, today: Optional[date] = None) -> "DateRange":
        """Build a range from a slug such as ``this-month`` or ``last-year``."""
        start, end = get_date_range(period, today=today)
        return cls(start, end)

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def contains(self, day: date) -> bool:
        moment = day if isinstance(day, datetime) else datetime.combine(day, time.min)
        return self.start <= moment <= self.end

    def previous(self) -> "DateRange":
        """Range of the same length ending the day before this one starts."""
        end = self.start_date - timedelta(days=1)
        return DateRange(end - timedelta(days=self.days - 1), end)

    def __str__(self) -> str:
        return f"{self.start_date.isoformat()}..{self.end_date.isoformat()}"


@dataclass(frozen=True)
class PeriodSummary:
    """Totals of one range."""

    range: DateRange
    total: Decimal
    income: Decimal
    expenses: Decimal
    count: int
    by_category: dict[Optional[str], Decimal] = field(default_factory=dict)
    by_direction: dict[FlowDirection, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class PeriodComparison:
    """Current range versus a previous one."""

    current: PeriodSummary
    previous: PeriodSummary
    delta: Decimal
    variation: VariationValue
    income_delta: Decimal
    income_variation: VariationValue
    expenses_delta: Decimal
    expenses_variation: VariationValue


@dataclass(frozen=True)
class CategoryTotal:
    category_id: Optional[str]
    name: str
    amount: Decimal
    share: Decimal


@dataclass(frozen=True)
class MonthlyTotal:
    period: str
    income: Decimal
    expenses: Decimal
    net: Decimal


def percentage_variation(current: Decimal, previous: Decimal) -> VariationValue:
    """Percentage change from ``previous`` to ``current``.

    Equal values give 0 (even when both are zero); any change from zero is
    ``UNDEFINED``.
    """
    if current == previous:
        return Decimal("0.00")
    if previous == 0:
        return UNDEFINED
    return ((current - previous) / abs(previous) * 100).quantize(Decimal("0.01"))


class AnalyticsService:
    """Summaries over date ranges."""

    def __init__(self, db: Database):
        self.db = db

    def _transactions(
        self,
        date_range: DateRange,
        category_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        return self.db.list_transactions(
            TransactionFilter(
                account_id=account_id,
                start_date=date_range.start_date,
                end_date=date_range.end_date,
                category_id=category_id,
            )
        )

    def summarize(
        self,
        date_range: DateRange,
        category_id: Optional[str] = None,
        account_id: Optional[str] = None,
        include_transfers: bool = False,
    ) -> PeriodSummary:
        """Totals of transactions dated within the range (inclusive).

        Transfers and investment movements are neutral and only counted when
        ``include_transfers`` is True.

        Args:
            date_range: Range to summarize
            category_id: Optional category filter
            account_id: Optional account filter
            include_transfers: Include neutral operations in the totals

        Returns:
            PeriodSummary with grand total, income, expenses (as a positive
            magnitude), and totals by category and by direction
        """
        total = income = expenses = ZERO
        count = 0
        by_category: dict[Optional[str], Decimal] = defaultdict(lambda: ZERO)
        by_direction: dict[FlowDirection, Decimal] = defaultdict(lambda: ZERO)

        for txn in self._transactions(date_range, category_id, account_id):
            if not date_range.contains(txn.date):
                continue
            direction = txn.direction
            if direction == FlowDirection.NEUTRAL and not include_transfers:
                continue
            total += txn.amount
            count += 1
            by_category[txn.category_id] += txn.amount
            by_direction[direction] += txn.amount
            if direction == FlowDirection.INCOME:
                income += txn.amount
            elif direction == FlowDirection.EXPENSE:
                expenses -= txn.amount

        return PeriodSummary(
            range=date_range,
            total=total,
            income=income,
            expenses=expenses,
            count=count,
            by_category=dict(by_category),
            by_direction=dict(by_direction),
        )

    def compare(
        self,
        current: DateRange,
        previous: Optional[DateRange] = None,
        category_id: Optional[str] = None,
        account_id: Optional[str] = None,
        include_transfers: bool = False,
    ) -> PeriodComparison:
        """Compare two ranges; ``previous`` defaults to the range just before ``current``.

        Variation is ``UNDEFINED`` when the previous total is zero and the
        current one is not.
        """
        previous = previous or current.previous()
        with self.db.atomic():
            now = self.summarize(current, category_id, account_id, include_transfers)
            before = self.summarize(previous, category_id, account_id, include_transfers)
        return PeriodComparison(
            current=now,
            previous=before,
            delta=now.total - before.total,
            variation=percentage_variation(now.total, before.total),
            income_delta=now.income - before.income,
            income_variation=percentage_variation(now.income, before.income),
            expenses_delta=now.expenses - before.expenses,
            expenses_variation=percentage_variation(now.expenses, before.expenses),
        )

    def category_breakdown(
        self,
        date_range: DateRange,
        direction: FlowDirection = FlowDirection.EXPENSE,
    ) -> list[CategoryTotal]:
        """Per-category magnitudes for one direction, largest first."""
        summary_by_category: dict[Optional[str], Decimal] = defaultdict(lambda: ZERO)
        with self.db.atomic():
            for txn in self._transactions(date_range):
                if txn.direction == FlowDirection(direction):
                    summary_by_category[txn.category_id] += abs(txn.amount)
            names = {c.id: c.name for c in self.db.list_categories()}

        grand_total = sum(summary_by_category.values(), ZERO)
        breakdown = [
            CategoryTotal(
                category_id=category_id,
                name=names.get(category_id, "Uncategorized"),
                amount=amount,
                share=(
                    (amount / grand_total * 100).quantize(Decimal("0.01"))
                    if grand_total else ZERO
                ),
            )
            for category_id, amount in summary_by_category.items()
        ]
        breakdown.sort(key=lambda item: (-item.amount, item.name))
        return breakdown

    def monthly_totals(self, end: date, months: int = 12) -> list[MonthlyTotal]:
        """Income, expenses and net for each of the ``months`` months ending at ``end``."""
        totals = []
        for offset in range(months - 1, -1, -1):
            first = (end - relativedelta(months=offset)).replace(day=1)
            summary = self.summarize(DateRange.month(first.year, first.month))
            totals.append(
                MonthlyTotal(
                    period=period_key(first),
                    income=summary.income,
                    expenses=summary.expenses,
                    net=summary.income - summary.expenses,
                )
            )
        return totals
