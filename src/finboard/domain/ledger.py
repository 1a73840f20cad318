"""Ledger replay: balances reconstructed from transactions as of any date."""

from datetime import date
from decimal import Decimal
from typing import Optional, Callable

from dateutil.relativedelta import relativedelta

from finboard.database.base import Database
from finboard.domain.entities import (
    AccountType,
    SeriesPoint,
    StatementLine,
    TransactionFilter,
)
from finboard.domain.errors import NotFoundError, ValidationError, account_not_found
from finboard.domain.events import EventBus
from finboard.utils.date_parser import month_end


class LedgerService:
    """Computes balances by replaying transactions.

    Balances are never stored. ``balance_at`` is a pure function of the store
    contents and the requested date; with ``cache=True`` results are memoized
    until any event is published on ``bus``, which is then required.
    """

    def __init__(self, db: Database, bus: Optional[EventBus] = None, cache: bool = False):
        if cache and bus is None:
            raise ValidationError("A cached ledger needs an event bus to invalidate it")
        self.db = db
        self._cache: Optional[dict[tuple[str, date], Decimal]] = {} if cache else None
        self._unsubscribe: Optional[Callable[[], None]] = None
        if cache:
            self._unsubscribe = bus.subscribe_all(lambda event: self.invalidate())

    def invalidate(self) -> None:
        """Drop memoized balances."""
        if self._cache is not None:
            self._cache.clear()

    def close(self) -> None:
        """Stop listening for invalidation events."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def replay(self, account_id: str, as_of: Optional[date] = None) -> list[StatementLine]:
        """Return the account's transactions up to ``as_of`` with running balances.

        Ordering is by date, then by insertion sequence.
        """
        with self.db.atomic():
            account = self.db.get_account(account_id)
            if account is None:
                raise NotFoundError(account_not_found(account_id))
            transactions = self.db.list_transactions(
                TransactionFilter(account_id=account_id, end_date=as_of)
            )

        balance = account.opening_balance
        lines = []
        for txn in sorted(transactions, key=lambda t: (t.date, t.sequence)):
            balance += txn.amount
            lines.append(StatementLine(transaction=txn, balance=balance))
        return lines

    def balance_at(self, account_id: str, as_of: date) -> Decimal:
        """Balance of an account at the end of ``as_of``.

        Args:
            account_id: Account ID
            as_of: Date whose transactions are included (inclusive)

        Returns:
            Opening balance plus every transaction dated on or before ``as_of``

        Raises:
            NotFoundError: If the account doesn't exist
        """
        key = (account_id, as_of)
        if self._cache is not None and key in self._cache:
            return self._cache[key]

        with self.db.atomic():
            account = self.db.get_account(account_id)
            if account is None:
                raise NotFoundError(account_not_found(account_id))
            transactions = self.db.list_transactions(
                TransactionFilter(account_id=account_id, end_date=as_of)
            )

        balance = account.opening_balance
        for txn in transactions:
            balance += txn.amount

        if self._cache is not None:
            self._cache[key] = balance
        return balance

    def current_balance(self, account_id: str, today: Optional[date] = None) -> Decimal:
        """Balance as of today; future-dated transactions are excluded."""
        return self.balance_at(account_id, today or date.today())

    def balances_at(self, as_of: date) -> dict[str, Decimal]:
        """Balance of every account keyed by account ID."""
        with self.db.atomic():
            return {acc.id: self.balance_at(acc.id, as_of) for acc in self.db.list_accounts()}

    def total_investment_balance_at(self, as_of: date) -> Decimal:
        """Sum of balances over all investment accounts."""
        with self.db.atomic():
            accounts = self.db.list_accounts(account_type=AccountType.INVESTMENT)
            return sum(
                (self.balance_at(acc.id, as_of) for acc in accounts), Decimal("0.00")
            )

    def total_balance_at(self, as_of: date, exclude_investments: bool = False) -> Decimal:
        """Sum of balances over all accounts."""
        with self.db.atomic():
            total = Decimal("0.00")
            for acc in self.db.list_accounts():
                if exclude_investments and acc.account_type == AccountType.INVESTMENT:
                    continue
                total += self.balance_at(acc.id, as_of)
            return total

    def outstanding_loans_at(self, as_of: date) -> Decimal:
        """Principal still owed on every loan as of a date.

        An installment counts as settled when it has a paid transaction dated
        on or before ``as_of``.
        """
        owed = Decimal("0.00")
        with self.db.atomic():
            for loan in self.db.list_loans():
                if loan.start_date > as_of:
                    continue
                remaining = loan.principal
                for installment in loan.installments:
                    if installment.transaction_id is None:
                        continue
                    paid = self.db.get_transaction(installment.transaction_id)
                    if paid is not None and paid.date <= as_of:
                        remaining -= installment.principal
                owed += max(remaining, Decimal("0.00"))
        return owed

    def net_worth_at(self, as_of: date) -> Decimal:
        """Account balances plus vehicle values minus outstanding loans."""
        with self.db.atomic():
            assets = self.total_balance_at(as_of)
            for vehicle in self.db.list_vehicles():
                if vehicle.purchase_date is None or vehicle.purchase_date <= as_of:
                    assets += vehicle.current_value
            return assets - self.outstanding_loans_at(as_of)

    def month_end_series(
        self, end: date, months: int = 12, account_id: Optional[str] = None
    ) -> list[SeriesPoint]:
        """Balances at successive month ends, oldest first, ending at ``end``'s month.

        With no ``account_id`` the series tracks the total over all accounts.
        """
        points = []
        for offset in range(months - 1, -1, -1):
            point_date = month_end(end - relativedelta(months=offset))
            if account_id is None:
                value = self.total_balance_at(point_date)
            else:
                value = self.balance_at(account_id, point_date)
            points.append(SeriesPoint(date=point_date, value=value))
        return points
