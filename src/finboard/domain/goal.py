"""Financial goals tracked against account balances."""

from datetime import date
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from finboard.database.base import Database
from finboard.domain.entities import Goal, GoalProgress
from finboard.domain.errors import (
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
    invalid_reference,
    not_found,
)
from finboard.domain.events import EventBus, FinanceEvent, entity_event_type
from finboard.domain.ledger import LedgerService
from finboard.utils.amount_parser import CENT, to_money


class GoalService:
    """Service for financial goals."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or EventBus()
        self.ledger = LedgerService(db)

    def _publish(self, operation: str, goal: Goal) -> None:
        self.bus.publish(
            FinanceEvent(
                type=entity_event_type(operation),
                entity_kind="goal",
                operation=operation,
                payload={"id": goal.id, "goal": goal},
            )
        )

    def _check_accounts(self, account_ids: list[str]) -> list[str]:
        unique = list(dict.fromkeys(account_ids))
        for account_id in unique:
            if self.db.get_account(account_id) is None:
                raise InvalidReferenceError(invalid_reference("account", account_id, "account_ids"))
        return unique

    def create_goal(
        self,
        name: str,
        target_amount: Decimal,
        target_date: Optional[date] = None,
        account_ids: Optional[list[str]] = None,
    ) -> Goal:
        """Create a goal.

        Args:
            name: Goal name
            target_amount: Amount to reach (positive)
            target_date: Optional deadline
            account_ids: Accounts whose balances count toward the goal

        Returns:
            The stored goal
        """
        if not name or not name.strip():
            raise ValidationError("Goal name must not be empty")
        target_amount = to_money(target_amount)
        if target_amount <= 0:
            raise ValidationError("Goal target must be positive")
        with self.db.atomic():
            goal_id = self.db.create_goal(
                name=name.strip(),
                target_amount=target_amount,
                target_date=target_date,
                account_ids=self._check_accounts(account_ids or []),
            )
            goal = self.db.get_goal(goal_id)
        self._publish("created", goal)
        return goal

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self.db.get_goal(goal_id)

    def require_goal(self, goal_id: str) -> Goal:
        goal = self.db.get_goal(goal_id)
        if goal is None:
            raise NotFoundError(not_found("Goal", goal_id))
        return goal

    def list_goals(self) -> list[Goal]:
        return self.db.list_goals()

    def update_goal(self, goal_id: str, **fields) -> Goal:
        """Update name, target_amount, target_date or account_ids."""
        allowed = {"name", "target_amount", "target_date", "account_ids"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if "target_amount" in fields:
            fields["target_amount"] = to_money(fields["target_amount"])
            if fields["target_amount"] <= 0:
                raise ValidationError("Goal target must be positive")
        with self.db.atomic():
            self.require_goal(goal_id)
            if "account_ids" in fields:
                fields["account_ids"] = self._check_accounts(fields["account_ids"])
            self.db.update_goal(goal_id, **fields)
            goal = self.db.get_goal(goal_id)
        self._publish("updated", goal)
        return goal

    def delete_goal(self, goal_id: str) -> None:
        with self.db.atomic():
            goal = self.require_goal(goal_id)
            self.db.delete_goal(goal_id)
        self._publish("deleted", goal)

    def progress(self, goal_id: str, as_of: Optional[date] = None) -> GoalProgress:
        """Progress of a goal from the replayed balances of its accounts.

        ``monthly_needed`` is the remaining amount spread over the months left
        until the target date (at least one), or None without a target date.
        """
        as_of = as_of or date.today()
        with self.db.atomic():
            goal = self.require_goal(goal_id)
            current = sum(
                (self.ledger.balance_at(account_id, as_of) for account_id in goal.account_ids),
                Decimal("0.00"),
            )

        remaining = max(goal.target_amount - current, Decimal("0.00"))
        percent = min(current / goal.target_amount * 100, Decimal(100)).quantize(CENT)
        monthly_needed = None
        if goal.target_date is not None:
            delta = relativedelta(goal.target_date, as_of)
            months = max(delta.years * 12 + delta.months, 1)
            monthly_needed = (remaining / months).quantize(CENT)
        return GoalProgress(
            goal_id=goal.id,
            as_of=as_of,
            current_amount=current,
            target_amount=goal.target_amount,
            remaining=remaining,
            percent=max(percent, Decimal("0.00")),
            monthly_needed=monthly_needed,
        )
