"""Vehicles and their insurance policies."""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

from finboard.database.base import Database
from finboard.domain.entities import (
    InsurancePolicy,
    OperationType,
    Transaction,
    TransactionLinks,
    TransactionSource,
    Vehicle,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
    invalid_reference,
    not_found,
)
from finboard.domain.events import (
    EventBus,
    FinanceEvent,
    FinanceEventType,
    entity_event_type,
)
from finboard.domain.transaction import TransactionService
from finboard.utils.amount_parser import to_money


def _entity_event(operation: str, kind: str, entity_id: str, **payload) -> FinanceEvent:
    return FinanceEvent(
        type=entity_event_type(operation),
        entity_kind=kind,
        operation=operation,
        payload={"id": entity_id, **payload},
    )


def _unlink_events(db: Database, field: str, value: str, **cleared) -> list[FinanceEvent]:
    """Detach every transaction linked through ``field`` and report the updates."""
    events = []
    for txn in db.list_transactions_by_link(field, value):
        db.update_transaction(txn.id, links=replace(txn.links, **cleared))
        events.append(
            FinanceEvent(
                type=FinanceEventType.TRANSACTION_UPDATED,
                entity_kind="transaction",
                operation="updated",
                payload={"id": txn.id, "transaction": db.get_transaction(txn.id)},
            )
        )
    return events


class VehicleService:
    """Service for vehicle assets."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or EventBus()
        self.transactions = TransactionService(db, self.bus)

    def create_vehicle(
        self,
        name: str,
        purchase_value: Decimal,
        current_value: Optional[Decimal] = None,
        model: Optional[str] = None,
        year: Optional[int] = None,
        purchase_date: Optional[date] = None,
    ) -> Vehicle:
        """Register a vehicle. ``current_value`` defaults to the purchase value."""
        if not name or not name.strip():
            raise ValidationError("Vehicle name must not be empty")
        purchase_value = to_money(purchase_value)
        current_value = to_money(current_value if current_value is not None else purchase_value)
        if purchase_value < 0 or current_value < 0:
            raise ValidationError("Vehicle values must not be negative")
        vehicle_id = self.db.create_vehicle(
            name=name.strip(),
            model=model,
            year=year,
            purchase_date=purchase_date,
            purchase_value=purchase_value,
            current_value=current_value,
        )
        vehicle = self.db.get_vehicle(vehicle_id)
        self.bus.publish(_entity_event("created", "vehicle", vehicle.id, vehicle=vehicle))
        return vehicle

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return self.db.get_vehicle(vehicle_id)

    def require_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self.db.get_vehicle(vehicle_id)
        if vehicle is None:
            raise NotFoundError(not_found("Vehicle", vehicle_id))
        return vehicle

    def list_vehicles(self) -> list[Vehicle]:
        return self.db.list_vehicles()

    def update_vehicle(self, vehicle_id: str, **fields) -> Vehicle:
        """Update name, model, year, purchase_date, purchase_value or current_value."""
        allowed = {"name", "model", "year", "purchase_date", "purchase_value", "current_value"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        for key in ("purchase_value", "current_value"):
            if key in fields:
                fields[key] = to_money(fields[key])
                if fields[key] < 0:
                    raise ValidationError("Vehicle values must not be negative")
        with self.db.atomic():
            self.require_vehicle(vehicle_id)
            self.db.update_vehicle(vehicle_id, **fields)
            vehicle = self.db.get_vehicle(vehicle_id)
        self.bus.publish(_entity_event("updated", "vehicle", vehicle.id, vehicle=vehicle))
        return vehicle

    def record_expense(
        self,
        vehicle_id: str,
        account_id: str,
        amount: Decimal,
        expense_date: date,
        description: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> Transaction:
        """Record fuel, maintenance or any other vehicle cost as an expense.

        ``amount`` is the cost magnitude; the stored transaction is negative.
        """
        self.require_vehicle(vehicle_id)
        return self.transactions.create_transaction(
            account_id=account_id,
            date=expense_date,
            amount=-abs(to_money(amount)),
            operation_type=OperationType.EXPENSE,
            category_id=category_id,
            description=description,
            links=TransactionLinks(vehicle_id=vehicle_id),
        )

    def expenses(self, vehicle_id: str) -> list[Transaction]:
        """Transactions linked to a vehicle, oldest first."""
        self.require_vehicle(vehicle_id)
        return sorted(
            self.db.list_transactions_by_link("vehicle_id", vehicle_id),
            key=lambda t: (t.date, t.sequence),
        )

    def delete_vehicle(self, vehicle_id: str) -> None:
        """Delete a vehicle with no insurance policies; its expenses are unlinked."""
        with self.db.atomic():
            vehicle = self.require_vehicle(vehicle_id)
            if self.db.list_insurance_policies(vehicle_id=vehicle_id):
                raise ConstraintViolationError(
                    f"Cannot delete vehicle {vehicle.name}: it has insurance policies"
                )
            events = _unlink_events(self.db, "vehicle_id", vehicle_id, vehicle_id=None)
            self.db.delete_vehicle(vehicle_id)
        for event in events:
            self.bus.publish(event)
        self.bus.publish(_entity_event("deleted", "vehicle", vehicle.id, vehicle=vehicle))


class InsuranceService:
    """Service for vehicle insurance policies and premium installments."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or EventBus()
        self.transactions = TransactionService(db, self.bus)

    def create_policy(
        self,
        vehicle_id: str,
        insurer: str,
        premium: Decimal,
        installments: int,
        start_date: date,
        end_date: date,
    ) -> InsurancePolicy:
        """Create a policy for a vehicle.

        Raises:
            InvalidReferenceError: If the vehicle doesn't exist
            ValidationError: If premium, installments or dates are invalid
        """
        premium = to_money(premium)
        if not insurer or not insurer.strip():
            raise ValidationError("Insurer must not be empty")
        if premium <= 0:
            raise ValidationError("Premium must be positive")
        if installments < 1:
            raise ValidationError("A policy needs at least one installment")
        if end_date < start_date:
            raise ValidationError("Policy end date is before its start date")
        with self.db.atomic():
            if self.db.get_vehicle(vehicle_id) is None:
                raise InvalidReferenceError(invalid_reference("vehicle", vehicle_id, "vehicle_id"))
            policy_id = self.db.create_insurance_policy(
                vehicle_id=vehicle_id,
                insurer=insurer.strip(),
                premium=premium,
                installments=installments,
                start_date=start_date,
                end_date=end_date,
            )
            policy = self.db.get_insurance_policy(policy_id)
        self.bus.publish(_entity_event("created", "insurance", policy.id, policy=policy))
        return policy

    def get_policy(self, policy_id: str) -> Optional[InsurancePolicy]:
        return self.db.get_insurance_policy(policy_id)

    def require_policy(self, policy_id: str) -> InsurancePolicy:
        policy = self.db.get_insurance_policy(policy_id)
        if policy is None:
            raise NotFoundError(not_found("Insurance policy", policy_id))
        return policy

    def list_policies(self, vehicle_id: Optional[str] = None) -> list[InsurancePolicy]:
        return self.db.list_insurance_policies(vehicle_id=vehicle_id)

    def is_active(self, policy_id: str, on: date) -> bool:
        policy = self.require_policy(policy_id)
        return policy.start_date <= on <= policy.end_date

    def pay_installment(
        self,
        policy_id: str,
        account_id: str,
        payment_date: date,
        category_id: Optional[str] = None,
    ) -> Transaction:
        """Pay the next premium installment.

        The last installment absorbs the rounding left by splitting the premium.

        Raises:
            ConstraintViolationError: If every installment is already paid
        """
        policy = self.require_policy(policy_id)
        paid = self.payments(policy_id)
        if len(paid) >= policy.installments:
            raise ConstraintViolationError(f"Every installment of policy {policy_id} is paid")
        number = len(paid) + 1
        amount = policy.installment_amount
        if number == policy.installments:
            amount = policy.premium - amount * (policy.installments - 1)
        return self.transactions.create_transaction(
            account_id=account_id,
            date=payment_date,
            amount=-amount,
            operation_type=OperationType.EXPENSE,
            category_id=category_id,
            description=f"{policy.insurer} {number}/{policy.installments}",
            links=TransactionLinks(
                insurance_id=policy.id,
                vehicle_id=policy.vehicle_id,
                installment_number=number,
            ),
            source=TransactionSource.SYSTEM,
        )

    def payments(self, policy_id: str) -> list[Transaction]:
        """Premium payments made so far, oldest first."""
        return sorted(
            self.db.list_transactions_by_link("insurance_id", policy_id),
            key=lambda t: (t.date, t.sequence),
        )

    def delete_policy(self, policy_id: str) -> None:
        """Delete a policy; its premium payments stay in the ledger unlinked."""
        with self.db.atomic():
            policy = self.require_policy(policy_id)
            events = _unlink_events(
                self.db, "insurance_id", policy_id, insurance_id=None, installment_number=None
            )
            self.db.delete_insurance_policy(policy_id)
        for event in events:
            self.bus.publish(event)
        self.bus.publish(_entity_event("deleted", "insurance", policy.id, policy=policy))
