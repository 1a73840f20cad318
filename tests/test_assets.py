"""Tests for vehicles and insurance policies."""

from datetime import date
from decimal import Decimal

import pytest

from finboard.cli.main import cli
from finboard.domain.assets import InsuranceService, VehicleService
from finboard.domain.entities import OperationType, TransactionSource
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    ValidationError,
)


@pytest.fixture
def vehicle_service(temp_db, bus):
    return VehicleService(temp_db, bus)


@pytest.fixture
def insurance_service(temp_db, bus):
    return InsuranceService(temp_db, bus)


@pytest.fixture
def car(vehicle_service):
    return vehicle_service.create_vehicle(
        "Onix", Decimal("80000"), current_value=Decimal("65000"), model="Onix LT", year=2021
    )


@pytest.fixture
def policy(insurance_service, car):
    return insurance_service.create_policy(
        car.id, "Porto Seguro", Decimal("1000"), 3, date(2024, 1, 1), date(2024, 12, 31)
    )


class TestVehicleService:
    def test_create(self, car):
        assert car.id.startswith("veh_")
        assert car.purchase_value == Decimal("80000.00")
        assert car.current_value == Decimal("65000.00")

    def test_current_value_defaults_to_purchase(self, vehicle_service):
        vehicle = vehicle_service.create_vehicle("Moto", Decimal("12000"))

        assert vehicle.current_value == Decimal("12000.00")

    def test_negative_value(self, vehicle_service):
        with pytest.raises(ValidationError):
            vehicle_service.create_vehicle("Moto", Decimal("-1"))

    def test_update_value(self, vehicle_service, car):
        updated = vehicle_service.update_vehicle(car.id, current_value=Decimal("60000"))

        assert updated.current_value == Decimal("60000.00")
        with pytest.raises(ValidationError, match="Cannot update"):
            vehicle_service.update_vehicle(car.id, color="red")

    def test_record_expense(self, vehicle_service, car, sample_account):
        txn = vehicle_service.record_expense(
            car.id, sample_account.id, Decimal("250"), date(2024, 3, 2), description="Gasolina"
        )

        assert txn.amount == Decimal("-250.00")
        assert txn.operation_type == OperationType.EXPENSE
        assert txn.links.vehicle_id == car.id
        assert vehicle_service.expenses(car.id) == [txn]

    def test_value_counts_in_net_worth(self, car, ledger, sample_account):
        assert ledger.net_worth_at(date(2024, 1, 1)) == Decimal("66000.00")

    def test_delete_with_policy_blocked(self, vehicle_service, car, policy):
        with pytest.raises(ConstraintViolationError, match="insurance"):
            vehicle_service.delete_vehicle(car.id)

    def test_delete_unlinks_expenses(self, vehicle_service, transaction_service, car, sample_account):
        txn = vehicle_service.record_expense(car.id, sample_account.id, Decimal("250"), date(2024, 3, 2))

        vehicle_service.delete_vehicle(car.id)

        assert vehicle_service.get_vehicle(car.id) is None
        assert transaction_service.get_transaction(txn.id).links.vehicle_id is None


class TestInsuranceService:
    def test_create(self, policy, car):
        assert policy.id.startswith("ins_")
        assert policy.vehicle_id == car.id
        assert policy.installment_amount == Decimal("333.33")

    def test_unknown_vehicle(self, insurance_service):
        with pytest.raises(InvalidReferenceError):
            insurance_service.create_policy(
                "veh_missing", "Porto", Decimal("1000"), 3, date(2024, 1, 1), date(2024, 12, 31)
            )

    @pytest.mark.parametrize(
        "premium,installments,end",
        [("0", 3, date(2024, 12, 31)), ("1000", 0, date(2024, 12, 31)), ("1000", 3, date(2023, 12, 31))],
    )
    def test_invalid_policy(self, insurance_service, car, premium, installments, end):
        with pytest.raises(ValidationError):
            insurance_service.create_policy(car.id, "Porto", Decimal(premium), installments, date(2024, 1, 1), end)

    def test_is_active(self, insurance_service, policy):
        assert insurance_service.is_active(policy.id, date(2024, 6, 1))
        assert not insurance_service.is_active(policy.id, date(2025, 1, 1))

    def test_installments_add_up_to_premium(self, insurance_service, policy, sample_account):
        paid = [
            insurance_service.pay_installment(policy.id, sample_account.id, date(2024, month, 10))
            for month in (1, 2, 3)
        ]

        assert [t.amount for t in paid] == [Decimal("-333.33"), Decimal("-333.33"), Decimal("-333.34")]
        assert paid[0].description == "Porto Seguro 1/3"
        assert paid[0].source == TransactionSource.SYSTEM
        assert paid[2].links.installment_number == 3
        assert paid[2].links.insurance_id == policy.id
        with pytest.raises(ConstraintViolationError, match="is paid"):
            insurance_service.pay_installment(policy.id, sample_account.id, date(2024, 4, 10))

    def test_delete_policy_keeps_payments(self, insurance_service, transaction_service, policy, sample_account):
        txn = insurance_service.pay_installment(policy.id, sample_account.id, date(2024, 1, 10))

        insurance_service.delete_policy(policy.id)

        assert insurance_service.get_policy(policy.id) is None
        kept = transaction_service.get_transaction(txn.id)
        assert kept.links.insurance_id is None
        assert kept.links.vehicle_id == policy.vehicle_id


class TestVehicleCommands:
    def test_add_and_list(self, cli_runner, temp_db):
        result = cli_runner.invoke(
            cli,
            ["--db-path", temp_db.database_path, "vehicle", "add", "Onix", "--value", "80.000,00", "--model", "LT"],
        )
        assert result.exit_code == 0
        assert "Added vehicle 'Onix' worth R$ 80.000,00" in result.output

        result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "vehicle", "list"])

        assert "Onix" in result.output
        assert "LT" in result.output

    def test_expense(self, cli_runner, temp_db, car, sample_account):
        result = cli_runner.invoke(
            cli,
            [
                "--db-path", temp_db.database_path, "vehicle", "expense", "Onix", "250",
                "--account", "Test Account", "--date", "2024-03-02", "-d", "Gasolina",
            ],
        )

        assert result.exit_code == 0
        assert "Recorded -R$ 250,00 for 'Onix' on 2024-03-02" in result.output

    def test_unknown_vehicle(self, cli_runner, temp_db, sample_account):
        result = cli_runner.invoke(
            cli,
            ["--db-path", temp_db.database_path, "vehicle", "expense", "Fusca", "10", "--account", "Test Account"],
        )

        assert result.exit_code == 1
        assert "Vehicle 'Fusca' not found" in result.output
