"""Tests for financial goals."""

from datetime import date
from decimal import Decimal

import pytest

from finboard.cli.main import cli
from finboard.domain.errors import InvalidReferenceError, NotFoundError, ValidationError
from finboard.domain.goal import GoalService


@pytest.fixture
def goal_service(temp_db, bus):
    return GoalService(temp_db, bus)


@pytest.fixture
def funded_savings(transaction_service, sample_account, savings_account):
    transaction_service.create_transfer(
        sample_account.id, savings_account.id, Decimal("2500"), date(2024, 1, 10)
    )
    return savings_account


@pytest.fixture
def trip(goal_service, funded_savings):
    return goal_service.create_goal(
        "Viagem", Decimal("10000"), date(2024, 12, 31), account_ids=[funded_savings.id]
    )


class TestGoalService:
    def test_create(self, trip, funded_savings):
        assert trip.id.startswith("goal_")
        assert trip.target_amount == Decimal("10000.00")
        assert trip.account_ids == (funded_savings.id,)

    def test_duplicate_accounts_collapsed(self, goal_service, savings_account):
        goal = goal_service.create_goal(
            "Reserva", Decimal("5000"), account_ids=[savings_account.id, savings_account.id]
        )

        assert goal.account_ids == (savings_account.id,)

    @pytest.mark.parametrize("name,target", [("", "100"), ("Reserva", "0"), ("Reserva", "-5")])
    def test_invalid_goal(self, goal_service, name, target):
        with pytest.raises(ValidationError):
            goal_service.create_goal(name, Decimal(target))

    def test_unknown_account(self, goal_service):
        with pytest.raises(InvalidReferenceError):
            goal_service.create_goal("Reserva", Decimal("100"), account_ids=["acc_missing"])

    def test_progress(self, goal_service, trip):
        progress = goal_service.progress(trip.id, as_of=date(2024, 6, 30))

        assert progress.current_amount == Decimal("2500.00")
        assert progress.remaining == Decimal("7500.00")
        assert progress.percent == Decimal("25.00")
        assert progress.monthly_needed == Decimal("1250.00")

    def test_progress_before_any_deposit(self, goal_service, trip):
        progress = goal_service.progress(trip.id, as_of=date(2024, 1, 9))

        assert progress.current_amount == Decimal("0.00")
        assert progress.percent == Decimal("0.00")

    def test_progress_capped_when_reached(self, goal_service, funded_savings):
        goal = goal_service.create_goal("Celular", Decimal("2000"), account_ids=[funded_savings.id])

        progress = goal_service.progress(goal.id, as_of=date(2024, 2, 1))

        assert progress.percent == Decimal("100.00")
        assert progress.remaining == Decimal("0.00")
        assert progress.monthly_needed is None

    def test_past_target_date_needs_everything_now(self, goal_service, trip):
        progress = goal_service.progress(trip.id, as_of=date(2025, 3, 1))

        assert progress.monthly_needed == Decimal("7500.00")

    def test_update(self, goal_service, trip, sample_account, funded_savings):
        updated = goal_service.update_goal(
            trip.id, target_amount=Decimal("12000"), account_ids=[funded_savings.id, sample_account.id]
        )

        assert updated.target_amount == Decimal("12000.00")
        assert set(updated.account_ids) == {funded_savings.id, sample_account.id}

    def test_update_unknown_field(self, goal_service, trip):
        with pytest.raises(ValidationError, match="Cannot update"):
            goal_service.update_goal(trip.id, created_at=None)

    def test_delete(self, goal_service, trip, recorded_events):
        goal_service.delete_goal(trip.id)

        assert goal_service.get_goal(trip.id) is None
        assert [(e.entity_kind, e.operation) for e in recorded_events] == [("goal", "deleted")]
        with pytest.raises(NotFoundError):
            goal_service.delete_goal(trip.id)


class TestGoalCommands:
    def test_create_and_list(self, cli_runner, temp_db, funded_savings):
        result = cli_runner.invoke(
            cli,
            [
                "--db-path", temp_db.database_path, "goal", "create", "Viagem",
                "--target", "10.000,00", "--account", "Savings",
            ],
        )
        assert result.exit_code == 0
        assert "Created goal 'Viagem' of R$ 10.000,00" in result.output

        result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "goal", "list"])

        assert result.exit_code == 0
        assert "R$ 2.500,00" in result.output
        assert "25.00%" in result.output

    def test_list_empty(self, cli_runner, temp_db):
        result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "goal", "list"])

        assert "No goals found." in result.output

    def test_unknown_account(self, cli_runner, temp_db):
        result = cli_runner.invoke(
            cli, ["--db-path", temp_db.database_path, "goal", "create", "X", "--target", "10", "--account", "Nope"]
        )

        assert result.exit_code == 1
        assert "Account 'Nope' not found" in result.output
