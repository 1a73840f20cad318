"""Tests for category service and commands."""

from datetime import date
from decimal import Decimal

import pytest

from finboard.cli.main import cli
from finboard.domain.category import DEFAULT_CATEGORIES
from finboard.domain.entities import FlowDirection
from finboard.domain.errors import ConstraintViolationError, ValidationError


class TestCategoryService:
    """Tests for CategoryService."""

    def test_create_category(self, category_service):
        category = category_service.create_category("Fuel", FlowDirection.EXPENSE)

        assert category.id.startswith("cat_")
        assert category.direction == FlowDirection.EXPENSE

    def test_names_are_unique_ignoring_case(self, category_service, sample_categories):
        with pytest.raises(ConstraintViolationError):
            category_service.create_category("groceries")

    def test_empty_name(self, category_service):
        with pytest.raises(ValidationError):
            category_service.create_category("")

    def test_list_by_direction(self, category_service, sample_categories):
        expense = category_service.list_categories(FlowDirection.EXPENSE)

        assert [c.name for c in expense] == ["Groceries", "Utilities"]

    def test_direction_change_blocked_by_usage(
        self, category_service, transaction_service, sample_account, sample_categories
    ):
        groceries = sample_categories["Groceries"]
        transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 5), Decimal("-10.00"), category_id=groceries.id
        )

        with pytest.raises(ConstraintViolationError):
            category_service.update_category(groceries.id, direction=FlowDirection.INCOME)
        # Neutral accepts everything
        updated = category_service.update_category(groceries.id, direction=FlowDirection.NEUTRAL)
        assert updated.direction == FlowDirection.NEUTRAL

    def test_delete_category_uncategorizes_transactions(
        self, category_service, transaction_service, sample_account, sample_categories
    ):
        groceries = sample_categories["Groceries"]
        txn = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 5), Decimal("-10.00"), category_id=groceries.id
        )

        category_service.delete_category(groceries.id)

        assert transaction_service.get_transaction(txn.id).category_id is None

    def test_init_default_categories_is_idempotent(self, category_service):
        total = sum(len(names) for names in DEFAULT_CATEGORIES.values())

        assert category_service.init_default_categories() == total
        assert category_service.init_default_categories() == 0


def test_init_categories(cli_runner, temp_db):
    """Test initializing categories."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "category", "init"])

    assert result.exit_code == 0
    assert "default categories" in result.output


def test_init_categories_duplicate(cli_runner, temp_db):
    """Test initializing categories twice."""
    args = ["--db-path", temp_db.database_path, "category", "init"]
    assert cli_runner.invoke(cli, args).exit_code == 0

    result = cli_runner.invoke(cli, args)

    assert "already exist" in result.output.lower()


def test_category_list(cli_runner, temp_db, sample_categories):
    """Test listing categories."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "category", "list"])

    assert result.exit_code == 0
    assert "Income:" in result.output
    assert "Groceries" in result.output
    assert "Neutral:" in result.output


def test_category_list_empty(cli_runner, temp_db):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "category", "list"])

    assert "No categories found" in result.output


def test_category_create(cli_runner, temp_db):
    """Test creating a category with a direction."""
    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "category", "create", "Bonus", "--direction", "income"],
    )

    assert result.exit_code == 0
    assert "Created income category 'Bonus'" in result.output


def test_category_create_duplicate(cli_runner, temp_db, sample_categories):
    result = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "category", "create", "Salary"]
    )

    assert result.exit_code == 1
    assert "already exists" in result.output
