"""Shared pytest fixtures for finboard tests."""

import os
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from finboard.config import Settings
from finboard.database.factories import create_sqlite_database
from finboard.domain.account import AccountService
from finboard.domain.analytics import AnalyticsService
from finboard.domain.bills import BillService
from finboard.domain.category import CategoryService
from finboard.domain.entities import AccountType, FlowDirection
from finboard.domain.events import EventBus
from finboard.domain.ledger import LedgerService
from finboard.domain.standardization import RuleService
from finboard.domain.statement_import import StatementImportService
from finboard.domain.transaction import TransactionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for CLI tests that open their own connection
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def settings():
    """Default settings, independent of FINBOARD_* variables in the environment."""
    return Settings()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorded_events(bus):
    """Every event published on ``bus``, in order."""
    events = []
    bus.subscribe_all(events.append)
    return events


@pytest.fixture
def account_service(temp_db, bus, settings):
    return AccountService(temp_db, bus, settings)


@pytest.fixture
def category_service(temp_db, bus):
    return CategoryService(temp_db, bus)


@pytest.fixture
def transaction_service(temp_db, bus):
    return TransactionService(temp_db, bus)


@pytest.fixture
def ledger(temp_db):
    return LedgerService(temp_db)


@pytest.fixture
def analytics(temp_db):
    return AnalyticsService(temp_db)


@pytest.fixture
def rule_service(temp_db, bus):
    return RuleService(temp_db, bus)


@pytest.fixture
def import_service(temp_db, bus, settings):
    return StatementImportService(temp_db, bus, settings)


@pytest.fixture
def bill_service(temp_db, bus, settings):
    return BillService(temp_db, bus, settings)


@pytest.fixture
def sample_account(account_service):
    """A checking account opening at 1000.00."""
    return account_service.create_account(
        name="Test Account", account_type=AccountType.CHECKING, opening_balance=Decimal("1000.00")
    )


@pytest.fixture
def savings_account(account_service):
    return account_service.create_account(name="Savings", account_type=AccountType.SAVINGS)


@pytest.fixture
def investment_account(account_service):
    return account_service.create_account(name="Broker", account_type=AccountType.INVESTMENT)


@pytest.fixture
def sample_categories(category_service):
    """Create one category per direction and return them by name."""
    return {
        "Salary": category_service.create_category("Salary", FlowDirection.INCOME),
        "Groceries": category_service.create_category("Groceries", FlowDirection.EXPENSE),
        "Utilities": category_service.create_category("Utilities", FlowDirection.EXPENSE),
        "Transfers": category_service.create_category("Transfers", FlowDirection.NEUTRAL),
    }


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
