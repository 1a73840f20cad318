"""Domain layer for finboard."""

import importlib

# Services import the database layer, which imports domain entities, so the
# package namespace resolves them on first access.
_EXPORTS = {
    "AccountService": "account",
    "AnalyticsService": "analytics",
    "BillService": "bills",
    "CategoryService": "category",
    "DateRange": "analytics",
    "EventBus": "events",
    "FinanceEvent": "events",
    "FinanceEventType": "events",
    "GoalService": "goal",
    "InsuranceService": "assets",
    "LedgerService": "ledger",
    "LoanService": "loan",
    "RuleService": "standardization",
    "StatementImportService": "statement_import",
    "TransactionService": "transaction",
    "UNDEFINED": "analytics",
    "VehicleService": "assets",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name):
    if name in _EXPORTS:
        module = importlib.import_module(f"finboard.domain.{_EXPORTS[name]}")
        return getattr(module, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
