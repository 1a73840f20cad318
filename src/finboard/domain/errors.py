"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class InvalidReferenceError(DomainError):
    """A foreign key does not resolve, or resolves to the wrong kind of entity."""


class ConstraintViolationError(DomainError):
    """Operation would break a ledger invariant; the store is left unchanged."""


class ImportRowError(DomainError):
    """Failure of a single imported row. Collected per row, never aborts a batch."""

    def __init__(self, row_number: int, message: str):
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
        self.message = message


class RuleConflict(UserWarning):
    """Two standardization rules share the same match predicate.

    Emitted with ``warnings.warn``; the first-defined rule keeps winning.
    """


def not_found(kind: str, entity_id: str) -> str:
    """Return message for a missing entity."""
    return f"{kind} {entity_id} not found"


def account_not_found(account_id: str) -> str:
    """Return message for missing account."""
    return not_found("Account", account_id)


def category_not_found(category_id: str) -> str:
    """Return message for missing category."""
    return not_found("Category", category_id)


def transaction_not_found(transaction_id: str) -> str:
    """Return message for missing transaction."""
    return not_found("Transaction", transaction_id)


def invalid_reference(kind: str, entity_id: str, field: str) -> str:
    """Return message for a foreign key that does not resolve."""
    return f"{field} references unknown {kind} {entity_id}"


def account_delete_blocked(account_id: str, transaction_count: int, loan_count: int = 0) -> str:
    """Return message when account has dependent transactions or loans."""
    parts = []
    if transaction_count > 0:
        parts.append(
            f"{transaction_count} transaction{'s' if transaction_count != 1 else ''}"
        )
    if loan_count > 0:
        parts.append(f"{loan_count} loan{'s' if loan_count != 1 else ''}")
    return (
        f"Cannot delete account {account_id}: it has {', '.join(parts)}. "
        "Delete them first or pass cascade=True."
    )


def amount_sign_mismatch(operation: str, amount) -> str:
    """Return message when an amount's sign contradicts its operation type."""
    return f"Amount {amount} has the wrong sign for operation '{operation}'"


def invalid_row_transition(row_id: str, current: str, target: str) -> str:
    """Return message for an illegal imported-row state change."""
    return f"Imported row {row_id} cannot move from '{current}' to '{target}'"
