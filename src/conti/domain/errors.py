"""Shared domain error messages and error types."""

from typing import Sequence


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class AuthenticationRequired(DomainError):
    """No user identity could be resolved for a ledger operation."""


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as natural-key duplicates or write contention."""


class StoreError(DomainError):
    """The backing store failed. The original exception is chained."""


class ImportAborted(DomainError):
    """A statement import was rejected as a whole.

    Carries every row-level parse error so callers can report all of them.
    """

    def __init__(self, message: str, errors: Sequence = ()):
        super().__init__(message)
        self.errors = list(errors)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        lines = [base]
        lines.extend(str(error) for error in self.errors)
        return "\n".join(lines)


def authentication_required() -> str:
    """Return message for a missing user identity."""
    return "User not authenticated. Log in before accessing ledger data."


def account_not_found(account_id: str) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def transaction_not_found(transaction_id: str) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def subscription_not_found(subscription_id: str) -> str:
    """Return message for missing subscription."""
    return f"Subscription {subscription_id} not found"


def import_has_row_errors(error_count: int) -> str:
    """Return message when a statement contains unparseable rows."""
    return (
        f"Import aborted: {error_count} row{'s' if error_count != 1 else ''} "
        "could not be read. No transactions were saved."
    )


def import_is_empty() -> str:
    """Return message when a statement contains no transactions."""
    return "Import aborted: no transactions found in the file"
