"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic so the domain entities stay
independent of the table layout.
"""

from conti.domain import entities as domain
from conti.database.models import (
    Account as ORMAccount,
    Profile as ORMProfile,
    Subscription as ORMSubscription,
    Transaction as ORMTransaction,
)


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        user_id=orm_account.user_id,
        name=orm_account.name,
        type=domain.AccountType(orm_account.type),
        balance=orm_account.balance,
        initial_balance=orm_account.initial_balance,
        currency=orm_account.currency,
        iban=orm_account.iban,
        created_at=orm_account.created_at,
        last_updated=orm_account.last_updated,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        user_id=orm_transaction.user_id,
        account_id=orm_transaction.account_id,
        amount=orm_transaction.amount,
        description=orm_transaction.description,
        category=orm_transaction.category,
        notes=orm_transaction.notes,
        date=orm_transaction.date,
        created_at=orm_transaction.created_at,
        type=domain.TransactionType(orm_transaction.type),
        is_recurring=orm_transaction.is_recurring,
        subscription_id=orm_transaction.subscription_id,
        unique_id=orm_transaction.unique_id,
    )


def draft_to_orm(
    draft: domain.TransactionDraft, transaction_id: str, user_id: str, created_at
) -> ORMTransaction:
    """Build a SQLAlchemy Transaction row from a domain draft."""
    return ORMTransaction(
        id=transaction_id,
        user_id=user_id,
        account_id=draft.account_id,
        amount=draft.amount,
        description=draft.description,
        category=draft.category,
        notes=draft.notes,
        date=draft.date,
        created_at=created_at,
        type=draft.type.value,
        is_recurring=draft.is_recurring,
        subscription_id=draft.subscription_id,
        unique_id=draft.unique_id,
    )


def subscription_to_domain(orm_subscription: ORMSubscription) -> domain.Subscription:
    """Convert SQLAlchemy Subscription model to domain Subscription entity."""
    return domain.Subscription(
        id=orm_subscription.id,
        user_id=orm_subscription.user_id,
        account_id=orm_subscription.account_id,
        name=orm_subscription.name,
        description=orm_subscription.description,
        amount=orm_subscription.amount,
        frequency=domain.Frequency(orm_subscription.frequency),
        category=orm_subscription.category,
        start_date=orm_subscription.start_date,
        next_renewal_date=orm_subscription.next_renewal_date,
        end_date=orm_subscription.end_date,
        is_active=orm_subscription.is_active,
        notes=orm_subscription.notes,
        created_at=orm_subscription.created_at,
        last_updated=orm_subscription.last_updated,
    )


def profile_to_domain(orm_profile: ORMProfile) -> domain.Profile:
    """Convert SQLAlchemy Profile model to domain Profile entity."""
    return domain.Profile(
        user_id=orm_profile.user_id,
        email=orm_profile.email,
        display_name=orm_profile.display_name,
        last_login=orm_profile.last_login,
        created_at=orm_profile.created_at,
    )
