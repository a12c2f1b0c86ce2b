"""SQLAlchemy models for the conti store.

Every table is scoped by ``user_id``; documents are keyed by store-assigned
string ids.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Account(Base):
    """Bank account model."""

    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="other")
    balance = Column(Numeric(14, 2), nullable=False, default=0)
    initial_balance = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")
    iban = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False)

    # Concurrent balance writers are detected by the version check on UPDATE
    __mapper_args__ = {"version_id_col": version}


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(String(32), primary_key=True)
    user_id = Column(String, nullable=False)
    account_id = Column(String(32), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, default="")
    notes = Column(String, nullable=True)
    date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    type = Column(String, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    subscription_id = Column(String(32), nullable=True)
    unique_id = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "account_id", "unique_id", name="uq_account_unique_id"),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_account", "user_id", "account_id"),
    )


class Subscription(Base):
    """Subscription (recurring charge) model."""

    __tablename__ = "subscriptions"

    id = Column(String(32), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(String(32), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    frequency = Column(String, nullable=False, default="MONTHLY")
    category = Column(String, nullable=False)
    start_date = Column(DateTime, nullable=False)
    next_renewal_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, nullable=False)


class Profile(Base):
    """User profile model."""

    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
