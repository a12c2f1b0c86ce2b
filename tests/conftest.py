"""Shared pytest fixtures for conti tests."""

from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from openpyxl import Workbook

from conti.database.factories import create_sqlite_database
from conti.domain.account import AccountService
from conti.domain.entities import AccountType
from conti.domain.identity import StaticIdentity
from conti.domain.renewal import RenewalProcessor
from conti.domain.statement_import import StatementImportService
from conti.domain.subscription import SubscriptionService
from conti.domain.summary import SummaryService
from conti.domain.transaction import TransactionService

STATEMENT_HEADER = (
    "Data operazione",
    "Data contabile",
    "IBAN",
    "Tipologia",
    "Beneficiario",
    "Descrizione",
    "Importo",
)


@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh SQLite database file."""
    return str(tmp_path / "conti.db")


@pytest_asyncio.fixture
async def temp_db(db_path):
    """Create a temporary database for testing."""
    db = create_sqlite_database(database_path=db_path)
    db.database_path = db_path
    await db.connect()
    await db.initialize_schema()

    yield db

    await db.disconnect()


@pytest.fixture
def identity():
    return StaticIdentity("user-1")


@pytest.fixture
def anonymous():
    return StaticIdentity(None)


@pytest.fixture
def account_service(temp_db, identity):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db, identity)


@pytest.fixture
def transaction_service(temp_db, identity):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db, identity)


@pytest.fixture
def subscription_service(temp_db, identity):
    """Create a SubscriptionService with a temporary database."""
    return SubscriptionService(temp_db, identity)


@pytest.fixture
def renewal_processor(transaction_service, subscription_service):
    return RenewalProcessor(transaction_service, subscription_service)


@pytest.fixture
def import_service(temp_db, identity):
    """Create a StatementImportService with a temporary database."""
    return StatementImportService(temp_db, identity)


@pytest.fixture
def summary_service(temp_db, identity):
    return SummaryService(temp_db, identity)


@pytest_asyncio.fixture
async def sample_account(account_service):
    """Create a sample account with an opening balance of 1000."""
    account_id = await account_service.create_account(
        name="Conto Corrente",
        type=AccountType.PRIMARY_BANK,
        initial_balance=Decimal("1000.00"),
    )
    return await account_service.get_account(account_id)


@pytest.fixture
def write_statement(tmp_path):
    """Return a helper writing statement rows to an .xlsx file.

    Each row is a 7-tuple in statement column order; the header row is
    added automatically.
    """

    def _write(rows, name="statement.xlsx", header=STATEMENT_HEADER):
        path = tmp_path / name
        wb = Workbook()
        ws = wb.active
        if header is not None:
            ws.append(list(header))
        for row in rows:
            ws.append(list(row))
        wb.save(path)
        return str(path)

    return _write


@pytest.fixture
def statement_row():
    """Return a helper building one statement row dated ``day``."""

    def _row(day, amount, payee="Esselunga", description="Spesa settimanale", label="Pagamento POS"):
        return (day, day, "IT60X0542811101000000123456", label, payee, description, amount)

    return _row


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def cli_env(db_path, monkeypatch):
    """Point the CLI at a temporary database and a fixed user."""
    monkeypatch.setenv("CONTI_DB_PATH", db_path)
    monkeypatch.setenv("CONTI_USER", "cli-user")
    return db_path


@pytest.fixture
def january():
    return datetime(2025, 1, 15)
