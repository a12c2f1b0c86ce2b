"""Tests for the statement spreadsheet parser."""

import os
from datetime import date, datetime
from decimal import Decimal

import pytest

from conti.domain.statement_parser import StatementParser, compose_description


@pytest.fixture
def parser():
    return StatementParser()


def test_parse_basic_rows(parser, write_statement, statement_row):
    path = write_statement(
        [
            statement_row(datetime(2025, 1, 3), -42.5, payee="Esselunga", description="Spesa"),
            statement_row("04/01/2025", "1.800,00", payee="ACME SpA", description="Stipendio gennaio", label="Accredito stipendio"),
        ]
    )

    result = parser.parse(path, "acc-1")

    assert not result.has_errors
    first, second = result.transactions
    assert first.account_id == "acc-1"
    assert first.row_number == 2
    assert first.date == date(2025, 1, 3)
    assert first.amount == Decimal("-42.50")
    assert first.description == "Esselunga - Spesa"
    assert first.category == "Spesa"
    assert first.notes == "Importato da Excel - Tipologia: Pagamento POS"
    assert first.iban == "IT60X0542811101000000123456"

    assert second.row_number == 3
    assert second.date == date(2025, 1, 4)
    assert second.amount == Decimal("1800.00")
    assert second.category == "Stipendio"


def test_bad_amount_is_collected_and_parsing_continues(parser, write_statement, statement_row):
    rows = [statement_row(datetime(2025, 1, day), -10 * day) for day in range(1, 11)]
    rows[4] = statement_row(datetime(2025, 1, 5), "dieci euro")
    path = write_statement(rows)

    result = parser.parse(path, "acc-1")

    assert len(result.transactions) == 9
    assert len(result.errors) == 1
    # Header is row 1, so the fifth data row is row 6
    assert result.errors[0].row_number == 6
    assert "dieci euro" in result.errors[0].message
    assert str(result.errors[0]).startswith("Row 6:")


def test_oversized_amounts_are_row_errors(parser, write_statement, statement_row):
    path = write_statement(
        [
            statement_row(datetime(2025, 1, 3), -10),
            statement_row(datetime(2025, 1, 4), "1" * 40),
            statement_row(datetime(2025, 1, 5), 1e30),
            statement_row(datetime(2025, 1, 6), -20),
        ]
    )

    result = parser.parse(path, "acc-1")

    assert [t.row_number for t in result.transactions] == [2, 5]
    assert [e.row_number for e in result.errors] == [3, 4]
    assert all("Invalid amount" in e.message for e in result.errors)


def test_missing_and_invalid_dates_are_row_errors(parser, write_statement, statement_row):
    path = write_statement(
        [
            statement_row(None, -5, payee="Bar Centrale"),
            statement_row("2025-01-05", -5),
            statement_row("05/01/2025", None),
        ]
    )

    result = parser.parse(path, "acc-1")

    assert result.transactions == ()
    assert [e.row_number for e in result.errors] == [2, 3, 4]
    assert "Missing date" in result.errors[0].message
    assert "dd/mm/yyyy" in result.errors[1].message
    assert "Missing amount" in result.errors[2].message


def test_blank_rows_are_skipped(parser, write_statement, statement_row):
    path = write_statement(
        [
            statement_row("02/01/2025", -1),
            (None, None, None, None, None, None, None),
            ("", "  ", None, None, None, None, None),
            statement_row("03/01/2025", -2),
        ]
    )

    result = parser.parse(path, "acc-1")

    assert not result.has_errors
    assert [t.row_number for t in result.transactions] == [2, 5]


def test_accounting_date_is_lenient(parser, write_statement):
    path = write_statement([("02/01/2025", "non disponibile", None, None, "Conad", None, -3)])

    result = parser.parse(path, "acc-1")

    assert not result.has_errors
    txn = result.transactions[0]
    assert txn.accounting_date is None
    assert txn.iban is None
    assert txn.type_label == "Altro"
    assert txn.notes == "Importato da Excel - Tipologia: Altro"


def test_header_only_file_is_empty(parser, write_statement):
    result = parser.parse(write_statement([]), "acc-1")

    assert result.transactions == ()
    assert result.errors == ()


def test_missing_file(parser, tmp_path):
    result = parser.parse(str(tmp_path / "nope.xlsx"), "acc-1")

    assert result.transactions == ()
    assert len(result.errors) == 1
    assert result.errors[0].row_number == 0
    assert "File not found" in str(result.errors[0])


def test_unsupported_extension(parser, tmp_path):
    path = tmp_path / "statement.csv"
    path.write_text("a,b,c\n")

    result = parser.parse(str(path), "acc-1")

    assert len(result.errors) == 1
    assert "Unsupported file format" in result.errors[0].message


@pytest.mark.skipif(os.geteuid() == 0, reason="root can read any file")
def test_unreadable_file(parser, write_statement):
    path = write_statement([])
    os.chmod(path, 0)
    try:
        result = parser.parse(path, "acc-1")
    finally:
        os.chmod(path, 0o600)

    assert "not readable" in result.errors[0].message


def test_corrupt_workbook(parser, tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"this is not a zip archive")

    result = parser.parse(str(path), "acc-1")

    assert result.transactions == ()
    assert len(result.errors) == 1
    assert result.errors[0].row_number == 0
    assert "Could not read file" in result.errors[0].message


def test_parse_is_deterministic(parser, write_statement, statement_row):
    path = write_statement(
        [statement_row("02/01/2025", -1), statement_row("03/01/2025", "abc"), statement_row("04/01/2025", 7)]
    )

    assert parser.parse(path, "acc-1") == parser.parse(path, "acc-1")


def test_check_file_accepts_xls_extension(parser, tmp_path):
    path = tmp_path / "old.XLS"
    path.write_bytes(b"")
    assert parser.check_file(str(path)) is None


@pytest.mark.parametrize(
    "payee, description, expected",
    [
        ("Conad", "Spesa", "Conad - Spesa"),
        ("Conad", "", "Conad"),
        ("", "Ricarica", "Ricarica"),
        ("", "", "Movimento"),
    ],
)
def test_compose_description(payee, description, expected):
    assert compose_description(payee, description) == expected
