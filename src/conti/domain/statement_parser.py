"""Bank statement spreadsheet parser.

Reads the first sheet of an ``.xlsx`` (openpyxl) or ``.xls`` (xlrd) export
whose columns sit at fixed positions:

    0 operation date | 1 accounting date | 2 iban | 3 type | 4 payee |
    5 description | 6 amount

Row 1 is a header and is skipped. A row that cannot be read is recorded as
a ``ParseError`` and parsing continues with the next row.
"""

import os
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Optional

import xlrd
from openpyxl import load_workbook

from conti.domain.categorizer import categorize
from conti.domain.entities import ParsedTransaction, ParseError, ParseResult
from conti.logging_config import get_logger
from conti.utils.amount_parser import parse_amount, quantize_amount
from conti.utils.date_parser import parse_statement_date

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xls")
DEFAULT_DESCRIPTION = "Movimento"
DEFAULT_TYPE_LABEL = "Altro"


class Column:
    """Fixed column positions in a statement sheet."""

    OPERATION_DATE = 0
    ACCOUNTING_DATE = 1
    IBAN = 2
    TYPE = 3
    PAYEE = 4
    DESCRIPTION = 5
    AMOUNT = 6


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _is_blank(values: tuple[Any, ...]) -> bool:
    return all(value is None or (isinstance(value, str) and not value.strip()) for value in values)


def _cell_amount(value: Any) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError("Missing amount")
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount {value!r}")
    if isinstance(value, (int, float, Decimal)):
        return quantize_amount(Decimal(str(value)))
    if isinstance(value, str):
        return parse_amount(value)
    raise ValueError(f"Invalid amount {value!r}")


def compose_description(payee: str, description: str) -> str:
    """Combine payee and free-text description into one label."""
    if payee and description:
        return f"{payee} - {description}"
    if payee:
        return payee
    if description:
        return description
    return DEFAULT_DESCRIPTION


class StatementParser:
    """Parser turning statement spreadsheets into transaction candidates."""

    def check_file(self, file_path: str) -> Optional[str]:
        """Validate a statement file before parsing.

        Args:
            file_path: Path to the statement file

        Returns:
            An error message, or None when the file can be parsed
        """
        path = Path(file_path)
        if not path.exists() or not path.is_file():
            return f"File not found: {file_path}"
        if not os.access(path, os.R_OK):
            return f"File is not readable: {file_path}"
        extension = path.suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            return f"Unsupported file format: '{extension or path.name}' (expected .xlsx or .xls)"
        return None

    def parse(self, file_path: str, account_id: str) -> ParseResult:
        """Parse a statement file into transaction candidates.

        Args:
            file_path: Path to the statement file
            account_id: Account the transactions will belong to

        Returns:
            ParseResult with the transactions read and one error per bad row
        """
        log = logger.bind(file=str(file_path), account_id=account_id)
        problem = self.check_file(file_path)
        if problem is not None:
            log.warning("statement_rejected", reason=problem)
            return ParseResult(errors=(ParseError(0, problem),))

        log.info("statement_parse_started")
        transactions: list[ParsedTransaction] = []
        errors: list[ParseError] = []

        try:
            for row_number, values in self._read_rows(Path(file_path)):
                if _is_blank(values):
                    continue
                try:
                    transactions.append(self.parse_row(values, account_id, row_number))
                except ValueError as e:
                    log.debug("statement_row_rejected", row=row_number, error=str(e))
                    errors.append(ParseError(row_number, str(e)))
        except Exception as e:
            # openpyxl and xlrd raise a variety of types for corrupt workbooks
            log.warning("statement_unreadable", error=str(e))
            return ParseResult(errors=(ParseError(0, f"Could not read file: {e}"),))

        log.info(
            "statement_parse_finished",
            transactions=len(transactions),
            errors=len(errors),
        )
        return ParseResult(transactions=tuple(transactions), errors=tuple(errors))

    def parse_row(self, values: tuple[Any, ...], account_id: str, row_number: int) -> ParsedTransaction:
        """Parse the cells of one data row.

        Raises:
            ValueError: If the operation date or the amount cannot be read
        """
        values = tuple(values) + (None,) * max(0, Column.AMOUNT + 1 - len(values))

        operation_date = parse_statement_date(values[Column.OPERATION_DATE])
        try:
            accounting_date: Optional[date] = parse_statement_date(values[Column.ACCOUNTING_DATE])
        except ValueError:
            accounting_date = None

        amount = _cell_amount(values[Column.AMOUNT])

        type_label = _text(values[Column.TYPE]) or DEFAULT_TYPE_LABEL
        payee = _text(values[Column.PAYEE])
        raw_description = _text(values[Column.DESCRIPTION])
        iban = _text(values[Column.IBAN]) or None

        return ParsedTransaction(
            account_id=account_id,
            row_number=row_number,
            date=operation_date,
            accounting_date=accounting_date,
            iban=iban,
            type_label=type_label,
            payee=payee,
            raw_description=raw_description,
            description=compose_description(payee, raw_description),
            amount=amount,
            category=categorize(amount, type_label, payee, raw_description),
            notes=f"Importato da Excel - Tipologia: {type_label}",
        )

    def _read_rows(self, path: Path) -> Iterator[tuple[int, tuple[Any, ...]]]:
        """Yield (1-based row number, cell values) for every data row."""
        if path.suffix.lower() == ".xls":
            yield from self._read_xls_rows(path)
        else:
            yield from self._read_xlsx_rows(path)

    def _read_xlsx_rows(self, path: Path) -> Iterator[tuple[int, tuple[Any, ...]]]:
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.worksheets[0]
            for row_number, row in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
                yield row_number, tuple(row)
        finally:
            wb.close()

    def _read_xls_rows(self, path: Path) -> Iterator[tuple[int, tuple[Any, ...]]]:
        book = xlrd.open_workbook(str(path))
        try:
            sheet = book.sheet_by_index(0)
            for index in range(1, sheet.nrows):
                values = []
                for cell in sheet.row(index):
                    if cell.ctype == xlrd.XL_CELL_DATE:
                        values.append(xlrd.xldate.xldate_as_datetime(cell.value, book.datemode))
                    elif cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                        values.append(None)
                    else:
                        values.append(cell.value)
                yield index + 1, tuple(values)
        finally:
            book.release_resources()
