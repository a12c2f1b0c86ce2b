"""Utility functions for conti."""

from conti.utils.date_parser import parse_date, parse_statement_date
from conti.utils.amount_parser import parse_amount
from conti.utils.iban import is_valid_iban

__all__ = ["parse_date", "parse_statement_date", "parse_amount", "is_valid_iban"]
