"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

CENTS = Decimal("0.01")


def quantize_amount(amount: Decimal) -> Decimal:
    """Round an amount to cents.

    Raises:
        ValueError: If the amount is not finite or has too many digits to
            hold at cent precision
    """
    if not amount.is_finite():
        raise ValueError(f"Invalid amount '{amount}'")
    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount '{amount}': too many digits") from e


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles Italian and American formats:
    - "1234,56" and "1.234,56" (comma as decimal separator)
    - "1234.56" and "1,234.56" (period as decimal separator)
    - "€ 1.234,56", "-€ 50,00", "€ -50,00", "+120,00"
    - "1.234.567" (periods only as thousands separators)
    - "(123.45)" (negative in parentheses)

    When both separators are present the one occurring last is the
    decimal separator.

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount rounded to cents

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    original = str(amount_str).strip()
    cleaned = original

    # Handle parentheses notation (negative)
    is_negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        is_negative = True
        cleaned = cleaned[1:-1]

    # Remove currency symbols, currency code and whitespace
    cleaned = re.sub(r"[$€£¥]|EUR", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+", "", cleaned)

    # Sign may appear before or after the currency symbol
    if cleaned.startswith("-"):
        is_negative = not is_negative
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]

    if not re.fullmatch(r"[0-9.,]+", cleaned) or not re.search(r"[0-9]", cleaned):
        raise ValueError(f"Could not parse amount '{original}'")

    last_comma = cleaned.rfind(",")
    last_period = cleaned.rfind(".")

    if last_comma != -1 and last_period != -1:
        if last_comma > last_period:
            # Italian: 1.234,56
            normalized = cleaned.replace(".", "").replace(",", ".")
        else:
            # American: 1,234.56
            normalized = cleaned.replace(",", "")
    elif last_comma != -1:
        if cleaned.count(",") > 1:
            raise ValueError(f"Could not parse amount '{original}'")
        normalized = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        normalized = cleaned.replace(".", "")
    else:
        normalized = cleaned

    try:
        amount = Decimal(normalized)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{original}': {e}")

    if is_negative:
        amount = -amount
    return quantize_amount(amount)
