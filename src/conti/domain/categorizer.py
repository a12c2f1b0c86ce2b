"""Automatic categorization of statement rows."""

import re
from decimal import Decimal
from typing import Optional

INCOME = "Entrata"
SALARY = "Stipendio"
TRANSFER = "Bonifico"
PAYMENT = "Pagamento"
OTHER = "Altro"
CASH_WITHDRAWAL = "Prelievo"

# Evaluated top to bottom; the first keyword hit on payee or description wins.
EXPENSE_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Abbonamento", ("netflix", "spotify", "amazon prime", "disney", "xbox", "playstation", "dazn", "apple.com")),
    ("Spesa", ("conad", "esselunga", "lidl", "eurospin", "carrefour", "coop", "iper", "md discount", "pam", "penny")),
    ("Ristorante", ("ristorante", "pizzeria", "bar", "trattoria", "osteria", "pub", "mc donald", "mcdonald's", "burger king")),
    ("Benzina", ("eni", "q8", "tamoil", "esso", "benzina", "diesel", "carburante")),
    ("Trasporti", ("trenitalia", "italo", "gtt", "atm", "taxi", "uber")),
    ("Bollette", ("enel", "tim", "vodafone", "wind", "iliad", "fastweb", "bolletta")),
    ("Shopping", ("zara", "h&m", "decathlon", "ikea", "mediaworld", "euronics")),
    ("Pagamento Online", ("paypal",)),
    (CASH_WITHDRAWAL, ("bancomat", "prelievo")),
)

CATEGORIES: tuple[str, ...] = (
    INCOME,
    SALARY,
    TRANSFER,
    *(category for category, _ in EXPENSE_RULES),
    PAYMENT,
    OTHER,
)


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])")


_COMPILED_RULES = tuple(
    (category, tuple(_keyword_pattern(k) for k in keywords))
    for category, keywords in EXPENSE_RULES
)


def _matches(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def categorize(
    amount: Decimal,
    type_label: Optional[str],
    payee: Optional[str],
    description: Optional[str],
) -> str:
    """Guess the category of a statement row.

    Income is classified from the operation type label (and payee for
    salaries). Expenses are matched against the keyword table over payee and
    description, then fall back to the type label, then to "Altro".

    Args:
        amount: Signed amount (positive is income)
        type_label: Bank operation type, e.g. "Bonifico SEPA", "Pagamento POS"
        payee: Counterparty name
        description: Free-text description

    Returns:
        Category name
    """
    label = (type_label or "").lower()
    payee_text = (payee or "").lower()
    text = f"{payee_text} {(description or '').lower()}"

    if amount > 0:
        if "bonifico" in label:
            return TRANSFER
        if "stipendio" in label or "stipendio" in payee_text:
            return SALARY
        return INCOME

    for category, patterns in _COMPILED_RULES:
        if _matches(patterns, text):
            return category

    if "prelievo" in label:
        return CASH_WITHDRAWAL
    if "bonifico" in label:
        return TRANSFER
    if "pagamento" in label:
        return PAYMENT
    return OTHER
