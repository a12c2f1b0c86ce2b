"""IBAN validation."""

import re

_ITALIAN_IBAN = re.compile(r"^IT\d{2}[A-Z]\d{10}[A-Z0-9]{12}$")
_GENERIC_IBAN = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]+$")


def normalize_iban(iban: str) -> str:
    """Strip spaces and upper-case an IBAN."""
    return iban.replace(" ", "").upper()


def iban_checksum(iban: str) -> int:
    """ISO 13616 remainder of a normalized IBAN; 1 for a valid one.

    The first four characters move to the end and letters become 10-35
    before taking the number modulo 97.
    """
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97


def is_valid_iban(iban: str) -> bool:
    """Check the format and the check digits of an IBAN.

    Italian IBANs are checked against the national layout; other countries
    only against the generic country-code/check-digits/alphanumeric shape.
    Both must pass the mod-97 check.
    """
    clean = normalize_iban(iban)
    if len(clean) < 15 or len(clean) > 34:
        return False
    pattern = _ITALIAN_IBAN if clean.startswith("IT") else _GENERIC_IBAN
    if pattern.match(clean) is None:
        return False
    return iban_checksum(clean) == 1
