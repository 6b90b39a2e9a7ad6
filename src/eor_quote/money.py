"""
Numeric helpers shared by every stage: half-up rounding, tolerant amount
parsing and frequency normalization to monthly amounts.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

WORKING_DAYS_PER_MONTH = 22

_NUMBER = r'-?\d+(?:[.,]\d+)*'
_RANGE_RE = re.compile(rf'({_NUMBER})\s*(?:-|–|to)\s*({_NUMBER})')
_NUMBER_RE = re.compile(_NUMBER)


def round_half_up(value: float, places: int = 2) -> float:
    """Round with ties away from zero (0.005 -> 0.01), unlike builtin round()."""
    try:
        quantum = Decimal(1).scaleb(-places)
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return 0.0


def _to_float(token: str) -> float:
    token = token.strip()
    # "1,234.50" and "1.234" style separators; a lone comma with 1-2 decimals is a decimal mark
    if ',' in token and '.' in token:
        token = token.replace(',', '')
    elif ',' in token:
        head, _, tail = token.rpartition(',')
        token = f'{head.replace(",", "")}.{tail}' if len(tail) in (1, 2) else token.replace(',', '')
    return float(token)


def parse_amount(value: Any) -> float | None:
    """
    Coerce a loosely-typed amount into a float.

    Accepts numbers, numeric strings with currency symbols or thousands
    separators, "~N" approximations and "a-b" ranges (midpoint).

    Returns:
        The amount, or None when nothing numeric is present
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    text = value.replace('\xa0', ' ').strip()
    if not text:
        return None

    cleaned = re.sub(r'[^\d.,\-–~\sA-Za-z]', '', text).replace('~', '')
    range_match = _RANGE_RE.search(cleaned)
    if range_match:
        try:
            low = abs(_to_float(range_match.group(1)))
            high = abs(_to_float(range_match.group(2)))
            return (low + high) / 2
        except ValueError:
            pass

    number_match = _NUMBER_RE.search(cleaned)
    if not number_match:
        return None
    try:
        return _to_float(number_match.group(0))
    except ValueError:
        return None


def to_monthly(amount: float, frequency: str | None) -> float:
    """Normalize an amount quoted at some frequency to a monthly amount."""
    freq = (frequency or 'monthly').lower()
    if 'year' in freq or 'annual' in freq:
        return amount / 12
    if 'day' in freq or 'daily' in freq:
        return amount * WORKING_DAYS_PER_MONTH
    if 'week' in freq:
        return amount * 52 / 12
    if 'quarter' in freq:
        return amount / 3
    return amount


def within_tolerance(candidate: float, reference: float, rel: float = 0.01, abs_tol: float = 0.01) -> bool:
    """True when candidate is within rel (fraction) or abs_tol of reference, whichever is larger."""
    allowed = max(abs(reference) * rel, abs_tol)
    return abs(candidate - reference) <= allowed + 1e-9
