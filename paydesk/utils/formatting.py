"""
PayDesk - Formatting Helpers

Indian-style money formatting, amount-in-words, and calendar helpers used by
salary slips, emails and reports.
"""

import calendar
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_ONES = (
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
)
_TEENS = (
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen",
    "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
)
_TENS = (
    "", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety",
)

# Indian grouping, largest first
_SCALES = (
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
)

TWO_PLACES = Decimal("0.01")


def to_money(value: Number) -> Decimal:
    """Quantize to two decimals, half-up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def month_name(month: int) -> str:
    """1-based month number to English month name ('' when out of range)."""
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return ""


def working_days_in_month(month: int, year: int) -> int:
    """Count Monday-Friday days in a month."""
    days = calendar.monthrange(year, month)[1]
    return sum(
        1 for day in range(1, days + 1)
        if date(year, month, day).weekday() < 5
    )


def financial_year(on: date) -> str:
    """April-March financial year label, e.g. '2024-25'."""
    start = on.year if on.month >= 4 else on.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def group_indian(integer_part: int) -> str:
    """Digit grouping 12,34,56,789 (last three, then pairs)."""
    digits = str(integer_part)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_currency(amount: Number, symbol: str = "₹") -> str:
    """Format an amount as INR with en-IN grouping, e.g. ₹1,23,456.50."""
    value = to_money(amount)
    sign = "-" if value < 0 else ""
    integer_part, _, fraction = f"{abs(value):.2f}".partition(".")
    return f"{sign}{symbol}{group_indian(int(integer_part))}.{fraction}"


def _hundreds_to_words(num: int) -> list:
    words = []
    if num >= 100:
        words += [_ONES[num // 100], "Hundred"]
        num %= 100
    if num >= 20:
        words.append(_TENS[num // 10])
        num %= 10
    elif num >= 10:
        words.append(_TEENS[num - 10])
        num = 0
    if num > 0:
        words.append(_ONES[num])
    return words


def _integer_to_words(num: int) -> list:
    words = []
    for scale, label in _SCALES:
        if num >= scale:
            count = num // scale
            # Amounts of a thousand crore and above repeat the grouping
            count_words = _integer_to_words(count) if count >= 1000 else _hundreds_to_words(count)
            words += count_words + [label]
            num %= scale
    if num > 0:
        words += _hundreds_to_words(num)
    return words


def number_to_words(amount: Number) -> str:
    """
    Spell a rupee amount using the Indian numbering system.

    >>> number_to_words(Decimal("45454.55"))
    'Forty Five Thousand Four Hundred Fifty Four Rupees and Fifty Five Paisa Only'
    >>> number_to_words(0)
    'Zero Rupees Only'
    """
    value = to_money(amount)
    if value == 0:
        return "Zero Rupees Only"

    prefix = []
    if value < 0:
        prefix = ["Minus"]
        value = -value

    rupees = int(value)
    paisa = int((value - rupees) * 100)

    words = prefix + (_integer_to_words(rupees) or ["Zero"]) + ["Rupees"]
    if paisa > 0:
        words += ["and"] + _hundreds_to_words(paisa) + ["Paisa"]
    words.append("Only")
    return " ".join(words)
