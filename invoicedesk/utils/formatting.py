"""Indian-locale number formatting and amount-in-words helpers."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ..pricing import to_number

# Helvetica has no rupee glyph, so amounts carry a literal prefix.
CURRENCY_PREFIX = "Rs "

BELOW_TWENTY = (
    "Zero", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
)
TENS = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")
INDIAN_UNITS = ("", "Thousand", "Lakh", "Crore", "Arab", "Kharab")


def _round_half_up(value: float, places: int = 2) -> Decimal:
    try:
        exact = Decimal(repr(value))
    except InvalidOperation:
        exact = Decimal(0)
    return exact.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def group_indian(digits: str) -> str:
    """Group an unsigned integer string as 12,34,56,789."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_decimal(value: Any, places: int = 2) -> str:
    number = to_number(value)
    rounded = _round_half_up(number, places)
    sign = "-" if rounded < 0 else ""
    text = f"{abs(rounded):.{places}f}"
    whole, _, fraction = text.partition(".")
    fraction = fraction.rstrip("0")
    grouped = group_indian(whole)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_inr(value: Any) -> str:
    return CURRENCY_PREFIX + format_decimal(value)


def format_quantity(value: Any) -> str:
    return format_decimal(value)


def _below_thousand(value: int) -> str:
    value %= 1000
    parts = []
    if value >= 100:
        parts.append(f"{BELOW_TWENTY[value // 100]} Hundred")
        value %= 100
    if value >= 20:
        ten_word = TENS[value // 10]
        remainder = value % 10
        parts.append(f"{ten_word} {BELOW_TWENTY[remainder]}" if remainder else ten_word)
    elif value > 0:
        parts.append(BELOW_TWENTY[value])
    return " ".join(parts)


def number_to_indian_words(number: Any) -> str:
    """Spell a non-negative integer using thousand/lakh/crore grouping.

    The first group is three digits wide, every later group two. Anything
    at or above the last label is spelled recursively and labelled Kharab.
    """
    if isinstance(number, int) and not isinstance(number, bool):
        value = abs(number)
    else:
        value = int(abs(to_number(number)))
    if value == 0:
        return "Zero"

    words = []
    remainder = value
    for index, label in enumerate(INDIAN_UNITS):
        if remainder <= 0:
            break
        if index == len(INDIAN_UNITS) - 1:
            chunk, remainder = remainder, 0
        else:
            divisor = 1000 if index == 0 else 100
            chunk, remainder = remainder % divisor, remainder // divisor
        if not chunk:
            continue
        chunk_words = _below_thousand(chunk) if chunk < 1000 else number_to_indian_words(chunk)
        words.insert(0, f"{chunk_words} {label}".strip())
    return " ".join(words)


def amount_in_words(amount: Any) -> str:
    """Rupees and paise in words, e.g. 'One Rupee and Fifty Paise Only'."""
    numeric = to_number(amount)
    negative = numeric < 0
    paise_total = int(_round_half_up(abs(numeric), 2) * 100)
    rupees, paise = divmod(paise_total, 100)

    parts = []
    if rupees > 0:
        parts.append(f"{number_to_indian_words(rupees)} {'Rupee' if rupees == 1 else 'Rupees'}")
    else:
        parts.append("Zero Rupees")
    if paise > 0:
        parts.append(f"{number_to_indian_words(paise)} {'Paisa' if paise == 1 else 'Paise'}")

    phrase = " and ".join(parts)
    if negative and paise_total:
        phrase = f"Minus {phrase}"
    return f"{phrase} Only"
