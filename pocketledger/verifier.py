"""Checks and auto-corrects free text typed into the transaction form.

Every ``verify_*`` function returns ``(value, outcome)``. When the outcome is
an error, ``value`` is a corrected suggestion the form shows back to the user,
who may submit it again. Running a verifier on a value it accepted returns
the same value and :attr:`Outcome.ACCEPTED`.
"""
from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Iterable

from .periods import EPOCH_YEAR, LAST_YEAR


class DateType(str, Enum):
    EXACT = "exact"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Outcome(Enum):
    NOTHING = "Nothing to check"
    ACCEPTED = "Accepted"
    INVALID_DATE = "Date: Unknown date"
    INVALID_YEAR = "Date: Year length not acceptable. Example Date: 2022-05-01"
    INVALID_MONTH = "Date: Month length not acceptable. Example Date: 2022-05-01"
    INVALID_DAY = "Date: Day length not acceptable. Example Date: 2022-05-01"
    YEAR_OUT_OF_RANGE = f"Date: Year must be between {EPOCH_YEAR}-{LAST_YEAR}"
    MONTH_TOO_BIG = "Date: Month must be between 01-12"
    DAY_TOO_BIG = "Date: Day must be between 01-31"
    NON_EXISTING_DATE = "Date: Date not acceptable and possibly non-existing"
    AMOUNT_BELOW_ZERO = "Amount: Value must be bigger than zero"
    INVALID_TX_METHOD = "Tx Method: Transaction Method not found"
    INVALID_TX_TYPE = "Tx Type: Transaction Type not acceptable. Values: Expense/Income/Transfer/E/I/T"
    NON_EXISTING_TAG = "Tags: Non-existing tags cannot be accepted"
    PARSING_ERROR = "Error acquired while validating input"

    @property
    def is_error(self) -> bool:
        return self not in (Outcome.NOTHING, Outcome.ACCEPTED)

    def message(self, field: str) -> str:
        """Status line text for ``field``."""
        if self in (Outcome.NOTHING, Outcome.ACCEPTED, Outcome.PARSING_ERROR):
            return f"{field}: {self.value}"
        return self.value


_DATE_FLOOR = {
    DateType.EXACT: "2022-01-01",
    DateType.MONTHLY: "2022-01",
    DateType.YEARLY: "2022",
}
_DATE_PARTS = {DateType.EXACT: 3, DateType.MONTHLY: 2, DateType.YEARLY: 1}


def _fix_length(value: int, upper: int) -> str:
    if value < 10:
        return f"{value:02d}"
    if value > upper:
        return str(upper)
    return str(value)


def verify_date(value: str, date_type: DateType = DateType.EXACT) -> tuple[str, Outcome]:
    """Check a ``YYYY-MM-DD`` (or ``YYYY-MM`` / ``YYYY``) date.

    Only one problem is corrected per call, in the order: part count, year
    length, month length, day length, year range, month range, day range and
    finally whether the calendar date exists.
    """
    if not value:
        return value, Outcome.NOTHING

    value = "".join(c for c in value if c.isdigit() or c == "-")
    parts = value.split("-")
    if len(parts) != _DATE_PARTS[date_type]:
        return _DATE_FLOOR[date_type], Outcome.INVALID_DATE

    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return value, Outcome.PARSING_ERROR

    year = parts[0]
    if len(year) != 4:
        if len(year) < 4:
            parts[0] = str(EPOCH_YEAR)[: 4 - len(year)] + year
        else:
            parts[0] = year[:4]
        return "-".join(parts), Outcome.INVALID_YEAR

    if date_type is not DateType.YEARLY and len(parts[1]) != 2:
        parts[1] = _fix_length(numbers[1], 12)
        return "-".join(parts), Outcome.INVALID_MONTH

    if date_type is DateType.EXACT and len(parts[2]) != 2:
        parts[2] = _fix_length(numbers[2], 31)
        return "-".join(parts), Outcome.INVALID_DAY

    if not EPOCH_YEAR <= numbers[0] <= LAST_YEAR:
        parts[0] = str(min(max(numbers[0], EPOCH_YEAR), LAST_YEAR))
        return "-".join(parts), Outcome.YEAR_OUT_OF_RANGE

    if date_type is not DateType.YEARLY and not 1 <= numbers[1] <= 12:
        parts[1] = "01" if numbers[1] < 1 else "12"
        return "-".join(parts), Outcome.MONTH_TOO_BIG

    if date_type is DateType.EXACT:
        if not 1 <= numbers[2] <= 31:
            parts[2] = "01" if numbers[2] < 1 else "31"
            return "-".join(parts), Outcome.DAY_TOO_BIG
        try:
            date(*numbers)
        except ValueError:
            return value, Outcome.NON_EXISTING_DATE

    return value, Outcome.ACCEPTED


_OPERATORS = "*/+-"
_AMOUNT_CHARS = re.compile(r"[^0-9.*/+\-]")


def _reduce_once(expr: str, symbol: str) -> str:
    location = expr.index(symbol)
    left_start = location
    while left_start > 0 and expr[left_start - 1] not in _OPERATORS:
        left_start -= 1
    right_end = location + 1
    while right_end < len(expr) and expr[right_end] not in _OPERATORS:
        right_end += 1
    left = expr[left_start:location]
    right = expr[location + 1 : right_end]

    if not left or not right:
        result = left or right
    else:
        a, b = float(left), float(right)
        if symbol == "*":
            result = f"{a * b:.2f}"
        elif symbol == "/":
            result = f"{a / b:.2f}"
        elif symbol == "+":
            result = f"{a + b:.2f}"
        else:
            result = f"{a - b:.2f}"
    return expr[:left_start] + result + expr[right_end:]


def _evaluate(expr: str) -> str:
    """Collapse an arithmetic expression to one literal.

    Operators are applied by scanning ``* / + -`` in that fixed order, not by
    precedence or position: ``5+3*2`` reduces ``3*2`` first.
    """
    for _ in range(sum(expr.count(s) for s in _OPERATORS)):
        for symbol in _OPERATORS:
            if symbol in expr:
                expr = _reduce_once(expr, symbol)
                break
    return expr


def verify_amount(value: str) -> tuple[str, Outcome]:
    """Check an amount, evaluating inline arithmetic, and format it as ``X.YY``."""
    if not value:
        return value, Outcome.NOTHING

    value = _AMOUNT_CHARS.sub("", value)
    if not value:
        return value, Outcome.PARSING_ERROR

    if any(s in value for s in _OPERATORS):
        try:
            value = _evaluate(value)
        except (ValueError, ZeroDivisionError):
            return value, Outcome.PARSING_ERROR

    if "." not in value:
        value += ".00"
    elif value.endswith("."):
        value += "00"
    if value.startswith("."):
        value = "0" + value

    try:
        number = float(value)
    except ValueError:
        return value, Outcome.PARSING_ERROR

    whole, fraction = value.split(".", 1)
    fraction = (fraction + "00")[:2]
    whole = whole[:10] or "0"
    value = f"{whole}.{fraction}"

    if number <= 0 or float(value) <= 0:
        return f"{abs(number):.2f}", Outcome.AMOUNT_BELOW_ZERO
    return value, Outcome.ACCEPTED


def _overlap_score(candidate: str, known: str) -> float:
    known_lower = known.lower()
    hits = sum(1 for c in candidate.lower() if c in known_lower)
    return hits / len(known) if known else 0.0


def verify_method(value: str, known: Iterable[str]) -> tuple[str, Outcome]:
    """Match a method name, suggesting the closest known method on a miss."""
    value = value.strip()
    if not value:
        return value, Outcome.NOTHING

    known = list(known)
    for name in known:
        if name.lower() == value.lower():
            return name, Outcome.ACCEPTED

    best, best_score = value, -1.0
    for name in known:
        score = _overlap_score(value, name)
        if score > best_score:
            best, best_score = name, score
    return best, Outcome.INVALID_TX_METHOD


def verify_tx_type(value: str, allow_transfer: bool = True) -> tuple[str, Outcome]:
    value = value.replace(" ", "")
    if not value:
        return value, Outcome.NOTHING

    first = value[0].lower()
    if first == "e":
        return "Expense", Outcome.ACCEPTED
    if first == "i":
        return "Income", Outcome.ACCEPTED
    if first == "t" and allow_transfer:
        return "Transfer", Outcome.ACCEPTED
    return "", Outcome.INVALID_TX_TYPE


def split_tags(value: str) -> list[str]:
    """Comma separated tags, trimmed, without empties or repeats.

    Repeats are detected ignoring case; the first spelling is kept.
    """
    seen = set()
    unique = []
    for item in value.split(","):
        item = item.strip()
        if item and item.lower() not in seen:
            seen.add(item.lower())
            unique.append(item)
    return unique


def verify_tags(value: str) -> tuple[str, Outcome]:
    if not value:
        return value, Outcome.NOTHING
    return ", ".join(split_tags(value)), Outcome.ACCEPTED


def verify_tags_forced(value: str, known: Iterable[str]) -> tuple[str, Outcome]:
    """Like :func:`verify_tags` but drops tags that do not exist yet."""
    if not value:
        return value, Outcome.NOTHING

    known_set = set(known)
    tags = split_tags(value)
    kept = [t for t in tags if t in known_set]
    outcome = Outcome.ACCEPTED if len(kept) == len(tags) else Outcome.NON_EXISTING_TAG
    return ", ".join(kept), outcome
