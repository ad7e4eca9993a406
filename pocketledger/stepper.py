"""Arrow-key stepping of transaction form fields.

Every ``step_*`` function takes the current text and ``direction`` (``1`` for
up, ``-1`` for down) and returns ``(value, outcome)`` like the verifiers. An
empty field steps to its first sensible value. Input the verifier rejects is
not stepped: its suggestion comes back with the rejecting outcome.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Sequence

from .autofill import best_match
from .money import format_cents, parse_cents
from .periods import EPOCH_YEAR, LAST_YEAR, add_months
from .verifier import DateType, Outcome, split_tags, verify_amount, verify_date, verify_method

TX_TYPES = ["Income", "Expense", "Transfer"]
MAX_CENTS = 999_999_999_999

_DATE_START = {
    DateType.EXACT: f"{EPOCH_YEAR}-01-01",
    DateType.MONTHLY: f"{EPOCH_YEAR}-01",
    DateType.YEARLY: str(EPOCH_YEAR),
}


def step_date(
    value: str, direction: int, date_type: DateType = DateType.EXACT
) -> tuple[str, Outcome]:
    """Move a date by one day, month or year.

    Steps that would leave the supported year range keep the current value.
    """
    value, outcome = verify_date(value, date_type)
    if outcome is Outcome.NOTHING:
        return _DATE_START[date_type], Outcome.ACCEPTED
    if outcome.is_error:
        return value, outcome

    if date_type is DateType.EXACT:
        moved = date.fromisoformat(value) + timedelta(days=direction)
        year, stepped = moved.year, moved.isoformat()
    elif date_type is DateType.MONTHLY:
        year, month = add_months(*(int(p) for p in value.split("-")), direction)
        stepped = f"{year}-{month:02d}"
    else:
        year = int(value) + direction
        stepped = str(year)

    if not EPOCH_YEAR <= year <= LAST_YEAR:
        return value, Outcome.ACCEPTED
    return stepped, Outcome.ACCEPTED


def _cycle(items: Sequence[str], index: int, direction: int) -> str:
    return items[(index + direction) % len(items)]


def step_method(value: str, direction: int, methods: Sequence[str]) -> tuple[str, Outcome]:
    """Cycle through methods in their display order."""
    if not methods:
        return value, Outcome.INVALID_TX_METHOD
    value, outcome = verify_method(value, methods)
    if outcome is Outcome.NOTHING:
        return methods[0], Outcome.ACCEPTED
    if outcome.is_error:
        return value, outcome
    return _cycle(methods, list(methods).index(value), direction), Outcome.ACCEPTED


def step_amount(value: str, direction: int) -> tuple[str, Outcome]:
    """Add or take away one whole unit, staying within ``0.00`` and the maximum."""
    checked, outcome = verify_amount(value)
    if outcome is Outcome.NOTHING:
        return "0.00", Outcome.ACCEPTED
    if outcome is Outcome.AMOUNT_BELOW_ZERO:
        if direction > 0:
            return "1.00", Outcome.ACCEPTED
        return checked, outcome
    if outcome.is_error:
        return checked, outcome

    cents = parse_cents(checked) + 100 * direction
    if not 0 <= cents <= MAX_CENTS:
        return checked, Outcome.ACCEPTED
    return format_cents(cents), Outcome.ACCEPTED


def step_tx_type(value: str, direction: int) -> tuple[str, Outcome]:
    """Cycle Income, Expense and Transfer by the first letter typed."""
    value = value.strip()
    if not value:
        return TX_TYPES[0], Outcome.ACCEPTED
    index = {"e": 1, "t": 2}.get(value[0].lower(), 0)
    return _cycle(TX_TYPES, index, direction), Outcome.ACCEPTED


def step_tags(value: str, direction: int, tags: Sequence[str]) -> tuple[str, Outcome]:
    """Cycle the tag after the last comma through the known tags.

    Earlier tags are kept as typed. An unknown last tag is swapped for its
    closest known tag and reported as :attr:`Outcome.NON_EXISTING_TAG`.
    """
    if not tags:
        return value, Outcome.NON_EXISTING_TAG if value.strip() else Outcome.NOTHING

    parts = [t.strip() for t in value.split(",")] if value.strip() else [""]
    done, working = split_tags(", ".join(parts[:-1])), parts[-1]
    lowered = [t.lower() for t in tags]

    if not working:
        return ", ".join(done + [tags[0]]), Outcome.ACCEPTED
    if working.lower() not in lowered:
        return ", ".join(done + [best_match(working, tags)]), Outcome.NON_EXISTING_TAG
    stepped = _cycle(tags, lowered.index(working.lower()), direction)
    return ", ".join(done + [stepped]), Outcome.ACCEPTED
