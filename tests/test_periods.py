from datetime import date

import pytest

from tests import helpers  # noqa: F401  # ensures project root on sys.path
from pocketledger.periods import (
    FetchNature,
    Period,
    add_months,
    from_period_index,
    month_span,
    period_index,
)


def test_period_index_is_anchored_at_january_2022():
    assert period_index(2022, 1) == 0
    assert period_index(2023, 3) == 14
    assert from_period_index(14) == (2023, 3)
    assert from_period_index(period_index(2037, 12)) == (2037, 12)


def test_add_months_and_span_cross_year_boundaries():
    assert add_months(2022, 12, 1) == (2023, 1)
    assert add_months(2023, 1, -1) == (2022, 12)
    assert list(month_span((2022, 11), (2023, 2))) == [
        (2022, 11),
        (2022, 12),
        (2023, 1),
        (2023, 2),
    ]
    assert list(month_span((2023, 2), (2023, 1))) == []


def test_period_from_ui_indices():
    assert Period.from_indices(6, 0, FetchNature.MONTHLY) == Period.monthly(2022, 7)
    assert Period.from_indices(6, 1, FetchNature.YEARLY) == Period.yearly(2023)
    assert Period.from_indices(0, 0, FetchNature.ALL) == Period.all()
    with pytest.raises(ValueError):
        Period.monthly(2022, 13)


def test_bounds_previous_and_label():
    feb = Period.monthly(2024, 2)
    assert feb.bounds() == (date(2024, 2, 1), date(2024, 2, 29))
    assert Period.monthly(2023, 1).previous() == Period.monthly(2022, 12)
    assert Period.yearly(2023).previous() == Period.yearly(2022)
    assert Period.all().previous() is None
    assert Period.all().bounds() is None
    assert feb.label() == "February 2024"
    assert Period.containing(date(2022, 7, 19)) == Period.monthly(2022, 7)
