from datetime import date
from decimal import Decimal

import pytest

from treasury.amortization import ScheduleError, build_schedule


def test_installments_sum_to_total():
    s = build_schedule(1000, 10, 3, date(2024, 1, 15))
    assert s.interest == Decimal("100.00")
    assert s.total_amount == Decimal("1100.00")
    assert [i.amount for i in s.installments] == [Decimal("366.66"), Decimal("366.66"), Decimal("366.68")]
    assert sum(i.amount for i in s.installments) == s.total_amount


def test_zero_interest():
    s = build_schedule("1000", 0, 3, date(2024, 1, 15))
    assert s.interest == 0
    assert [i.amount for i in s.installments] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]


def test_due_dates_clamp_to_month_end():
    s = build_schedule(300, 0, 3, date(2024, 1, 31))
    assert [i.due_date for i in s.installments] == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]
    assert s.end_date == date(2024, 4, 30)


def test_numbering():
    s = build_schedule(1200, 5, 12, date(2023, 6, 1))
    assert [i.number for i in s.installments] == list(range(1, 13))
    assert s.installments[-1].due_date == date(2024, 6, 1)


@pytest.mark.parametrize("principal,rate,months", [(0, 5, 12), (-10, 5, 12), (1000, -1, 12), (1000, 5, 0)])
def test_rejects_bad_terms(principal, rate, months):
    with pytest.raises(ScheduleError):
        build_schedule(principal, rate, months, date(2024, 1, 1))
